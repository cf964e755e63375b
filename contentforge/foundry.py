"""Executable "foundry" resources: detection, execution and output capture."""

from __future__ import annotations

import asyncio
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Set, Union

from .config import DEFAULT_WINDOWS_EXTENSIONS
from .content import ContentError, FileContent
from .events import FOUNDRY_MATERIALIZED, EventBus, FoundryMaterialized
from .logging import get_logger
from .resource import FoundryNature, PathExtensions, Resource

AUTO_MARKER = "auto"

PathLike = Union[str, Path]


class FoundryError(RuntimeError):
    """Base class for foundry failures reported on ``foundry:materialized`` events."""


class FoundryNotExecutableError(FoundryError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"Foundry {path} is not executable")
        self.path = path


class FoundryExecutionError(FoundryError):
    """The foundry ran but exited with a non-zero status."""

    def __init__(self, path: Path, returncode: int, stderr: str = "") -> None:
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"Foundry {path} failed with exit code {returncode}{detail}")
        self.path = path
        self.returncode = returncode
        self.stderr = stderr


class ProcessSpawnError(FoundryError):
    """The process could not be started at all."""

    def __init__(self, path: Path, cause: OSError) -> None:
        super().__init__(f"Unable to start {path}: {cause}")
        self.path = path
        self.cause = cause


@dataclass(frozen=True)
class ProcessResult:
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


class Executables:
    """Answers "is this file executable?" and caches the answer per absolute path.

    ``posix`` looks for any execute bit on a regular file, ``windows`` matches
    the suffix against ``PATHEXT`` (or ``windows_extensions``) and ``none``
    treats everything as not executable.
    """

    def __init__(
        self,
        detection: str = "posix",
        windows_extensions: Optional[Sequence[str]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        if detection not in {"posix", "windows", "none"}:
            raise ValueError(f"Unknown executable detection mode: {detection}")
        self.detection = detection
        self.windows_extensions = tuple(windows_extensions or DEFAULT_WINDOWS_EXTENSIONS)
        self.environ = environ if environ is not None else os.environ
        self._cache: Dict[Path, bool] = {}

    def is_executable(self, path: PathLike) -> bool:
        key = Path(path).absolute()
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        result = self._detect(key)
        self._cache[key] = result
        return result

    def forget(self, path: Optional[PathLike] = None) -> None:
        if path is None:
            self._cache.clear()
        else:
            self._cache.pop(Path(path).absolute(), None)

    def _detect(self, path: Path) -> bool:
        if self.detection == "windows":
            return path.suffix.lower() in self._pathext()
        if self.detection == "posix":
            try:
                mode = path.stat().st_mode
            except OSError:
                return False
            return stat.S_ISREG(mode) and bool(mode & 0o111)
        return False

    def _pathext(self) -> Set[str]:
        raw = self.environ.get("PATHEXT")
        entries = raw.split(";") if raw else self.windows_extensions
        return {entry.strip().lower() for entry in entries if entry.strip()}


def derive_auto_path(path: PathLike) -> Optional[Path]:
    """``name.<stage>.ext`` -> ``name.auto.ext`` next to ``path``.

    Returns ``None`` when there are fewer than two extensions or the stage is
    already ``auto``.
    """
    source = Path(path)
    extensions = PathExtensions.of(source)
    chain = extensions.extensions
    if len(chain) < 2 or chain[-2].lower() == f".{AUTO_MARKER}":
        return None
    name = (
        extensions.basename_no_extensions
        + "".join(chain[:-2])
        + f".{AUTO_MARKER}"
        + chain[-1]
    )
    return source.with_name(name)


async def run_process(
    path: PathLike,
    args: Sequence[str] = (),
    cwd: Optional[PathLike] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ProcessResult:
    """Run ``path`` with captured output; raises :class:`ProcessSpawnError` if it cannot start."""
    executable = Path(path)
    try:
        process = await asyncio.create_subprocess_exec(
            str(executable),
            *args,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ProcessSpawnError(executable, exc) from exc
    stdout, stderr = await process.communicate()
    return ProcessResult(returncode=process.returncode or 0, stdout=stdout, stderr=stderr)


@dataclass
class FoundryMaterializer:
    """Runs foundry resources and writes their stdout to the derived ``*.auto.*`` path."""

    executables: Executables
    bus: Optional[EventBus] = None
    logger: Any = field(default_factory=lambda: get_logger("foundry"), repr=False)

    async def materialize(
        self,
        resource: Resource,
        env: Mapping[str, str],
        cwd: Path,
        dry_run: bool = False,
    ) -> Optional[FoundryMaterialized]:
        """Materialize one foundry; returns the emitted event, ``None`` for non-foundries."""
        if not resource.is_foundry:
            return None

        output_path = derive_auto_path(resource.abs_path)
        command = str(resource.abs_path)

        if not self.executables.is_executable(resource.abs_path):
            error: Optional[Exception] = FoundryNotExecutableError(resource.abs_path)
            self.logger.error("Foundry %s is not executable; skipping", resource.rel_path)
            return self._emit(resource, command, env, cwd, output_path, dry_run, error)

        if dry_run:
            self.logger.debug("Dry run: would execute foundry %s", resource.rel_path)
            return self._emit(resource, command, env, cwd, output_path, dry_run, None)

        error = None
        try:
            result = await run_process(resource.abs_path, cwd=cwd, env=env)
        except ProcessSpawnError as exc:
            error = exc
        else:
            if not result.success:
                error = FoundryExecutionError(resource.abs_path, result.returncode, result.stderr_text())
            elif output_path is not None:
                try:
                    FileContent(output_path).write_bytes(result.stdout)
                except ContentError as exc:
                    error = exc
            else:
                self.logger.debug(
                    "Foundry %s has no materializable path; output discarded", resource.rel_path
                )

        if error is not None:
            self.logger.error("Foundry %s failed: %s", resource.rel_path, error)
        else:
            self.logger.info(
                "Materialized %s -> %s",
                resource.rel_path,
                output_path.name if output_path is not None else "(side effects only)",
            )
        return self._emit(resource, command, env, cwd, output_path, dry_run, error)

    def clean(self, resource: Resource, dry_run: bool = False) -> Optional[Path]:
        """Remove a previously materialized ``*.auto.*`` file; returns the path removed.

        Only foundries annotated ``isCleanable`` are touched.
        """
        nature = resource.nature
        if not isinstance(nature, FoundryNature) or not nature.is_cleanable:
            return None
        if not self.executables.is_executable(resource.abs_path):
            return None
        output_path = derive_auto_path(resource.abs_path)
        if output_path is None or not output_path.exists():
            return None
        if not dry_run:
            try:
                output_path.unlink()
            except OSError as exc:
                self.logger.error("Unable to remove %s: %s", output_path, exc)
                return None
        return output_path

    def _emit(
        self,
        resource: Resource,
        command: str,
        env: Mapping[str, str],
        cwd: Path,
        output_path: Optional[Path],
        dry_run: bool,
        error: Optional[Exception],
    ) -> FoundryMaterialized:
        event = FoundryMaterialized(
            resource=resource,
            command=command,
            env=env,
            cwd=cwd,
            output_path=output_path,
            dry_run=dry_run,
            error=error,
        )
        if self.bus is not None:
            self.bus.publish(FOUNDRY_MATERIALIZED, event)
        return event


__all__ = [
    "AUTO_MARKER",
    "Executables",
    "FoundryError",
    "FoundryExecutionError",
    "FoundryMaterializer",
    "FoundryNotExecutableError",
    "ProcessResult",
    "ProcessSpawnError",
    "derive_auto_path",
    "run_process",
]
