"""Filesystem resource supplier with .gitignore and config exclusions."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import AsyncIterator, Callable, Iterator, List, Optional, Sequence

from .config import CONFIG_FILENAME, ConfigError, load_config
from .content import ContentError, FileContent
from .languages import LanguageRegistry
from .logging import get_logger
from .resource import Resource, SupplierIdentity

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "node_modules",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".idea",
}

_EXCLUDED_FILES = {
    ".DS_Store",
    "Thumbs.db",
    CONFIG_FILENAME,
}

ResourceSupplier = Callable[[Optional[asyncio.Event]], AsyncIterator[Resource]]

_LOGGER = get_logger("walker")


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore or .contentforge.yml."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        if self.anchored or self.has_slash:
            if fnmatchcase(rel_path, self.pattern):
                return True
            return self.directory_only and rel_path.startswith(f"{self.pattern}/")

        return any(fnmatchcase(part, self.pattern) for part in rel_path.split("/"))


def build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash="/" in pattern,
    )


def parse_gitignore(path: Path) -> List[IgnoreRule]:
    if not path.exists():
        return []

    rules: List[IgnoreRule] = []
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = build_ignore_rule(line, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


def load_ignore_rules(root: Path, exclude_paths: Sequence[str] | None = None) -> List[IgnoreRule]:
    """Rules from ``root/.gitignore`` followed by configured exclusions."""
    rules = parse_gitignore(root / ".gitignore")
    if exclude_paths is None:
        try:
            exclude_paths = load_config(root).exclude_paths
        except ConfigError:
            exclude_paths = []
    for pattern in exclude_paths:
        rule = build_ignore_rule(pattern)
        if rule is not None:
            rules.append(rule)
    return rules


def should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def iter_files(
    root: Path,
    rules: Sequence[IgnoreRule],
    ignore_root: Optional[Path] = None,
) -> Iterator[Path]:
    """Yield files under ``root`` in a stable (sorted) order.

    Ignore rules are matched against paths relative to ``ignore_root``
    (defaults to ``root``).
    """
    anchor = ignore_root if ignore_root is not None and _is_within(root, ignore_root) else root
    for dirpath, dirnames, filenames in os.walk(root):
        current_dir = Path(dirpath)
        rel_dir = current_dir.relative_to(anchor).as_posix() if current_dir != anchor else ""

        kept_dirs = []
        for name in sorted(dirnames):
            if name in _EXCLUDED_DIRS:
                continue
            rel_path = f"{rel_dir}/{name}" if rel_dir else name
            if should_ignore(rel_path, True, rules):
                continue
            kept_dirs.append(name)
        dirnames[:] = kept_dirs

        for filename in sorted(filenames):
            if filename in _EXCLUDED_FILES:
                continue
            rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
            if should_ignore(rel_path, False, rules):
                continue
            path = current_dir / filename
            if path.is_file():
                yield path


def fs_files_supplier(
    root: Path,
    registry: LanguageRegistry,
    *,
    identity: str = "PROJECT_HOME",
    project_root: Optional[Path] = None,
    rules: Optional[Sequence[IgnoreRule]] = None,
    default_language: Optional[str] = None,
) -> ResourceSupplier:
    """Return a supplier yielding one :class:`Resource` per walked file.

    ``rel_path`` is relative to ``project_root`` (defaults to ``root``) and
    ``web_path`` is relative to ``root``. Enumeration stops as soon as the
    abort event is set.
    """
    walk_root = root.expanduser().resolve()
    base = (project_root or walk_root).expanduser().resolve()
    supplier = SupplierIdentity(identity=identity, root=walk_root)

    async def supply(abort: Optional[asyncio.Event] = None) -> AsyncIterator[Resource]:
        if not walk_root.is_dir():
            _LOGGER.warning("Supplier root %s does not exist; nothing to walk", walk_root)
            return
        active_rules = list(rules) if rules is not None else load_ignore_rules(base)
        for path in iter_files(walk_root, active_rules, ignore_root=base):
            if abort is not None and abort.is_set():
                _LOGGER.debug("Abort requested; %s stops enumerating", identity)
                return
            content = FileContent(path)
            language = registry.by_extension(path)
            if language is None:
                try:
                    first_line = content.first_line()
                except ContentError as exc:
                    _LOGGER.debug("Skipping shebang detection for %s: %s", path, exc)
                    first_line = ""
                language = registry.detect(path, first_line, default_language)
            yield Resource(
                abs_path=path,
                rel_path=_relative(path, base),
                web_path=_relative(path, walk_root),
                supplier=supplier,
                content=content,
                language=language,
            )
            await asyncio.sleep(0)

    return supply


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def _relative(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


__all__ = [
    "IgnoreRule",
    "ResourceSupplier",
    "SupplierIdentity",
    "build_ignore_rule",
    "fs_files_supplier",
    "iter_files",
    "load_ignore_rules",
    "parse_gitignore",
    "should_ignore",
]
