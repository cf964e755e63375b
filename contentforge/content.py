"""File content accessor used by suppliers, directives and foundries."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

_CHUNK_SIZE = 64 * 1024


class ContentError(RuntimeError):
    """Raised when file content cannot be read or written."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class ContentNotFoundError(ContentError):
    """Raised when the backing file does not exist."""


class ContentPermissionError(ContentError):
    """Raised when the backing file cannot be accessed due to permissions."""


@dataclass(frozen=True)
class FileContent:
    """Whole-file text access for one path on disk."""

    path: Path
    encoding: str = "utf-8"

    def read_text(self, start: Optional[int] = None, end: Optional[int] = None) -> str:
        """Return the decoded text, optionally sliced to ``[start:end]`` characters."""
        try:
            text = self.path.read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as exc:
            raise _translate(self.path, exc) from exc
        if start is None and end is None:
            return text
        return text[start:end]

    def read_bytes(self) -> bytes:
        try:
            return self.path.read_bytes()
        except OSError as exc:
            raise _translate(self.path, exc) from exc

    def iter_chunks(self, size: int = _CHUNK_SIZE) -> Iterator[bytes]:
        """Yield raw byte chunks of the file for streaming consumers."""
        try:
            with self.path.open("rb") as handle:
                for chunk in iter(lambda: handle.read(size), b""):
                    yield chunk
        except OSError as exc:
            raise _translate(self.path, exc) from exc

    def first_line(self, limit: int = 256) -> str:
        """Return the first line (up to ``limit`` bytes), used for shebang detection."""
        try:
            with self.path.open("rb") as handle:
                head = handle.read(limit)
        except OSError as exc:
            raise _translate(self.path, exc) from exc
        return head.decode(self.encoding, errors="replace").split("\n", 1)[0].rstrip("\r")

    def write_text(self, text: str) -> str:
        """Replace the whole file with ``text`` and return it."""
        try:
            self.path.write_text(text, encoding=self.encoding)
        except OSError as exc:
            raise _translate(self.path, exc) from exc
        return text

    def write_bytes(self, data: bytes) -> None:
        try:
            self.path.write_bytes(data)
        except OSError as exc:
            raise _translate(self.path, exc) from exc


def _translate(path: Path, exc: Exception) -> ContentError:
    if isinstance(exc, FileNotFoundError):
        return ContentNotFoundError(path, "file not found")
    if isinstance(exc, PermissionError):
        return ContentPermissionError(path, "permission denied")
    if isinstance(exc, UnicodeDecodeError):
        return ContentError(path, f"cannot decode as text ({exc.reason})")
    return ContentError(path, str(exc))


__all__ = [
    "ContentError",
    "ContentNotFoundError",
    "ContentPermissionError",
    "FileContent",
]
