"""Helper utilities for constructing temporary projects in tests."""

from __future__ import annotations

import os
import stat
import textwrap
from pathlib import Path
from typing import Mapping

from contentforge.config import ForgeConfig, load_config


class ProjectBuilder:
    """Utility for writing files into a throwaway project and loading its config."""

    def __init__(self, tmp_path: Path) -> None:
        self.root = tmp_path / "project"
        self.root.mkdir()

    def write(self, files: Mapping[str, str]) -> None:
        """Write `path -> contents` entries into the project."""
        for relative, content in files.items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            normalised = textwrap.dedent(content).lstrip("\n")
            path.write_text(normalised, encoding="utf-8")

    def write_executable(self, relative: str, content: str) -> Path:
        """Write a script and mark it executable for the owner."""
        self.write({relative: content})
        path = self.root / relative
        mode = os.stat(path).st_mode
        path.chmod(mode | stat.S_IXUSR)
        return path

    def read(self, relative: str) -> str:
        return (self.root / relative).read_text(encoding="utf-8")

    def config(self) -> ForgeConfig:
        """Return the configuration for the project root."""
        return load_config(self.root)

    def path(self, relative: str = "") -> Path:
        """Return the project root path (or a path inside it)."""
        return self.root / relative if relative else self.root


__all__ = ["ProjectBuilder"]
