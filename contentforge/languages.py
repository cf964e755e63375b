"""Language registry describing comment syntax per source language."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import PurePath, PurePosixPath
from typing import Dict, Iterable, Iterator, Optional, Tuple


@dataclass(frozen=True)
class BlockFence:
    """Open/close tokens for a block comment style."""

    open: str
    close: str
    nested: bool = False


@dataclass(frozen=True)
class CommentStyle:
    """Line prefixes and block fences recognised by a language."""

    line: Tuple[str, ...] = ()
    block: Tuple[BlockFence, ...] = ()


@dataclass(frozen=True)
class LanguageSpec:
    """Comment syntax plus extension and shebang associations."""

    id: str
    comment: CommentStyle
    aliases: Tuple[str, ...] = ()
    extensions: Tuple[str, ...] = ()
    shebangs: Tuple[str, ...] = ()
    mime: Optional[str] = None


@dataclass
class LanguageRegistry:
    """Explicit lookup table of language specs.

    A registry is seeded once (see :func:`default_registry`) and then
    threaded into every component that needs detection; there is no
    module-level mutable state.
    """

    _by_id: Dict[str, LanguageSpec] = field(default_factory=dict)
    _by_ext: Dict[str, LanguageSpec] = field(default_factory=dict)

    def register(self, spec: LanguageSpec) -> None:
        self._by_id[spec.id] = spec
        for alias in spec.aliases:
            self._by_id[alias] = spec
        for ext in spec.extensions:
            self._by_ext[ext.lower()] = spec

    def __iter__(self) -> Iterator[LanguageSpec]:
        seen: set[str] = set()
        for spec in self._by_id.values():
            if spec.id in seen:
                continue
            seen.add(spec.id)
            yield spec

    def by_id(self, id_or_alias: str) -> Optional[LanguageSpec]:
        return self._by_id.get(id_or_alias)

    def by_extension(self, path: str | PurePath) -> Optional[LanguageSpec]:
        suffix = PurePath(path).suffix.lower()
        if not suffix:
            return None
        return self._by_ext.get(suffix)

    def by_shebang(self, first_line: str) -> Optional[LanguageSpec]:
        if not first_line.startswith("#!"):
            return None
        interpreter = _interpreter_name(first_line[2:])
        if not interpreter:
            return None
        for spec in self:
            for shebang in spec.shebangs:
                if re.fullmatch(rf"{re.escape(shebang)}[\d.]*", interpreter):
                    return spec
        return None

    def detect(
        self,
        path: str | PurePath,
        first_line: Optional[str] = None,
        default: Optional[str] = None,
    ) -> Optional[LanguageSpec]:
        """Resolve by extension, then shebang, then the caller's default id."""
        spec = self.by_extension(path)
        if spec is None and first_line:
            spec = self.by_shebang(first_line)
        if spec is None and default is not None:
            spec = self.by_id(default)
        return spec


def _interpreter_name(command: str) -> str:
    """Interpreter basename from a shebang command, looking through ``/usr/bin/env``."""
    tokens = command.split()
    if not tokens:
        return ""
    name = PurePosixPath(tokens[0]).name
    if name == "env":
        name = next((PurePosixPath(token).name for token in tokens[1:] if not token.startswith("-")), "")
    return name


_C_STYLE = CommentStyle(line=("//",), block=(BlockFence("/*", "*/"),))
_HASH_STYLE = CommentStyle(line=("#",))

_BUILTIN_LANGUAGES: Tuple[LanguageSpec, ...] = (
    LanguageSpec(
        id="typescript",
        comment=_C_STYLE,
        aliases=("ts", "javascript", "js", "tsx", "jsx"),
        extensions=(".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".jsonc", ".json5"),
        shebangs=("node", "deno"),
        mime="text/typescript",
    ),
    LanguageSpec(id="json", comment=_C_STYLE, extensions=(".json",)),
    LanguageSpec(
        id="python",
        comment=_HASH_STYLE,
        aliases=("py",),
        extensions=(".py",),
        shebangs=("python", "python3", "python2"),
    ),
    LanguageSpec(
        id="shell",
        comment=_HASH_STYLE,
        aliases=("bash", "sh", "zsh"),
        extensions=(".sh", ".bash", ".zsh"),
        shebangs=("bash", "sh", "zsh"),
    ),
    LanguageSpec(id="go", comment=_C_STYLE, extensions=(".go",)),
    LanguageSpec(
        id="rust",
        comment=CommentStyle(line=("//",), block=(BlockFence("/*", "*/", nested=True),)),
        aliases=("rs",),
        extensions=(".rs",),
    ),
    LanguageSpec(id="java", comment=_C_STYLE, extensions=(".java",)),
    LanguageSpec(id="kotlin", comment=_C_STYLE, aliases=("kt",), extensions=(".kt", ".kts")),
    LanguageSpec(id="c", comment=_C_STYLE, extensions=(".c", ".h")),
    LanguageSpec(
        id="cpp",
        comment=_C_STYLE,
        aliases=("c++", "cc", "hpp"),
        extensions=(".cpp", ".cc", ".cxx", ".hpp", ".hxx"),
    ),
    LanguageSpec(
        id="html",
        comment=CommentStyle(block=(BlockFence("<!--", "-->"),)),
        extensions=(".html", ".htm"),
    ),
    LanguageSpec(
        id="xml",
        comment=CommentStyle(block=(BlockFence("<!--", "-->"),)),
        extensions=(".xml",),
    ),
    LanguageSpec(
        id="css",
        comment=CommentStyle(block=(BlockFence("/*", "*/"),)),
        extensions=(".css",),
    ),
    LanguageSpec(id="scss", comment=_C_STYLE, extensions=(".scss", ".sass")),
    LanguageSpec(
        id="sql",
        comment=CommentStyle(line=("--",), block=(BlockFence("/*", "*/"),)),
        extensions=(".sql",),
    ),
    LanguageSpec(id="yaml", comment=_HASH_STYLE, extensions=(".yaml", ".yml")),
    LanguageSpec(id="toml", comment=_HASH_STYLE, extensions=(".toml",)),
    LanguageSpec(id="ini", comment=CommentStyle(line=(";", "#")), extensions=(".ini", ".cfg")),
    LanguageSpec(
        id="lua",
        comment=CommentStyle(line=("--",), block=(BlockFence("--[[", "]]", nested=True),)),
        extensions=(".lua",),
    ),
    LanguageSpec(id="r", comment=_HASH_STYLE, extensions=(".r",)),
)


def default_registry(extra: Iterable[LanguageSpec] = ()) -> LanguageRegistry:
    """Return a registry seeded with the built-in languages plus any extras."""
    registry = LanguageRegistry()
    for spec in _BUILTIN_LANGUAGES:
        registry.register(spec)
    for spec in extra:
        registry.register(spec)
    return registry


__all__ = [
    "BlockFence",
    "CommentStyle",
    "LanguageRegistry",
    "LanguageSpec",
    "default_registry",
]
