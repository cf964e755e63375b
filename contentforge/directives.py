"""Block-scoped ``#include`` directives embedded in line comments.

A block looks like this (SQL shown)::

    -- #include header --file ../shared/header.sql
    ...anything...
    -- #includeEnd header

The whole span, markers included, is replaced by the rendered content.
"""

from __future__ import annotations

import argparse
import re
import shlex
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, NoReturn, Optional, Sequence, Tuple

from .content import FileContent
from .languages import LanguageSpec
from .logging import get_logger
from .resource import Resource

DEFAULT_COMMENT_PREFIX = "--"
DEFAULT_DIRECTIVE_PREFIX = "#"
INCLUDE_TOKEN = "include"
INCLUDE_END_TOKEN = "includeEnd"

_LINE = re.compile(r"[^\n]*\n|[^\n]+")


class DirectiveError(RuntimeError):
    """Raised (and reported through ``on_error``) for a single failing block."""

    def __init__(self, message: str, line_no: Optional[int] = None) -> None:
        location = f"line {line_no}: " if line_no is not None else ""
        super().__init__(f"{location}{message}")
        self.line_no = line_no


@dataclass(frozen=True)
class IncludeDirective:
    block_name: str
    file: str
    line_no: int
    args_text: str


@dataclass(frozen=True)
class RenderedBlock:
    directive: IncludeDirective
    begin_line_no: int
    end_line_no: int


@dataclass(frozen=True)
class ReplaceResult:
    before: str
    after: str
    changed: bool
    blocks: Tuple[RenderedBlock, ...] = ()


Renderer = Callable[[IncludeDirective, Any], str]
ErrorHandler = Callable[[DirectiveError, Any], None]


class LineCommentDirectiveParser:
    """Recognises ``<comment> <prefix><token> <args>`` lines."""

    def __init__(self, comment: str, directive_prefix: str = DEFAULT_DIRECTIVE_PREFIX) -> None:
        self.comment = comment
        self.directive_prefix = directive_prefix

    def parse(self, line: str) -> Optional[Tuple[str, str]]:
        """Return ``(token, remainder)`` for a directive line, else ``None``."""
        trimmed = line.strip()
        if not trimmed.startswith(self.comment):
            return None
        after = trimmed[len(self.comment):].lstrip()
        if not after.startswith(self.directive_prefix):
            return None
        rest = after[len(self.directive_prefix):].lstrip()
        if not rest:
            return None
        parts = rest.split(None, 1)
        return parts[0], parts[1].strip() if len(parts) > 1 else ""


class _IncludeArgumentParser(argparse.ArgumentParser):
    """Argument parser that raises instead of printing usage and exiting."""

    def error(self, message: str) -> NoReturn:
        raise DirectiveError(message)

    def exit(self, status: int = 0, message: Optional[str] = None) -> NoReturn:
        raise DirectiveError(message or f"argument parsing exited with status {status}")


def _build_include_parser() -> argparse.ArgumentParser:
    parser = _IncludeArgumentParser(
        prog="#include",
        description="Include a file into the source (in-place replacement).",
        add_help=False,
    )
    parser.add_argument("block_name", help="Name shared by the #include and #includeEnd markers.")
    parser.add_argument(
        "-f",
        "--file",
        required=True,
        help="File to include, relative to the source file.",
    )
    return parser


_INCLUDE_PARSER = _build_include_parser()


def parse_include_args(args_text: str, line_no: int) -> IncludeDirective:
    """Tokenise ``args_text`` shell-style and parse ``<block> --file <path>``."""
    try:
        argv = shlex.split(args_text)
    except ValueError as exc:
        raise DirectiveError(str(exc), line_no) from exc
    try:
        namespace = _INCLUDE_PARSER.parse_args(argv)
    except DirectiveError as exc:
        raise DirectiveError(str(exc), line_no) from exc
    return IncludeDirective(
        block_name=namespace.block_name,
        file=namespace.file,
        line_no=line_no,
        args_text=args_text,
    )


@dataclass
class IncludeDirectiveProcessor:
    """Expands every ``#include`` block in a text; failures stay scoped to one block."""

    parser: LineCommentDirectiveParser
    renderer: Renderer
    on_error: Optional[ErrorHandler] = None
    logger: Any = field(default_factory=lambda: get_logger("directives"), repr=False)

    def process(self, text: str, context: Any = None) -> ReplaceResult:
        lines = _LINE.findall(text)
        out: List[str] = []
        blocks: List[RenderedBlock] = []
        index = 0
        while index < len(lines):
            line = lines[index]
            parsed = self.parser.parse(line)
            if parsed is None or parsed[0] != INCLUDE_TOKEN:
                out.append(line)
                index += 1
                continue

            line_no = index + 1
            try:
                directive = parse_include_args(parsed[1], line_no)
            except DirectiveError as exc:
                self._report(exc, context)
                out.append(line)
                index += 1
                continue

            end = self._find_end(lines, index + 1, directive.block_name)
            if end is None:
                self._report(
                    DirectiveError(
                        f"#include {directive.block_name} has no matching "
                        f"#{INCLUDE_END_TOKEN} {directive.block_name}",
                        line_no,
                    ),
                    context,
                )
                out.append(line)
                index += 1
                continue

            try:
                rendered = self.renderer(directive, context)
            except Exception as exc:
                error = DirectiveError(f"render failed for {directive.block_name}: {exc}", line_no)
                error.__cause__ = exc
                self._report(error, context)
                out.extend(lines[index:end + 1])
                index = end + 1
                continue

            eol = _eol(lines[end])
            if eol and not rendered.endswith("\n"):
                rendered += eol
            out.append(rendered)
            blocks.append(RenderedBlock(directive, line_no, end + 1))
            index = end + 1

        after = "".join(out)
        return ReplaceResult(before=text, after=after, changed=after != text, blocks=tuple(blocks))

    def _find_end(self, lines: Sequence[str], start: int, block_name: str) -> Optional[int]:
        for index in range(start, len(lines)):
            parsed = self.parser.parse(lines[index])
            if parsed is not None and parsed[0] == INCLUDE_END_TOKEN and parsed[1] == block_name:
                return index
        return None

    def _report(self, error: DirectiveError, context: Any) -> None:
        if self.on_error is not None:
            self.on_error(error, context)
        else:
            self.logger.error("Include directive error: %s", error)


def _eol(line: str) -> str:
    if line.endswith("\r\n"):
        return "\r\n"
    if line.endswith("\n"):
        return "\n"
    return ""


def comment_prefix_for(
    language: Optional[LanguageSpec],
    override: Optional[str] = None,
    logger: Any = None,
) -> str:
    """Choose the line-comment prefix directives are written with for ``language``."""
    logger = logger or get_logger("directives")
    if override:
        return override
    if language is None or not language.comment.line:
        logger.warning(
            "Language %s has no line comments; using '%s' for directives",
            language.id if language else "(undetected)",
            DEFAULT_COMMENT_PREFIX,
        )
        return DEFAULT_COMMENT_PREFIX
    if len(language.comment.line) > 1:
        logger.warning(
            "Language %s has multiple line comment styles (%s); using '%s' for directives",
            language.id,
            ", ".join(language.comment.line),
            language.comment.line[0],
        )
    return language.comment.line[0]


def read_include_file(directive: IncludeDirective, resource: Resource) -> str:
    """Default renderer: the ``--file`` target, relative to the source file's directory."""
    target = (resource.abs_path.parent / directive.file).resolve()
    return FileContent(target).read_text()


class DirectiveProcessors:
    """Caches one processor per language so prefix warnings are logged once."""

    def __init__(
        self,
        renderer: Renderer = read_include_file,  # type: ignore[assignment]
        *,
        comment_override: Optional[str] = None,
        directive_prefix: str = DEFAULT_DIRECTIVE_PREFIX,
        on_error: Optional[ErrorHandler] = None,
    ) -> None:
        self.renderer = renderer
        self.comment_override = comment_override
        self.directive_prefix = directive_prefix
        self.on_error = on_error
        self.logger = get_logger("directives")
        self._cache: Dict[str, IncludeDirectiveProcessor] = {}

    def for_language(self, language: Optional[LanguageSpec]) -> IncludeDirectiveProcessor:
        key = language.id if language is not None else ""
        processor = self._cache.get(key)
        if processor is None:
            prefix = comment_prefix_for(language, self.comment_override, self.logger)
            processor = IncludeDirectiveProcessor(
                parser=LineCommentDirectiveParser(prefix, self.directive_prefix),
                renderer=self.renderer,
                on_error=self.on_error,
            )
            self._cache[key] = processor
        return processor


__all__ = [
    "DEFAULT_COMMENT_PREFIX",
    "DirectiveError",
    "DirectiveProcessors",
    "IncludeDirective",
    "IncludeDirectiveProcessor",
    "LineCommentDirectiveParser",
    "RenderedBlock",
    "ReplaceResult",
    "comment_prefix_for",
    "parse_include_args",
    "read_include_file",
]
