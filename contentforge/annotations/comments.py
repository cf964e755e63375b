"""In-memory comment scanner.

Offsets are character offsets into the decoded text; line and column
numbers are 1-based. Block comments are located first (per declared fence,
counting nested opens when the fence allows nesting), then line comments on
every line whose left-trimmed content starts with a declared prefix. The two
result sets are merged by start offset, blocks before lines on ties.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..languages import BlockFence, LanguageSpec


@dataclass(frozen=True)
class Position:
    line: int
    column: int


@dataclass(frozen=True)
class SourceLocation:
    start: Position
    end: Position


@dataclass(frozen=True)
class CommentNode:
    """One scanned comment: ``raw`` includes the fences, ``text`` does not."""

    kind: str
    text: str
    raw: str
    start: int
    end: int
    loc: SourceLocation
    fence_open: str
    fence_close: Optional[str] = None


def sorted_prefixes(language: LanguageSpec) -> Tuple[str, ...]:
    """Line prefixes longest first so ``--`` never shadows ``---``."""
    return tuple(sorted(language.comment.line, key=len, reverse=True))


def line_comment(
    line_text: str,
    line_start: int,
    line_no: int,
    prefixes: Sequence[str],
) -> Optional[CommentNode]:
    """Return the line comment carried by ``line_text`` (EOL excluded), if any."""
    if not prefixes:
        return None
    trimmed = line_text.lstrip()
    prefix = next((p for p in prefixes if trimmed.startswith(p)), None)
    if prefix is None:
        return None
    leading = len(line_text) - len(trimmed)
    raw = trimmed
    return CommentNode(
        kind="line",
        text=raw[len(prefix):],
        raw=raw,
        start=line_start + leading,
        end=line_start + len(line_text),
        loc=SourceLocation(
            start=Position(line_no, leading + 1),
            end=Position(line_no, len(line_text) + 1),
        ),
        fence_open=prefix,
    )


def block_comment(
    source_raw: str,
    start: int,
    fence: BlockFence,
    loc: SourceLocation,
) -> CommentNode:
    return CommentNode(
        kind="block",
        text=source_raw[len(fence.open):len(source_raw) - len(fence.close)],
        raw=source_raw,
        start=start,
        end=start + len(source_raw),
        loc=loc,
        fence_open=fence.open,
        fence_close=fence.close,
    )


def split_line(segment: str) -> str:
    """Drop a trailing carriage return that belonged to a CRLF terminator."""
    return segment[:-1] if segment.endswith("\r") else segment


def scan_comments(source: str, language: LanguageSpec) -> List[CommentNode]:
    """Scan ``source`` and return its comments ordered by start offset."""
    if not source:
        return []

    line_starts = [0]
    line_starts.extend(index + 1 for index, ch in enumerate(source) if ch == "\n")

    def position(offset: int) -> Position:
        line_index = bisect_right(line_starts, offset) - 1
        return Position(line_index + 1, offset - line_starts[line_index] + 1)

    keyed: List[Tuple[int, int, CommentNode]] = []

    for order, fence in enumerate(language.comment.block):
        for start, end in _block_ranges(source, fence):
            loc = SourceLocation(start=position(start), end=position(end))
            keyed.append((start, order, block_comment(source[start:end], start, fence, loc)))

    prefixes = sorted_prefixes(language)
    if prefixes:
        line_order = len(language.comment.block)
        offset = 0
        for line_no, segment in enumerate(source.split("\n"), start=1):
            node = line_comment(split_line(segment), offset, line_no, prefixes)
            if node is not None:
                keyed.append((node.start, line_order, node))
            offset += len(segment) + 1

    keyed.sort(key=lambda entry: (entry[0], entry[1]))
    return [node for _, _, node in keyed]


def _block_ranges(source: str, fence: BlockFence) -> List[Tuple[int, int]]:
    """Return ``(start, end)`` ranges of terminated blocks for one fence.

    An unterminated block stops the search for this fence: it is never
    emitted and nothing after it is considered.
    """
    ranges: List[Tuple[int, int]] = []
    open_len, close_len = len(fence.open), len(fence.close)
    cursor = 0
    while cursor < len(source):
        start = source.find(fence.open, cursor)
        if start < 0:
            break
        if not fence.nested:
            close_at = source.find(fence.close, start + open_len)
            if close_at < 0:
                break
            end = close_at + close_len
        else:
            depth = 1
            pos = start + open_len
            while depth > 0:
                next_open = source.find(fence.open, pos)
                next_close = source.find(fence.close, pos)
                if next_close < 0 and next_open < 0:
                    break
                if next_open >= 0 and (next_close < 0 or next_open < next_close):
                    depth += 1
                    pos = next_open + open_len
                else:
                    depth -= 1
                    pos = next_close + close_len
            if depth > 0:
                break
            end = pos
        ranges.append((start, end))
        cursor = end
    return ranges


__all__ = [
    "CommentNode",
    "Position",
    "SourceLocation",
    "scan_comments",
]
