"""Streaming comment scanner.

Consumes text (or bytes) in arbitrary chunks and yields the same
``CommentNode`` sequence :func:`scan_comments` produces for the joined
text. Each fence keeps its own search cursor; when a token is not found in
the buffered text the cursor only advances to ``len(buffer) - carry`` where
``carry`` is the longest fence token minus one, so a fence or CRLF split
across chunk boundaries is still recognised. A block still open at end of
stream is abandoned, never force-closed.
"""

from __future__ import annotations

import codecs
import heapq
from bisect import bisect_right
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Iterable, List, Optional, Tuple, Union

from ..languages import BlockFence, LanguageSpec
from .comments import (
    CommentNode,
    Position,
    SourceLocation,
    block_comment,
    line_comment,
    sorted_prefixes,
    split_line,
)

Chunk = Union[str, bytes]
ChunkSource = Union[AsyncIterable[Chunk], Iterable[Chunk]]


class _LineTracker:
    """Maps absolute offsets to line/column for the retained window."""

    def __init__(self) -> None:
        self._starts: List[int] = [0]
        self._first_line = 1

    def feed(self, text: str, base: int) -> None:
        index = text.find("\n")
        while index >= 0:
            self._starts.append(base + index + 1)
            index = text.find("\n", index + 1)

    def position(self, offset: int) -> Position:
        index = bisect_right(self._starts, offset) - 1
        return Position(self._first_line + index, offset - self._starts[index] + 1)

    def discard_before(self, offset: int) -> None:
        index = bisect_right(self._starts, offset) - 1
        if index > 0:
            del self._starts[:index]
            self._first_line += index


@dataclass
class _FenceCursor:
    order: int
    fence: BlockFence
    cursor: int = 0
    open_at: Optional[int] = None
    depth: int = 0
    done: bool = False

    @property
    def floor(self) -> int:
        return self.open_at if self.open_at is not None else self.cursor


class StreamScanner:
    """Incremental scanner; feed text with :meth:`feed`, then call :meth:`finish`."""

    def __init__(self, language: LanguageSpec) -> None:
        self._fences = [
            _FenceCursor(order=order, fence=fence)
            for order, fence in enumerate(language.comment.block)
        ]
        self._prefixes = sorted_prefixes(language)
        self._line_order = len(self._fences)
        longest = max(
            [1]
            + [len(fence.open) for fence in language.comment.block]
            + [len(fence.close) for fence in language.comment.block]
        )
        self.carry = longest - 1
        self._buf = ""
        self._base = 0
        self._line_cursor = 0
        self._line_no = 1
        self._lines = _LineTracker()
        self._pending: List[Tuple[int, int, int, CommentNode]] = []
        self._seq = 0
        self._eof = False

    @property
    def _end(self) -> int:
        return self._base + len(self._buf)

    def feed(self, text: str) -> List[CommentNode]:
        if self._eof:
            raise RuntimeError("StreamScanner.feed() called after finish()")
        if text:
            self._lines.feed(text, self._end)
            self._buf += text
        self._advance()
        return self._drain()

    def finish(self) -> List[CommentNode]:
        self._eof = True
        self._advance()
        return self._drain()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _find(self, token: str, absolute: int) -> int:
        index = self._buf.find(token, absolute - self._base)
        return index + self._base if index >= 0 else -1

    def _push(self, node: CommentNode, order: int) -> None:
        heapq.heappush(self._pending, (node.start, order, self._seq, node))
        self._seq += 1

    def _advance(self) -> None:
        for state in self._fences:
            self._advance_fence(state)
        self._advance_lines()
        self._trim()

    def _advance_fence(self, state: _FenceCursor) -> None:
        fence = state.fence
        while not state.done:
            if state.open_at is None:
                found = self._find(fence.open, state.cursor)
                if found < 0:
                    self._park(state)
                    return
                state.open_at = found
                state.depth = 1
                state.cursor = found + len(fence.open)
                continue

            close_at = self._find(fence.close, state.cursor)
            nested_open = self._find(fence.open, state.cursor) if fence.nested else -1
            if close_at < 0 and nested_open < 0:
                self._park(state)
                return

            if nested_open >= 0 and (close_at < 0 or nested_open < close_at):
                if close_at < 0 and not self._settled(nested_open, fence.close):
                    return
                state.depth += 1
                state.cursor = nested_open + len(fence.open)
                continue

            if fence.nested and nested_open < 0 and not self._settled(close_at, fence.open):
                return
            state.depth -= 1
            state.cursor = close_at + len(fence.close)
            if state.depth == 0:
                start = state.open_at
                raw = self._buf[start - self._base:state.cursor - self._base]
                loc = SourceLocation(
                    start=self._lines.position(start),
                    end=self._lines.position(state.cursor),
                )
                self._push(block_comment(raw, start, fence, loc), state.order)
                state.open_at = None

    def _settled(self, candidate: int, missing: str) -> bool:
        """True when no unseen ``missing`` token could still start before ``candidate``."""
        return self._eof or candidate + len(missing) <= self._end

    def _park(self, state: _FenceCursor) -> None:
        if self._eof:
            state.done = True
            state.open_at = None
            return
        state.cursor = max(state.cursor, self._end - self.carry)

    def _advance_lines(self) -> None:
        if not self._prefixes:
            self._line_cursor = self._end
            return
        while True:
            newline = self._buf.find("\n", self._line_cursor - self._base)
            if newline < 0:
                break
            segment = self._buf[self._line_cursor - self._base:newline]
            self._emit_line(segment)
            self._line_cursor = self._base + newline + 1
            self._line_no += 1
        if self._eof and self._line_cursor < self._end:
            self._emit_line(self._buf[self._line_cursor - self._base:])
            self._line_cursor = self._end

    def _emit_line(self, segment: str) -> None:
        node = line_comment(split_line(segment), self._line_cursor, self._line_no, self._prefixes)
        if node is not None:
            self._push(node, self._line_order)

    def _frontier(self) -> int:
        floors = [state.floor for state in self._fences if not state.done]
        if not self._eof:
            floors.append(self._line_cursor)
        return min(floors) if floors else self._end

    def _trim(self) -> None:
        keep_from = self._frontier()
        if keep_from > self._base:
            self._buf = self._buf[keep_from - self._base:]
            self._base = keep_from
            self._lines.discard_before(keep_from)

    def _drain(self) -> List[CommentNode]:
        frontier = self._end + 1 if self._eof else self._frontier()
        ready: List[CommentNode] = []
        while self._pending and self._pending[0][0] < frontier:
            ready.append(heapq.heappop(self._pending)[3])
        return ready


async def iter_comments_stream(
    chunks: ChunkSource,
    language: LanguageSpec,
    *,
    encoding: str = "utf-8",
) -> AsyncIterator[CommentNode]:
    """Yield comments from ``chunks`` (sync or async, ``str`` or ``bytes``)."""
    scanner = StreamScanner(language)
    decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
    async for chunk in _aiter(chunks):
        text = decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        for node in scanner.feed(text):
            yield node
    for node in scanner.feed(decoder.decode(b"", final=True)):
        yield node
    for node in scanner.finish():
        yield node


async def scan_comments_stream(
    chunks: ChunkSource,
    language: LanguageSpec,
    *,
    encoding: str = "utf-8",
) -> List[CommentNode]:
    return [node async for node in iter_comments_stream(chunks, language, encoding=encoding)]


async def _aiter(chunks: ChunkSource) -> AsyncIterator[Chunk]:
    if hasattr(chunks, "__aiter__"):
        async for chunk in chunks:  # type: ignore[union-attr]
            yield chunk
    else:
        for chunk in chunks:  # type: ignore[union-attr]
            yield chunk


__all__ = ["StreamScanner", "iter_comments_stream", "scan_comments_stream"]
