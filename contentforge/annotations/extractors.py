"""Sub-extractors that pull structured fragments out of a comment body."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional

import yaml

DEFAULT_TAG_KEY_PATTERN = r"[a-zA-Z0-9_.-]+"

_DOC_STAR = re.compile(r"^(\s*)\*\s?(.*)$")
_LINE_SPLIT = re.compile(r"\r?\n")


@dataclass(frozen=True)
class Fragment:
    """A parsed fragment before it is bound to a comment location."""

    kind: str
    key: Optional[str]
    value: Any
    raw: str


def strip_doc_stars(body: str) -> str:
    """Remove the leading ``*`` continuation marker from each line of a block body.

    ``" * key: value"`` becomes ``" key: value"``; the joined result is trimmed.
    """
    lines = []
    for line in _LINE_SPLIT.split(body):
        match = _DOC_STAR.match(line)
        lines.append(match.group(1) + match.group(2) if match else line)
    return "\n".join(lines).strip()


def parse_tags(
    body: str,
    at: str = "@",
    key_pattern: str = DEFAULT_TAG_KEY_PATTERN,
    value_mode: str = "string",
) -> List[Fragment]:
    """Find ``@key value`` tags anywhere in ``body``.

    A tag value runs to the end of its line. With ``value_mode="json"`` the
    value is decoded as JSON when it parses, so ``true`` becomes ``True``.
    """
    pattern = re.compile(
        rf"(^|\s){re.escape(at)}({key_pattern})(?:[ \t]+(\S.*))?"
    )
    fragments: List[Fragment] = []
    for match in pattern.finditer(body):
        value: Any = match.group(3).strip() if match.group(3) else None
        if value is not None and value_mode == "json":
            decoded = _maybe_json(value)
            # A literal `null` stays text; `None` is reserved for bare tags.
            value = value if decoded is None else decoded
        fragments.append(
            Fragment(kind="tag", key=match.group(2), value=value, raw=match.group(0).strip())
        )
    return fragments


def parse_kv(body: str) -> List[Fragment]:
    """Parse ``key: value`` / ``key=value`` lines, splitting at the earlier separator."""
    fragments: List[Fragment] = []
    for line in _LINE_SPLIT.split(body):
        text = line.strip()
        if not text:
            continue
        colon, equals = text.find(":"), text.find("=")
        candidates = [index for index in (colon, equals) if index >= 0]
        index = min(candidates) if candidates else -1
        if index > 0:
            fragments.append(
                Fragment(
                    kind="kv",
                    key=text[:index].strip(),
                    value=text[index + 1:].strip(),
                    raw=text,
                )
            )
    return fragments


def find_yaml_blocks(body: str) -> List[Fragment]:
    """Parse ``---`` ... ``---`` fenced YAML; malformed blocks are skipped."""
    fragments: List[Fragment] = []
    cursor = 0
    while cursor < len(body):
        start = body.find("---", cursor)
        if start < 0:
            break
        end = body.find("---", start + 3)
        if end < 0:
            break
        raw = body[start:end + 3]
        inner = re.sub(r"^\s*\n", "", body[start + 3:end], count=1)
        inner = re.sub(r"\n\s*$", "", inner, count=1)
        cursor = end + 3
        try:
            parsed = yaml.safe_load(inner)
        except yaml.YAMLError:
            continue
        fragments.append(Fragment(kind="yaml", key=None, value=parsed, raw=raw))
    return fragments


def find_json_blocks(body: str) -> List[Fragment]:
    """Parse balanced ``{...}`` spans as JSON; malformed spans are skipped."""
    fragments: List[Fragment] = []
    cursor = 0
    while cursor < len(body):
        start = body.find("{", cursor)
        if start < 0:
            break
        depth, pos = 1, start + 1
        while depth > 0 and pos < len(body):
            char = body[pos]
            pos += 1
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
        if depth != 0:
            break
        raw = body[start:pos]
        cursor = pos
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            continue
        fragments.append(Fragment(kind="json", key=None, value=parsed, raw=raw))
    return fragments


def parse_spry(
    body: str,
    at: str = "@",
    bang: str = "!",
    block_fence: str = "...",
) -> List[Fragment]:
    """Line-anchored ``@annotation``, ``!directive`` and ``...`` block fragments."""
    at_line = re.compile(rf"^\s*{re.escape(at)}({DEFAULT_TAG_KEY_PATTERN})(?:\s+(.*))?$")
    bang_line = re.compile(rf"^\s*{re.escape(bang)}({DEFAULT_TAG_KEY_PATTERN})(?:\s+(.*))?$")
    lines = _LINE_SPLIT.split(body)
    fragments: List[Fragment] = []
    index = 0
    while index < len(lines):
        line = lines[index]
        matched = at_line.match(line)
        if matched:
            fragments.append(
                Fragment("spry-annotation", matched.group(1), _strip_or_none(matched.group(2)), line)
            )
            index += 1
            continue
        matched = bang_line.match(line)
        if matched:
            fragments.append(
                Fragment("spry-directive", matched.group(1), _strip_or_none(matched.group(2)), line)
            )
            index += 1
            continue
        if line.strip() == block_fence:
            collected: List[str] = []
            index += 1
            while index < len(lines) and lines[index].strip() != block_fence:
                collected.append(lines[index])
                index += 1
            raw = "\n".join([block_fence, *collected, block_fence])
            fragments.append(Fragment("spry-block", None, "\n".join(collected), raw))
        index += 1
    return fragments


def _strip_or_none(value: Optional[str]) -> Optional[str]:
    return value.strip() if value is not None else None


def _maybe_json(value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError:
        return value


__all__ = [
    "DEFAULT_TAG_KEY_PATTERN",
    "Fragment",
    "find_json_blocks",
    "find_yaml_blocks",
    "parse_kv",
    "parse_spry",
    "parse_tags",
    "strip_doc_stars",
]
