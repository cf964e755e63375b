"""Annotation items, per-file catalogs and the extraction entrypoints."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..languages import LanguageSpec
from .comments import CommentNode, SourceLocation, scan_comments
from .extractors import (
    DEFAULT_TAG_KEY_PATTERN,
    Fragment,
    find_json_blocks,
    find_yaml_blocks,
    parse_kv,
    parse_spry,
    parse_tags,
    strip_doc_stars,
)
from .streaming import ChunkSource, iter_comments_stream


@dataclass(frozen=True)
class AnnotationSource:
    path: Optional[str]
    language_id: str
    comment_kind: str
    loc: SourceLocation


@dataclass(frozen=True)
class AnnotationItem:
    """One fragment parsed from a comment, with an id stable across re-scans."""

    id: str
    kind: str
    key: Optional[str]
    value: Any
    raw: str
    source: AnnotationSource


@dataclass(frozen=True)
class AnnotationCatalog:
    """Ordered annotation items for one file plus a ``kind:key`` occurrence summary."""

    language_id: str
    items: Tuple[AnnotationItem, ...] = ()
    summary: Dict[str, int] = field(default_factory=dict)

    def namespaced(self, prefix: str) -> Dict[str, Any]:
        """Return tag values whose key starts with ``prefix``, keyed without it.

        A valueless tag is a flag and maps to ``True``. Later tags win.
        """
        found: Dict[str, Any] = {}
        for item in self.items:
            if item.kind != "tag" or not item.key or not item.key.startswith(prefix):
                continue
            found[item.key[len(prefix):]] = True if item.value is None else item.value
        return found


@dataclass
class ExtractorConfig:
    """Toggles and options for the sub-extractors run over every comment body."""

    tags: bool = True
    tag_at: str = "@"
    tag_key_pattern: str = DEFAULT_TAG_KEY_PATTERN
    tag_value_mode: str = "string"
    kv: bool = True
    yaml: bool = False
    json: bool = False
    spry: bool = False
    spry_at: str = "@"
    spry_bang: str = "!"
    spry_block_fence: str = "..."
    validate: Optional[Callable[[AnnotationItem], Any]] = None


def extract_annotations(
    text: str,
    language: LanguageSpec,
    config: Optional[ExtractorConfig] = None,
    path: Optional[str] = None,
) -> AnnotationCatalog:
    """Scan ``text`` in memory and build its annotation catalog."""
    return build_catalog(scan_comments(text, language), language, config, path)


async def extract_annotations_stream(
    chunks: ChunkSource,
    language: LanguageSpec,
    config: Optional[ExtractorConfig] = None,
    path: Optional[str] = None,
) -> AnnotationCatalog:
    """Same as :func:`extract_annotations` but over a chunked stream."""
    comments = [node async for node in iter_comments_stream(chunks, language)]
    return build_catalog(comments, language, config, path)


def build_catalog(
    comments: Iterable[CommentNode],
    language: LanguageSpec,
    config: Optional[ExtractorConfig] = None,
    path: Optional[str] = None,
) -> AnnotationCatalog:
    config = config or ExtractorConfig()
    items: List[AnnotationItem] = []
    for comment in comments:
        body = strip_doc_stars(comment.text) if comment.kind == "block" else comment.text
        for fragment in _fragments(body, config):
            items.append(_make_item(fragment, language.id, comment, path))

    if config.validate is not None:
        validated: List[AnnotationItem] = []
        for item in items:
            try:
                value = config.validate(item)
            except Exception:
                continue
            validated.append(replace(item, value=value))
        items = validated

    return _finalize(language.id, items)


def fnv1a_32(text: str) -> str:
    """Non-cryptographic FNV-1a 32-bit digest as 8 hex characters."""
    digest = 0x811C9DC5
    for char in text:
        digest ^= ord(char)
        digest = (digest * 0x01000193) & 0xFFFFFFFF
    return f"{digest:08x}"


def _fragments(body: str, config: ExtractorConfig) -> List[Fragment]:
    fragments: List[Fragment] = []
    if config.tags:
        fragments.extend(
            parse_tags(body, config.tag_at, config.tag_key_pattern, config.tag_value_mode)
        )
    if config.kv:
        fragments.extend(parse_kv(body))
    if config.yaml:
        fragments.extend(find_yaml_blocks(body))
    if config.json:
        fragments.extend(find_json_blocks(body))
    if config.spry:
        fragments.extend(
            parse_spry(body, config.spry_at, config.spry_bang, config.spry_block_fence)
        )
    return fragments


def _make_item(
    fragment: Fragment,
    language_id: str,
    comment: CommentNode,
    path: Optional[str],
) -> AnnotationItem:
    start = comment.loc.start
    identity = f"{path or ''}|{language_id}|{start.line}:{start.column}|{fragment.raw}"
    return AnnotationItem(
        id=fnv1a_32(identity),
        kind=fragment.kind,
        key=fragment.key,
        value=fragment.value,
        raw=fragment.raw,
        source=AnnotationSource(
            path=path,
            language_id=language_id,
            comment_kind=comment.kind,
            loc=comment.loc,
        ),
    )


def _finalize(language_id: str, items: List[AnnotationItem]) -> AnnotationCatalog:
    summary: Dict[str, int] = {}
    for item in items:
        key = f"{item.kind}:{item.key}" if item.key else item.kind
        summary[key] = summary.get(key, 0) + 1
    return AnnotationCatalog(language_id=language_id, items=tuple(items), summary=summary)


__all__ = [
    "AnnotationCatalog",
    "AnnotationItem",
    "AnnotationSource",
    "ExtractorConfig",
    "build_catalog",
    "extract_annotations",
    "extract_annotations_stream",
    "fnv1a_32",
]
