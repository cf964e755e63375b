"""Tests for annotation extraction and catalogs."""

from __future__ import annotations

import asyncio

import pytest

from contentforge.annotations import (
    AnnotationItem,
    ExtractorConfig,
    extract_annotations,
    extract_annotations_stream,
    strip_doc_stars,
)
from contentforge.annotations.extractors import find_json_blocks, find_yaml_blocks, parse_kv, parse_spry
from contentforge.languages import LanguageRegistry, LanguageSpec


@pytest.fixture
def sql(registry: LanguageRegistry) -> LanguageSpec:
    language = registry.by_id("sql")
    assert language is not None
    return language


def test_single_tag_in_line_comment(sql: LanguageSpec) -> None:
    catalog = extract_annotations("-- @tag hello", sql)

    assert len(catalog.items) == 1
    item = catalog.items[0]
    assert item.kind == "tag"
    assert item.key == "tag"
    assert item.value == "hello"
    assert item.source.comment_kind == "line"
    assert catalog.summary == {"tag:tag": 1}


def test_reextracting_unchanged_text_is_idempotent(sql: LanguageSpec) -> None:
    text = "-- @spry.nature sql\n/*\n * @route.caption Home\n * owner: web\n */\nselect 1;\n"

    first = extract_annotations(text, sql, path="src/index.sql")
    second = extract_annotations(text, sql, path="src/index.sql")

    assert [item.id for item in first.items] == [item.id for item in second.items]
    assert first.summary == second.summary
    assert len({item.id for item in first.items}) == len(first.items)
    assert first.summary == {"tag:spry.nature": 1, "tag:route.caption": 1, "kv:owner": 1}


def test_ids_change_with_location(sql: LanguageSpec) -> None:
    moved = extract_annotations("\n-- @tag hello", sql).items[0]
    original = extract_annotations("-- @tag hello", sql).items[0]

    assert moved.id != original.id


def test_multiple_tags_and_flags_in_block_comment(sql: LanguageSpec) -> None:
    text = "/**\n * @spry.nature foundry\n * @spry.isCleanable\n */"

    catalog = extract_annotations(text, sql, ExtractorConfig(kv=False))

    assert [(item.key, item.value) for item in catalog.items] == [
        ("spry.nature", "foundry"),
        ("spry.isCleanable", None),
    ]
    assert catalog.namespaced("spry.") == {"nature": "foundry", "isCleanable": True}


def test_json_value_mode_decodes_scalars(sql: LanguageSpec) -> None:
    text = "-- @route.siblingOrder 2\n-- @spry.isCleanable true\n-- @route.caption Home page"

    catalog = extract_annotations(text, sql, ExtractorConfig(tag_value_mode="json", kv=False))

    assert catalog.namespaced("route.") == {"siblingOrder": 2, "caption": "Home page"}
    assert catalog.namespaced("spry.") == {"isCleanable": True}


def test_json_value_mode_keeps_null_as_text_and_bare_tags_as_flags(sql: LanguageSpec) -> None:
    text = "-- @route.title null\n-- @spry.isSystemGenerated"

    catalog = extract_annotations(text, sql, ExtractorConfig(tag_value_mode="json", kv=False))

    assert [(item.key, item.value) for item in catalog.items] == [
        ("route.title", "null"),
        ("spry.isSystemGenerated", None),
    ]
    assert catalog.namespaced("spry.") == {"isSystemGenerated": True}


def test_custom_at_symbol_and_key_pattern(sql: LanguageSpec) -> None:
    config = ExtractorConfig(tag_at="#", tag_key_pattern=r"[a-z]+", kv=False)

    catalog = extract_annotations("-- #owner alice @ignored value", sql, config)

    assert [(item.key, item.value) for item in catalog.items] == [("owner", "alice @ignored value")]


def test_validator_transforms_and_drops_items(sql: LanguageSpec) -> None:
    def validate(item: AnnotationItem) -> object:
        if item.key == "reject":
            raise ValueError("not allowed")
        return str(item.value).upper()

    config = ExtractorConfig(kv=False, validate=validate)
    catalog = extract_annotations("-- @keep yes\n-- @reject no", sql, config)

    assert [(item.key, item.value) for item in catalog.items] == [("keep", "YES")]
    assert catalog.summary == {"tag:keep": 1}


def test_yaml_and_json_blocks(sql: LanguageSpec) -> None:
    text = (
        "/*\n---\ntitle: Report\ntags: [a, b]\n---\n*/\n"
        '/* {"route": {"path": "/r"}} and {broken json} */'
    )
    config = ExtractorConfig(tags=False, kv=False, yaml=True, json=True)

    catalog = extract_annotations(text, sql, config)

    values = [(item.kind, item.value) for item in catalog.items]
    assert ("yaml", {"title": "Report", "tags": ["a", "b"]}) in values
    assert ("json", {"route": {"path": "/r"}}) in values
    assert catalog.summary == {"yaml": 1, "json": 1}


def test_streaming_extraction_matches_in_memory(sql: LanguageSpec) -> None:
    text = "-- @spry.nature sql\n/*\n * @route.caption Home\n */\nselect 1;\n"
    chunks = [text[index:index + 3] for index in range(0, len(text), 3)]

    streamed = asyncio.run(extract_annotations_stream(chunks, sql, path="a.sql"))

    assert streamed == extract_annotations(text, sql, path="a.sql")


def test_strip_doc_stars() -> None:
    assert strip_doc_stars("*\n * key: value\n *   indented\n ") == "key: value\n   indented"
    assert strip_doc_stars("no stars here") == "no stars here"


def test_sub_extractors_directly() -> None:
    assert [(f.key, f.value) for f in parse_kv("a: 1\nb=2\n: skipped\nurl: http://x=y")] == [
        ("a", "1"),
        ("b", "2"),
        ("url", "http://x=y"),
    ]
    assert find_yaml_blocks("--- [unclosed\n---") == []
    assert [f.value for f in find_json_blocks('{"a": {"b": 1}} {nope}')] == [{"a": {"b": 1}}]

    spry = parse_spry("@page home\n!include header\n...\nbody line\n...\n")
    assert [(f.kind, f.key, f.value) for f in spry] == [
        ("spry-annotation", "page", "home"),
        ("spry-directive", "include", "header"),
        ("spry-block", None, "body line"),
    ]
