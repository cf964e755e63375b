"""Tests for the language registry."""

from __future__ import annotations

from contentforge.languages import BlockFence, CommentStyle, LanguageRegistry, LanguageSpec, default_registry


def test_default_registry_resolves_by_extension(registry: LanguageRegistry) -> None:
    sql = registry.by_extension("pages/report.pre.sql")

    assert sql is not None
    assert sql.id == "sql"
    assert sql.comment.line == ("--",)
    assert sql.comment.block == (BlockFence("/*", "*/"),)
    assert registry.by_extension("INDEX.SQL") is sql
    assert registry.by_extension("README") is None


def test_registry_resolves_aliases(registry: LanguageRegistry) -> None:
    assert registry.by_id("ts") is registry.by_id("typescript")
    assert registry.by_id("bash") is registry.by_id("shell")
    assert registry.by_id("cobol") is None


def test_rust_and_lua_declare_nested_blocks(registry: LanguageRegistry) -> None:
    rust = registry.by_id("rust")
    lua = registry.by_id("lua")

    assert rust is not None and rust.comment.block[0].nested is True
    assert lua is not None and lua.comment.block[0] == BlockFence("--[[", "]]", nested=True)


def test_detect_falls_back_to_shebang_then_default(registry: LanguageRegistry) -> None:
    assert registry.detect("bin/build", "#!/usr/bin/env python3").id == "python"
    assert registry.detect("bin/run", "#!/bin/sh").id == "shell"

    fallback = registry.detect("notes", "plain text", default="sql")
    assert fallback is not None and fallback.id == "sql"
    assert registry.detect("notes", "plain text") is None


def test_shebang_matches_interpreter_name_not_substring(registry: LanguageRegistry) -> None:
    assert registry.by_shebang("#!/usr/bin/fish") is None
    assert registry.by_shebang("#!/opt/nodejs/bin/python3").id == "python"
    assert registry.by_shebang("#!/usr/bin/env -S node --no-warnings").id == "typescript"
    assert registry.by_shebang("#!/usr/local/bin/python3.12").id == "python"
    assert registry.by_shebang("#!/bin/bash -e").id == "shell"
    assert registry.by_shebang("#!") is None


def test_extension_wins_over_shebang(registry: LanguageRegistry) -> None:
    assert registry.detect("gen.sql", "#!/bin/sh").id == "sql"


def test_registries_are_independent() -> None:
    custom = LanguageSpec(
        id="pgsql",
        comment=CommentStyle(line=("--",)),
        extensions=(".pgsql",),
    )
    extended = default_registry([custom])
    plain = LanguageRegistry()

    assert extended.by_extension("a.pgsql") is custom
    assert plain.by_extension("a.pgsql") is None
    assert default_registry().by_extension("a.pgsql") is None
    assert [spec.id for spec in extended].count("typescript") == 1
