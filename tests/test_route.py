"""Tests for route detection and the route forest."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from contentforge.annotations import extract_annotations
from contentforge.annotations.catalog import ExtractorConfig
from contentforge.content import FileContent
from contentforge.languages import LanguageRegistry
from contentforge.resource import PageNature, Resource, SqlNature, SupplierIdentity
from contentforge.route import RouteAnnotation, Routes, detect_route

JSON_TAGS = ExtractorConfig(tag_value_mode="json", kv=False)


def _resource(web_path: str, rel_path: Optional[str] = None) -> Resource:
    abs_path = Path("/project/src") / web_path
    return Resource(
        abs_path=abs_path,
        rel_path=rel_path or f"src/{web_path}",
        web_path=web_path,
        supplier=SupplierIdentity(identity="TEST", root=Path("/project/src")),
        content=FileContent(abs_path),
    )


def _route(path: str, caption: str, sibling_order: Optional[float] = None) -> RouteAnnotation:
    return RouteAnnotation(path=path, caption=caption, sibling_order=sibling_order)


def test_detect_route_derives_defaults_from_path(registry: LanguageRegistry) -> None:
    sql = registry.by_id("sql")
    assert sql is not None
    resource = _resource("admin/users.list.sql")
    catalog = extract_annotations("-- @route.caption Users\n-- @route.siblingOrder 2", sql, JSON_TAGS)

    detection = detect_route(resource, catalog)

    assert detection is not None and detection.success
    route = detection.route
    assert route is not None
    assert route.path == "admin/users.list.sql"
    assert route.annotated.caption == "Users"
    assert route.annotated.sibling_order == 2.0
    assert route.annotated.path_basename == "users.list.sql"
    assert route.annotated.path_basename_no_extn == "users"
    assert route.annotated.path_dirname == "admin"
    assert route.annotated.path_extn_terminal == ".sql"
    assert route.annotated.path_extns == [".list", ".sql"]
    assert route.provenance is catalog


def test_detect_route_explicit_path_wins_and_numbers_coerce(registry: LanguageRegistry) -> None:
    sql = registry.by_id("sql")
    assert sql is not None
    catalog = extract_annotations("-- @route.path /home\n-- @route.caption 404", sql, JSON_TAGS)

    detection = detect_route(_resource("index.sql"), catalog)

    assert detection is not None and detection.success and detection.route is not None
    assert detection.route.path == "/home"
    assert detection.route.annotated.caption == "404"


def test_detect_route_keeps_json_literals_as_text(registry: LanguageRegistry) -> None:
    sql = registry.by_id("sql")
    assert sql is not None
    catalog = extract_annotations(
        "-- @route.caption true\n-- @route.title null\n-- @route.description false", sql, JSON_TAGS
    )

    detection = detect_route(_resource("flags.sql"), catalog)

    assert detection is not None and detection.success and detection.route is not None
    assert detection.route.annotated.caption == "true"
    assert detection.route.annotated.title == "null"
    assert detection.route.annotated.description == "false"


def test_detect_route_none_and_failure(registry: LanguageRegistry) -> None:
    sql = registry.by_id("sql")
    assert sql is not None
    resource = _resource("a.sql")

    assert detect_route(resource, extract_annotations("-- @spry.nature page", sql, JSON_TAGS)) is None

    missing_caption = detect_route(resource, extract_annotations("-- @route.title T", sql, JSON_TAGS))
    assert missing_caption is not None and not missing_caption.success
    assert "caption" in missing_caption.message

    unknown_field = detect_route(resource, extract_annotations("-- @route.caption C\n-- @route.bogus 1", sql, JSON_TAGS))
    assert unknown_field is not None and not unknown_field.success


def test_attach_route_only_widens_unknown(registry: LanguageRegistry) -> None:
    sql = registry.by_id("sql")
    assert sql is not None
    catalog = extract_annotations("-- @route.caption Report", sql, JSON_TAGS)

    plain = _resource("plain.sql")
    detection = detect_route(plain, catalog)
    assert detection is not None and detection.route is not None
    assert plain.attach_route(detection.route) is True
    assert plain.nature == PageNature()

    typed = _resource("typed.sql")
    typed.widen(SqlNature(sql_impact="dql"))
    detection = detect_route(typed, catalog)
    assert detection is not None and detection.route is not None
    assert typed.attach_route(detection.route) is False
    assert typed.nature == SqlNature(sql_impact="dql")
    assert typed.route is detection.route


def test_forest_synthesizes_virtual_containers_and_orders_siblings() -> None:
    routes = Routes(
        [
            _route("/index.sql", "Home"),
            _route("/admin/users.sql", "Users", sibling_order=2),
            _route("/admin/index.sql", "Admin"),
            _route("/admin/audit.sql", "Audit", sibling_order=1),
            _route("/docs/guide/intro.sql", "Intro"),
        ]
    )

    assert [root.path for root in routes.roots] == ["/admin", "/docs", "/index.sql"]
    admin = routes.node("admin")
    assert admin is not None and admin.virtual
    assert [child.name for child in admin.children] == ["audit.sql", "users.sql", "index.sql"]
    assert routes.canonical(admin).path == "/admin/index.sql"
    assert ("/docs", "/docs/guide") in routes.edges
    assert routes.render().splitlines()[0] == "admin (virtual)"


def test_breadcrumbs_use_index_pages_of_enclosing_containers() -> None:
    routes = Routes(
        [
            _route("/admin/index.sql", "Admin"),
            _route("/admin/users/index.sql", "Users"),
            _route("/admin/users/edit.sql", "Edit"),
            _route("/docs/guide/intro.sql", "Intro"),
        ]
    )

    crumbs = routes.breadcrumbs

    assert [r.caption for r in crumbs["/admin/users/edit.sql"]] == ["Admin", "Users"]
    assert [r.caption for r in crumbs["/admin/users/index.sql"]] == ["Admin"]
    assert crumbs["/admin/index.sql"] == []
    assert crumbs["/docs/guide/intro.sql"] == []
    assert [node.path for node in routes.ancestors("/admin/users/edit.sql")] == [
        "/admin/index.sql",
        "/admin/users/index.sql",
    ]
    assert routes.ancestors("/missing.sql") == []


def test_from_resources_collects_only_routed_resources(registry: LanguageRegistry) -> None:
    sql = registry.by_id("sql")
    assert sql is not None
    routed = _resource("index.sql")
    detection = detect_route(routed, extract_annotations("-- @route.caption Home", sql, JSON_TAGS))
    assert detection is not None and detection.route is not None
    routed.attach_route(detection.route)

    routes = Routes.from_resources([routed, _resource("plain.sql")])

    assert [root.path for root in routes.roots] == ["/index.sql"]
