"""CLI parser and command behaviour tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from contentforge.cli import _build_parser, main
from tests._fixtures.project_builder import ProjectBuilder


def test_cli_accepts_verbose_before_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--verbose", "assemble"])
    assert args.verbose is True
    assert args.command == "assemble"
    assert args.path == "."


def test_cli_accepts_verbose_after_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["ls", "--verbose"])
    assert args.verbose is True
    assert args.command == "ls"


def test_cli_accepts_dry_run_flag() -> None:
    parser = _build_parser()
    args = parser.parse_args(["assemble", "site", "--dry-run"])
    assert args.command == "assemble"
    assert args.path == "site"
    assert args.dry_run is True


def test_cli_accepts_routes_and_clean_flags() -> None:
    parser = _build_parser()
    assert parser.parse_args(["ls", "--routes"]).routes is True
    assert parser.parse_args(["clean", "--dry-run"]).dry_run is True


def test_cli_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        _build_parser().parse_args([])


def test_ls_lists_resources_without_writing(
    project_builder: ProjectBuilder, capsys: pytest.CaptureFixture[str]
) -> None:
    project_builder.write(
        {
            "src/index.sql": "-- @route.caption Home\nselect 1;\n",
            "src/admin/users.sql": "-- @route.caption Users\n-- @spry.nature sql\n",
        }
    )

    main(["ls", str(project_builder.root)])

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("DM page")
    assert "src/index.sql" in lines[0] and "index.sql" in lines[0]
    assert "src/admin/users.sql" in lines[1]
    assert "sqlImpact" in lines[1]


def test_ls_routes_renders_tree(
    project_builder: ProjectBuilder, capsys: pytest.CaptureFixture[str]
) -> None:
    project_builder.write(
        {
            "src/index.sql": "-- @route.caption Home\n",
            "src/admin/index.sql": "-- @route.caption Admin\n",
        }
    )

    main(["ls", str(project_builder.root), "--routes"])

    assert capsys.readouterr().out.splitlines() == [
        "admin (virtual)",
        "  index.sql Admin",
        "index.sql Home",
    ]


def test_assemble_prints_summary(
    project_builder: ProjectBuilder, capsys: pytest.CaptureFixture[str]
) -> None:
    project_builder.write(
        {
            "src/index.sql": (
                "-- #include h --file h.sql\n"
                "-- #includeEnd h\n"
            ),
            "src/h.sql": "select 'h';\n",
        }
    )

    main(["assemble", str(project_builder.root)])

    out = capsys.readouterr().out
    assert "Assembly complete\n" in out
    assert "directives:   1 written" in out
    assert project_builder.read("src/index.sql") == "select 'h';\n"


def test_assemble_dry_run_summary(
    project_builder: ProjectBuilder, capsys: pytest.CaptureFixture[str]
) -> None:
    project_builder.write(
        {
            "src/index.sql": "-- #include h --file h.sql\n-- #includeEnd h\n",
            "src/h.sql": "select 'h';\n",
        }
    )

    main(["assemble", str(project_builder.root), "--dry-run"])

    out = capsys.readouterr().out
    assert "Assembly complete (dry-run)" in out
    assert "directives:   1 would change" in out
    assert project_builder.read("src/index.sql").startswith("-- #include h")


@pytest.mark.skipif(sys.platform.startswith("win"), reason="requires execute bits")
def test_clean_reports_removed_files(
    project_builder: ProjectBuilder, capsys: pytest.CaptureFixture[str]
) -> None:
    project_builder.write_executable(
        "src/gen.pre.sql",
        "#!/bin/sh\n: '/* @spry.nature foundry */'\n: '/* @spry.isCleanable true */'\n",
    )
    project_builder.write({"src/gen.auto.sql": "select 1;\n"})

    main(["clean", str(project_builder.root)])
    assert capsys.readouterr().out == "Removed src/gen.auto.sql\n"

    main(["clean", str(project_builder.root)])
    assert capsys.readouterr().out == "Nothing to clean\n"


def test_missing_project_directory_exits(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["assemble", str(tmp_path / "missing")])

    assert excinfo.value.code == 1
    assert "Project directory not found" in capsys.readouterr().err


def test_invalid_config_exits(
    project_builder: ProjectBuilder, capsys: pytest.CaptureFixture[str]
) -> None:
    project_builder.write({".contentforge.yml": "foundry:\n  executable_detection: amiga\n"})

    with pytest.raises(SystemExit) as excinfo:
        main(["ls", str(project_builder.root)])

    assert excinfo.value.code == 1
    assert "executable_detection" in capsys.readouterr().err
