"""CLI entrypoints for contentforge commands."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Dict, List, Tuple

from .config import ConfigError, load_config
from .engine import Engine
from .logging import configure_logging
from .report import RunReport
from .resource import Resource
from .workflow import FinalStep


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_path_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the project root (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contentforge",
        description="Classify, expand and materialize annotated project content.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    assemble_parser = subparsers.add_parser(
        "assemble",
        help="Run discovery, expand #include directives, run foundries and re-discover.",
    )
    _add_verbose_option(assemble_parser, suppress_default=True)
    _add_path_argument(assemble_parser)
    assemble_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report planned directive writes and foundry runs without touching files.",
    )

    ls_parser = subparsers.add_parser(
        "ls",
        help="List resources with their nature, route and diagnostics (always a dry run).",
    )
    _add_verbose_option(ls_parser, suppress_default=True)
    _add_path_argument(ls_parser)
    ls_parser.add_argument(
        "--routes",
        action="store_true",
        help="Print the route tree instead of the resource table.",
    )

    clean_parser = subparsers.add_parser(
        "clean",
        help="Remove *.auto.* files previously materialized by foundries marked isCleanable.",
    )
    _add_verbose_option(clean_parser, suppress_default=True)
    _add_path_argument(clean_parser)
    clean_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show which files would be removed.",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for contentforge commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose))

    project = Path(args.path).expanduser().resolve()
    if not project.is_dir():
        parser.exit(1, f"Project directory not found: {project}\n")
    try:
        config = load_config(project)
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")

    engine = Engine(config)
    report = RunReport.attach(engine.bus)
    dry_run = bool(getattr(args, "dry_run", False))

    if args.command == "assemble":
        try:
            asyncio.run(engine.run(dry_run=dry_run or None))
        except RuntimeError as exc:
            parser.exit(1, f"contentforge assemble failed: {exc}\nRun with --verbose for more details.\n")
        _print_summary(report, dry_run or config.dry_run)
    elif args.command == "ls":
        try:
            final = asyncio.run(engine.run(dry_run=True))
        except RuntimeError as exc:
            parser.exit(1, f"contentforge ls failed: {exc}\nRun with --verbose for more details.\n")
        if bool(getattr(args, "routes", False)):
            print(engine.routes().render() or "(no routes)")
        else:
            for line in _format_rows(final, report):
                print(line)
    elif args.command == "clean":
        try:
            removed = asyncio.run(engine.clean(dry_run=dry_run))
        except RuntimeError as exc:
            parser.exit(1, f"contentforge clean failed: {exc}\n")
        verb = "Would remove" if dry_run else "Removed"
        for path in removed:
            print(f"{verb} {_relativize(path, config.root)}")
        if not removed:
            print("Nothing to clean")
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _print_summary(report: RunReport, dry_run: bool) -> None:
    summary = report.summary()
    suffix = " (dry-run)" if dry_run else ""
    print(f"Assembly complete{suffix}")
    print(f"  discovered:   {summary['discovered']}")
    print(f"  materialized: {summary['materialized']}")
    print(f"  routes:       {summary['routes']}")
    if dry_run:
        print(f"  directives:   {summary['directives_changed']} would change")
        print(f"  foundries:    {summary['foundries_planned']} planned, {summary['foundries_failed']} failed")
    else:
        print(f"  directives:   {summary['directives_written']} written")
        print(
            f"  foundries:    {summary['foundries_materialized']} materialized, "
            f"{summary['foundries_failed']} failed"
        )
    if report.diagnostics:
        print(f"Diagnostics ({len(report.diagnostics)}):")
        for diagnostic in report.diagnostics:
            print(f"  [{diagnostic.phase}] {diagnostic.rel_path}: {diagnostic.message}")


def _format_rows(final: FinalStep, report: RunReport) -> List[str]:
    """One row per resource: phase markers, nature, path, route, diagnostic."""
    rows: Dict[Path, Tuple[str, Resource]] = {}
    for resource in final.discovered.resources:
        rows[resource.abs_path] = ("D-", resource)
    for resource in final.materialized.resources:
        markers = "DM" if resource.abs_path in rows else "-M"
        rows[resource.abs_path] = (markers, resource)

    table = [
        (
            markers,
            resource.nature_name,
            resource.rel_path,
            resource.route.path if resource.route is not None else "",
            report.message_for(resource.rel_path) or "",
        )
        for markers, resource in rows.values()
    ]
    if not table:
        return ["(no resources)"]
    nature_width = max(len(row[1]) for row in table)
    path_width = max(len(row[2]) for row in table)
    route_width = max(len(row[3]) for row in table)
    lines = []
    for markers, nature, rel_path, route, message in table:
        line = f"{markers} {nature:<{nature_width}} {rel_path:<{path_width}} {route:<{route_width}} {message}"
        lines.append(line.rstrip())
    return lines


def _relativize(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


if __name__ == "__main__":  # pragma: no cover - CLI execution
    main()
