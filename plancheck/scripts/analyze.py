#!/usr/bin/env python3
"""Score planned features or TODO comments against a codebase.

Usage:
  python -m plancheck.scripts.analyze features /path/to/repo
  python -m plancheck.scripts.analyze features . --format json --include-checked
  python -m plancheck.scripts.analyze todos . --min-confidence 70 --format console
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from plancheck.aggregator import GROUP_KEYS
from plancheck.db import connection, sqlite_migrations
from plancheck.db.repositories import SqliteRunRepository
from plancheck.errors import ConfigurationError
from plancheck.models import AggregateReport
from plancheck.services import analysis
from plancheck.services.report_renderer import FORMATS, render

logger = logging.getLogger("plancheck.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="plancheck", description=__doc__.splitlines()[0])
    sub = parser.add_subparsers(dest="command", required=True)

    def add_common(cmd: argparse.ArgumentParser, default_group: str) -> None:
        cmd.add_argument("root", nargs="?", default=".", help="Repository root to analyze")
        cmd.add_argument("--format", choices=FORMATS, default="markdown")
        cmd.add_argument("--min-confidence", type=int, default=0, help="Hide results below this confidence")
        cmd.add_argument("--group-by", choices=sorted(GROUP_KEYS), default=default_group)
        cmd.add_argument("--config", default="", help="YAML/JSON engine settings overrides")
        cmd.add_argument("--workers", type=int, default=None, help="Parallel candidate evaluations")
        cmd.add_argument("--timeout", type=float, default=None, help="Per-candidate timeout in seconds")
        cmd.add_argument("--as-of", default=None, help="Reference time for ages (ISO date)")
        cmd.add_argument("--output", default="", help="Write the report to this file instead of stdout")
        cmd.add_argument("--save", action="store_true", help="Persist the run to the history database")
        cmd.add_argument("--verbose", action="store_true")

    features = sub.add_parser("features", help="Score checklist items from planning documents")
    add_common(features, "document")
    features.add_argument("--include-checked", action="store_true", help="Also score items already ticked")
    features.add_argument("--plan-dir", action="append", default=None, help="Planning directory (repeatable)")
    features.add_argument("--registry", default="", help="JSON/CSV feature registry with prior statuses")

    todos = sub.add_parser("todos", help="Score TODO/FIXME comments for likely completion")
    add_common(todos, "band")
    todos.add_argument("--exclude-archived", action="store_true", help="Skip files in archive locations")
    return parser


async def _save(report: AggregateReport) -> str:
    db = await connection.get_connection()
    try:
        await sqlite_migrations.run_migrations(db)
        return await SqliteRunRepository(db).save_run(report)
    finally:
        await connection.close_connection()


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    root = Path(args.root).expanduser()
    if not root.is_dir():
        print(f"Repository root not found: {root}", file=sys.stderr)
        return 1

    try:
        if args.command == "features":
            report = analysis.run_feature_analysis(
                root,
                config_path=args.config or None,
                plan_dirs=args.plan_dir,
                include_checked=args.include_checked,
                registry_path=args.registry or None,
                group_by=args.group_by,
                max_workers=args.workers,
                timeout_seconds=args.timeout,
                as_of=args.as_of,
            )
        else:
            report = analysis.run_todo_analysis(
                root,
                config_path=args.config or None,
                include_archived=not args.exclude_archived,
                group_by=args.group_by,
                max_workers=args.workers,
                timeout_seconds=args.timeout,
                as_of=args.as_of,
            )
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    rendered = render(report, args.format, min_confidence=args.min_confidence)
    if args.output:
        Path(args.output).write_text(rendered, encoding="utf-8")
        print(f"Report written to {args.output}")
    else:
        sys.stdout.write(rendered)

    if args.save:
        run_id = asyncio.run(_save(report))
        print(f"Saved run {run_id}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
