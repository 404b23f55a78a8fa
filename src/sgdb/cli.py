"""Command-line entry point for the schema bootstrap.

Usage:
    sgdb-init-schema              apply the baseline to DB_NAME on DB_PORT
    sgdb-init-schema --dry-run    print the SQL without connecting
    sgdb-init-schema --check      report the ledger and any missing objects
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from sgdb.config import get_settings
from sgdb.exceptions import SchemaInitError
from sgdb.logging import setup_logging
from sgdb.migrations import plan
from sgdb.runner import check, run


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sgdb-init-schema",
        description="Create the strategy game schema if it is missing (safe to re-run).",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="print the ordered SQL and exit")
    mode.add_argument("--check", action="store_true", help="inspect the database without changing it")
    parser.add_argument("--log-format", choices=["json", "console"], default=None, help="override LOG_FORMAT")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.dry_run:
        for step in plan():
            print(f"-- {step.name}\n{step.sql};\n")
        return 0

    settings = get_settings()
    if args.log_format:
        settings = settings.model_copy(update={"log_format": args.log_format})
    setup_logging(settings)

    try:
        if args.check:
            report = asyncio.run(check(settings))
            for version in report.applied_versions:
                print(f"applied  {version}")
            for name in report.missing:
                print(f"missing  {name}")
            return 0 if report.is_complete else 1

        asyncio.run(run(settings))
    except SchemaInitError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0
