#!/usr/bin/env python3
"""
Close, reopen and inspect ledger dates from the command line.

Usage:
    python scripts/close_period.py [--config FILE] init-db
    python scripts/close_period.py [--config FILE] close 2025-01-15 --actor UUID
    python scripts/close_period.py [--config FILE] reopen 2025-01-15 --actor UUID
    python scripts/close_period.py [--config FILE] validate 2025-01-15 [--entry UUID ...]
    python scripts/close_period.py [--config FILE] status

Settings come from --config, else $LEDGER_CONFIG_FILE, else defaults;
$LEDGER_DATABASE_URL overrides the database url.

Results are printed to stdout as JSON.  A ledger error prints
{"error": CODE, ...} to stderr and exits with status 1.
"""

import argparse
import json
import sys
from datetime import date
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from ledger_config import get_active_config
from ledger_config.bridges import build_runtime
from ledger_kernel.db.engine import create_tables
from ledger_kernel.exceptions import LedgerKernelError


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an ISO date: {value}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ledger period close")
    parser.add_argument("--config", type=Path, default=None, help="YAML settings file")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create the ledger tables")

    close = sub.add_parser("close", help="post every pending entry up to DATE")
    close.add_argument("date", type=_parse_date)
    close.add_argument("--actor", type=UUID, required=True)

    reopen = sub.add_parser("reopen", help="un-post the entries of DATE")
    reopen.add_argument("date", type=_parse_date)
    reopen.add_argument("--actor", type=UUID, required=True)

    validate = sub.add_parser("validate", help="check entries without posting")
    validate.add_argument("date", type=_parse_date)
    validate.add_argument(
        "--entry",
        type=UUID,
        action="append",
        default=None,
        help="entry id (repeatable); defaults to every pending entry up to DATE",
    )

    sub.add_parser("status", help="list closed dates")
    return parser


def run(args: argparse.Namespace) -> dict:
    runtime = build_runtime(get_active_config(args.config))
    service = runtime.posting_service

    if args.command == "init-db":
        create_tables(runtime.engine)
        return {"status": "ok"}
    if args.command == "close":
        return service.post_period(args.date, args.actor).to_dict()
    if args.command == "reopen":
        return service.unpost_period(args.date, args.actor).to_dict()
    if args.command == "validate":
        entry_ids = args.entry
        if entry_ids is None:
            entry_ids = runtime.store.with_transaction(
                lambda tx: [e.id for e in tx.find_pending_entries_up_to(args.date)],
                operation="list_pending",
            )
        return service.validate_batch(entry_ids, args.date).to_dict()
    return {"closed_dates": [d.isoformat() for d in service.closed_dates()]}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        result = run(args)
    except LedgerKernelError as exc:
        payload = {
            "error": exc.code,
            "http_status": exc.http_status,
            "message": str(exc),
        }
        rejections = getattr(exc, "rejections", None)
        if rejections:
            payload["rejected"] = [r.to_dict() for r in rejections]
        print(json.dumps(payload), file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
