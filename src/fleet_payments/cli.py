"""Command-line interface for the payment pipeline.

Examples:
  # Schedules from a JSON export, paid bookings of the last week to CSV
  fleet-payments --bookings bookings.json --buses buses.json \
      --schedules schedules.json --status paid --window week --out payments.csv

  # Schedules from Firestore (FP_FIRESTORE_PROJECT / FP_FIRESTORE_TOKEN set)
  fleet-payments --bookings bookings.json --buses buses.json --summary -v
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from fleet_payments.config import FirestoreSettings, PipelineConfig
from fleet_payments.exceptions import ConfigError, FleetPaymentsError, PipelineError
from fleet_payments.payments.aggregate import aggregate_daily
from fleet_payments.payments.api import Fresh, PaymentPipeline
from fleet_payments.payments.export import export_filename, write_csv
from fleet_payments.payments.extract import FirestoreScheduleSource, StaticScheduleSource
from fleet_payments.payments.filters import DATE_WINDOWS, PAYMENT_STATUSES, TransactionFilter
from fleet_payments.payments.reference import ScheduleSource
from fleet_payments.qa import run_transactions_qa

logger = logging.getLogger(__name__)


def load_records(path: Path, key: str | None = None) -> Any:
    """Load a JSON export: a list of documents, or an object wrapping one under ``key``.

    Raises:
        ConfigError: If the file is missing or is not valid JSON.
    """
    if not path.exists():
        raise ConfigError(f"File not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8-sig"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    if key and isinstance(data, dict) and isinstance(data.get(key), list):
        return data[key]
    return data


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="fleet-payments",
        description="Build payment transactions and per-bus revenue summaries from bookings.",
    )
    p.add_argument("--bookings", required=True, type=Path, help="JSON list of booking documents")
    p.add_argument("--buses", type=Path, help="JSON list of bus documents")
    p.add_argument(
        "--schedules",
        type=Path,
        help="JSON schedules (list or id->document). If omitted, Firestore settings are read from env.",
    )
    p.add_argument("--bus", dest="bus_id", help="Only this bus id")
    p.add_argument("--status", default="all", choices=["all", *PAYMENT_STATUSES])
    p.add_argument("--window", default="all", choices=list(DATE_WINDOWS))
    p.add_argument("--start", help="Custom window start date (YYYY-MM-DD)")
    p.add_argument("--end", help="Custom window end date (YYYY-MM-DD)")
    p.add_argument("--search", default="", help="Free-text search")
    p.add_argument("--tz", help="Timezone for date windows and export dates")
    p.add_argument("--out", type=Path, help="CSV output path (a directory gets the default name)")
    p.add_argument("--summary", action="store_true", help="Print per-bus summaries")
    p.add_argument("--daily", action="store_true", help="Print the daily revenue table")
    p.add_argument("--qa", action="store_true", help="Run consistency checks")
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def _make_source(schedules_path: Path | None) -> ScheduleSource:
    if schedules_path is not None:
        return StaticScheduleSource(load_records(schedules_path, key="schedules"))
    return FirestoreScheduleSource(FirestoreSettings.from_env())


def run(args: argparse.Namespace) -> int:
    config = PipelineConfig.from_env()
    if args.tz:
        config.timezone = args.tz

    bookings = load_records(args.bookings, key="bookings")
    buses = load_records(args.buses, key="buses") if args.buses else None
    if not isinstance(bookings, list):
        raise ConfigError(f"{args.bookings} must contain a list of bookings")

    criteria = TransactionFilter(
        bus_id=args.bus_id,
        status=args.status,
        date_window="custom" if (args.start or args.end) and args.window == "all" else args.window,
        start_date=args.start,
        end_date=args.end,
        search=args.search,
    )

    pipeline = PaymentPipeline(_make_source(args.schedules), config)
    result = pipeline.rebuild(bookings, buses)
    if not isinstance(result, Fresh):
        raise PipelineError(
            f"Rebuild {result.version} was superseded by rebuild {result.latest}; nothing to report"
        )
    snapshot = result.snapshot

    if snapshot.error_banner:
        print(f"Error: {snapshot.error_banner}")

    rows = snapshot.view(criteria)
    totals = snapshot.totals(criteria)
    print(
        f"Transactions: {totals.count} ({totals.paid_count} paid) | "
        f"Total: {totals.total:,.2f} | Paid: {totals.paid:,.2f} | Pending: {totals.pending:,.2f}"
    )

    if args.summary:
        print()
        print(snapshot.bus_summaries.to_string(index=False))
    if args.daily:
        print()
        print(aggregate_daily(rows, config.timezone).to_string(index=False))
    if args.qa:
        qa = run_transactions_qa(snapshot.transactions, snapshot.bus_summaries)
        print()
        for name, value in qa.summary.items():
            print(f"{name}: {value}")

    if args.out is not None:
        out = args.out / export_filename() if args.out.is_dir() else args.out
        write_csv(rows, out, config.timezone)
        print(f"Saved {out}")

    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``fleet-payments`` console script."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    try:
        return run(args)
    except (FleetPaymentsError, ValueError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
