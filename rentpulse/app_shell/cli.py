import argparse
import json
import logging
import sys
from collections import Counter
from pathlib import Path

from rentpulse.adapters.clock import SystemClock
from rentpulse.adapters.sqlite.migrator import SQLiteMigrator
from rentpulse.adapters.sqlite_db import SQLiteCounterStore, SQLiteListingDirectory
from rentpulse.api.schemas import ListingMetricsResponse, ListingSummaryResponse
from rentpulse.components.aggregation import IngestEventInput, run_ingest
from rentpulse.components.metrics import (
    GetMetricsInput,
    GetSummaryInput,
    MetricsAccessError,
    run_get_metrics,
    run_get_summary,
)
from rentpulse.rules.loader import (
    aggregation_config_from_rules,
    load_rules,
    metrics_config_from_rules,
)
from rentpulse.rules.models import Rules

logger = logging.getLogger("cli")

DB_FILENAME = "rentpulse.db"


def _db_path(args: argparse.Namespace) -> str:
    data_dir = Path(args.data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    return str(data_dir / DB_FILENAME)


def _load_rules(args: argparse.Namespace) -> Rules:
    rules_path = Path(args.rules)
    if not rules_path.exists():
        logger.error("Rules file %s not found.", rules_path)
        sys.exit(1)
    return load_rules(rules_path)


def handle_migrate(args: argparse.Namespace) -> int:
    applied = SQLiteMigrator(_db_path(args), args.migrations).run_migrations()
    print(f"Applied {len(applied)} migration(s).")
    return 0


def handle_ingest(args: argparse.Namespace) -> int:
    rules = _load_rules(args)
    config = aggregation_config_from_rules(rules)
    store = SQLiteCounterStore(_db_path(args), busy_timeout=rules.storage.busy_timeout_seconds)
    clock = SystemClock()

    outcomes: Counter[str] = Counter()
    with open(args.file) as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("Skipping line %d: invalid JSON (%s)", line_no, e)
                outcomes["unparseable"] += 1
                continue
            if not isinstance(data, dict):
                logger.warning("Skipping line %d: not a JSON object", line_no)
                outcomes["unparseable"] += 1
                continue

            out = run_ingest(IngestEventInput(data=data), store=store, time_port=clock, config=config)
            outcomes[out.outcome.value] += 1

    print(" ".join(f"{name}={count}" for name, count in sorted(outcomes.items())))
    return 0


def handle_metrics(args: argparse.Namespace) -> int:
    rules = _load_rules(args)
    config = metrics_config_from_rules(rules)
    db_path = _db_path(args)
    store = SQLiteCounterStore(db_path, busy_timeout=rules.storage.busy_timeout_seconds)
    listings = SQLiteListingDirectory(db_path)

    try:
        if args.summary:
            summary = run_get_summary(
                GetSummaryInput(caller_id=args.caller, entity_id=args.entity_id),
                store=store,
                listings=listings,
                config=config,
            )
            payload = ListingSummaryResponse.from_summary(summary).model_dump(by_alias=True)
        else:
            metrics = run_get_metrics(
                GetMetricsInput(caller_id=args.caller, entity_id=args.entity_id),
                store=store,
                listings=listings,
                config=config,
            )
            payload = ListingMetricsResponse.from_output(metrics).model_dump(by_alias=True)
    except MetricsAccessError as e:
        print(f"{e.code}: {e.message}", file=sys.stderr)
        return 1

    print(json.dumps(payload, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="RentPulse CLI")
    parser.add_argument("--data-dir", default="./data", help="Directory holding the SQLite db")
    parser.add_argument("--rules", default="rules.yaml", help="Path to rules.yaml")
    parser.add_argument("--migrations", default="migrations", help="Migrations directory")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    subparsers.add_parser("migrate", help="Apply pending schema migrations")

    # ingest
    ingest_parser = subparsers.add_parser("ingest", help="Aggregate events from a JSONL file")
    ingest_parser.add_argument("file", help="Path to a file with one JSON event per line")

    # metrics
    metrics_parser = subparsers.add_parser("metrics", help="Print listing metrics")
    metrics_parser.add_argument("entity_id", help="Listing id")
    metrics_parser.add_argument("--caller", required=True, help="Caller (owner) id")
    metrics_parser.add_argument(
        "--summary", action="store_true", help="Include top filters and listing snapshot"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)

    if args.command == "migrate":
        return handle_migrate(args)
    if args.command == "ingest":
        return handle_ingest(args)
    if args.command == "metrics":
        return handle_metrics(args)
    return 2


if __name__ == "__main__":
    sys.exit(main())
