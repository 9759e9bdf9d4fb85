"""
Market Data: One-off Batch Runner

Runs a single pipeline job once and prints its summary as JSON. Used for
backfills, manual re-runs and operator overrides outside the scheduler.

Usage:
    python scripts/run_batch.py automap --category pokemon --limit 200
    python scripts/run_batch.py ingest --source ebay_sold --category onepiece
    python scripts/run_batch.py aggregate --category pokemon --force
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from datetime import date

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from market_data.db import create_db_engine
from market_data.main import _configure_logging
from market_data.pipeline.aggregator import run_daily_aggregation
from market_data.pipeline.ingest import ADAPTERS, run_ingestion
from market_data.pipeline.matcher import run_auto_map
from market_data.pipeline.summary import RunSummary


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run one market-data batch job and print its summary.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_batch.py automap --category pokemon --force
  python scripts/run_batch.py ingest --source cardmarket --limit 50
  python scripts/run_batch.py aggregate --run-date 2026-03-01
""",
    )
    parser.add_argument(
        "job",
        choices=["ingest", "automap", "aggregate"],
        help="Job to run.",
    )
    parser.add_argument(
        "--category",
        type=str,
        default=None,
        help="Restrict to one game / category (e.g. pokemon, onepiece).",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum rows processed this run (job default when omitted).",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="automap: recompute normalized keys. aggregate: bypass the volatility gate.",
    )
    parser.add_argument(
        "--source",
        type=str,
        default="ebay_sold",
        choices=sorted(ADAPTERS),
        help="ingest: vendor adapter to run (default: ebay_sold).",
    )
    parser.add_argument(
        "--item",
        action="append",
        default=None,
        dest="market_item_ids",
        help="ingest: restrict to this market item id (repeatable).",
    )
    parser.add_argument(
        "--run-date",
        type=date.fromisoformat,
        default=None,
        help="aggregate: date keying log and review rows (YYYY-MM-DD, default today UTC).",
    )
    return parser.parse_args(argv)


async def run_job(args: argparse.Namespace) -> RunSummary:
    engine, session_factory = create_db_engine()
    try:
        async with session_factory() as session:
            if args.job == "automap":
                return await run_auto_map(
                    session,
                    game=args.category,
                    limit=args.limit,
                    force_recompute=args.force,
                )
            if args.job == "ingest":
                return await run_ingestion(
                    session,
                    ADAPTERS[args.source](),
                    category=args.category,
                    limit=args.limit,
                    market_item_ids=args.market_item_ids,
                )
            return await run_daily_aggregation(
                session,
                category=args.category,
                limit=args.limit,
                force_update=args.force,
                run_date=args.run_date,
            )
    finally:
        await engine.dispose()


async def main() -> None:
    args = parse_args()
    _configure_logging(log_level="WARNING")

    try:
        summary = await run_job(args)
    except Exception as e:
        print(f"Batch {args.job} failed: {e}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(summary.model_dump(mode="json"), indent=2))
    if summary.errors:
        sys.exit(2)


if __name__ == "__main__":
    asyncio.run(main())
