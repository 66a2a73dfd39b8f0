"""
Script to run one rollup by hand (backfills, re-runs after late data)
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from aggregation.engine import AggregationEngine
from core import timeutils
from core.database import async_session_maker, engine
from core.logging import setup_logging

logger = logging.getLogger(__name__)


async def run_aggregation(day=None, month=None) -> int:
    """Run the requested rollup; returns the number of failed groups and rollups"""
    try:
        async with async_session_maker() as session:
            aggregation = AggregationEngine(session)
            if month is not None:
                year, month_number = month
                results = await aggregation.aggregate_daily_to_monthly(year, month_number)
            else:
                results = await aggregation.aggregate_hourly_to_daily(day)
    finally:
        await engine.dispose()

    for result in results:
        logger.info(f"{result.name}: {result.succeeded}/{result.groups} groups, {result.failed} failed")
        if result.error:
            logger.error(f"{result.name}: {result.error}")

    return sum(r.failed + (1 if r.error else 0) for r in results)


def parse_month(value: str):
    year, month = value.split("-")
    return int(year), int(month)


def main():
    parser = argparse.ArgumentParser(description="Roll metric snapshots up to a coarser resolution")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--date", type=timeutils.as_date, help="Hourly -> daily for YYYY-MM-DD")
    group.add_argument("--month", type=parse_month, help="Daily -> monthly for YYYY-MM")
    args = parser.parse_args()

    setup_logging()
    failed = asyncio.run(run_aggregation(day=args.date, month=args.month))
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
