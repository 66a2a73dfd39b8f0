"""
Script to sync every active ad account once
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import engine
from core.logging import setup_logging
from ingestion.runner import SyncOptions, sync_all_active_accounts
from models.base import Resolution, SyncStatus, SyncType, TriggeredBy

logger = logging.getLogger(__name__)


async def run_sync(sync_type: SyncType, resolution: Resolution) -> int:
    """Sync all active accounts; returns the number of FAILED runs"""
    try:
        results = await sync_all_active_accounts(
            SyncOptions(sync_type=sync_type, resolution=resolution, triggered_by=TriggeredBy.CRON)
        )
    finally:
        await engine.dispose()

    for result in results:
        logger.info(
            f"Account {result.account_id}: {result.status.value} - "
            f"processed={result.records_processed}, failed={result.records_failed}"
        )

    failed = sum(1 for r in results if r.status == SyncStatus.FAILED)
    logger.info(f"All sync jobs completed ({failed} failed)")
    return failed


def main():
    parser = argparse.ArgumentParser(description="Sync every active ad account once")
    parser.add_argument(
        "--type", dest="sync_type", choices=[t.value for t in SyncType],
        default=SyncType.INCREMENTAL.value, help="Sync run type (default: incremental)"
    )
    parser.add_argument(
        "--resolution", choices=[Resolution.HOURLY.value, Resolution.DAILY.value],
        default=Resolution.DAILY.value, help="Metric resolution to fetch (default: daily)"
    )
    args = parser.parse_args()

    setup_logging()
    failed = asyncio.run(run_sync(SyncType(args.sync_type), Resolution(args.resolution)))
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
