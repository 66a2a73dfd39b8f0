"""
Aggregation engine: hourly -> daily and daily -> monthly rollups for every entity scope
"""

from datetime import date
from typing import List, Union
from sqlalchemy.ext.asyncio import AsyncSession
from core import timeutils
from models.base import Resolution
from aggregation.rollup import AggregationResult, rollup_specs, run_rollup
import logging

logger = logging.getLogger(__name__)


class AggregationEngine:
    """
    Maintains the daily and monthly resolutions from the finer ones.

    Scopes run sequentially (campaign, ad set, ad) and every run is
    re-entrant: repeating it for the same bucket yields identical rows.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def aggregate_hourly_to_daily(self, day: Union[date, str]) -> List[AggregationResult]:
        day = timeutils.as_date(day)
        logger.info(f"Starting hourly to daily aggregation for {day}")

        results = []
        for spec in rollup_specs(Resolution.HOURLY, Resolution.DAILY):
            results.append(await run_rollup(self.db, spec, day))

        logger.info(f"Hourly to daily aggregation completed for {day}")
        return results

    async def aggregate_daily_to_monthly(self, year: int, month: int) -> List[AggregationResult]:
        # Validates the month before any work
        timeutils.month_bounds(year, month)
        logger.info(f"Starting daily to monthly aggregation for {year}-{month:02d}")

        results = []
        for spec in rollup_specs(Resolution.DAILY, Resolution.MONTHLY):
            results.append(await run_rollup(self.db, spec, (year, month)))

        logger.info(f"Daily to monthly aggregation completed for {year}-{month:02d}")
        return results
