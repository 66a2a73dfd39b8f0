"""
Read-through query service for dashboard metric reads.

Reads go to the cache first; a miss falls back to a range query on the
snapshot table for the requested scope and resolution, and the serialized
rows are written back with the metrics TTL. Entries are tagged with the
owning account so a sync of that account invalidates them.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
from core import timeutils
from core.cache import MISS, CacheService, build_cache_key
from core.config import settings
from models.base import EntityScope, Resolution
from models.campaign import Ad, AdSet, Campaign
from models.metrics import ADDITIVE_FIELDS, RATIO_FIELDS, SCOPE_KEYS, metrics_table
import logging

logger = logging.getLogger(__name__)

ENTITY_MODELS = {
    EntityScope.CAMPAIGN: Campaign,
    EntityScope.AD_SET: AdSet,
    EntityScope.AD: Ad,
}

BUCKET_FIELDS = {
    Resolution.HOURLY: ("timestamp", "date", "hour"),
    Resolution.DAILY: ("date", "day_of_week"),
    Resolution.MONTHLY: ("year", "month", "first_day_of_month"),
}


class MetricsQueryResult(BaseModel):
    entity_type: EntityScope
    entity_id: int
    account_id: int
    resolution: Resolution
    date_start: date
    date_end: date
    cached: bool = False
    points: List[Dict[str, Any]] = Field(default_factory=list)


def _json_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def serialize_snapshot(row, resolution: Resolution) -> Dict[str, Any]:
    """JSON-safe dict of a snapshot row: bucket columns first, then metrics."""
    fields = BUCKET_FIELDS[resolution] + ADDITIVE_FIELDS + RATIO_FIELDS
    return {field: _json_value(getattr(row, field)) for field in fields}


class MetricsQueryService:
    def __init__(self, db_session: AsyncSession, cache: Optional[CacheService] = None):
        self.db = db_session
        self.cache = cache or CacheService()

    async def _account_for(self, scope: EntityScope, entity_id: int) -> Optional[int]:
        model = ENTITY_MODELS[scope]
        result = await self.db.execute(select(model.account_id).where(model.id == entity_id))
        return result.scalar_one_or_none()

    def _range_condition(self, model, resolution: Resolution, date_start: date, date_end: date):
        if resolution == Resolution.MONTHLY:
            # A month is in range when any of its days is
            first_day, _ = timeutils.month_bounds(date_start.year, date_start.month)
            return and_(model.first_day_of_month >= first_day, model.first_day_of_month <= date_end)
        return and_(model.date >= date_start, model.date <= date_end)

    def _order_by(self, model, resolution: Resolution):
        if resolution == Resolution.HOURLY:
            return [model.timestamp]
        if resolution == Resolution.MONTHLY:
            return [model.year, model.month]
        return [model.date]

    async def get_metrics(
        self,
        entity_type: Union[EntityScope, str],
        entity_id: int,
        resolution: Union[Resolution, str],
        date_start: Union[date, str],
        date_end: Union[date, str]
    ) -> Optional[MetricsQueryResult]:
        """
        Metric snapshots of one entity over an inclusive date range.

        Returns:
            MetricsQueryResult, or None when the entity does not exist
        """
        scope = EntityScope(entity_type)
        resolution = Resolution(resolution)
        date_start = timeutils.as_date(date_start)
        date_end = timeutils.as_date(date_end)
        if date_start > date_end:
            raise ValueError("date_start must not be after date_end")

        key = build_cache_key(f"metrics:{scope.value}", entity_id, resolution, start=date_start, end=date_end)
        cached = await self.cache.get(key)
        if cached is not MISS:
            logger.debug(f"Metrics cache hit: {key}")
            return self._result(scope, entity_id, cached["account_id"], resolution, date_start, date_end,
                                cached["points"], cached=True)

        account_id = await self._account_for(scope, entity_id)
        if account_id is None:
            return None

        model = metrics_table(scope, resolution)
        entity_column = getattr(model, SCOPE_KEYS[scope][-1])
        rows = await self.db.execute(
            select(model)
            .where(and_(entity_column == entity_id, self._range_condition(model, resolution, date_start, date_end)))
            .order_by(*self._order_by(model, resolution))
        )
        points = [serialize_snapshot(row, resolution) for row in rows.scalars().all()]
        # Release the read transaction before the cache write
        await self.db.commit()

        await self.cache.set(
            key,
            {"account_id": account_id, "points": points},
            ttl_seconds=settings.CACHE_METRICS_TTL_SECONDS,
            resource_type="account",
            resource_id=account_id
        )
        logger.debug(f"Metrics cache populated: {key} ({len(points)} points)")
        return self._result(scope, entity_id, account_id, resolution, date_start, date_end, points)

    def _result(self, scope, entity_id, account_id, resolution, date_start, date_end, points, cached=False):
        return MetricsQueryResult(
            entity_type=scope,
            entity_id=entity_id,
            account_id=account_id,
            resolution=resolution,
            date_start=date_start,
            date_end=date_end,
            cached=cached,
            points=points,
        )
