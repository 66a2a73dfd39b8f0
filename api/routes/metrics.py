"""
Metric snapshot reads for dashboards and reports (cache first)
"""

from datetime import date, timedelta
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_cache, get_db
from api.services.metrics_query import MetricsQueryService
from core import timeutils
from core.cache import CacheService
from core.config import settings
from models.base import EntityScope, Resolution
from schemas.api import MetricsResponse
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Metrics"])


@router.get("/metrics/{entity_type}/{entity_id}", response_model=MetricsResponse)
async def get_metrics(
    request: Request,
    entity_type: EntityScope = Path(..., description="campaign, ad_set or ad"),
    entity_id: int = Path(..., ge=1),
    resolution: Resolution = Query(Resolution.DAILY, description="hourly, daily or monthly"),
    date_start: Optional[date] = Query(None, description="Inclusive start date (default: lookback window)"),
    date_end: Optional[date] = Query(None, description="Inclusive end date (default: today)"),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache)
):
    """
    Metric snapshots of one campaign, ad set or ad over a date range.

    Monthly snapshots are returned for every month overlapping the range.
    """
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")

    date_end = date_end or timeutils.utcnow().date()
    date_start = date_start or date_end - timedelta(days=settings.SYNC_DEFAULT_LOOKBACK_DAYS)

    logger.info(
        f"[{request_id}] GET /metrics/{entity_type.value}/{entity_id} - "
        f"resolution={resolution.value}, range={date_start}..{date_end}"
    )

    if date_start > date_end:
        raise HTTPException(status_code=422, detail="date_start must not be after date_end")

    service = MetricsQueryService(db, cache)
    result = await service.get_metrics(entity_type, entity_id, resolution, date_start, date_end)

    if result is None:
        raise HTTPException(status_code=404, detail=f"{entity_type.value} {entity_id} not found")

    return MetricsResponse(
        request_id=request_id,
        entity_type=result.entity_type.value,
        entity_id=result.entity_id,
        account_id=result.account_id,
        resolution=result.resolution,
        date_start=result.date_start,
        date_end=result.date_end,
        cached=result.cached,
        total_points=len(result.points),
        points=result.points
    )
