"""
Manual sync trigger and sync run history
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_cache, get_db, get_rate_limiter
from core.cache import CacheService
from ingestion.base import DateRange
from ingestion.rate_limiter import RateLimiter
from ingestion.runner import SyncOptions, SyncRunner
from models.account import AdAccount
from models.base import SyncStatus
from models.sync_run import SyncRun
from schemas.api import SyncRequest, SyncResponse, SyncRunListResponse, SyncRunSummary
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Sync"])


@router.post("/sync/{account_id}", response_model=SyncResponse)
async def trigger_sync(
    request: Request,
    account_id: int,
    body: Optional[SyncRequest] = None,
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    rate_limiter: RateLimiter = Depends(get_rate_limiter)
):
    """
    Run one sync for an ad account and wait for its terminal status.

    A failed run is still a 200 response: the outcome is in ``status``.
    """
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    body = body or SyncRequest()

    account = await db.get(AdAccount, account_id)
    if account is None:
        raise HTTPException(status_code=404, detail=f"Ad account {account_id} not found")
    if not account.is_active:
        raise HTTPException(status_code=409, detail=f"Ad account {account_id} is inactive")

    logger.info(f"[{request_id}] POST /sync/{account_id} - type={body.sync_type.value}")

    options = SyncOptions(
        sync_type=body.sync_type,
        entity_types=body.entity_types,
        date_range=DateRange(since=body.date_start, until=body.date_end) if body.date_start else None,
        resolution=body.resolution,
        triggered_by=body.triggered_by,
    )

    runner = SyncRunner(db, rate_limiter=rate_limiter, cache=cache)
    result = await runner.sync(account_id, options)

    return SyncResponse(request_id=request_id, **result.model_dump())


@router.get("/sync/runs", response_model=SyncRunListResponse)
async def list_sync_runs(
    request: Request,
    account_id: Optional[int] = Query(None, description="Filter by ad account"),
    status: Optional[SyncStatus] = Query(None, description="Filter by run status"),
    limit: int = Query(20, ge=1, le=100, description="Number of runs to return"),
    db: AsyncSession = Depends(get_db)
):
    """Sync run history, newest first."""
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")

    filters = []
    if account_id is not None:
        filters.append(SyncRun.account_id == account_id)
    if status is not None:
        filters.append(SyncRun.status == status)

    count_query = select(func.count()).select_from(SyncRun)
    query = select(SyncRun).order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(limit)
    if filters:
        count_query = count_query.where(and_(*filters))
        query = query.where(and_(*filters))

    total = (await db.execute(count_query)).scalar() or 0
    runs = (await db.execute(query)).scalars().all()

    logger.info(f"[{request_id}] GET /sync/runs - {len(runs)}/{total} runs")

    return SyncRunListResponse(
        request_id=request_id,
        total=total,
        runs=[SyncRunSummary.from_run(run) for run in runs]
    )
