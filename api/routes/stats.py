"""
Sync and cache statistics endpoint
"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_
from api.dependencies import get_cache, get_db
from core.cache import CacheService
from core import timeutils
from schemas.api import StatsResponse, SyncRunSummary
from models.account import AdAccount
from models.base import SyncStatus
from models.campaign import Campaign
from models.sync_run import SyncRun
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Statistics"])


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    request: Request,
    limit: int = Query(10, ge=1, le=100, description="Number of recent runs to return"),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache)
):
    """
    Get sync and cache statistics.

    Returns:
    - Account and campaign inventory
    - Sync run counts by status and timing
    - Recent sync run history
    - Cache usage (entries, hits, hottest keys)
    """
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")

    logger.info(f"[{request_id}] GET /stats")

    # ========== Inventory ==========

    total_accounts = (await db.execute(select(func.count()).select_from(AdAccount))).scalar() or 0
    active_accounts = (await db.execute(
        select(func.count()).select_from(AdAccount).where(AdAccount.is_active.is_(True))
    )).scalar() or 0
    total_campaigns = (await db.execute(select(func.count()).select_from(Campaign))).scalar() or 0

    platform_rows = await db.execute(
        select(Campaign.platform, func.count()).group_by(Campaign.platform)
    )
    campaigns_by_platform = {platform.value: count for platform, count in platform_rows.all()}

    # ========== Sync Runs ==========

    status_rows = await db.execute(
        select(SyncRun.status, func.count()).group_by(SyncRun.status)
    )
    runs_by_status = {status.value: count for status, count in status_rows.all()}
    total_runs = sum(runs_by_status.values())

    last_success = (await db.execute(
        select(func.max(SyncRun.completed_at)).where(SyncRun.status == SyncStatus.SUCCESS)
    )).scalar()
    last_failure = (await db.execute(
        select(func.max(SyncRun.completed_at)).where(SyncRun.status == SyncStatus.FAILED)
    )).scalar()

    avg_duration = (await db.execute(
        select(func.avg(SyncRun.duration_seconds)).where(
            and_(
                SyncRun.status.in_([SyncStatus.SUCCESS, SyncStatus.PARTIAL_SUCCESS]),
                SyncRun.duration_seconds.isnot(None)
            )
        )
    )).scalar()

    recent_runs_result = await db.execute(
        select(SyncRun)
        .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
        .limit(limit)
    )
    recent_runs = [SyncRunSummary.from_run(run) for run in recent_runs_result.scalars().all()]

    # Release the read transaction before the cache reads its own session
    await db.commit()

    # ========== Cache ==========

    cache_stats = await cache.get_stats()

    logger.info(
        f"[{request_id}] Stats: {total_accounts} accounts, {total_campaigns} campaigns, "
        f"{total_runs} runs, {cache_stats.total_entries} cache entries"
    )

    return StatsResponse(
        timestamp=timeutils.utcnow(),
        request_id=request_id,
        total_accounts=total_accounts,
        active_accounts=active_accounts,
        total_campaigns=total_campaigns,
        campaigns_by_platform=campaigns_by_platform,
        total_runs=total_runs,
        runs_by_status=runs_by_status,
        last_sync_success=last_success,
        last_sync_failure=last_failure,
        avg_sync_duration_seconds=round(avg_duration, 2) if avg_duration else None,
        recent_runs=recent_runs,
        cache=cache_stats
    )
