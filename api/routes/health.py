"""
Health check endpoint with database and sync status
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, text
from api.dependencies import get_db
from schemas.api import HealthCheckResponse, AccountSyncInfo
from models.account import AdAccount
from models.base import SyncStatus
from models.sync_run import SyncRun
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Latest sync run of every ad account
    - Request metadata
    """
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")

    db_connected = False
    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except SQLAlchemyError as e:
        logger.error(f"[{request_id}] Database connection failed: {str(e)}")

    accounts = []
    failed_accounts = 0
    healthy_accounts = 0
    running_syncs = 0

    if db_connected:
        try:
            result = await db.execute(select(AdAccount).order_by(AdAccount.id))
            for account in result.scalars().all():
                latest = await db.execute(
                    select(SyncRun)
                    .where(SyncRun.account_id == account.id)
                    .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
                    .limit(1)
                )
                run = latest.scalar_one_or_none()

                if run is not None and run.status == SyncStatus.FAILED:
                    failed_accounts += 1
                else:
                    healthy_accounts += 1

                accounts.append(AccountSyncInfo(
                    account_id=account.id,
                    platform=account.platform.value,
                    name=account.name,
                    is_active=account.is_active,
                    last_synced_at=account.last_synced_at,
                    last_run_status=run.status if run else None,
                    last_run_started_at=run.started_at if run else None,
                    last_run_error=run.error_message if run else None,
                ))

            running = await db.execute(
                select(func.count()).select_from(SyncRun).where(SyncRun.status == SyncStatus.IN_PROGRESS)
            )
            running_syncs = running.scalar() or 0
        except SQLAlchemyError as e:
            logger.error(f"[{request_id}] Failed to fetch sync status: {str(e)}")

    # Overall status is derived by the response model
    return HealthCheckResponse(
        request_id=request_id,
        database_connected=db_connected,
        accounts=accounts,
        total_accounts=len(accounts),
        healthy_accounts=healthy_accounts,
        failed_accounts=failed_accounts,
        running_syncs=running_syncs
    )
