# ============================================================================
# File: ingestion/runner.py
# Description: Sync orchestrator for one ad account
# ============================================================================
"""
Sync Runner - Orchestrates fetch -> transform -> load for one ad account.

This module provides:
- Run record lifecycle (IN_PROGRESS -> SUCCESS / PARTIAL_SUCCESS / FAILED)
- Strictly ordered stages: campaigns -> ad sets -> ads -> metrics
- Partial failure support (bad items are counted, the stage continues)
- Run-level processed / created / updated / failed accounting
- Cache invalidation for the account after data changed
"""

from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import logging
import uuid

from core import timeutils
from core.cache import CacheService
from core.config import settings
from core.database import async_session_maker
from core.exceptions import (
    AccountNotFoundError,
    DatabaseError,
    ETLException,
    ResourceNotFoundError,
    ValidationError,
)
from models.account import AdAccount
from models.base import EntityType, Resolution, SyncStatus, SyncType, TriggeredBy
from models.campaign import Campaign
from models.sync_run import SyncRun
from schemas.normalized import NormalizedCampaign, OwnerContext, TransformConfig
from ingestion.base import AdPlatformClient, DateRange
from ingestion.extractors import build_client
from ingestion.loaders.campaign_loader import CampaignLoader
from ingestion.pagination import fetch_all_pages
from ingestion.rate_limiter import RateLimiter
from ingestion.transformers import PlatformTransformer, get_transformer

logger = logging.getLogger(__name__)

STAGE_ORDER = [EntityType.CAMPAIGNS, EntityType.AD_SETS, EntityType.ADS, EntityType.METRICS]

ITEM_ERRORS = (ValidationError, PydanticValidationError)


class SyncOptions(BaseModel):
    sync_type: SyncType = SyncType.FULL
    entity_types: Optional[List[EntityType]] = None  # None = every stage for the run type
    date_range: Optional[DateRange] = None
    resolution: Resolution = Resolution.DAILY
    triggered_by: TriggeredBy = TriggeredBy.API
    max_pages: Optional[int] = None


class StageSummary(BaseModel):
    processed: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)

    def record(self, success: bool, created: bool = False, error: Optional[str] = None):
        self.processed += 1
        if not success:
            self.failed += 1
            if error:
                self.errors.append(error)
        elif created:
            self.created += 1
        else:
            self.updated += 1


class SyncResult(BaseModel):
    run_id: Optional[str] = None
    account_id: int
    status: SyncStatus
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_failed: int = 0
    stages: Dict[str, StageSummary] = Field(default_factory=dict)
    error: Optional[str] = None
    duration_seconds: Optional[float] = None


ClientFactory = Callable[..., AdPlatformClient]


class SyncRunner:
    """
    Sync orchestrator for one ad account per call.

    Responsibilities:
    - Create the run record before any remote call
    - Run the requested stages in order, accumulating counters
    - Finalize the run record exactly once
    - Never raise: failures are reported in the returned SyncResult
    """

    def __init__(
        self,
        db_session: AsyncSession,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[CacheService] = None,
        client_factory: ClientFactory = build_client
    ):
        self.db = db_session
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.client_factory = client_factory
        self.loader = CampaignLoader(db_session)

    def _stages(self, options: SyncOptions) -> List[EntityType]:
        if options.entity_types:
            requested = set(options.entity_types)
            return [stage for stage in STAGE_ORDER if stage in requested]
        if options.sync_type == SyncType.METRICS:
            return [EntityType.METRICS]
        return list(STAGE_ORDER)

    def _date_range(self, account: AdAccount, options: SyncOptions) -> DateRange:
        if options.date_range is not None:
            return options.date_range

        today = timeutils.utcnow().date()
        since = today - timedelta(days=settings.SYNC_DEFAULT_LOOKBACK_DAYS)
        if options.sync_type == SyncType.INCREMENTAL and account.last_synced_at is not None:
            since = max(since, account.last_synced_at.date())
        return DateRange(since=since, until=today)

    async def sync(self, account_id: int, options: Optional[SyncOptions] = None) -> SyncResult:
        """
        Run one sync for an ad account.

        Args:
            account_id: Internal ad account id
            options: Run type, stages, date range and trigger

        Returns:
            SyncResult with the terminal status and counters
        """
        options = options or SyncOptions()

        try:
            account = await self.db.get(AdAccount, account_id)
        except SQLAlchemyError as e:
            return await self._storage_failure("Failed to load ad account", account_id, e)

        if account is None:
            error = AccountNotFoundError(f"Ad account {account_id} not found", context={"account_id": account_id})
            logger.error(error.message, extra={"error_context": error.to_dict()})
            return SyncResult(account_id=account_id, status=SyncStatus.FAILED, error=error.message)

        stages = self._stages(options)
        platform = account.platform
        owner = OwnerContext(account_id=account_id, owner_id=account.owner_id)
        date_range = self._date_range(account, options) if EntityType.METRICS in stages else None

        run = SyncRun(
            run_id=uuid.uuid4(),
            account_id=account_id,
            sync_type=options.sync_type,
            entity_types=",".join(stage.value for stage in stages),
            triggered_by=options.triggered_by,
            status=SyncStatus.IN_PROGRESS,
            started_at=timeutils.utcnow(),
        )
        try:
            self.db.add(run)
            await self.db.flush()
            run_pk, run_uuid, started_at = run.id, str(run.run_id), run.started_at
            await self.db.commit()
        except SQLAlchemyError as e:
            return await self._storage_failure("Failed to create sync run record", account_id, e)

        logger.info(
            f"Starting sync {run_uuid} for account {account_id} ({platform.value}): "
            f"{', '.join(stage.value for stage in stages)}"
        )

        summaries: Dict[str, StageSummary] = {}
        error_message = None
        error_details = None

        try:
            client = self.client_factory(account, rate_limiter=self.rate_limiter)
            transformer = get_transformer(platform)

            async with client:
                for stage in stages:
                    logger.info(f"Sync {run_uuid}: stage {stage.value}")
                    if stage == EntityType.METRICS:
                        summary = await self._sync_metrics(client, transformer, owner, date_range, options)
                    else:
                        summary = await self._sync_entities(client, transformer, owner, stage, options)
                    summaries[stage.value] = summary
                    await self.db.commit()

            failed = sum(s.failed for s in summaries.values())
            status = SyncStatus.SUCCESS if failed == 0 else SyncStatus.PARTIAL_SUCCESS

        except Exception as e:
            await self._rollback()
            status = SyncStatus.FAILED

            if isinstance(e, ETLException):
                error_message = e.message
                error_details = e.to_dict()
            else:
                error_message = str(e)
                error_details = {"error_type": type(e).__name__, "message": str(e)}

            logger.error(
                f"Sync {run_uuid} failed for account {account_id}: {error_message}",
                extra={"error_context": error_details}
            )

        result = await self._finalize(
            run_pk, run_uuid, account_id, started_at, status, summaries, error_message, error_details
        )

        if status in (SyncStatus.SUCCESS, SyncStatus.PARTIAL_SUCCESS) and self.cache is not None:
            await self.cache.invalidate_by_resource("account", account_id)

        return result

    async def _rollback(self):
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.warning(f"Rollback failed: {e}")

    async def _storage_failure(
        self,
        message: str,
        account_id: int,
        e: SQLAlchemyError,
        run_uuid: Optional[str] = None
    ) -> SyncResult:
        """Log a storage outage and report it as a FAILED result instead of raising."""
        await self._rollback()
        error = DatabaseError(
            message,
            context={"account_id": account_id, "run_id": run_uuid},
            original_exception=e
        )
        logger.error(f"{message} for account {account_id}: {e}", extra={"error_context": error.to_dict()})
        return SyncResult(run_id=run_uuid, account_id=account_id, status=SyncStatus.FAILED, error=error.message)

    async def _finalize(
        self,
        run_pk: int,
        run_uuid: str,
        account_id: int,
        started_at,
        status: SyncStatus,
        summaries: Dict[str, StageSummary],
        error_message: Optional[str],
        error_details: Optional[Dict[str, Any]]
    ) -> SyncResult:
        completed_at = timeutils.utcnow()
        duration = (completed_at - started_at).total_seconds()

        totals = {
            "records_processed": sum(s.processed for s in summaries.values()),
            "records_created": sum(s.created for s in summaries.values()),
            "records_updated": sum(s.updated for s in summaries.values()),
            "records_failed": sum(s.failed for s in summaries.values()),
        }

        if status == SyncStatus.PARTIAL_SUCCESS and error_message is None:
            error_message = f"{totals['records_failed']} records failed"

        try:
            await self.db.execute(
                update(SyncRun)
                .where(SyncRun.id == run_pk)
                .values(
                    status=status,
                    completed_at=completed_at,
                    duration_seconds=duration,
                    error_message=error_message,
                    error_details=error_details,
                    stage_summary={name: s.model_dump() for name, s in summaries.items()},
                    **totals
                )
            )

            if status == SyncStatus.SUCCESS:
                await self.db.execute(
                    update(AdAccount).where(AdAccount.id == account_id).values(last_synced_at=completed_at)
                )

            await self.db.commit()
        except SQLAlchemyError as e:
            # The run record stays IN_PROGRESS; a re-run recovers it
            failure = await self._storage_failure("Failed to finalize sync run", account_id, e, run_uuid)
            status, error_message = failure.status, failure.error

        logger.info(
            f"Sync {run_uuid} finished: {status.value} - processed={totals['records_processed']}, "
            f"created={totals['records_created']}, updated={totals['records_updated']}, "
            f"failed={totals['records_failed']} ({duration:.2f}s)"
        )

        return SyncResult(
            run_id=run_uuid,
            account_id=account_id,
            status=status,
            stages=summaries,
            error=error_message,
            duration_seconds=duration,
            **totals
        )

    async def _sync_entities(
        self,
        client: AdPlatformClient,
        transformer: PlatformTransformer,
        owner: OwnerContext,
        stage: EntityType,
        options: SyncOptions
    ) -> StageSummary:
        summary = StageSummary()

        items = await fetch_all_pages(
            lambda cursor: client.list(stage, cursor=cursor),
            max_pages=options.max_pages or settings.SYNC_MAX_PAGES
        )

        for raw in items:
            try:
                if stage == EntityType.CAMPAIGNS:
                    entity = transformer.normalize_campaign(raw)
                    load_result = await self.loader.load_campaign(entity, owner)
                elif stage == EntityType.AD_SETS:
                    entity = transformer.normalize_ad_set(raw)
                    load_result = await self.loader.load_ad_set(entity, owner)
                else:
                    entity = transformer.normalize_ad(raw)
                    load_result = await self.loader.load_ad(entity, owner)
            except ITEM_ERRORS as e:
                logger.warning(f"Skipping invalid {stage.value} record: {e}")
                summary.record(False, error=f"{stage.value}: {e}")
                continue

            summary.record(load_result.success, load_result.created, load_result.error)

        logger.info(
            f"Stage {stage.value}: {summary.processed} processed, {summary.created} created, "
            f"{summary.updated} updated, {summary.failed} failed"
        )
        return summary

    async def _sync_metrics(
        self,
        client: AdPlatformClient,
        transformer: PlatformTransformer,
        owner: OwnerContext,
        date_range: DateRange,
        options: SyncOptions
    ) -> StageSummary:
        summary = StageSummary()
        config = TransformConfig(
            owner_id=owner.owner_id or "",
            account_id=owner.account_id,
            revenue_per_conversion=settings.META_REVENUE_PER_CONVERSION,
            resolution=options.resolution,
        )

        result = await self.db.execute(select(Campaign).where(Campaign.account_id == owner.account_id))
        campaigns = [
            NormalizedCampaign(
                platform=c.platform,
                platform_campaign_id=c.platform_campaign_id,
                name=c.name,
                status=c.status,
                objective=c.objective,
                daily_budget=c.daily_budget,
                lifetime_budget=c.lifetime_budget,
            )
            for c in result.scalars().all()
        ]
        # Release the read transaction before remote calls
        await self.db.commit()

        for campaign in campaigns:
            try:
                rows = await client.get_insights(
                    campaign.platform_campaign_id,
                    date_range,
                    level="campaign",
                    hourly=options.resolution == Resolution.HOURLY
                )
            except ResourceNotFoundError as e:
                logger.warning(f"Campaign {campaign.platform_campaign_id} not found upstream: {e.message}")
                summary.record(False, error=f"metrics {campaign.platform_campaign_id}: {e.message}")
                continue

            try:
                rows = transformer.prepare_metrics_rows(rows)
            except ITEM_ERRORS as e:
                # One bad row poisons the merge, so every row of the campaign fails
                failed_rows = len(rows) if isinstance(rows, list) else 1
                logger.warning(f"Skipping {failed_rows} metrics rows for {campaign.platform_campaign_id}: {e}")
                for _ in range(failed_rows):
                    summary.record(False, error=f"metrics {campaign.platform_campaign_id}: {e}")
                continue

            for row in rows:
                try:
                    metrics = transformer.normalize_metrics(row, config)
                except ITEM_ERRORS as e:
                    logger.warning(f"Skipping invalid metrics row for {campaign.platform_campaign_id}: {e}")
                    summary.record(False, error=f"metrics {campaign.platform_campaign_id}: {e}")
                    continue

                load_result = await self.loader.load(campaign, metrics, owner)
                summary.record(load_result.success, load_result.created, load_result.error)

        logger.info(
            f"Stage metrics ({date_range.since} - {date_range.until}): {summary.processed} processed, "
            f"{summary.created} created, {summary.updated} updated, {summary.failed} failed"
        )
        return summary


async def sync_all_active_accounts(
    options: Optional[SyncOptions] = None,
    session_factory: Optional[async_sessionmaker] = None,
    rate_limiter: Optional[RateLimiter] = None,
    cache: Optional[CacheService] = None,
    client_factory: ClientFactory = build_client
) -> List[SyncResult]:
    """
    Sync every active ad account, each with its own session and run record.

    Accounts are processed sequentially; one account's failure never stops the next.
    """
    session_factory = session_factory or async_session_maker
    options = options or SyncOptions(sync_type=SyncType.INCREMENTAL, triggered_by=TriggeredBy.CRON)
    rate_limiter = rate_limiter or RateLimiter(session_factory)
    cache = cache or CacheService(session_factory)

    async with session_factory() as session:
        result = await session.execute(
            select(AdAccount.id).where(AdAccount.is_active.is_(True)).order_by(AdAccount.id)
        )
        account_ids = list(result.scalars().all())

    logger.info(f"Syncing {len(account_ids)} active accounts")

    results = []
    for account_id in account_ids:
        async with session_factory() as session:
            runner = SyncRunner(session, rate_limiter=rate_limiter, cache=cache, client_factory=client_factory)
            results.append(await runner.sync(account_id, options))

    succeeded = sum(1 for r in results if r.status != SyncStatus.FAILED)
    logger.info(f"Synced {succeeded}/{len(results)} accounts without failure")
    return results
