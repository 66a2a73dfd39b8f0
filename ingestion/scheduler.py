import logging
from datetime import timedelta
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker
from core import timeutils
from core.cache import CacheService
from core.config import settings
from core.database import async_session_maker
from aggregation.engine import AggregationEngine
from ingestion.rate_limiter import RateLimiter
from ingestion.runner import sync_all_active_accounts

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Cron entry points for rollups, housekeeping and periodic syncs.

    Jobs (UTC):
    - hourly at :05      hourly -> daily rollup for the previous hour's date
    - daily at 02:00     daily -> monthly rollup for yesterday's month
    - daily at 03:00     rate limit window cleanup
    - every 6 hours      expired cache cleanup
    - every N minutes    sync all active accounts (SCHEDULER_ENABLED)
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.SessionLocal = session_factory or async_session_maker
        self.rate_limiter = RateLimiter(self.SessionLocal)
        self.cache = CacheService(self.SessionLocal)

    async def aggregate_hourly_job(self):
        """Roll the previous hour's day up to daily snapshots"""
        day = (timeutils.utcnow() - timedelta(hours=1)).date()
        logger.info(f"Scheduler: hourly -> daily aggregation for {day}")
        async with self.SessionLocal() as session:
            try:
                await AggregationEngine(session).aggregate_hourly_to_daily(day)
            except Exception as e:
                logger.error(f"Scheduler: hourly aggregation failed - {e}")

    async def aggregate_monthly_job(self):
        """Roll yesterday's month up to monthly snapshots"""
        yesterday = timeutils.utcnow().date() - timedelta(days=1)
        logger.info(f"Scheduler: daily -> monthly aggregation for {yesterday.year}-{yesterday.month:02d}")
        async with self.SessionLocal() as session:
            try:
                await AggregationEngine(session).aggregate_daily_to_monthly(yesterday.year, yesterday.month)
            except Exception as e:
                logger.error(f"Scheduler: monthly aggregation failed - {e}")

    async def rate_limit_cleanup_job(self):
        try:
            await self.rate_limiter.cleanup()
        except Exception as e:
            logger.error(f"Scheduler: rate limit cleanup failed - {e}")

    async def cache_cleanup_job(self):
        # CacheService.cleanup never raises
        await self.cache.cleanup()

    async def sync_job(self):
        """Job to sync every active ad account"""
        logger.info("Scheduler: Starting sync job")
        try:
            await sync_all_active_accounts(
                session_factory=self.SessionLocal,
                rate_limiter=self.rate_limiter,
                cache=self.cache
            )
        except Exception as e:
            logger.error(f"Scheduler: sync job failed - {e}")

    def register_jobs(self):
        self.scheduler.add_job(
            self.aggregate_hourly_job,
            trigger=CronTrigger(minute=5),
            id="aggregate_hourly_to_daily",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.aggregate_monthly_job,
            trigger=CronTrigger(hour=2, minute=0),
            id="aggregate_daily_to_monthly",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.rate_limit_cleanup_job,
            trigger=CronTrigger(hour=3, minute=0),
            id="rate_limit_cleanup",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.cache_cleanup_job,
            trigger=CronTrigger(hour="*/6", minute=0),
            id="cache_cleanup",
            replace_existing=True
        )
        if settings.SCHEDULER_ENABLED:
            self.scheduler.add_job(
                self.sync_job,
                trigger=IntervalTrigger(minutes=settings.SYNC_INTERVAL_MINUTES),
                id="sync_all_accounts",
                replace_existing=True
            )

    def start(self):
        """Start the scheduler"""
        self.register_jobs()
        self.scheduler.start()
        logger.info("Sync Scheduler started")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Sync Scheduler stopped")
