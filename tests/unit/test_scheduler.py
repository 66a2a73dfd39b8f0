import pytest
from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock, patch
from ingestion.scheduler import SyncScheduler


def test_scheduler_initialization():
    scheduler = SyncScheduler()
    assert scheduler.scheduler is not None
    assert scheduler.rate_limiter is not None
    assert scheduler.cache is not None


def test_register_jobs():
    scheduler = SyncScheduler()
    with patch("ingestion.scheduler.settings") as mock_settings:
        mock_settings.SCHEDULER_ENABLED = True
        mock_settings.SYNC_INTERVAL_MINUTES = 30
        scheduler.register_jobs()

    job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
    assert job_ids == {
        "aggregate_hourly_to_daily",
        "aggregate_daily_to_monthly",
        "rate_limit_cleanup",
        "cache_cleanup",
        "sync_all_accounts",
    }


def test_sync_job_not_registered_when_disabled():
    scheduler = SyncScheduler()
    with patch("ingestion.scheduler.settings") as mock_settings:
        mock_settings.SCHEDULER_ENABLED = False
        scheduler.register_jobs()

    job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
    assert "sync_all_accounts" not in job_ids
    assert "aggregate_hourly_to_daily" in job_ids


def _mock_session_factory():
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = AsyncMock()
    return factory


@pytest.mark.asyncio
async def test_hourly_job_aggregates_previous_hours_date():
    scheduler = SyncScheduler(session_factory=_mock_session_factory())

    with patch("ingestion.scheduler.AggregationEngine") as mock_engine_cls, \
            patch("ingestion.scheduler.timeutils.utcnow", return_value=datetime(2024, 1, 16, 0, 5)):
        mock_engine_cls.return_value.aggregate_hourly_to_daily = AsyncMock()
        await scheduler.aggregate_hourly_job()

    mock_engine_cls.return_value.aggregate_hourly_to_daily.assert_awaited_once_with(date(2024, 1, 15))


@pytest.mark.asyncio
async def test_monthly_job_aggregates_yesterdays_month():
    scheduler = SyncScheduler(session_factory=_mock_session_factory())

    with patch("ingestion.scheduler.AggregationEngine") as mock_engine_cls, \
            patch("ingestion.scheduler.timeutils.utcnow", return_value=datetime(2024, 3, 1, 2, 0)):
        mock_engine_cls.return_value.aggregate_daily_to_monthly = AsyncMock()
        await scheduler.aggregate_monthly_job()

    mock_engine_cls.return_value.aggregate_daily_to_monthly.assert_awaited_once_with(2024, 2)


@pytest.mark.asyncio
async def test_sync_job_execution():
    with patch("ingestion.scheduler.sync_all_active_accounts", new_callable=AsyncMock) as mock_sync:
        scheduler = SyncScheduler(session_factory=_mock_session_factory())
        await scheduler.sync_job()

        mock_sync.assert_awaited_once()
        assert mock_sync.await_args.kwargs["rate_limiter"] is scheduler.rate_limiter


@pytest.mark.asyncio
async def test_failed_job_does_not_raise():
    scheduler = SyncScheduler(session_factory=_mock_session_factory())
    scheduler.rate_limiter.cleanup = AsyncMock(side_effect=RuntimeError("db down"))

    await scheduler.rate_limit_cleanup_job()
