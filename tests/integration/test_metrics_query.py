"""
Integration tests for read-through metric queries
"""

import pytest
import pytest_asyncio
from datetime import date, datetime
from core.cache import CacheService
from api.services.metrics_query import MetricsQueryService
from ingestion.loaders.campaign_loader import CampaignLoader
from models.base import EntityScope, Platform, Resolution
from schemas.normalized import NormalizedCampaign, NormalizedMetrics, OwnerContext


@pytest.fixture
def cache(session_factory):
    return CacheService(session_factory)


@pytest_asyncio.fixture
async def campaign_id(session_factory, meta_account):
    """Campaign with hourly, daily and monthly snapshots"""
    async with session_factory() as session:
        loader = CampaignLoader(session)
        owner = OwnerContext(account_id=meta_account.id, owner_id=meta_account.owner_id)
        row_id, _ = await loader.upsert_campaign(
            NormalizedCampaign(platform=Platform.META, platform_campaign_id="c1", name="Spring Sale"), owner
        )
        keys = {"account_id": meta_account.id, "campaign_id": row_id}
        snapshots = [
            (Resolution.HOURLY, datetime(2024, 1, 15, 9), 100),
            (Resolution.HOURLY, datetime(2024, 1, 15, 10), 200),
            (Resolution.HOURLY, datetime(2024, 1, 17, 0), 300),
            (Resolution.DAILY, datetime(2024, 1, 15), 1000),
            (Resolution.MONTHLY, datetime(2023, 12, 1), 10000),
            (Resolution.MONTHLY, datetime(2024, 1, 1), 20000),
            (Resolution.MONTHLY, datetime(2024, 2, 1), 30000),
        ]
        for resolution, bucket, impressions in snapshots:
            await loader.upsert_metrics(
                EntityScope.CAMPAIGN,
                keys,
                NormalizedMetrics(resolution=resolution, bucket_start=bucket, impressions=impressions)
            )
        await session.commit()
    return row_id


class TestMetricsQueryService:

    @pytest.mark.asyncio
    async def test_hourly_points_in_range(self, db_session, cache, campaign_id):
        service = MetricsQueryService(db_session, cache)

        result = await service.get_metrics("campaign", campaign_id, "hourly", "2024-01-15", "2024-01-15")

        assert [p["hour"] for p in result.points] == [9, 10]
        assert result.points[0]["timestamp"] == "2024-01-15T09:00:00"
        assert [p["impressions"] for p in result.points] == [100, 200]

    @pytest.mark.asyncio
    async def test_monthly_includes_overlapping_months(self, db_session, cache, campaign_id):
        service = MetricsQueryService(db_session, cache)

        result = await service.get_metrics(
            EntityScope.CAMPAIGN, campaign_id, Resolution.MONTHLY, date(2024, 1, 20), date(2024, 2, 10)
        )

        assert [(p["year"], p["month"]) for p in result.points] == [(2024, 1), (2024, 2)]
        assert result.points[0]["first_day_of_month"] == "2024-01-01"

    @pytest.mark.asyncio
    async def test_read_through_and_invalidation(self, db_session, cache, campaign_id, meta_account):
        service = MetricsQueryService(db_session, cache)
        args = ("campaign", campaign_id, "daily", "2024-01-01", "2024-01-31")

        first = await service.get_metrics(*args)
        second = await service.get_metrics(*args)

        assert first.cached is False
        assert second.cached is True
        assert second.account_id == meta_account.id
        assert second.points == first.points

        await cache.invalidate_by_resource("account", meta_account.id)
        third = await service.get_metrics(*args)
        assert third.cached is False

    @pytest.mark.asyncio
    async def test_empty_range_is_a_result(self, db_session, cache, campaign_id):
        service = MetricsQueryService(db_session, cache)

        result = await service.get_metrics("campaign", campaign_id, "daily", "2023-06-01", "2023-06-30")

        assert result is not None
        assert result.points == []

    @pytest.mark.asyncio
    async def test_unknown_entity(self, db_session, cache):
        service = MetricsQueryService(db_session, cache)
        assert await service.get_metrics("ad", 999, "daily", "2024-01-01", "2024-01-31") is None

    @pytest.mark.asyncio
    async def test_inverted_range(self, db_session, cache):
        service = MetricsQueryService(db_session, cache)
        with pytest.raises(ValueError):
            await service.get_metrics("campaign", 1, "daily", "2024-02-01", "2024-01-01")
