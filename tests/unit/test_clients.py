"""
Unit tests for the ad platform clients (HTTP mocked with httpx.MockTransport)
"""

import json
import pytest
import httpx
from datetime import date
from unittest.mock import AsyncMock, patch
from core.exceptions import (
    AuthenticationError,
    MissingCredentialsError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
    SchemaValidationError,
    ServerError,
)
from ingestion.base import DateRange
from ingestion.extractors import build_client
from ingestion.extractors.google_ads_client import GoogleAdsClient
from ingestion.extractors.meta_client import MetaAdsClient
from ingestion.retry import RetryOptions
from models.account import AdAccount
from models.base import EntityType, Platform


def make_meta_client(handler, max_attempts=3, rate_limiter=None):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MetaAdsClient(
        "test_token",
        "1001",
        rate_limiter=rate_limiter,
        retry_options=RetryOptions(max_attempts=max_attempts, initial_delay=0.1),
        http_client=http_client,
    )


@pytest.fixture(autouse=True)
def no_backoff_sleep():
    with patch("ingestion.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


class TestMetaAdsClient:
    """Meta Graph API client"""

    @pytest.mark.asyncio
    async def test_list_campaigns_page(self, meta_campaigns):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={
                "data": meta_campaigns,
                "paging": {"cursors": {"after": "abc"}, "next": "https://graph.facebook.com/next"},
            })

        client = make_meta_client(handler)
        page = await client.list(EntityType.CAMPAIGNS)

        assert len(page.items) == 2
        assert page.next_cursor == "abc"
        assert seen["path"].endswith("/act_1001/campaigns")
        assert seen["params"]["access_token"] == "test_token"

    @pytest.mark.asyncio
    async def test_last_page_has_no_cursor(self):
        client = make_meta_client(
            lambda request: httpx.Response(200, json={"data": [], "paging": {"cursors": {"after": "x"}}})
        )
        page = await client.list(EntityType.ADS, cursor="prev")
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_insights_follow_pages(self, meta_insight):
        calls = []

        def handler(request):
            calls.append(dict(request.url.params))
            if "after" not in request.url.params:
                return httpx.Response(200, json={
                    "data": [meta_insight],
                    "paging": {"cursors": {"after": "p2"}, "next": "https://graph.facebook.com/next"},
                })
            return httpx.Response(200, json={"data": [dict(meta_insight, date_start="2024-01-16")]})

        client = make_meta_client(handler)
        rows = await client.get_insights("23850001", DateRange(since=date(2024, 1, 15), until=date(2024, 1, 16)))

        assert len(rows) == 2
        assert json.loads(calls[0]["time_range"]) == {"since": "2024-01-15", "until": "2024-01-16"}
        assert calls[1]["after"] == "p2"

    @pytest.mark.asyncio
    async def test_unauthorized_not_retried(self):
        handler = AsyncMock(side_effect=lambda request: httpx.Response(401, json={"error": {"message": "bad"}}))
        client = make_meta_client(handler)

        with pytest.raises(AuthenticationError):
            await client.list(EntityType.CAMPAIGNS)
        assert handler.await_count == 1

    @pytest.mark.asyncio
    async def test_expired_token_error_code(self):
        client = make_meta_client(
            lambda request: httpx.Response(400, json={"error": {"code": 190, "message": "Session expired"}})
        )
        with pytest.raises(AuthenticationError):
            await client.list(EntityType.CAMPAIGNS)

    @pytest.mark.asyncio
    async def test_not_found(self):
        client = make_meta_client(lambda request: httpx.Response(404, text="missing"))
        with pytest.raises(ResourceNotFoundError):
            await client.list(EntityType.CAMPAIGNS)

    @pytest.mark.asyncio
    async def test_server_error_retried_then_raised(self):
        handler = AsyncMock(side_effect=lambda request: httpx.Response(503, text="unavailable"))
        client = make_meta_client(handler, max_attempts=3)

        with pytest.raises(ServerError):
            await client.list(EntityType.CAMPAIGNS)
        assert handler.await_count == 3

    @pytest.mark.asyncio
    async def test_rate_limited_then_recovers(self, meta_campaigns):
        handler = AsyncMock(side_effect=[
            httpx.Response(429, headers={"Retry-After": "1"}),
            httpx.Response(200, json={"data": meta_campaigns}),
        ])
        client = make_meta_client(handler)

        page = await client.list(EntityType.CAMPAIGNS)
        assert len(page.items) == 2

    @pytest.mark.asyncio
    async def test_connection_error_becomes_network_error(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        client = make_meta_client(handler, max_attempts=2)
        with pytest.raises(NetworkError):
            await client.list(EntityType.CAMPAIGNS)

    @pytest.mark.asyncio
    async def test_bad_envelope(self):
        client = make_meta_client(lambda request: httpx.Response(200, json={"unexpected": True}))
        with pytest.raises(SchemaValidationError):
            await client.list(EntityType.CAMPAIGNS)

    @pytest.mark.asyncio
    async def test_denied_gate_raises_rate_limit_error(self):
        handler = AsyncMock(side_effect=lambda request: httpx.Response(200, json={"data": []}))
        rate_limiter = AsyncMock()
        rate_limiter.check_and_record.return_value = False
        client = make_meta_client(handler, max_attempts=2, rate_limiter=rate_limiter)

        with pytest.raises(RateLimitError):
            await client.list(EntityType.CAMPAIGNS)

        assert rate_limiter.check_and_record.await_count == 2
        handler.assert_not_awaited()


class TestGoogleAdsClient:
    """Google Ads REST client"""

    @pytest.mark.asyncio
    async def test_search_headers_and_pagination(self, google_rows):
        requests = []

        def handler(request):
            requests.append(request)
            body = json.loads(request.content)
            if "pageToken" not in body:
                return httpx.Response(200, json={"results": google_rows[:1], "nextPageToken": "t2"})
            return httpx.Response(200, json={"results": google_rows[1:]})

        client = GoogleAdsClient(
            "test_token",
            "123-456-7890",
            developer_token="dev",
            login_customer_id="999-000-1111",
            retry_options=RetryOptions(max_attempts=1),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        rows = await client.get_insights("555", DateRange(since=date(2024, 1, 15), until=date(2024, 1, 15)))

        assert len(rows) == 2
        assert requests[0].url.path.endswith("/customers/1234567890/googleAds:search")
        assert requests[0].headers["developer-token"] == "dev"
        assert requests[0].headers["login-customer-id"] == "9990001111"
        assert "campaign.id = 555" in json.loads(requests[0].content)["query"]

    @pytest.mark.asyncio
    async def test_list_ad_sets_filters_by_parent(self):
        captured = {}

        def handler(request):
            captured["query"] = json.loads(request.content)["query"]
            return httpx.Response(200, json={})

        client = GoogleAdsClient(
            "test_token",
            "1234567890",
            retry_options=RetryOptions(max_attempts=1),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        page = await client.list(EntityType.AD_SETS, parent_id="555")

        assert page.items == []
        assert page.next_cursor is None
        assert captured["query"].endswith("WHERE campaign.id = 555")


class TestBuildClient:

    def test_dispatch_by_platform(self):
        meta = AdAccount(id=1, platform=Platform.META, external_account_id="1001", access_token="t")
        google = AdAccount(id=2, platform=Platform.GOOGLE_ADS, external_account_id="123-456", access_token="t")

        assert isinstance(build_client(meta), MetaAdsClient)
        assert isinstance(build_client(google), GoogleAdsClient)

    def test_missing_token(self):
        account = AdAccount(id=1, platform=Platform.META, external_account_id="1001", access_token=None)
        with pytest.raises(MissingCredentialsError):
            build_client(account)
