"""
Meta Marketing (Graph) API client.

Pages are cursor based: ``paging.cursors.after`` is the next cursor and the
presence of ``paging.next`` says whether there is another page.
"""

import json
from typing import Any, Dict, List, Optional
from core.config import settings
from core.exceptions import AuthenticationError, RateLimitError
from models.base import EntityType, Platform
from ingestion.base import AdPlatformClient, DateRange
from ingestion.pagination import Page, fetch_all_pages
import logging

logger = logging.getLogger(__name__)

# Graph API error codes
RATE_LIMIT_ERROR_CODES = {4, 17, 32, 613}
AUTH_ERROR_CODES = {102, 190}

LIST_FIELDS = {
    EntityType.CAMPAIGNS: "id,name,status,effective_status,objective,daily_budget,lifetime_budget,created_time,updated_time",
    EntityType.AD_SETS: "id,name,status,effective_status,campaign_id,optimization_goal,daily_budget,lifetime_budget",
    EntityType.ADS: "id,name,status,effective_status,adset_id,campaign_id,creative{id}",
}

LIST_EDGES = {
    EntityType.CAMPAIGNS: "campaigns",
    EntityType.AD_SETS: "adsets",
    EntityType.ADS: "ads",
}

INSIGHT_FIELDS = (
    "campaign_id,campaign_name,adset_id,ad_id,date_start,date_stop,impressions,reach,frequency,"
    "clicks,unique_clicks,inline_link_clicks,spend,ctr,cpc,cpm,actions,action_values"
)


class MetaAdsClient(AdPlatformClient):
    platform = Platform.META

    def __init__(self, access_token: str, account_external_id: str, **kwargs):
        if not str(account_external_id).startswith("act_"):
            account_external_id = f"act_{account_external_id}"
        super().__init__(access_token, account_external_id, **kwargs)
        self.base_url = f"{settings.META_API_BASE_URL}/{settings.META_API_VERSION}"

    def _classify_error_body(self, status_code: int, body: Any, context: Dict[str, Any]) -> Optional[Exception]:
        error = (body or {}).get("error") if isinstance(body, dict) else None
        if not error:
            return None

        code = error.get("code")
        message = error.get("message", "Meta API error")
        context = {**context, "meta_error_code": code, "meta_error_type": error.get("type")}

        if code in RATE_LIMIT_ERROR_CODES:
            return RateLimitError(message, context=context, status_code=status_code)
        if code in AUTH_ERROR_CODES:
            return AuthenticationError(message, context=context, status_code=status_code)
        return None

    async def _get_page(self, path: str, endpoint_pattern: str, params: Dict[str, Any]) -> Page:
        body = await self._request(
            "GET",
            f"{self.base_url}/{path}",
            endpoint_pattern,
            params={**params, "access_token": self.access_token},
        )
        self._ensure_envelope(body, endpoint_pattern)

        paging = body.get("paging") or {}
        next_cursor = None
        if paging.get("next"):
            next_cursor = (paging.get("cursors") or {}).get("after")

        return Page(items=body["data"], next_cursor=next_cursor)

    async def list(
        self,
        entity_type: EntityType,
        parent_id: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None
    ) -> Page:
        entity_type = EntityType(entity_type)
        if entity_type not in LIST_EDGES:
            raise ValueError(f"Meta client cannot list {entity_type.value}")

        edge = LIST_EDGES[entity_type]
        parent = parent_id or self.account_external_id
        params = {"fields": LIST_FIELDS[entity_type], "limit": limit or settings.SYNC_PAGE_SIZE}
        if cursor:
            params["after"] = cursor

        return await self._get_page(f"{parent}/{edge}", f"/{{id}}/{edge}", params)

    async def get_insights(
        self,
        entity_id: str,
        date_range: DateRange,
        level: str = "campaign",
        time_increment: int = 1,
        hourly: bool = False
    ) -> List[Dict[str, Any]]:
        params = {
            "fields": INSIGHT_FIELDS,
            "level": level,
            "time_range": json.dumps({"since": date_range.since.isoformat(), "until": date_range.until.isoformat()}),
            "time_increment": time_increment,
            "limit": settings.SYNC_PAGE_SIZE,
        }
        if hourly:
            params["breakdowns"] = "hourly_stats_aggregated_by_advertiser_time_zone"

        async def fetch_page(cursor: Optional[str]) -> Page:
            page_params = dict(params)
            if cursor:
                page_params["after"] = cursor
            return await self._get_page(f"{entity_id}/insights", "/{id}/insights", page_params)

        rows = await fetch_all_pages(fetch_page)
        logger.debug(f"Fetched {len(rows)} insight rows for {entity_id}")
        return rows
