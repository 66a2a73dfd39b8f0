"""
Meta Ads (Graph API) transformer.

Meta returns every counter as a string, conversions inside the ``actions``
list and, when the pixel reports it, revenue inside ``action_values``.
"""

from typing import Any, Dict, List, Optional, Tuple
from core.exceptions import ValidationError
from models.base import CampaignStatus, Platform, Resolution
from schemas.normalized import (
    NormalizedAd,
    NormalizedAdSet,
    NormalizedCampaign,
    NormalizedMetrics,
    TransformConfig,
)
from ingestion.transformers.base import (
    PlatformTransformer,
    canonical_bucket_start,
    derive_ratios,
    parse_number,
)
import logging

logger = logging.getLogger(__name__)

PURCHASE_ACTION_TYPES = ("purchase", "offsite_conversion.fb_pixel_purchase")

STATUS_MAP = {
    "ACTIVE": CampaignStatus.ACTIVE,
    "PAUSED": CampaignStatus.PAUSED,
    "DELETED": CampaignStatus.REMOVED,
    "ARCHIVED": CampaignStatus.ARCHIVED,
}

HOURLY_BREAKDOWN = "hourly_stats_aggregated_by_advertiser_time_zone"


def map_status(raw_status: Any) -> CampaignStatus:
    status = STATUS_MAP.get(str(raw_status or "").upper())
    if status is None:
        logger.debug(f"Unknown Meta status {raw_status!r}, treating as paused")
        return CampaignStatus.PAUSED
    return status


def _first_action_value(entries: Optional[List[Dict[str, Any]]]) -> Tuple[Optional[str], Any]:
    """Action type and value of the first purchase-type entry."""
    for entry in entries or []:
        if entry.get("action_type") in PURCHASE_ACTION_TYPES:
            return entry.get("action_type"), entry.get("value")
    return None, None


def _budget(value: Any) -> Optional[float]:
    # Graph API budgets are in the account currency's minor unit
    if value is None or value == "":
        return None
    return float(value) / 100


class MetaTransformer(PlatformTransformer):
    platform = Platform.META

    def entity_id(self, raw_campaign: Dict[str, Any]) -> Optional[str]:
        value = raw_campaign.get("id") or raw_campaign.get("campaign_id")
        return str(value) if value is not None else None

    def transform_campaign(self, raw_campaign: Dict[str, Any]) -> NormalizedCampaign:
        campaign_id = self.entity_id(raw_campaign)
        name = raw_campaign.get("name") or raw_campaign.get("campaign_name")
        if not campaign_id or not name:
            raise ValidationError(
                "Meta campaign is missing id or name",
                context={"platform_entity_id": campaign_id, "field_name": "id" if not campaign_id else "name"}
            )

        return NormalizedCampaign(
            platform=self.platform,
            platform_campaign_id=campaign_id,
            name=name,
            status=map_status(raw_campaign.get("effective_status") or raw_campaign.get("status")),
            objective=raw_campaign.get("objective"),
            daily_budget=_budget(raw_campaign.get("daily_budget")),
            lifetime_budget=_budget(raw_campaign.get("lifetime_budget")),
        )

    def transform_ad_set(self, raw_ad_set: Dict[str, Any]) -> NormalizedAdSet:
        return NormalizedAdSet(
            platform=self.platform,
            platform_ad_set_id=str(raw_ad_set.get("id") or ""),
            platform_campaign_id=str(raw_ad_set.get("campaign_id") or ""),
            name=raw_ad_set.get("name") or "",
            status=map_status(raw_ad_set.get("effective_status") or raw_ad_set.get("status")),
            optimization_goal=raw_ad_set.get("optimization_goal"),
            daily_budget=_budget(raw_ad_set.get("daily_budget")),
            lifetime_budget=_budget(raw_ad_set.get("lifetime_budget")),
        )

    def transform_ad(self, raw_ad: Dict[str, Any]) -> NormalizedAd:
        creative = raw_ad.get("creative") or {}
        return NormalizedAd(
            platform=self.platform,
            platform_ad_id=str(raw_ad.get("id") or ""),
            platform_ad_set_id=str(raw_ad.get("adset_id") or ""),
            name=raw_ad.get("name") or "",
            status=map_status(raw_ad.get("effective_status") or raw_ad.get("status")),
            creative_id=creative.get("id"),
        )

    def transform_metrics(self, raw_metrics: Dict[str, Any], config: TransformConfig) -> NormalizedMetrics:
        entity_id = raw_metrics.get("campaign_id")

        impressions = parse_number(raw_metrics.get("impressions"), "impressions", entity_id, as_int=True)
        clicks = parse_number(raw_metrics.get("clicks"), "clicks", entity_id, as_int=True)
        spend = parse_number(raw_metrics.get("spend"), "spend", entity_id)

        action_type, conversions_raw = _first_action_value(raw_metrics.get("actions"))
        conversions = parse_number(conversions_raw, "conversions", entity_id)

        revenue = None
        for entry in raw_metrics.get("action_values") or []:
            if action_type is not None and entry.get("action_type") == action_type:
                revenue = parse_number(entry.get("value"), "conversion_value", entity_id)
                break
        if revenue is None:
            revenue = conversions * config.revenue_per_conversion

        ratios = derive_ratios(impressions, clicks, spend, conversions, revenue)

        # Native ctr/cpc are authoritative when reported
        native_ctr = parse_number(raw_metrics.get("ctr"), "ctr", entity_id, default=None)
        native_cpc = parse_number(raw_metrics.get("cpc"), "cpc", entity_id, default=None)
        native_cpm = parse_number(raw_metrics.get("cpm"), "cpm", entity_id, default=None)
        if native_ctr is not None:
            ratios["ctr"] = native_ctr
        if native_cpc is not None:
            ratios["cpc"] = native_cpc
        if native_cpm is not None:
            ratios["cpm"] = native_cpm

        return NormalizedMetrics(
            resolution=config.resolution,
            bucket_start=self._bucket_start(raw_metrics, config),
            impressions=impressions,
            clicks=clicks,
            spend=spend,
            conversions=conversions,
            conversion_value=revenue,
            reach=parse_number(raw_metrics.get("reach"), "reach", entity_id, as_int=True, default=None),
            unique_clicks=parse_number(
                raw_metrics.get("unique_clicks"), "unique_clicks", entity_id, as_int=True, default=None
            ),
            inline_link_clicks=parse_number(
                raw_metrics.get("inline_link_clicks"), "inline_link_clicks", entity_id, as_int=True, default=None
            ),
            frequency=parse_number(raw_metrics.get("frequency"), "frequency", entity_id, default=None),
            **ratios,
        )

    def _bucket_start(self, raw_metrics: Dict[str, Any], config: TransformConfig):
        if config.bucket_start is not None:
            return canonical_bucket_start(config.bucket_start, config.resolution)

        date_start = raw_metrics.get("date_start")
        if not date_start:
            raise ValidationError(
                "Meta insight row has no date_start",
                context={"field_name": "date_start", "platform_entity_id": raw_metrics.get("campaign_id")}
            )

        if config.resolution == Resolution.HOURLY:
            # "HH:00:00 - HH:59:59"
            hour_range = raw_metrics.get(HOURLY_BREAKDOWN) or "00:00:00"
            hour = int(str(hour_range)[:2])
            return canonical_bucket_start(f"{date_start[:10]}T{hour:02d}:00:00", Resolution.HOURLY)

        return canonical_bucket_start(date_start, config.resolution)

    def validate(self, response: Any) -> Tuple[bool, List[str]]:
        errors = []

        if not isinstance(response, dict):
            errors.append("Response is not a valid object")
            return False, errors

        if not isinstance(response.get("data"), list):
            errors.append("Response does not contain data array")

        return len(errors) == 0, errors
