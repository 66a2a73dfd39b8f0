"""
Google Ads (GAQL search) transformer.

Rows look like::

    {
        "campaign": {"id": "123", "name": "Brand", "status": "ENABLED"},
        "metrics": {"impressions": "1000", "clicks": "50", "costMicros": "2500000",
                    "conversions": 2.0, "conversionsValue": 180.0},
        "segments": {"date": "2024-01-15", "hour": 13}
    }

Cost is reported in micros; revenue is the native conversion value.
"""

from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Tuple
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

MICROS_PER_UNIT = 1_000_000

STATUS_MAP = {
    "ENABLED": CampaignStatus.ACTIVE,
    "PAUSED": CampaignStatus.PAUSED,
    "REMOVED": CampaignStatus.REMOVED,
}

SUMMED_METRICS = ("impressions", "clicks", "costMicros", "conversions", "conversionsValue")


def map_status(raw_status: Any) -> CampaignStatus:
    return STATUS_MAP.get(str(raw_status or "").upper(), CampaignStatus.PAUSED)


def _micros(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value) / MICROS_PER_UNIT


def aggregate_google_ads_rows(rows: Iterable[Dict[str, Any]], by_date: bool = True) -> List[Dict[str, Any]]:
    """
    Merge GAQL rows of the same campaign into one row with summed metrics.

    Search results are segmented (per day, device, network, ...), so one
    campaign can appear many times. With ``by_date`` the merge key includes
    ``segments.date`` (and ``segments.hour`` when present) so each time bucket
    keeps its own row; without it every row of a campaign collapses into one.
    """
    merged: "OrderedDict[Tuple, Dict[str, Any]]" = OrderedDict()

    for row in rows:
        campaign = row.get("campaign") or {}
        segments = row.get("segments") or {}
        key = (str(campaign.get("id")),)
        if by_date:
            key += (segments.get("date"), segments.get("hour"))

        entry = merged.get(key)
        if entry is None:
            entry = {
                "campaign": dict(campaign),
                "metrics": {name: 0 for name in SUMMED_METRICS},
                "segments": dict(segments) if by_date else {},
            }
            merged[key] = entry

        metrics = row.get("metrics") or {}
        for name in SUMMED_METRICS:
            entry["metrics"][name] += parse_number(metrics.get(name), name, campaign.get("id"))

    return list(merged.values())


class GoogleAdsTransformer(PlatformTransformer):
    platform = Platform.GOOGLE_ADS

    def entity_id(self, raw_campaign: Dict[str, Any]) -> Optional[str]:
        campaign = raw_campaign.get("campaign", raw_campaign)
        value = campaign.get("id")
        return str(value) if value is not None else None

    def transform_campaign(self, raw_campaign: Dict[str, Any]) -> NormalizedCampaign:
        campaign = raw_campaign.get("campaign", raw_campaign)
        campaign_id = self.entity_id(raw_campaign)
        if not campaign_id or not campaign.get("name"):
            raise ValidationError(
                "Google Ads campaign is missing id or name",
                context={"platform_entity_id": campaign_id, "field_name": "id" if not campaign_id else "name"}
            )

        budget = raw_campaign.get("campaignBudget") or {}
        return NormalizedCampaign(
            platform=self.platform,
            platform_campaign_id=campaign_id,
            name=campaign["name"],
            status=map_status(campaign.get("status")),
            objective=campaign.get("advertisingChannelType"),
            daily_budget=_micros(budget.get("amountMicros")),
        )

    def transform_ad_set(self, raw_ad_set: Dict[str, Any]) -> NormalizedAdSet:
        ad_group = raw_ad_set.get("adGroup", raw_ad_set)
        campaign = raw_ad_set.get("campaign") or {}
        return NormalizedAdSet(
            platform=self.platform,
            platform_ad_set_id=str(ad_group.get("id") or ""),
            platform_campaign_id=str(campaign.get("id") or ad_group.get("campaignId") or ""),
            name=ad_group.get("name") or "",
            status=map_status(ad_group.get("status")),
            optimization_goal=ad_group.get("type"),
        )

    def transform_ad(self, raw_ad: Dict[str, Any]) -> NormalizedAd:
        ad_group_ad = raw_ad.get("adGroupAd") or {}
        ad = ad_group_ad.get("ad") or {}
        ad_group = raw_ad.get("adGroup") or {}
        ad_id = str(ad.get("id") or "")
        return NormalizedAd(
            platform=self.platform,
            platform_ad_id=ad_id,
            platform_ad_set_id=str(ad_group.get("id") or ""),
            name=ad.get("name") or f"Ad {ad_id}",
            status=map_status(ad_group_ad.get("status")),
        )

    def transform_metrics(self, raw_metrics: Dict[str, Any], config: TransformConfig) -> NormalizedMetrics:
        metrics = raw_metrics.get("metrics", raw_metrics)
        segments = raw_metrics.get("segments") or {}
        entity_id = (raw_metrics.get("campaign") or {}).get("id")

        impressions = parse_number(metrics.get("impressions"), "impressions", entity_id, as_int=True)
        clicks = parse_number(metrics.get("clicks"), "clicks", entity_id, as_int=True)
        spend = parse_number(metrics.get("costMicros"), "costMicros", entity_id) / MICROS_PER_UNIT
        conversions = parse_number(metrics.get("conversions"), "conversions", entity_id)
        revenue = parse_number(metrics.get("conversionsValue"), "conversionsValue", entity_id)

        return NormalizedMetrics(
            resolution=config.resolution,
            bucket_start=self._bucket_start(segments, config, entity_id),
            impressions=impressions,
            clicks=clicks,
            spend=spend,
            conversions=conversions,
            conversion_value=revenue,
            **derive_ratios(impressions, clicks, spend, conversions, revenue),
        )

    def _bucket_start(self, segments: Dict[str, Any], config: TransformConfig, entity_id: Optional[str]):
        if config.bucket_start is not None:
            return canonical_bucket_start(config.bucket_start, config.resolution)

        segment_date = segments.get("date")
        if not segment_date:
            raise ValidationError(
                "Google Ads row has no segments.date",
                context={"field_name": "segments.date", "platform_entity_id": entity_id}
            )

        if config.resolution == Resolution.HOURLY:
            hour = int(segments.get("hour") or 0)
            return canonical_bucket_start(f"{segment_date[:10]}T{hour:02d}:00:00", Resolution.HOURLY)

        return canonical_bucket_start(segment_date, config.resolution)

    def merge_metrics_rows(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        # Segmented search results repeat a campaign per day and segment
        return aggregate_google_ads_rows(rows)

    def transform_row(self, row: Dict[str, Any], config: TransformConfig) -> Tuple[NormalizedCampaign, NormalizedMetrics]:
        """Transform a single GAQL row carrying both campaign and metrics."""
        return self.transform(row, row, config)

    def validate(self, response: Any) -> Tuple[bool, List[str]]:
        errors = []

        if isinstance(response, list):
            return True, errors

        if not isinstance(response, dict):
            errors.append("Response is not a valid object")
            return False, errors

        # An empty result set omits "results" entirely
        if "results" in response and not isinstance(response["results"], list):
            errors.append("Response does not contain results array")

        return len(errors) == 0, errors
