"""
Unit tests for platform transformers
"""

import pytest
from datetime import datetime
from core.exceptions import ValidationError
from ingestion.transformers import (
    GoogleAdsTransformer,
    MetaTransformer,
    aggregate_google_ads_rows,
    derive_ratios,
    get_transformer,
)
from ingestion.transformers.base import canonical_bucket_start, parse_number
from models.base import CampaignStatus, Platform, Resolution
from schemas.normalized import TransformConfig


@pytest.fixture
def config():
    return TransformConfig(owner_id="user_1", account_id=1, revenue_per_conversion=50.0)


class TestRatios:
    """Derived ratio arithmetic"""

    def test_zero_denominators_resolve_to_zero(self):
        ratios = derive_ratios(impressions=0, clicks=0, spend=10.0, conversions=0, revenue=0)
        assert ratios == {"ctr": 0.0, "cpc": 0.0, "cpm": 0.0, "cpa": 0.0, "roas": 0.0}

    def test_ratio_formulas(self):
        ratios = derive_ratios(impressions=2000, clicks=40, spend=80.0, conversions=4, revenue=320.0)
        assert ratios["ctr"] == pytest.approx(2.0)
        assert ratios["cpc"] == pytest.approx(2.0)
        assert ratios["cpm"] == pytest.approx(40.0)
        assert ratios["cpa"] == pytest.approx(20.0)
        assert ratios["roas"] == pytest.approx(4.0)

    def test_parse_number_rejects_negative(self):
        with pytest.raises(ValidationError):
            parse_number("-5", "impressions")

    def test_parse_number_rejects_garbage(self):
        with pytest.raises(ValidationError):
            parse_number("lots", "clicks")

    def test_parse_number_defaults(self):
        assert parse_number(None, "clicks") == 0
        assert parse_number("", "reach", default=None) is None
        assert parse_number("12.0", "clicks", as_int=True) == 12


class TestBucketStart:

    def test_daily_truncates_to_midnight(self):
        assert canonical_bucket_start("2024-01-15", Resolution.DAILY) == datetime(2024, 1, 15)

    def test_hourly_keeps_the_hour(self):
        assert canonical_bucket_start("2024-01-15T13:45:10Z", Resolution.HOURLY) == datetime(2024, 1, 15, 13)

    def test_monthly_is_first_of_month(self):
        assert canonical_bucket_start(datetime(2024, 2, 20, 8), Resolution.MONTHLY) == datetime(2024, 2, 1)


class TestMetaTransformer:
    """Meta Graph API records"""

    def test_transform_campaign(self, meta_campaigns):
        campaign = MetaTransformer().transform_campaign(meta_campaigns[0])

        assert campaign.platform == Platform.META
        assert campaign.platform_campaign_id == "23850001"
        assert campaign.status == CampaignStatus.ACTIVE
        assert campaign.daily_budget == 50.0

    def test_unknown_status_maps_to_paused(self, meta_campaigns):
        raw = dict(meta_campaigns[0], effective_status="IN_PROCESS")
        assert MetaTransformer().transform_campaign(raw).status == CampaignStatus.PAUSED

    def test_transform_metrics(self, meta_insight, config):
        metrics = MetaTransformer().transform_metrics(meta_insight, config)

        assert metrics.bucket_start == datetime(2024, 1, 15)
        assert metrics.impressions == 1000
        assert metrics.clicks == 50
        assert metrics.conversions == 5
        assert metrics.conversion_value == 250.0
        assert metrics.ctr == pytest.approx(5.0)
        assert metrics.cpc == pytest.approx(0.5)
        assert metrics.cpa == pytest.approx(5.0)
        assert metrics.roas == pytest.approx(10.0)
        assert metrics.reach == 800

    def test_revenue_estimated_without_action_values(self, meta_insight, config):
        raw = dict(meta_insight)
        raw.pop("action_values")
        metrics = MetaTransformer().transform_metrics(raw, config)
        assert metrics.conversion_value == 250.0  # 5 conversions x 50

    def test_zero_impressions_row(self, config):
        raw = {"campaign_id": "1", "date_start": "2024-01-15", "impressions": "0", "clicks": "0", "spend": "0"}
        metrics = MetaTransformer().transform_metrics(raw, config)
        assert metrics.ctr == 0.0
        assert metrics.cpm == 0.0
        assert metrics.roas == 0.0

    def test_hourly_breakdown(self, meta_insight):
        raw = dict(meta_insight, hourly_stats_aggregated_by_advertiser_time_zone="14:00:00 - 14:59:59")
        config = TransformConfig(owner_id="user_1", account_id=1, resolution=Resolution.HOURLY)
        metrics = MetaTransformer().transform_metrics(raw, config)
        assert metrics.bucket_start == datetime(2024, 1, 15, 14)

    def test_negative_spend_rejected(self, meta_campaigns, meta_insight, config):
        raw = dict(meta_insight, spend="-1")
        with pytest.raises(ValidationError):
            MetaTransformer().transform(meta_campaigns[0], raw, config)

    def test_batch_skips_invalid_items(self, meta_campaigns, meta_insight, config):
        """Two valid items and one with a negative counter -> 2 successes, 1 error"""
        items = [
            (meta_campaigns[0], meta_insight),
            {"campaign": meta_campaigns[1], "metrics": dict(meta_insight, campaign_id="23850002")},
            (
                {"id": "23850003", "name": "Broken", "status": "ACTIVE"},
                dict(meta_insight, campaign_id="23850003", impressions="-10"),
            ),
        ]

        result = MetaTransformer().transform_batch(items, config)

        assert len(result.successes) == 2
        assert len(result.errors) == 1
        assert result.errors[0].index == 2
        assert result.errors[0].platform_entity_id == "23850003"
        assert result.errors[0].error_type == "ValidationError"

    def test_batch_survives_malformed_items(self, meta_campaigns, meta_insight, config):
        items = [
            (meta_campaigns[0], meta_insight),
            (None, meta_insight),
            ("not a record", meta_insight),
            {"campaign": ["wrong"], "metrics": meta_insight},
            (meta_campaigns[0], meta_insight, "extra"),
            (meta_campaigns[1], dict(meta_insight, campaign_id="23850002")),
        ]

        result = MetaTransformer().transform_batch(items, config)

        assert len(result.successes) == 2
        assert [e.index for e in result.errors] == [1, 2, 3, 4]
        assert all(e.error_type == "ValidationError" for e in result.errors)
        assert all(e.platform_entity_id is None for e in result.errors)

    def test_non_numeric_budget_is_validation_error(self, meta_campaigns):
        raw = dict(meta_campaigns[0], daily_budget="abc")
        with pytest.raises(ValidationError) as exc_info:
            MetaTransformer().normalize_campaign(raw)
        assert exc_info.value.context["platform_entity_id"] == "23850001"

    def test_unparseable_hour_is_validation_error(self, meta_insight):
        raw = dict(meta_insight, hourly_stats_aggregated_by_advertiser_time_zone="xx")
        config = TransformConfig(owner_id="user_1", account_id=1, resolution=Resolution.HOURLY)
        with pytest.raises(ValidationError):
            MetaTransformer().normalize_metrics(raw, config)

    def test_merge_is_identity(self, meta_insight):
        rows = [meta_insight, dict(meta_insight, date_start="2024-01-16")]
        assert MetaTransformer().prepare_metrics_rows(rows) == rows

    def test_missing_name_is_validation_error(self, meta_insight, config):
        with pytest.raises(ValidationError):
            MetaTransformer().transform({"id": "1"}, meta_insight, config)

    def test_validate_envelope(self):
        transformer = MetaTransformer()
        assert transformer.validate({"data": []}) == (True, [])
        assert transformer.validate({"error": {}})[0] is False
        assert transformer.validate([])[0] is False


class TestGoogleAdsTransformer:
    """Google Ads GAQL rows"""

    def test_transform_row_converts_micros(self, google_rows, config):
        campaign, metrics = GoogleAdsTransformer().transform_row(google_rows[0], config)

        assert campaign.platform == Platform.GOOGLE_ADS
        assert campaign.platform_campaign_id == "555"
        assert campaign.status == CampaignStatus.ACTIVE
        assert metrics.spend == pytest.approx(20.0)
        assert metrics.conversion_value == 90.0
        assert metrics.roas == pytest.approx(4.5)
        assert metrics.bucket_start == datetime(2024, 1, 15)

    def test_aggregate_rows_sums_segments(self, google_rows, config):
        merged = aggregate_google_ads_rows(google_rows)

        assert len(merged) == 1
        assert merged[0]["metrics"]["impressions"] == 1500
        assert merged[0]["metrics"]["costMicros"] == 25_000_000

        metrics = GoogleAdsTransformer().transform_metrics(merged[0], config)
        assert metrics.clicks == 50
        assert metrics.ctr == pytest.approx(50 / 1500 * 100)

    def test_aggregate_keeps_separate_dates(self, google_rows):
        rows = [google_rows[0], dict(google_rows[1], segments={"date": "2024-01-16"})]
        assert len(aggregate_google_ads_rows(rows)) == 2
        assert len(aggregate_google_ads_rows(rows, by_date=False)) == 1

    def test_prepare_rows_merges_segments(self, google_rows):
        merged = GoogleAdsTransformer().prepare_metrics_rows(google_rows)
        assert len(merged) == 1
        assert merged[0]["metrics"]["clicks"] == 50

    def test_prepare_rows_rejects_negative_counter(self, google_rows):
        rows = [google_rows[0], dict(google_rows[1], metrics={"impressions": "-5"})]
        with pytest.raises(ValidationError):
            GoogleAdsTransformer().prepare_metrics_rows(rows)

    def test_prepare_rows_wraps_malformed_rows(self, google_rows):
        with pytest.raises(ValidationError):
            GoogleAdsTransformer().prepare_metrics_rows([google_rows[0], "garbage"])

    def test_removed_status(self, google_rows):
        raw = {"campaign": {"id": "9", "name": "Old", "status": "REMOVED"}}
        assert GoogleAdsTransformer().transform_campaign(raw).status == CampaignStatus.REMOVED

    def test_validate_envelope(self):
        transformer = GoogleAdsTransformer()
        assert transformer.validate({})[0] is True
        assert transformer.validate({"results": []})[0] is True
        assert transformer.validate({"results": "nope"})[0] is False


def test_get_transformer():
    assert isinstance(get_transformer(Platform.META), MetaTransformer)
    assert isinstance(get_transformer("google_ads"), GoogleAdsTransformer)
    with pytest.raises(ValueError):
        get_transformer("tiktok")
