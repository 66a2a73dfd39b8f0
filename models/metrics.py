"""
Metric snapshot tables: one per (entity scope, resolution).

Every table shares the same measured/derived columns and differs only in the
entity it is scoped to and in how its time bucket is keyed:

- hourly:  (timestamp)            plus date/hour for grouping
- daily:   (date)                 plus day_of_week
- monthly: (year, month)          plus first_day_of_month

The unique constraint on (entity, bucket) is the upsert key used by both the
loader and the aggregation engine.
"""

from sqlalchemy import (
    Column, BigInteger, Integer, Float, Date, DateTime, ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import declared_attr
from core.timeutils import utcnow, to_naive_utc, truncate_to_hour, month_bounds
from models.base import Base, BigIntPK, EntityScope, Resolution


# Counters summed on rollup
ADDITIVE_FIELDS = (
    "impressions",
    "reach",
    "clicks",
    "unique_clicks",
    "spend",
    "conversions",
    "conversion_value",
    "inline_link_clicks",
)

# Ratios averaged (per-bucket arithmetic mean) on rollup
RATIO_FIELDS = (
    "frequency",
    "ctr",
    "cpc",
    "cpm",
    "cpa",
    "roas",
)


class MetricColumnsMixin:
    """Measured counters and derived ratios shared by every snapshot table."""

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    # Raw counters
    impressions = Column(BigInteger, nullable=False, default=0)
    reach = Column(BigInteger, nullable=True)
    clicks = Column(BigInteger, nullable=False, default=0)
    unique_clicks = Column(BigInteger, nullable=True)
    spend = Column(Float, nullable=False, default=0.0)
    conversions = Column(Float, nullable=False, default=0.0)
    conversion_value = Column(Float, nullable=False, default=0.0)
    inline_link_clicks = Column(BigInteger, nullable=True)

    # Derived ratios (recomputed at write time)
    frequency = Column(Float, nullable=True)
    ctr = Column(Float, nullable=False, default=0.0)
    cpc = Column(Float, nullable=False, default=0.0)
    cpm = Column(Float, nullable=False, default=0.0)
    cpa = Column(Float, nullable=False, default=0.0)
    roas = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


# ============================================================================
# Entity scope mixins
# ============================================================================

class CampaignScopeMixin:
    @declared_attr
    def account_id(cls):
        return Column(BigIntPK, ForeignKey("ad_accounts.id"), nullable=False, index=True)

    @declared_attr
    def campaign_id(cls):
        return Column(BigIntPK, ForeignKey("campaigns.id"), nullable=False, index=True)


class AdSetScopeMixin(CampaignScopeMixin):
    @declared_attr
    def ad_set_id(cls):
        return Column(BigIntPK, ForeignKey("ad_sets.id"), nullable=False, index=True)


class AdScopeMixin(AdSetScopeMixin):
    @declared_attr
    def ad_id(cls):
        return Column(BigIntPK, ForeignKey("ads.id"), nullable=False, index=True)


# ============================================================================
# Time bucket mixins
# ============================================================================

class HourlyBucketMixin:
    timestamp = Column(DateTime, nullable=False)  # Start of the hour, UTC
    date = Column(Date, nullable=False, index=True)
    hour = Column(Integer, nullable=False)


class DailyBucketMixin:
    date = Column(Date, nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # Monday = 0


class MonthlyBucketMixin:
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    first_day_of_month = Column(Date, nullable=False)


# ============================================================================
# Campaign
# ============================================================================

class CampaignMetricsHourly(MetricColumnsMixin, CampaignScopeMixin, HourlyBucketMixin, Base):
    __tablename__ = "campaign_metrics_hourly"
    __table_args__ = (
        UniqueConstraint("campaign_id", "timestamp", name="uq_campaign_hourly_bucket"),
        Index("idx_campaign_hourly_date", "account_id", "campaign_id", "date"),
    )


class CampaignMetricsDaily(MetricColumnsMixin, CampaignScopeMixin, DailyBucketMixin, Base):
    __tablename__ = "campaign_metrics_daily"
    __table_args__ = (
        UniqueConstraint("campaign_id", "date", name="uq_campaign_daily_bucket"),
    )


class CampaignMetricsMonthly(MetricColumnsMixin, CampaignScopeMixin, MonthlyBucketMixin, Base):
    __tablename__ = "campaign_metrics_monthly"
    __table_args__ = (
        UniqueConstraint("campaign_id", "year", "month", name="uq_campaign_monthly_bucket"),
    )


# ============================================================================
# Ad set
# ============================================================================

class AdSetMetricsHourly(MetricColumnsMixin, AdSetScopeMixin, HourlyBucketMixin, Base):
    __tablename__ = "ad_set_metrics_hourly"
    __table_args__ = (
        UniqueConstraint("ad_set_id", "timestamp", name="uq_ad_set_hourly_bucket"),
        Index("idx_ad_set_hourly_date", "account_id", "ad_set_id", "date"),
    )


class AdSetMetricsDaily(MetricColumnsMixin, AdSetScopeMixin, DailyBucketMixin, Base):
    __tablename__ = "ad_set_metrics_daily"
    __table_args__ = (
        UniqueConstraint("ad_set_id", "date", name="uq_ad_set_daily_bucket"),
    )


class AdSetMetricsMonthly(MetricColumnsMixin, AdSetScopeMixin, MonthlyBucketMixin, Base):
    __tablename__ = "ad_set_metrics_monthly"
    __table_args__ = (
        UniqueConstraint("ad_set_id", "year", "month", name="uq_ad_set_monthly_bucket"),
    )


# ============================================================================
# Ad
# ============================================================================

class AdMetricsHourly(MetricColumnsMixin, AdScopeMixin, HourlyBucketMixin, Base):
    __tablename__ = "ad_metrics_hourly"
    __table_args__ = (
        UniqueConstraint("ad_id", "timestamp", name="uq_ad_hourly_bucket"),
        Index("idx_ad_hourly_date", "account_id", "ad_id", "date"),
    )


class AdMetricsDaily(MetricColumnsMixin, AdScopeMixin, DailyBucketMixin, Base):
    __tablename__ = "ad_metrics_daily"
    __table_args__ = (
        UniqueConstraint("ad_id", "date", name="uq_ad_daily_bucket"),
    )


class AdMetricsMonthly(MetricColumnsMixin, AdScopeMixin, MonthlyBucketMixin, Base):
    __tablename__ = "ad_metrics_monthly"
    __table_args__ = (
        UniqueConstraint("ad_id", "year", "month", name="uq_ad_monthly_bucket"),
    )


METRIC_TABLES = {
    (EntityScope.CAMPAIGN, Resolution.HOURLY): CampaignMetricsHourly,
    (EntityScope.CAMPAIGN, Resolution.DAILY): CampaignMetricsDaily,
    (EntityScope.CAMPAIGN, Resolution.MONTHLY): CampaignMetricsMonthly,
    (EntityScope.AD_SET, Resolution.HOURLY): AdSetMetricsHourly,
    (EntityScope.AD_SET, Resolution.DAILY): AdSetMetricsDaily,
    (EntityScope.AD_SET, Resolution.MONTHLY): AdSetMetricsMonthly,
    (EntityScope.AD, Resolution.HOURLY): AdMetricsHourly,
    (EntityScope.AD, Resolution.DAILY): AdMetricsDaily,
    (EntityScope.AD, Resolution.MONTHLY): AdMetricsMonthly,
}

# Entity-identifying columns per scope, outermost first
SCOPE_KEYS = {
    EntityScope.CAMPAIGN: ("account_id", "campaign_id"),
    EntityScope.AD_SET: ("account_id", "campaign_id", "ad_set_id"),
    EntityScope.AD: ("account_id", "campaign_id", "ad_set_id", "ad_id"),
}

# Columns that identify a time bucket per resolution (part of the upsert key)
BUCKET_KEYS = {
    Resolution.HOURLY: ("timestamp",),
    Resolution.DAILY: ("date",),
    Resolution.MONTHLY: ("year", "month"),
}


def metrics_table(scope: EntityScope, resolution: Resolution):
    return METRIC_TABLES[(EntityScope(scope), Resolution(resolution))]


def bucket_columns(resolution: Resolution, moment) -> dict:
    """Canonical time-bucket column values for a snapshot at ``resolution`` containing ``moment``."""
    moment = to_naive_utc(moment)

    if resolution == Resolution.HOURLY:
        hour_start = truncate_to_hour(moment)
        return {"timestamp": hour_start, "date": hour_start.date(), "hour": hour_start.hour}

    if resolution == Resolution.MONTHLY:
        first_day, _ = month_bounds(moment.year, moment.month)
        return {"year": moment.year, "month": moment.month, "first_day_of_month": first_day}

    day = moment.date()
    return {"date": day, "day_of_week": day.weekday()}
