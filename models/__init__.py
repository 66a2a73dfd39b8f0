"""
SQLAlchemy ORM models for database tables.

This package defines the database schema using SQLAlchemy ORM models:

Models:
    base: Base declarative class and shared enums (Platform, SyncStatus, Resolution, ...)
    account: Connected ad accounts (owning integrations)
    campaign: Campaigns, ad sets and ads keyed by platform identity
    metrics: Hourly/daily/monthly metric snapshots per entity scope
    cache_entry: Side-channel read cache rows
    rate_limit: Fixed-window call budgets
    sync_run: Sync execution tracking and counters

Usage:
    import models  # registers every table on Base.metadata
    from models.campaign import Campaign
    from models.metrics import CampaignMetricsDaily, metrics_table

Relationships:
    - AdAccount → Campaign → AdSet → Ad (one-to-many)
    - AdAccount → SyncRun (one-to-many)
    - Metric snapshots reference their entity and owning account
"""

from models.base import (
    Base,
    Platform,
    CampaignStatus,
    SyncStatus,
    SyncType,
    EntityType,
    TriggeredBy,
    Resolution,
    EntityScope,
)
from models.account import AdAccount
from models.campaign import Campaign, AdSet, Ad
from models.metrics import (
    CampaignMetricsHourly,
    CampaignMetricsDaily,
    CampaignMetricsMonthly,
    AdSetMetricsHourly,
    AdSetMetricsDaily,
    AdSetMetricsMonthly,
    AdMetricsHourly,
    AdMetricsDaily,
    AdMetricsMonthly,
    metrics_table,
)
from models.cache_entry import CacheEntry
from models.rate_limit import RateLimitWindow
from models.sync_run import SyncRun

__all__ = [
    "Base",
    "Platform",
    "CampaignStatus",
    "SyncStatus",
    "SyncType",
    "EntityType",
    "TriggeredBy",
    "Resolution",
    "EntityScope",
    "AdAccount",
    "Campaign",
    "AdSet",
    "Ad",
    "CampaignMetricsHourly",
    "CampaignMetricsDaily",
    "CampaignMetricsMonthly",
    "AdSetMetricsHourly",
    "AdSetMetricsDaily",
    "AdSetMetricsMonthly",
    "AdMetricsHourly",
    "AdMetricsDaily",
    "AdMetricsMonthly",
    "metrics_table",
    "CacheEntry",
    "RateLimitWindow",
    "SyncRun",
]
