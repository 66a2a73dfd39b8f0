"""
Sync pipeline components for ad platform ingestion.

This package contains all components for the fetch -> transform -> load pipeline:

Modules:
    base: Abstract ad platform client (HTTP, error classification, rate-limit gate, retry)
    runner: Sync orchestrator for one ad account (run record lifecycle, ordered stages)
    scheduler: APScheduler jobs for rollups, housekeeping and periodic syncs
    retry: Exponential backoff executor and transient-error classification
    rate_limiter: Fixed-window advisory call budgets per account and endpoint
    pagination: Cursor pagination helper

Subpackages:
    extractors: Meta Marketing API and Google Ads API clients
    transformers: Platform payload -> normalized campaign/metrics records
    loaders: Idempotent upserts of campaigns, hierarchy and metric snapshots

Architecture:
    A sync runs strictly ordered stages (campaigns, ad sets, ads, metrics).
    Every remote call passes the rate-limit gate and is retried on transient
    failures. Invalid items are counted and skipped; transient, auth and
    storage failures end the run as FAILED.

Usage:
    from ingestion.runner import SyncRunner, SyncOptions

    async with async_session_maker() as session:
        result = await SyncRunner(session).sync(account_id, SyncOptions())
        print(f"{result.status.value}: {result.records_processed} records")

Error Handling:
    All components use custom exceptions from core.exceptions for
    structured error handling (context dict + to_dict()).
"""

__all__ = [
    "AdPlatformClient",
    "SyncRunner",
    "SyncOptions",
    "SyncScheduler",
    "RateLimiter",
    "retry_with_backoff",
]
