"""
Pydantic schemas for data validation and serialization.

Schemas:
    normalized: Platform-neutral campaign, hierarchy and metric records
                plus transform/load result types
    api: API endpoint request/response schemas

Usage:
    from schemas.normalized import NormalizedCampaign, NormalizedMetrics
    from schemas.api import MetricsResponse, SyncRequest
"""

__all__ = [
    "NormalizedCampaign",
    "NormalizedAdSet",
    "NormalizedAd",
    "NormalizedMetrics",
    "TransformConfig",
    "LoadResult",
    "MetricsResponse",
    "SyncRequest",
    "SyncResponse",
    "HealthCheckResponse",
    "StatsResponse",
]
