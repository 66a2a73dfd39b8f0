"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from core.cache import CacheStats
from core.timeutils import utcnow
from models.base import EntityType, Resolution, SyncStatus, SyncType, TriggeredBy


# ============================================================================
# Health Check Schemas
# ============================================================================

class AccountSyncInfo(BaseModel):
    """Latest sync run of one ad account"""
    account_id: int
    platform: str
    name: Optional[str] = None
    is_active: bool
    last_synced_at: Optional[datetime] = None
    last_run_status: Optional[SyncStatus] = None
    last_run_started_at: Optional[datetime] = None
    last_run_error: Optional[str] = None

    class Config:
        use_enum_values = True


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=utcnow)
    request_id: Optional[str] = None
    database_connected: bool
    accounts: List[AccountSyncInfo] = Field(default_factory=list)
    total_accounts: int = 0
    healthy_accounts: int = 0
    failed_accounts: int = 0
    running_syncs: int = 0

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status from the latest run of each account"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.total_accounts == 0 or self.failed_accounts == 0:
            self.status = "healthy"
        elif self.failed_accounts < self.total_accounts:
            self.status = "degraded"
        else:
            self.status = "unhealthy"
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "request_id": "req_3f2a9c1b7d4e",
                "database_connected": True,
                "total_accounts": 2,
                "healthy_accounts": 2,
                "failed_accounts": 0,
                "running_syncs": 0,
                "accounts": [
                    {
                        "account_id": 1,
                        "platform": "meta",
                        "name": "Storefront EU",
                        "is_active": True,
                        "last_synced_at": "2024-01-15T10:00:00Z",
                        "last_run_status": "success",
                        "last_run_started_at": "2024-01-15T09:59:12Z"
                    }
                ]
            }
        }


# ============================================================================
# Metrics Query Schemas
# ============================================================================

class MetricsResponse(BaseModel):
    """Metric snapshots of one entity at one resolution"""
    request_id: Optional[str] = None
    entity_type: str
    entity_id: int
    account_id: int
    resolution: Resolution
    date_start: date
    date_end: date
    cached: bool = False
    total_points: int = 0
    points: List[Dict[str, Any]] = Field(default_factory=list)

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "entity_type": "campaign",
                "entity_id": 42,
                "account_id": 1,
                "resolution": "daily",
                "date_start": "2024-01-01",
                "date_end": "2024-01-31",
                "cached": False,
                "total_points": 1,
                "points": [
                    {
                        "date": "2024-01-15",
                        "day_of_week": 0,
                        "impressions": 1200,
                        "clicks": 36,
                        "spend": 54.3,
                        "conversions": 3.0,
                        "conversion_value": 150.0,
                        "ctr": 3.0,
                        "cpc": 1.51,
                        "cpm": 45.25,
                        "cpa": 18.1,
                        "roas": 2.76
                    }
                ]
            }
        }


# ============================================================================
# Sync Schemas
# ============================================================================

class SyncRequest(BaseModel):
    """Body of a manual sync trigger"""
    sync_type: SyncType = SyncType.FULL
    entity_types: Optional[List[EntityType]] = Field(None, description="Stages to run; all when omitted")
    date_start: Optional[date] = None
    date_end: Optional[date] = None
    resolution: Resolution = Resolution.DAILY
    triggered_by: TriggeredBy = TriggeredBy.USER

    @field_validator("resolution")
    @classmethod
    def validate_resolution(cls, v):
        if v == Resolution.MONTHLY:
            raise ValueError("monthly snapshots are produced by aggregation, not by sync")
        return v

    @model_validator(mode="after")
    def validate_dates(self):
        if (self.date_start is None) != (self.date_end is None):
            raise ValueError("date_start and date_end must be given together")
        if self.date_start and self.date_start > self.date_end:
            raise ValueError("date_start must not be after date_end")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "sync_type": "full",
                "entity_types": ["campaigns", "metrics"],
                "date_start": "2024-01-01",
                "date_end": "2024-01-07",
                "resolution": "daily"
            }
        }


class StageSummaryResponse(BaseModel):
    processed: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)


class SyncResponse(BaseModel):
    """Outcome of one sync run"""
    request_id: Optional[str] = None
    run_id: Optional[str] = None
    account_id: int
    status: SyncStatus
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_failed: int = 0
    stages: Dict[str, StageSummaryResponse] = Field(default_factory=dict)
    error: Optional[str] = None
    duration_seconds: Optional[float] = None

    class Config:
        use_enum_values = True


class SyncRunSummary(BaseModel):
    run_id: str
    account_id: int
    sync_type: SyncType
    triggered_by: TriggeredBy
    status: SyncStatus
    entity_types: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_failed: int = 0
    error_message: Optional[str] = None

    @classmethod
    def from_run(cls, run):
        return cls(
            run_id=str(run.run_id),
            account_id=run.account_id,
            sync_type=run.sync_type,
            triggered_by=run.triggered_by,
            status=run.status,
            entity_types=run.entity_types,
            started_at=run.started_at,
            completed_at=run.completed_at,
            duration_seconds=run.duration_seconds,
            records_processed=run.records_processed or 0,
            records_created=run.records_created or 0,
            records_updated=run.records_updated or 0,
            records_failed=run.records_failed or 0,
            error_message=run.error_message,
        )

    class Config:
        use_enum_values = True


class SyncRunListResponse(BaseModel):
    request_id: Optional[str] = None
    total: int
    runs: List[SyncRunSummary] = Field(default_factory=list)


# ============================================================================
# Statistics Schemas
# ============================================================================

class StatsResponse(BaseModel):
    """Statistics response model"""
    timestamp: datetime = Field(default_factory=utcnow)
    request_id: Optional[str] = None

    # Inventory
    total_accounts: int
    active_accounts: int
    total_campaigns: int
    campaigns_by_platform: Dict[str, int] = Field(default_factory=dict)

    # Sync runs
    total_runs: int
    runs_by_status: Dict[str, int] = Field(default_factory=dict)
    last_sync_success: Optional[datetime] = None
    last_sync_failure: Optional[datetime] = None
    avg_sync_duration_seconds: Optional[float] = None
    recent_runs: List[SyncRunSummary] = Field(default_factory=list)

    # Cache
    cache: CacheStats = Field(default_factory=CacheStats)

    class Config:
        json_schema_extra = {
            "example": {
                "timestamp": "2024-01-15T10:30:00Z",
                "total_accounts": 2,
                "active_accounts": 2,
                "total_campaigns": 48,
                "campaigns_by_platform": {"meta": 30, "google_ads": 18},
                "total_runs": 120,
                "runs_by_status": {"success": 114, "partial_success": 4, "failed": 2},
                "last_sync_success": "2024-01-15T10:00:00Z",
                "avg_sync_duration_seconds": 12.4,
                "cache": {"total_entries": 35, "total_hits": 410, "top_keys": []}
            }
        }


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Resource not found",
                "detail": "Campaign 42 does not exist",
                "timestamp": "2024-01-15T10:30:00Z"
            }
        }
