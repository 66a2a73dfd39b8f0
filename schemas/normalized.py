"""
Pydantic schemas for platform-agnostic normalized campaigns and metrics
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import Platform, CampaignStatus, Resolution


class NormalizedCampaign(BaseModel):
    """
    Platform-agnostic campaign produced by a transformer.

    Ensures:
    - Identity fields are present
    - Name is stripped and non-empty
    - Status is one of the normalized lifecycle values
    """

    platform: Platform
    platform_campaign_id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=500)
    status: CampaignStatus = CampaignStatus.ACTIVE
    objective: Optional[str] = Field(None, max_length=100)
    daily_budget: Optional[float] = Field(None, ge=0)
    lifetime_budget: Optional[float] = Field(None, ge=0)

    @field_validator("name")
    @classmethod
    def clean_name(cls, v):
        """Clean and normalize name"""
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be empty after stripping")
        return v


class NormalizedAdSet(BaseModel):
    platform: Platform
    platform_ad_set_id: str = Field(..., min_length=1, max_length=100)
    platform_campaign_id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=500)
    status: CampaignStatus = CampaignStatus.ACTIVE
    optimization_goal: Optional[str] = Field(None, max_length=100)
    daily_budget: Optional[float] = Field(None, ge=0)
    lifetime_budget: Optional[float] = Field(None, ge=0)


class NormalizedAd(BaseModel):
    platform: Platform
    platform_ad_id: str = Field(..., min_length=1, max_length=100)
    platform_ad_set_id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=500)
    status: CampaignStatus = CampaignStatus.ACTIVE
    creative_id: Optional[str] = Field(None, max_length=100)


class NormalizedMetrics(BaseModel):
    """
    One metric snapshot for one entity and time bucket.

    bucket_start is any instant inside the bucket; the loader normalizes it
    to the canonical form of ``resolution``.
    """

    resolution: Resolution = Resolution.DAILY
    bucket_start: datetime

    # Raw counters
    impressions: int = Field(0, ge=0)
    clicks: int = Field(0, ge=0)
    spend: float = Field(0.0, ge=0)
    conversions: float = Field(0.0, ge=0)
    conversion_value: float = Field(0.0, ge=0)
    reach: Optional[int] = Field(None, ge=0)
    unique_clicks: Optional[int] = Field(None, ge=0)
    inline_link_clicks: Optional[int] = Field(None, ge=0)

    # Derived ratios
    frequency: Optional[float] = None
    ctr: float = 0.0
    cpc: float = 0.0
    cpm: float = 0.0
    cpa: float = 0.0
    roas: float = 0.0

    def measured_fields(self) -> Dict[str, Any]:
        """Counters and ratios as a column -> value mapping."""
        return self.model_dump(exclude={"resolution", "bucket_start"})


class TransformConfig(BaseModel):
    """
    Per-call transformer configuration.

    revenue_per_conversion is used only where the source has no native revenue.
    """

    owner_id: str
    account_id: int
    revenue_per_conversion: float = Field(50.0, ge=0)
    resolution: Resolution = Resolution.DAILY
    bucket_start: Optional[datetime] = None


class OwnerContext(BaseModel):
    """Owning account for rows written by the loader."""

    account_id: int
    owner_id: Optional[str] = None


class TransformedItem(BaseModel):
    campaign: NormalizedCampaign
    metrics: NormalizedMetrics


class TransformItemError(BaseModel):
    index: int
    platform_entity_id: Optional[str] = None
    error_type: str
    error_message: str


class BatchTransformResult(BaseModel):
    successes: List[TransformedItem] = Field(default_factory=list)
    errors: List[TransformItemError] = Field(default_factory=list)


class LoadResult(BaseModel):
    success: bool
    campaign_id: Optional[int] = None
    created: bool = False
    error: Optional[str] = None


class LoadItemError(BaseModel):
    campaign: str
    error: str


class BatchLoadResult(BaseModel):
    total: int = 0
    success: int = 0
    failed: int = 0
    created: int = 0
    updated: int = 0
    errors: List[LoadItemError] = Field(default_factory=list)
