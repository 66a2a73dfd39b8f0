from sqlalchemy import BigInteger, Integer, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# BIGINT primary keys only autoincrement on SQLite when declared as INTEGER
BigIntPK = BigInteger().with_variant(Integer, "sqlite")
JSONType = JSON().with_variant(JSONB, "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class Platform(str, enum.Enum):
    """Supported advertising platforms"""
    META = "meta"
    GOOGLE_ADS = "google_ads"


class CampaignStatus(str, enum.Enum):
    """Normalized lifecycle status for campaigns, ad sets and ads"""
    ACTIVE = "active"
    PAUSED = "paused"
    REMOVED = "removed"
    ARCHIVED = "archived"


class SyncStatus(str, enum.Enum):
    """Sync run status"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


class SyncType(str, enum.Enum):
    """Sync run type"""
    FULL = "full"
    INCREMENTAL = "incremental"
    METRICS = "metrics"


class EntityType(str, enum.Enum):
    """Sync stages, executed in declaration order"""
    CAMPAIGNS = "campaigns"
    AD_SETS = "ad_sets"
    ADS = "ads"
    METRICS = "metrics"


class TriggeredBy(str, enum.Enum):
    USER = "user"
    CRON = "cron"
    API = "api"


class Resolution(str, enum.Enum):
    """Time bucket resolution of a metric snapshot"""
    HOURLY = "hourly"
    DAILY = "daily"
    MONTHLY = "monthly"


class EntityScope(str, enum.Enum):
    """Entity a metric snapshot is scoped to"""
    CAMPAIGN = "campaign"
    AD_SET = "ad_set"
    AD = "ad"
