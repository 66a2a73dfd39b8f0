from sqlalchemy import Column, String, Integer, DateTime, Index
from core.timeutils import utcnow
from models.base import Base, BigIntPK, JSONType


class CacheEntry(Base):
    """
    Side-channel cache entry for dashboard/report reads.

    Design:
    - Never the system of record; any row may be dropped at any time
    - cache_key is the resource fingerprint + resolution + filters
    - resource_type/resource_id tag the entry for targeted invalidation
    """
    __tablename__ = "cache_entries"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    cache_key = Column(String(512), nullable=False, unique=True)

    payload = Column(JSONType, nullable=True)

    resource_type = Column(String(50), nullable=False, default="unknown")
    resource_id = Column(String(100), nullable=True)

    expires_at = Column(DateTime, nullable=False, index=True)
    hit_count = Column(Integer, nullable=False, default=0)
    last_accessed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_cache_resource", "resource_type", "resource_id"),
    )
