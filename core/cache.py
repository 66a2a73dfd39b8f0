"""
Storage-backed TTL cache for dashboard/report reads.

The cache is a side channel, never the system of record: every failure is
logged and degrades to a miss (or a zero count) instead of propagating.
"""

from datetime import timedelta
from typing import Any, List, Optional
from pydantic import BaseModel, Field
from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from core import timeutils
from core.config import settings
from core.database import async_session_maker, upsert_insert
from core.exceptions import CacheError
from models.cache_entry import CacheEntry
import logging

logger = logging.getLogger(__name__)

CACHE_ERRORS = (SQLAlchemyError, OSError, TypeError, ValueError)


class _Miss:
    def __repr__(self):
        return "MISS"

    def __bool__(self):
        return False


# Distinguishes "not cached" from a cached None or empty list
MISS = _Miss()


def _log_failure(operation: str, e: Exception, key: Optional[str] = None):
    error = CacheError(
        f"Cache {operation} failed: {e}",
        context={"operation": operation, "cache_key": key},
        original_exception=e
    )
    logger.error(error.message, extra={"error_context": error.to_dict()})


class CacheKeyStats(BaseModel):
    key: str
    hits: int


class CacheStats(BaseModel):
    total_entries: int = 0
    total_hits: int = 0
    top_keys: List[CacheKeyStats] = Field(default_factory=list)


def build_cache_key(resource_type: str, resource_id: Any, resolution: Optional[str] = None, **filters) -> str:
    """
    Deterministic cache key: resource fingerprint, resolution, then filters sorted by name.

    Example:
        build_cache_key("metrics:campaign", 42, "daily", start="2024-01-01", end="2024-01-31")
        -> "metrics:campaign:42:daily:end=2024-01-31:start=2024-01-01"
    """
    parts = [str(resource_type), str(resource_id)]
    if resolution is not None:
        parts.append(getattr(resolution, "value", str(resolution)))
    for name in sorted(filters):
        value = filters[name]
        if value is None:
            continue
        parts.append(f"{name}={getattr(value, 'isoformat', lambda: value)()}")
    return ":".join(parts)


class CacheService:
    """
    TTL cache persisted in ``cache_entries``.

    Read: absent -> MISS; expired -> MISS and the row is deleted eagerly;
    otherwise the hit counter and last access time are bumped and the payload returned.
    Write: upsert by key, resetting the hit counter and the expiry.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or async_session_maker

    async def get(self, key: str) -> Any:
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(CacheEntry).where(CacheEntry.cache_key == key))
                entry = result.scalar_one_or_none()

                if entry is None:
                    return MISS

                now = timeutils.utcnow()
                if entry.expires_at <= now:
                    await session.execute(delete(CacheEntry).where(CacheEntry.id == entry.id))
                    await session.commit()
                    logger.debug(f"Cache expired: {key}")
                    return MISS

                payload = entry.payload
                await session.execute(
                    update(CacheEntry)
                    .where(CacheEntry.id == entry.id)
                    .values(hit_count=CacheEntry.hit_count + 1, last_accessed_at=now)
                )
                await session.commit()
                return payload

        except CACHE_ERRORS as e:
            _log_failure("get", e, key)
            return MISS

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[int] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None
    ) -> bool:
        ttl_seconds = settings.CACHE_DEFAULT_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        now = timeutils.utcnow()

        try:
            async with self.session_factory() as session:
                stmt = upsert_insert(session, CacheEntry).values(
                    cache_key=key,
                    payload=value,
                    resource_type=resource_type or "unknown",
                    resource_id=str(resource_id) if resource_id is not None else None,
                    expires_at=now + timedelta(seconds=ttl_seconds),
                    hit_count=0,
                    created_at=now,
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["cache_key"],
                    set_={
                        "payload": stmt.excluded.payload,
                        "resource_type": stmt.excluded.resource_type,
                        "resource_id": stmt.excluded.resource_id,
                        "expires_at": stmt.excluded.expires_at,
                        "hit_count": 0,
                        "updated_at": now,
                    }
                )
                await session.execute(stmt)
                await session.commit()
            return True

        except CACHE_ERRORS as e:
            _log_failure("set", e, key)
            return False

    async def _delete_where(self, condition, label: str) -> int:
        try:
            async with self.session_factory() as session:
                result = await session.execute(delete(CacheEntry).where(condition))
                await session.commit()
            return result.rowcount or 0
        except CACHE_ERRORS as e:
            _log_failure(label, e)
            return 0

    async def delete(self, key: str) -> int:
        return await self._delete_where(CacheEntry.cache_key == key, "delete")

    async def invalidate_by_pattern(self, pattern: str) -> int:
        """Delete every entry whose key contains ``pattern`` (literal substring)."""
        removed = await self._delete_where(CacheEntry.cache_key.contains(pattern, autoescape=True), "invalidate")
        logger.info(f"Invalidated {removed} cache entries matching '{pattern}'")
        return removed

    async def invalidate_by_resource(self, resource_type: str, resource_id: Any) -> int:
        removed = await self._delete_where(
            (CacheEntry.resource_type == resource_type) & (CacheEntry.resource_id == str(resource_id)),
            "invalidate",
        )
        logger.info(f"Invalidated {removed} cache entries for {resource_type}:{resource_id}")
        return removed

    async def cleanup(self) -> int:
        """Delete every expired entry."""
        removed = await self._delete_where(CacheEntry.expires_at <= timeutils.utcnow(), "cleanup")
        logger.info(f"Cache cleanup removed {removed} expired entries")
        return removed

    async def get_stats(self, top: int = 10) -> CacheStats:
        try:
            async with self.session_factory() as session:
                totals = await session.execute(
                    select(func.count(CacheEntry.id), func.coalesce(func.sum(CacheEntry.hit_count), 0))
                )
                total_entries, total_hits = totals.one()

                top_rows = await session.execute(
                    select(CacheEntry.cache_key, CacheEntry.hit_count)
                    .order_by(CacheEntry.hit_count.desc())
                    .limit(top)
                )
                top_keys = [CacheKeyStats(key=row[0], hits=row[1]) for row in top_rows.all()]

            return CacheStats(total_entries=total_entries, total_hits=total_hits, top_keys=top_keys)

        except CACHE_ERRORS as e:
            _log_failure("stats", e)
            return CacheStats()
