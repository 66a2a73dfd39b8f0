"""
Storage-backed fixed-window rate limiter for outbound platform calls.

Windows live in the ``rate_limit_windows`` table so every process instance
sees the same budget. The check is advisory: the lookup and the creation of a
new window are not atomic together, so two concurrent first calls may both
create a window. Increments of an existing window are atomic in SQL.
"""

from datetime import timedelta
from typing import Any, Dict, Optional
from sqlalchemy import select, update, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from core import timeutils
from core.config import settings
from core.database import async_session_maker
from models.rate_limit import RateLimitWindow
import logging

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window call budget per (account, endpoint pattern).

    Each method opens its own short-lived session so that gate checks commit
    independently of the caller's unit of work.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        max_calls: Optional[int] = None,
        window_minutes: Optional[int] = None,
        retention_hours: Optional[int] = None
    ):
        self.session_factory = session_factory or async_session_maker
        self.max_calls = max_calls or settings.RATE_LIMIT_MAX_CALLS
        self.window_minutes = window_minutes or settings.RATE_LIMIT_WINDOW_MINUTES
        self.retention_hours = retention_hours or settings.RATE_LIMIT_RETENTION_HOURS

    async def _current_window(
        self,
        session: AsyncSession,
        account_id: str,
        endpoint_pattern: str,
        window_minutes: int
    ) -> Optional[RateLimitWindow]:
        window_floor = timeutils.utcnow() - timedelta(minutes=window_minutes)
        result = await session.execute(
            select(RateLimitWindow)
            .where(
                and_(
                    RateLimitWindow.account_id == str(account_id),
                    RateLimitWindow.endpoint_pattern == endpoint_pattern,
                    RateLimitWindow.window_start >= window_floor
                )
            )
            .order_by(RateLimitWindow.window_start.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def check_and_record(
        self,
        account_id: str,
        endpoint_pattern: str,
        max_calls: Optional[int] = None,
        window_minutes: Optional[int] = None
    ) -> bool:
        """
        Check the budget and record one call if allowed.

        Returns:
            True if the call is allowed (and was counted), False if the window is exhausted
        """
        max_calls = max_calls or self.max_calls
        window_minutes = window_minutes or self.window_minutes

        async with self.session_factory() as session:
            window = await self._current_window(session, account_id, endpoint_pattern, window_minutes)

            if window is None:
                now = timeutils.utcnow()
                session.add(
                    RateLimitWindow(
                        account_id=str(account_id),
                        endpoint_pattern=endpoint_pattern,
                        calls_count=1,
                        max_calls=max_calls,
                        window_minutes=window_minutes,
                        window_start=now,
                        window_end=now + timedelta(minutes=window_minutes),
                        created_at=now
                    )
                )
                await session.commit()
                logger.debug(f"Opened rate limit window for {account_id}:{endpoint_pattern}")
                return True

            if window.calls_count < max_calls:
                await session.execute(
                    update(RateLimitWindow)
                    .where(RateLimitWindow.id == window.id)
                    .values(calls_count=RateLimitWindow.calls_count + 1)
                )
                await session.commit()
                return True

            logger.warning(
                f"Rate limit reached for {account_id}:{endpoint_pattern} "
                f"({window.calls_count}/{max_calls} in {window_minutes}m)"
            )
            return False

    async def get_usage(self, account_id: str, endpoint_pattern: str) -> Dict[str, Any]:
        """Current window usage for one (account, endpoint pattern)."""
        async with self.session_factory() as session:
            window = await self._current_window(session, account_id, endpoint_pattern, self.window_minutes)

        if window is None:
            return {
                "calls_count": 0,
                "max_calls": self.max_calls,
                "remaining": self.max_calls,
                "window_end": None
            }

        return {
            "calls_count": window.calls_count,
            "max_calls": window.max_calls,
            "remaining": max(window.max_calls - window.calls_count, 0),
            "window_end": window.window_end.isoformat()
        }

    async def cleanup(self) -> int:
        """
        Delete windows that ended before the retention horizon.

        Returns:
            Number of windows removed
        """
        cutoff = timeutils.utcnow() - timedelta(hours=self.retention_hours)
        async with self.session_factory() as session:
            result = await session.execute(
                delete(RateLimitWindow).where(RateLimitWindow.window_end < cutoff)
            )
            await session.commit()

        removed = result.rowcount or 0
        logger.info(f"Rate limit cleanup removed {removed} windows")
        return removed
