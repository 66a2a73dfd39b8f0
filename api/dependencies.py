"""
FastAPI dependencies shared by the routers
"""

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession
from core.cache import CacheService
from core.database import async_session_maker
from ingestion.rate_limiter import RateLimiter


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped database session"""
    async with async_session_maker() as session:
        yield session


def get_cache() -> CacheService:
    return CacheService(async_session_maker)


def get_rate_limiter() -> RateLimiter:
    return RateLimiter(async_session_maker)
