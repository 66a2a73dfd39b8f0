"""
Cursor pagination helper shared by the platform clients.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional
from pydantic import BaseModel, Field
from core.config import settings
import logging

logger = logging.getLogger(__name__)


class Page(BaseModel):
    """One page of remote results and the cursor for the next one (None on the last page)."""

    items: List[Dict[str, Any]] = Field(default_factory=list)
    next_cursor: Optional[str] = None


async def fetch_all_pages(
    fetch_page: Callable[[Optional[str]], Awaitable[Page]],
    max_pages: Optional[int] = None
) -> List[Dict[str, Any]]:
    """
    Follow cursors until the source reports no next page or ``max_pages`` is reached.

    Args:
        fetch_page: Coroutine function taking the cursor (None for the first page)
        max_pages: Upper bound on pages fetched (defaults to SYNC_MAX_PAGES)

    Returns:
        Items of every fetched page, in order
    """
    max_pages = max_pages or settings.SYNC_MAX_PAGES
    items: List[Dict[str, Any]] = []
    cursor: Optional[str] = None
    pages = 0

    while pages < max_pages:
        page = await fetch_page(cursor)
        pages += 1
        items.extend(page.items)

        if not page.next_cursor:
            break
        cursor = page.next_cursor
    else:
        logger.warning(f"Stopped pagination after max_pages={max_pages}; results may be truncated")

    logger.debug(f"Fetched {len(items)} items across {pages} pages")
    return items
