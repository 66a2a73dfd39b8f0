"""
Abstract base class for remote ad-platform clients
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Optional
import httpx
from pydantic import BaseModel, model_validator
from core.config import settings
from core.exceptions import (
    AuthenticationError,
    NetworkError,
    RateLimitError,
    RemoteAPIError,
    ResourceNotFoundError,
    SchemaValidationError,
    ServerError,
)
from models.base import EntityType, Platform
from ingestion.pagination import Page
from ingestion.rate_limiter import RateLimiter
from ingestion.retry import RetryOptions, retry_if_retryable
from ingestion.transformers import get_transformer
import logging

logger = logging.getLogger(__name__)


class DateRange(BaseModel):
    since: date
    until: date

    @model_validator(mode="after")
    def check_order(self):
        if self.since > self.until:
            raise ValueError("since must not be after until")
        return self


class AdPlatformClient(ABC):
    """
    Base class for remote ad-platform clients.

    Responsibilities:
    - Rate-limit gate before every outbound call
    - Retry with backoff for transient failures
    - HTTP status classification into the exception hierarchy
    - Envelope validation of list responses

    Every call goes: gate -> request -> classify, and the whole sequence is
    retried, so a denied gate backs off like an HTTP 429.
    """

    platform: Platform

    def __init__(
        self,
        access_token: str,
        account_external_id: str,
        rate_limiter: Optional[RateLimiter] = None,
        retry_options: Optional[RetryOptions] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None
    ):
        self.access_token = access_token
        self.account_external_id = account_external_id
        self.rate_limiter = rate_limiter
        self.retry_options = retry_options or RetryOptions.from_settings()
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @abstractmethod
    async def list(
        self,
        entity_type: EntityType,
        parent_id: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None
    ) -> Page:
        """
        Fetch one page of campaigns, ad sets or ads.

        Args:
            entity_type: Which entity to list
            parent_id: Restrict to children of this native id (campaign for ad sets, ad set for ads)
            limit: Page size (defaults to SYNC_PAGE_SIZE)
            cursor: Opaque cursor from the previous page

        Returns:
            Page of raw records and the next cursor
        """
        pass

    @abstractmethod
    async def get_insights(
        self,
        entity_id: str,
        date_range: DateRange,
        level: str = "campaign",
        time_increment: int = 1,
        hourly: bool = False
    ) -> List[Dict[str, Any]]:
        """Fetch raw metric rows for one entity over a date range (all pages)."""
        pass

    def _classify_error_body(self, status_code: int, body: Any, context: Dict[str, Any]) -> Optional[Exception]:
        """Platform-specific error mapping from the response body. None falls back to status classification."""
        return None

    def _raise_for_status(self, response: httpx.Response, endpoint_pattern: str):
        status = response.status_code
        if status < 400:
            return

        try:
            body = response.json()
        except ValueError:
            body = None

        context = {
            "platform": self.platform.value,
            "endpoint": endpoint_pattern,
            "response_body": response.text[:500],  # Truncate
        }

        platform_error = self._classify_error_body(status, body, context)
        if platform_error is not None:
            raise platform_error

        if status in (401, 403):
            raise AuthenticationError(
                f"Authentication failed for {endpoint_pattern}", context=context, status_code=status
            )

        if status == 404:
            raise ResourceNotFoundError(
                f"Resource not found: {endpoint_pattern}", context=context, status_code=status
            )

        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"Rate limit exceeded for {endpoint_pattern}",
                context=context,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                status_code=status
            )

        if status >= 500:
            raise ServerError(
                f"Server error {status} from {endpoint_pattern}", context=context, status_code=status
            )

        raise RemoteAPIError(
            f"Request to {endpoint_pattern} failed with status {status}", context=context, status_code=status
        )

    async def _send(
        self,
        method: str,
        url: str,
        endpoint_pattern: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Any:
        try:
            response = await self.client.request(method, url, params=params, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Request timeout for {endpoint_pattern}",
                context={"platform": self.platform.value, "endpoint": endpoint_pattern, "timeout": self.timeout},
                original_exception=e
            )
        except httpx.TransportError as e:
            raise NetworkError(
                f"Network error for {endpoint_pattern}",
                context={"platform": self.platform.value, "endpoint": endpoint_pattern},
                original_exception=e
            )

        self._raise_for_status(response, endpoint_pattern)

        try:
            return response.json()
        except ValueError as e:
            raise SchemaValidationError(
                "Failed to parse JSON response",
                context={"endpoint": endpoint_pattern, "response_body": response.text[:500]},
                original_exception=e
            )

    async def _request(
        self,
        method: str,
        url: str,
        endpoint_pattern: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Any:
        """Gate, send and classify one call, retrying transient failures."""

        async def attempt():
            if self.rate_limiter is not None:
                allowed = await self.rate_limiter.check_and_record(self.account_external_id, endpoint_pattern)
                if not allowed:
                    raise RateLimitError(
                        f"Local rate limit reached for {endpoint_pattern}",
                        context={"account_id": self.account_external_id, "endpoint": endpoint_pattern}
                    )
            return await self._send(method, url, endpoint_pattern, params=params, json=json, headers=headers)

        return await retry_if_retryable(attempt, self.retry_options)

    def _ensure_envelope(self, body: Any, endpoint_pattern: str):
        is_valid, errors = get_transformer(self.platform).validate(body)
        if not is_valid:
            raise SchemaValidationError(
                f"Unexpected response shape from {endpoint_pattern}",
                context={"endpoint": endpoint_pattern, "errors": errors}
            )
