"""
Custom exceptions for the ad-platform sync pipeline with structured error context.

This module provides the exception hierarchy used throughout extraction,
transformation, loading, aggregation and sync orchestration. Each exception
carries context information for debugging and for the sync run record.

Exception Hierarchy:
    ETLException (base)
    ├── ExtractionError
    │   └── RemoteAPIError
    ├── TransformationError
    │   └── ValidationError
    ├── LoadError
    │   ├── DatabaseError
    │   └── UpsertError
    ├── AggregationError
    ├── SyncError
    │   ├── AccountNotFoundError
    │   └── MissingCredentialsError
    ├── CacheError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ETLException(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (account, endpoint, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        # Add timestamp to context
        self.context["error_timestamp"] = self.timestamp.isoformat()

        # Chain original exception if provided
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for remote data extraction failures."""
    pass


class RemoteAPIError(ExtractionError):
    """
    Exception raised when an ad platform API call fails.

    Context should include:
        - platform: Platform name (meta, google_ads)
        - endpoint: The endpoint that failed
        - status_code: HTTP status code (if applicable)
        - response_body: Response body (truncated if large)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        if status_code is not None:
            self.context["status_code"] = status_code


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(ETLException):
    """Base exception for data transformation failures."""
    pass


class ValidationError(TransformationError):
    """
    Exception raised when a raw platform record fails validation.

    Context should include:
        - field_name: Name of the field that failed validation
        - field_value: Value that failed validation
        - platform_entity_id: Native id of the record
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for data loading failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation (SELECT, UPSERT, DELETE)
        - table_name: Name of the table
    """
    pass


class UpsertError(LoadError):
    """
    Exception raised when an upsert operation fails.

    Context should include:
        - table_name: Target table
        - conflict_fields: Natural key fields
    """
    pass


# ============================================================================
# Aggregation / Sync / Cache Errors
# ============================================================================

class AggregationError(ETLException):
    """Exception raised when a rollup group fails to aggregate."""
    pass


class SyncError(ETLException):
    """Base exception for sync orchestration failures."""
    pass


class AccountNotFoundError(SyncError):
    """The requested ad account does not exist."""
    pass


class MissingCredentialsError(SyncError):
    """The ad account has no usable access token."""
    pass


class CacheError(ETLException):
    """Cache read/write failure. Never propagated past the cache layer."""
    pass


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(ETLException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network resets and timeouts
    - Rate limiting (HTTP 429)
    - Server errors (HTTP 5xx)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        **kwargs
    ):
        super().__init__(message, context, original_exception, **kwargs)
        self.max_retries = max_retries
        self.retry_delay = retry_delay


class NonRetryableError(ETLException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Schema validation errors
    - Resource not found (HTTP 404)
    """
    pass


# ============================================================================
# Specific Retryable Errors
# ============================================================================

class NetworkError(RetryableError, RemoteAPIError):
    """Network-related errors (connection reset, timeout) that should be retried."""
    pass


class RateLimitError(RetryableError, RemoteAPIError):
    """Rate limiting errors (HTTP 429 or local gate denial) that should be retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[int] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, context, original_exception, status_code=status_code)
        self.retry_after = retry_after  # Seconds to wait before retry
        if retry_after:
            self.context["retry_after"] = retry_after


class ServerError(RetryableError, RemoteAPIError):
    """HTTP 5xx responses from the platform."""
    pass


# ============================================================================
# Specific Non-Retryable Errors
# ============================================================================

class AuthenticationError(NonRetryableError, RemoteAPIError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass


class ResourceNotFoundError(NonRetryableError, RemoteAPIError):
    """Resource not found errors (HTTP 404) that should not be retried."""
    pass


class SchemaValidationError(NonRetryableError, ValidationError):
    """Response envelope did not match the platform's expected shape."""
    pass
