"""
Core utilities and configuration for the AdSync pipeline.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Database connection, session management and dialect-aware upserts
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities
    timeutils: Naive-UTC clock and time bucket helpers
    cache: Storage-backed TTL read-through cache

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import RemoteAPIError, NetworkError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Get database session
    async with async_session_maker() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "setup_logging",
    "CacheService",
    # Exceptions
    "ETLException",
    "ExtractionError",
    "RemoteAPIError",
    "TransformationError",
    "ValidationError",
    "LoadError",
    "DatabaseError",
    "UpsertError",
    "AggregationError",
    "SyncError",
    "AccountNotFoundError",
    "MissingCredentialsError",
    "CacheError",
    "RetryableError",
    "NonRetryableError",
    "NetworkError",
    "RateLimitError",
    "ServerError",
    "AuthenticationError",
    "ResourceNotFoundError",
    "SchemaValidationError",
]
