"""
Exception types and standard exception handling utilities.

Provider code raises the typed exceptions below internally and converts them
into failed ``ProviderResult`` values at the provider boundary. The handle_*
helpers keep the log shape consistent for external APIs, database writes,
validation and cache operations.
"""
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from app.util.log import logger


class ProviderError(Exception):
    """Base class for failures talking to an external bibliographic provider."""

    provider: str

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class ProviderDisabledError(ProviderError):
    """The provider is missing configuration or credentials."""


class ProviderHttpError(ProviderError):
    status: int | None

    def __init__(self, provider: str, message: str, status: int | None = None):
        super().__init__(provider, message)
        self.status = status


class ProviderTimeoutError(ProviderError):
    pass


class ProviderRateLimitedError(ProviderHttpError):
    def __init__(self, provider: str, message: str = "rate limited - try again later"):
        super().__init__(provider, message, status=429)


class MalformedProviderResponseError(ProviderError):
    """A provider payload could not be interpreted at all."""


def handle_external_api_error(
    error: Exception,
    service: str,
    operation: str,
    **context: Any
) -> None:
    """
    Standard logging for external API failures.

    Args:
        error: The caught exception
        service: Name of the external service (e.g., "Open Library", "Google Books")
        operation: What operation was being attempted (e.g., "fetch volume", "search")
        **context: Additional context to log (e.g., isbn=..., query=...)

    Example:
        try:
            payload = await self._get_json(url, params)
        except (ClientError, ProviderError) as e:
            handle_external_api_error(e, "Google Books", "search", query=query)
            return self.failure(str(e))
    """
    logger.error(
        f"{service} {operation} failed",
        error=str(error),
        error_type=type(error).__name__,
        service=service,
        operation=operation,
        **context
    )


def handle_database_error(
    error: SQLAlchemyError,
    operation: str,
    rollback_session: Any = None,
    **context: Any
) -> None:
    """
    Standard logging and handling for database errors.

    Args:
        error: The caught SQLAlchemy exception
        operation: What database operation was being attempted
        rollback_session: Optional SQLModel Session to rollback
        **context: Additional context to log
    """
    logger.error(
        f"Database {operation} failed",
        error=str(error),
        error_type=type(error).__name__,
        operation=operation,
        **context
    )

    if rollback_session is not None:
        try:
            rollback_session.rollback()
        except SQLAlchemyError as rollback_error:
            logger.warning(
                "Failed to rollback session after database error",
                error=str(rollback_error)
            )


def handle_validation_error(
    error: ValidationError,
    data_source: str,
    **context: Any
) -> None:
    """
    Standard logging for data validation failures.

    Args:
        error: The caught ValidationError
        data_source: Where the invalid data came from (e.g., "Open Library response", "cache")
        **context: Additional context to log
    """
    logger.error(
        f"{data_source} validation failed",
        error=str(error),
        error_type=type(error).__name__,
        data_source=data_source,
        **context
    )


def handle_cache_error(
    error: Exception,
    operation: str,
    cache_key: str,
    **context: Any
) -> None:
    """
    Standard logging for cache operation failures.

    Args:
        error: The caught exception
        operation: What cache operation was being attempted (e.g., "get", "put")
        cache_key: The cache key involved
        **context: Additional context to log
    """
    logger.warning(
        f"Cache {operation} failed",
        error=str(error),
        error_type=type(error).__name__,
        operation=operation,
        cache_key=cache_key,
        **context
    )
