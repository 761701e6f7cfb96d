"""
Domain exceptions for the Electricity Price Window service.
Provides clear, typed exceptions for ingestion and query errors.
"""


class PriceAPIException(Exception):
    """Base exception for all price service errors."""
    pass


class FeedUnavailableError(PriceAPIException):
    """Raised when a price feed cannot be reached or answers with garbage.

    Recoverable: the ingestion cycle fails and is retried on the next schedule.
    """
    pass


class InvalidSampleError(PriceAPIException):
    """Raised when a single raw quote is malformed and must be skipped."""
    pass


class InvalidQueryError(PriceAPIException):
    """Raised when query parameters are rejected before touching storage."""
    pass


class NoDataInRangeError(PriceAPIException):
    """Raised when no price data is stored for the requested range."""
    pass


class DurationUnavailableError(PriceAPIException):
    """Raised when no gap-free window of a requested duration exists."""
    pass


class IngestionInProgressError(PriceAPIException):
    """Raised when an ingestion cycle for the provider is already running."""
    pass


class UnknownProviderError(PriceAPIException):
    """Raised when a provider name is not known to the service."""
    pass


class DatabaseError(PriceAPIException):
    """Raised when database operations fail."""
    pass
