"""
Data models package for the Electricity Price Window service.
Contains Pydantic models for price samples, window queries and API responses.
"""

from .price import (
    HealthResponse,
    IngestionReport,
    PriceSample,
    PriceSampleResponse,
    Provider,
    ProviderProfile,
    RawQuote,
    TimeSlotResponse,
    WindowQuery,
    WindowResult,
)

__all__ = [
    "HealthResponse",
    "IngestionReport",
    "PriceSample",
    "PriceSampleResponse",
    "Provider",
    "ProviderProfile",
    "RawQuote",
    "TimeSlotResponse",
    "WindowQuery",
    "WindowResult",
]
