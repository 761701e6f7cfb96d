"""
Pydantic data models for price samples, window queries and API responses.
Defines the canonical time-series record and the ephemeral query types.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import FrozenSet, Optional

from pydantic import BaseModel, Field, field_validator

from src.exceptions import DurationUnavailableError

PRICE_QUANTUM = Decimal("0.000001")


class Provider(BaseModel):
    """Static reference entity for a price provider, seeded at bootstrap."""
    id: int = Field(description="Database identifier")
    name: str = Field(description="Unique provider name, e.g. 'tibber'")


class ProviderProfile(BaseModel):
    """
    Static feed facts the normalizer needs for one provider.

    declared_granularity is set when the provider publishes on a fixed grid;
    otherwise interval lengths are inferred as the gap to the next quote.
    max_inferred_gap bounds that inference so a hole in the feed stays a gap.
    """
    name: str
    timezone: str = Field(description="Timezone used to localize naive instants")
    declared_granularity: Optional[timedelta] = None
    default_granularity: timedelta = timedelta(hours=1)
    max_inferred_gap: Optional[timedelta] = None


class RawQuote(BaseModel):
    """
    A price quote as produced by a feed adapter, not yet validated.

    The moment may be naive (provider local time) and the price may be
    non-finite if the vendor sent garbage.
    """
    moment: Optional[datetime] = None
    price: Optional[float] = None
    interval_length: Optional[timedelta] = None


class PriceSample(BaseModel):
    """
    A single provider-quoted price for a fixed interval.

    interval_start is always UTC; source_utc_offset keeps the offset the quote
    was published with so the local time can be shown again.
    """
    provider_id: int
    interval_start: datetime = Field(description="Timezone-aware UTC start of the interval")
    interval_length: timedelta = Field(description="Length of the priced interval")
    price: Decimal = Field(description="Price per kWh, can be negative", decimal_places=6)
    source_utc_offset: timedelta = Field(default=timedelta(0))

    @field_validator("interval_start")
    @classmethod
    def _require_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError("interval_start must be timezone-aware")
        return value

    @field_validator("interval_length")
    @classmethod
    def _require_positive(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("interval_length must be positive")
        return value

    @property
    def interval_end(self) -> datetime:
        return self.interval_start + self.interval_length

    @property
    def local_start(self) -> datetime:
        """interval_start in the offset the provider published it with."""
        return self.interval_start.astimezone(timezone(self.source_utc_offset))


class WindowQuery(BaseModel):
    """Ephemeral cheapest-window request handed to the engine."""
    requested_durations: FrozenSet[timedelta]
    range_start: datetime
    range_end: datetime


class WindowResult(BaseModel):
    """
    Cheapest window for one requested duration.

    When no gap-free window of the duration fits the range, available is False
    and the window fields are None.
    """
    duration: timedelta
    available: bool = True
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    average_price: Optional[Decimal] = None

    @classmethod
    def unavailable(cls, duration: timedelta) -> "WindowResult":
        return cls(duration=duration, available=False)

    def require(self) -> "WindowResult":
        """Return self, or raise DurationUnavailableError for the unavailable marker."""
        if not self.available:
            raise DurationUnavailableError(
                f"No gap-free window of {self.duration} available in range"
            )
        return self


class IngestionReport(BaseModel):
    """Outcome of one ingestion cycle for a provider."""
    provider: str
    range_start: datetime
    range_end: datetime
    fetched: int = 0
    stored: int = 0
    skipped: int = 0
    corrected: int = 0


class TimeSlotResponse(BaseModel):
    """
    API response item for the time-slots endpoint, one per requested duration.
    """
    duration_hours: float = Field(description="Requested duration in hours")
    available: bool = Field(description="False when no gap-free window fits the range")
    starts_at: Optional[datetime] = Field(default=None, description="Window start (ISO 8601)")
    ends_at: Optional[datetime] = Field(default=None, description="Window end, exclusive (ISO 8601)")
    average_price: Optional[Decimal] = Field(default=None, description="Time-weighted average price")


class PriceSampleResponse(BaseModel):
    """API response item for a stored price sample."""
    starts_at: datetime
    ends_at: datetime
    price: Decimal


class HealthResponse(BaseModel):
    """
    Health check response model.
    """
    status: str = Field(description="Health status")
    timestamp: datetime = Field(description="Health check timestamp")
    details: Optional[dict] = Field(default=None, description="Additional health details")

