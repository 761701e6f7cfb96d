"""
Storage contract for the price time series.
Both the PostgreSQL service and the in-memory store implement it.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from src.models.price import PriceSample, Provider

# Providers seeded at bootstrap
SEEDED_PROVIDERS = ("tibber", "andel_energi")


class PriceStore(ABC):
    """
    Durable store of price samples keyed by (provider_id, interval_start).

    Per provider, stored intervals never overlap. An upsert that would overlap a
    neighbour shortens the earlier of the two so it ends where the later starts;
    samples are never deleted.
    """

    async def init(self) -> None:
        """Create schema and seed providers."""

    async def close(self) -> None:
        """Release connections."""

    @abstractmethod
    async def get_provider(self, name: str) -> Provider:
        """Look up a seeded provider, raising UnknownProviderError if missing."""

    @abstractmethod
    async def upsert(self, sample: PriceSample) -> Optional[PriceSample]:
        """
        Insert or overwrite the sample at (provider_id, interval_start).

        Returns:
            The sample previously stored at the same start, if any
        """

    @abstractmethod
    async def range_query(self, provider_id: int, start: datetime, end: datetime) -> List[PriceSample]:
        """All samples overlapping [start, end), ascending by interval_start."""

    @abstractmethod
    async def get_latest_update(self) -> Optional[datetime]:
        """When a sample was last written, for freshness monitoring."""

    async def health_check(self) -> bool:
        return True
