"""
In-memory price store with the same semantics as the PostgreSQL service.
Used by tests and local development without a database.
"""

from bisect import bisect_left, bisect_right, insort
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import pytz

from src.database.base import SEEDED_PROVIDERS, PriceStore
from src.exceptions import UnknownProviderError
from src.models.price import PriceSample, Provider


class InMemoryPriceStore(PriceStore):
    """Sorted per-provider sample index.

    Upserts contain no await points, so each one is atomic on the event loop.
    """

    def __init__(self, provider_names: Sequence[str] = SEEDED_PROVIDERS):
        self._providers: Dict[str, Provider] = {
            name: Provider(id=index, name=name)
            for index, name in enumerate(provider_names, start=1)
        }
        self._starts: Dict[int, List[datetime]] = {}
        self._samples: Dict[int, Dict[datetime, PriceSample]] = {}
        self._last_update: Optional[datetime] = None

    async def get_provider(self, name: str) -> Provider:
        try:
            return self._providers[name]
        except KeyError:
            raise UnknownProviderError(f"Unknown provider '{name}'")

    async def upsert(self, sample: PriceSample) -> Optional[PriceSample]:
        starts = self._starts.setdefault(sample.provider_id, [])
        samples = self._samples.setdefault(sample.provider_id, {})
        start = sample.interval_start.astimezone(pytz.UTC)
        previous = samples.get(start)

        length = sample.interval_length
        following = bisect_right(starts, start)
        if following < len(starts) and starts[following] < start + length:
            length = starts[following] - start

        preceding = bisect_left(starts, start) - 1
        if preceding >= 0:
            before = samples[starts[preceding]]
            if before.interval_end > start:
                samples[before.interval_start] = before.model_copy(
                    update={"interval_length": start - before.interval_start}
                )

        if previous is None:
            insort(starts, start)
        samples[start] = sample.model_copy(
            update={"interval_start": start, "interval_length": length}
        )
        self._last_update = datetime.now(pytz.UTC)

        return previous

    async def range_query(self, provider_id: int, start: datetime, end: datetime) -> List[PriceSample]:
        starts = self._starts.get(provider_id, [])
        samples = self._samples.get(provider_id, {})

        # Only the sample starting right before `start` can reach into the range
        low = max(bisect_right(starts, start) - 1, 0)
        high = bisect_left(starts, end)

        return [
            samples[key]
            for key in starts[low:high]
            if samples[key].interval_end > start
        ]

    async def get_latest_update(self) -> Optional[datetime]:
        return self._last_update
