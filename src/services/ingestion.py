"""
Price ingestion: fetch raw quotes, normalize them into samples and upsert them.

A cycle is a single call to IngestionService.run_cycle, driven by the scheduler
or an external orchestrator. Samples upserted before a failure stay stored;
each upsert is atomic on its own.
"""

import asyncio
import math
from collections import Counter
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from src.config import settings
from src.database.base import PriceStore
from src.database.service import db_service
from src.exceptions import (
    FeedUnavailableError,
    IngestionInProgressError,
    InvalidSampleError,
    UnknownProviderError,
)
from src.feeds import PriceFeed, build_feeds
from src.logging_config import get_logger
from src.models.price import PRICE_QUANTUM, IngestionReport, PriceSample, ProviderProfile, RawQuote
from src.utils.time_utils import is_ambiguous, is_aware, local_day_span, to_reference

logger = get_logger(__name__)

# NUMERIC(12,6) holds magnitudes below one million
MAX_ABS_PRICE = Decimal(10) ** 6


class _ValidQuote(NamedTuple):
    start: datetime
    utc_offset: timedelta
    price: Decimal
    length: Optional[timedelta]


def validate_quote(quote: RawQuote, profile: ProviderProfile, is_dst: bool = False) -> _ValidQuote:
    """
    Check one raw quote and normalize its instant to UTC.

    is_dst picks the summer-time reading of a naive instant that is ambiguous
    in the provider's timezone.

    Raises:
        InvalidSampleError: If the quote cannot become a sample
    """
    if quote.moment is None:
        raise InvalidSampleError("Quote has no instant")

    if quote.price is None or not math.isfinite(quote.price):
        raise InvalidSampleError(f"Price {quote.price!r} is not a finite number")

    price = Decimal(repr(quote.price)).quantize(PRICE_QUANTUM)
    if abs(price) >= MAX_ABS_PRICE:
        raise InvalidSampleError(f"Price {quote.price!r} is out of range")

    if quote.interval_length is not None and quote.interval_length <= timedelta(0):
        raise InvalidSampleError(f"Interval length {quote.interval_length} is not positive")

    start, utc_offset = to_reference(quote.moment, profile.timezone, is_dst=is_dst)
    return _ValidQuote(start, utc_offset, price, quote.interval_length)


def _interval_length(quote: _ValidQuote, following: Optional[_ValidQuote], profile: ProviderProfile) -> timedelta:
    if quote.length is not None:
        return quote.length
    if profile.declared_granularity is not None:
        return profile.declared_granularity
    if following is not None:
        gap = following.start - quote.start
        if profile.max_inferred_gap is not None:
            return min(gap, profile.max_inferred_gap)
        return gap
    return profile.default_granularity


def _dst_readings(quotes: List[RawQuote], profile: ProviderProfile) -> List[bool]:
    """
    is_dst flag per quote for localizing naive instants.

    A naive wall-clock time listed twice on a fall-back day is read as summer
    time the first time and as standard time afterwards.
    """
    repeated = Counter(
        quote.moment for quote in quotes
        if quote.moment is not None and not is_aware(quote.moment)
    )
    seen = set()
    readings = []

    for quote in quotes:
        moment = quote.moment
        first_of_repeat = (
            moment is not None
            and not is_aware(moment)
            and repeated[moment] > 1
            and moment not in seen
            and is_ambiguous(moment, profile.timezone)
        )
        if first_of_repeat:
            seen.add(moment)
        readings.append(first_of_repeat)

    return readings


def normalize_quotes(
    quotes: Iterable[RawQuote],
    profile: ProviderProfile,
    provider_id: int,
) -> Tuple[List[PriceSample], int]:
    """
    Turn a batch of raw quotes into canonical samples.

    Invalid quotes are skipped. Quotes sharing an instant are collapsed, the
    later one in the batch wins. A local hour repeated on a DST fall-back day
    yields two samples, summer time first.

    Returns:
        Tuple of (samples ascending by start, number of skipped quotes)
    """
    quotes = list(quotes)
    by_start: Dict[datetime, _ValidQuote] = {}
    skipped = 0

    for quote, is_dst in zip(quotes, _dst_readings(quotes, profile)):
        try:
            valid = validate_quote(quote, profile, is_dst=is_dst)
        except InvalidSampleError as e:
            skipped += 1
            logger.warning("Skipping invalid quote", provider=profile.name, error=str(e))
            continue
        by_start[valid.start] = valid

    ordered = sorted(by_start.values(), key=lambda q: q.start)
    samples = []

    for index, quote in enumerate(ordered):
        following = ordered[index + 1] if index + 1 < len(ordered) else None
        samples.append(PriceSample(
            provider_id=provider_id,
            interval_start=quote.start,
            interval_length=_interval_length(quote, following, profile),
            price=quote.price,
            source_utc_offset=quote.utc_offset,
        ))

    return samples, skipped


class IngestionService:
    """Runs ingestion cycles, at most one at a time per provider."""

    def __init__(self, store: PriceStore, feeds: Dict[str, PriceFeed], feed_timeout: float):
        self.store = store
        self.feeds = feeds
        self.feed_timeout = feed_timeout
        self._locks: Dict[str, asyncio.Lock] = {}

    async def run_cycle(
        self,
        provider_name: str,
        start: datetime = None,
        end: datetime = None,
    ) -> IngestionReport:
        """
        Fetch, normalize and store prices of one provider.

        Args:
            provider_name: Name of a configured feed
            start: Span start (aware); defaults to local midnight today
            end: Span end (aware, exclusive); defaults to two local days later

        Raises:
            UnknownProviderError: No feed is configured under that name
            IngestionInProgressError: A cycle for the provider is already running
            FeedUnavailableError: The feed failed or timed out
        """
        feed = self.feeds.get(provider_name)
        if feed is None:
            raise UnknownProviderError(f"Unknown provider '{provider_name}'")

        lock = self._locks.setdefault(provider_name, asyncio.Lock())
        if lock.locked():
            raise IngestionInProgressError(f"Ingestion for '{provider_name}' is already running")

        async with lock:
            if start is None or end is None:
                start, end = local_day_span(feed.profile.timezone)
            return await self._ingest(feed, start, end)

    async def _ingest(self, feed: PriceFeed, start: datetime, end: datetime) -> IngestionReport:
        cycle_start = datetime.now()
        provider = await self.store.get_provider(feed.name)
        report = IngestionReport(provider=feed.name, range_start=start, range_end=end)

        quotes = await self._fetch(feed, start, end)
        report.fetched = len(quotes)

        samples, report.skipped = normalize_quotes(quotes, feed.profile, provider.id)

        for sample in samples:
            if not start <= sample.interval_start < end:
                continue

            previous = await self.store.upsert(sample)
            report.stored += 1

            if previous is not None and (
                previous.price != sample.price or previous.interval_length != sample.interval_length
            ):
                report.corrected += 1
                logger.info(
                    "Price corrected",
                    provider=feed.name,
                    interval_start=sample.interval_start.isoformat(),
                    old_price=str(previous.price),
                    new_price=str(sample.price),
                )

        logger.info(
            "Completed ingestion cycle",
            provider=feed.name,
            fetched=report.fetched,
            stored=report.stored,
            skipped=report.skipped,
            corrected=report.corrected,
            duration_seconds=(datetime.now() - cycle_start).total_seconds(),
        )
        return report

    async def _fetch(self, feed: PriceFeed, start: datetime, end: datetime) -> List[RawQuote]:
        """Call the feed, bounded by the configured timeout."""
        try:
            return await asyncio.wait_for(feed.fetch_quotes(start, end), timeout=self.feed_timeout)
        except asyncio.TimeoutError:
            logger.error("Price feed timed out", provider=feed.name, timeout=self.feed_timeout)
            raise FeedUnavailableError(f"{feed.name} did not answer within {self.feed_timeout}s")
        except FeedUnavailableError as e:
            logger.error("Price feed unavailable", provider=feed.name, error=str(e))
            raise


# Global ingestion service instance
ingestion_service = IngestionService(
    db_service,
    build_feeds(settings),
    settings.feed_timeout_seconds,
)
