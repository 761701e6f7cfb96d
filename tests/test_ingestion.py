"""
Unit tests for quote normalization and ingestion cycles.
Covers interval inference, invalid quotes, idempotent upserts, corrections and feed failures.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytz

from conftest import BASE_TIME, HOURLY_PROFILE, FakeFeed
from src.exceptions import (
    DatabaseError,
    FeedUnavailableError,
    IngestionInProgressError,
    InvalidSampleError,
    UnknownProviderError,
)
from src.feeds.andel_energi import ANDEL_ENERGI_PROFILE
from src.models.price import ProviderProfile, RawQuote
from src.services.ingestion import IngestionService, normalize_quotes, validate_quote
from src.services.window_engine import find_cheapest_windows

HOUR = timedelta(hours=1)
QUARTER = timedelta(minutes=15)
DAY_END = BASE_TIME + timedelta(days=1)


def hourly_quotes(prices, start=BASE_TIME):
    return [RawQuote(moment=start + index * HOUR, price=price) for index, price in enumerate(prices)]


class TestValidateQuote:
    """Single quote checks."""

    def test_naive_instant_localized_in_provider_timezone(self):
        quote = RawQuote(moment=datetime(2025, 8, 7, 2, 0), price=1.5)

        valid = validate_quote(quote, HOURLY_PROFILE)

        # Copenhagen is UTC+2 in August
        assert valid.start == datetime(2025, 8, 7, 0, 0, tzinfo=pytz.UTC)
        assert valid.utc_offset == timedelta(hours=2)

    def test_aware_instant_keeps_original_offset(self):
        oslo_offset = timezone(timedelta(hours=2))
        quote = RawQuote(moment=datetime(2024, 6, 15, 0, 0, tzinfo=oslo_offset), price=0.2821)

        valid = validate_quote(quote, HOURLY_PROFILE)

        assert valid.start == datetime(2024, 6, 14, 22, 0, tzinfo=pytz.UTC)
        assert valid.utc_offset == timedelta(hours=2)
        assert valid.price == Decimal("0.282100")

    def test_negative_price_is_valid(self):
        valid = validate_quote(RawQuote(moment=BASE_TIME, price=-0.05), HOURLY_PROFILE)

        assert valid.price == Decimal("-0.05")

    @pytest.mark.parametrize("quote", [
        RawQuote(moment=BASE_TIME, price=float("nan")),
        RawQuote(moment=BASE_TIME, price=float("inf")),
        RawQuote(moment=BASE_TIME, price=None),
        RawQuote(moment=None, price=1.0),
        RawQuote(moment=BASE_TIME, price=1.0, interval_length=timedelta(0)),
        RawQuote(moment=BASE_TIME, price=5e6),
    ])
    def test_invalid_quotes_rejected(self, quote):
        with pytest.raises(InvalidSampleError):
            validate_quote(quote, HOURLY_PROFILE)


class TestNormalizeQuotes:
    """Batch normalization and interval length inference."""

    def test_length_inferred_from_next_quote(self):
        quotes = [RawQuote(moment=BASE_TIME + index * QUARTER, price=index) for index in range(3)]

        samples, skipped = normalize_quotes(quotes, HOURLY_PROFILE, provider_id=1)

        assert skipped == 0
        # Last quote of the batch falls back to the default granularity
        assert [s.interval_length for s in samples] == [QUARTER, QUARTER, HOUR]

    def test_declared_granularity_wins_over_inference(self):
        profile = ProviderProfile(name="andel_energi", timezone="Europe/Copenhagen",
                                  declared_granularity=HOUR)
        quotes = [RawQuote(moment=BASE_TIME, price=1.0), RawQuote(moment=BASE_TIME + 2 * HOUR, price=2.0)]

        samples, _ = normalize_quotes(quotes, profile, provider_id=2)

        assert [s.interval_length for s in samples] == [HOUR, HOUR]

    def test_explicit_length_wins(self):
        quotes = [RawQuote(moment=BASE_TIME, price=1.0, interval_length=QUARTER)]

        samples, _ = normalize_quotes(quotes, HOURLY_PROFILE, provider_id=1)

        assert samples[0].interval_length == QUARTER

    def test_length_longer_than_default_inferred(self):
        """Two-hour blocks stay contiguous two-hour samples."""
        quotes = [RawQuote(moment=BASE_TIME + index * 2 * HOUR, price=index) for index in range(3)]

        samples, _ = normalize_quotes(quotes, HOURLY_PROFILE, provider_id=1)

        assert [s.interval_length for s in samples] == [2 * HOUR, 2 * HOUR, HOUR]
        [result] = find_cheapest_windows(samples, [4 * HOUR], BASE_TIME, BASE_TIME + 5 * HOUR)
        assert result.available

    def test_feed_hole_stays_a_gap_with_max_inferred_gap(self):
        profile = HOURLY_PROFILE.model_copy(update={"max_inferred_gap": HOUR})
        quotes = [RawQuote(moment=BASE_TIME, price=1.0), RawQuote(moment=BASE_TIME + 3 * HOUR, price=2.0)]

        samples, _ = normalize_quotes(quotes, profile, provider_id=1)

        assert samples[0].interval_length == HOUR

    def test_repeated_hour_on_dst_fall_back_day(self):
        """Copenhagen repeats 02:00 local on 2025-10-26; both hours are kept."""
        local_hours = [0, 1, 2, 2, 3]
        quotes = [
            RawQuote(moment=datetime(2025, 10, 26, hour, 0), price=float(index))
            for index, hour in enumerate(local_hours)
        ]

        samples, skipped = normalize_quotes(quotes, ANDEL_ENERGI_PROFILE, provider_id=2)

        assert skipped == 0
        assert [s.interval_start for s in samples] == [
            datetime(2025, 10, 25, 22, 0, tzinfo=pytz.UTC),
            datetime(2025, 10, 25, 23, 0, tzinfo=pytz.UTC),
            datetime(2025, 10, 26, 0, 0, tzinfo=pytz.UTC),
            datetime(2025, 10, 26, 1, 0, tzinfo=pytz.UTC),
            datetime(2025, 10, 26, 2, 0, tzinfo=pytz.UTC),
        ]
        assert [s.price for s in samples] == [Decimal(p) for p in range(5)]
        assert samples[2].source_utc_offset == timedelta(hours=2)
        assert samples[3].source_utc_offset == timedelta(hours=1)

    def test_repeated_non_ambiguous_hour_still_collapses(self):
        quotes = [
            RawQuote(moment=datetime(2025, 8, 7, 2, 0), price=1.0),
            RawQuote(moment=datetime(2025, 8, 7, 2, 0), price=2.0),
        ]

        samples, _ = normalize_quotes(quotes, ANDEL_ENERGI_PROFILE, provider_id=2)

        assert len(samples) == 1
        assert samples[0].price == Decimal("2")

    def test_unordered_batch_sorted_and_deduplicated(self):
        quotes = [
            RawQuote(moment=BASE_TIME + HOUR, price=5.0),
            RawQuote(moment=BASE_TIME, price=10.0),
            RawQuote(moment=BASE_TIME + HOUR, price=6.0),
        ]

        samples, _ = normalize_quotes(quotes, HOURLY_PROFILE, provider_id=1)

        assert [s.interval_start for s in samples] == [BASE_TIME, BASE_TIME + HOUR]
        assert samples[1].price == Decimal("6")

    def test_invalid_quotes_skipped_cycle_continues(self):
        quotes = hourly_quotes([1.0, float("nan"), 3.0])

        samples, skipped = normalize_quotes(quotes, HOURLY_PROFILE, provider_id=1)

        assert skipped == 1
        assert [s.price for s in samples] == [Decimal("1"), Decimal("3")]


class TestIngestionCycle:
    """Full cycles against the in-memory store."""

    def _service(self, store, feed, timeout=5.0):
        return IngestionService(store, {feed.name: feed}, feed_timeout=timeout)

    @pytest.mark.asyncio
    async def test_cycle_stores_samples(self, memory_store):
        feed = FakeFeed(hourly_quotes([10, 5, 20, 8]))
        service = self._service(memory_store, feed)

        report = await service.run_cycle("tibber", BASE_TIME, DAY_END)

        assert report.fetched == 4
        assert report.stored == 4
        stored = await memory_store.range_query(1, BASE_TIME, DAY_END)
        assert [s.price for s in stored] == [Decimal(p) for p in (10, 5, 20, 8)]

    @pytest.mark.asyncio
    async def test_identical_quote_twice_is_one_sample(self, memory_store):
        feed = FakeFeed(hourly_quotes([10]))
        service = self._service(memory_store, feed)

        await service.run_cycle("tibber", BASE_TIME, DAY_END)
        report = await service.run_cycle("tibber", BASE_TIME, DAY_END)

        stored = await memory_store.range_query(1, BASE_TIME, DAY_END)
        assert len(stored) == 1
        assert stored[0].price == Decimal("10")
        assert report.corrected == 0

    @pytest.mark.asyncio
    async def test_correction_updates_price_used_by_queries(self, memory_store):
        feed = FakeFeed(hourly_quotes([10, 5, 20, 8]))
        service = self._service(memory_store, feed)
        await service.run_cycle("tibber", BASE_TIME, DAY_END)

        feed.quotes = [RawQuote(moment=BASE_TIME + HOUR, price=6)]
        report = await service.run_cycle("tibber", BASE_TIME, DAY_END)

        assert report.corrected == 1
        stored = await memory_store.range_query(1, BASE_TIME, DAY_END)
        assert len(stored) == 4
        assert stored[1].price == Decimal("6")

        [result] = find_cheapest_windows(stored, [HOUR], BASE_TIME, BASE_TIME + 4 * HOUR)
        assert result.average_price == Decimal("6")

    @pytest.mark.asyncio
    async def test_quotes_outside_span_dropped(self, memory_store):
        feed = FakeFeed(hourly_quotes([1, 2, 3, 4]))
        service = self._service(memory_store, feed)

        report = await service.run_cycle("tibber", BASE_TIME + HOUR, BASE_TIME + 3 * HOUR)

        assert report.stored == 2

    @pytest.mark.asyncio
    async def test_feed_failure_fails_cycle(self, memory_store):
        feed = FakeFeed(error=FeedUnavailableError("HTTP error: 503"))
        service = self._service(memory_store, feed)

        with pytest.raises(FeedUnavailableError):
            await service.run_cycle("tibber", BASE_TIME, DAY_END)

    @pytest.mark.asyncio
    async def test_feed_timeout_is_feed_unavailable(self, memory_store):
        feed = FakeFeed(hourly_quotes([1]), delay=1.0)
        service = self._service(memory_store, feed, timeout=0.01)

        with pytest.raises(FeedUnavailableError, match="did not answer"):
            await service.run_cycle("tibber", BASE_TIME, DAY_END)

    @pytest.mark.asyncio
    async def test_failure_keeps_earlier_upserts(self, memory_store):
        feed = FakeFeed(hourly_quotes([1, 2, 3]))
        service = self._service(memory_store, feed)
        real_upsert = memory_store.upsert
        calls = []

        async def flaky_upsert(sample):
            calls.append(sample)
            if len(calls) == 2:
                raise DatabaseError("connection lost")
            return await real_upsert(sample)

        memory_store.upsert = flaky_upsert

        with pytest.raises(DatabaseError):
            await service.run_cycle("tibber", BASE_TIME, DAY_END)

        stored = await memory_store.range_query(1, BASE_TIME, DAY_END)
        assert [s.price for s in stored] == [Decimal("1")]

    @pytest.mark.asyncio
    async def test_concurrent_cycle_for_same_provider_rejected(self, memory_store):
        feed = FakeFeed(hourly_quotes([1]), delay=0.05)
        service = self._service(memory_store, feed)

        first = asyncio.create_task(service.run_cycle("tibber", BASE_TIME, DAY_END))
        await asyncio.sleep(0)

        with pytest.raises(IngestionInProgressError):
            await service.run_cycle("tibber", BASE_TIME, DAY_END)

        report = await first
        assert report.stored == 1
        assert feed.calls == 1

    @pytest.mark.asyncio
    async def test_lock_released_after_failure(self, memory_store):
        feed = FakeFeed(error=FeedUnavailableError("down"))
        service = self._service(memory_store, feed)

        with pytest.raises(FeedUnavailableError):
            await service.run_cycle("tibber", BASE_TIME, DAY_END)

        feed.error = None
        feed.quotes = hourly_quotes([1])
        report = await service.run_cycle("tibber", BASE_TIME, DAY_END)
        assert report.stored == 1

    @pytest.mark.asyncio
    async def test_unknown_provider(self, memory_store):
        service = self._service(memory_store, FakeFeed())

        with pytest.raises(UnknownProviderError):
            await service.run_cycle("nordpool")

    @pytest.mark.asyncio
    async def test_default_span_used_when_missing(self, memory_store):
        feed = FakeFeed()
        feed.fetch_quotes = AsyncMock(return_value=[])
        service = self._service(memory_store, feed)

        report = await service.run_cycle("tibber")

        start, end = feed.fetch_quotes.call_args.args
        assert end - start in (timedelta(hours=47), timedelta(hours=48), timedelta(hours=49))
        assert report.range_start == start
