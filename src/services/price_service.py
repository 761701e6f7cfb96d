"""
Query facade - turns request parameters into window engine calls.
Validates input before storage is touched and renders results in the caller's timezone.
"""

from datetime import datetime, timedelta
from typing import List

from src.config import settings
from src.database.base import PriceStore
from src.database.service import db_service
from src.exceptions import DurationUnavailableError, InvalidQueryError, NoDataInRangeError
from src.logging_config import get_logger
from src.models.price import PriceSampleResponse, TimeSlotResponse, WindowQuery
from src.services.window_engine import find_cheapest_windows
from src.utils.time_utils import REFERENCE_TZ, is_aware, parse_hours, to_hours

logger = get_logger(__name__)


def parse_durations(durations: str) -> List[timedelta]:
    """
    Parse a comma-separated list of durations in hours, e.g. "1,2.5".

    Returns:
        Distinct durations in request order

    Raises:
        InvalidQueryError: For empty, malformed or non-positive entries
    """
    parts = [part.strip() for part in (durations or "").split(",")]
    if not any(parts):
        raise InvalidQueryError("At least one duration is required")

    parsed = []
    for part in parts:
        try:
            duration = parse_hours(part)
        except ValueError as e:
            raise InvalidQueryError(str(e))
        if duration <= timedelta(0):
            raise InvalidQueryError(f"Duration must be positive, got '{part}'")
        parsed.append(duration)

    return list(dict.fromkeys(parsed))


def validate_range(moment_start: datetime, moment_end: datetime) -> None:
    """Reject naive or empty ranges."""
    if not is_aware(moment_start) or not is_aware(moment_end):
        raise InvalidQueryError("moment_start and moment_end must carry a UTC offset")
    if moment_end <= moment_start:
        raise InvalidQueryError("moment_end must be after moment_start")


class PriceService:
    """Read-only queries over the stored prices of one provider."""

    def __init__(self, store: PriceStore, provider_name: str):
        self.store = store
        self.provider_name = provider_name

    async def get_time_slots(self, durations: str, moment_start: datetime, moment_end: datetime) -> List[TimeSlotResponse]:
        """
        Find the cheapest window for each requested duration.

        Unavailable durations come back with available=False; they never fail
        the other durations of the request.
        """
        validate_range(moment_start, moment_end)
        ordered = parse_durations(durations)
        query = WindowQuery(
            requested_durations=frozenset(ordered),
            range_start=moment_start.astimezone(REFERENCE_TZ),
            range_end=moment_end.astimezone(REFERENCE_TZ),
        )

        provider = await self.store.get_provider(self.provider_name)
        samples = await self.store.range_query(provider.id, query.range_start, query.range_end)
        if not samples:
            logger.warning(
                "No price data in range",
                provider=self.provider_name,
                start=query.range_start.isoformat(),
                end=query.range_end.isoformat(),
            )

        windows = find_cheapest_windows(samples, query.requested_durations, query.range_start, query.range_end)
        by_duration = {window.duration: window for window in windows}
        display_tz = moment_start.tzinfo

        slots = []
        for duration in ordered:
            try:
                window = by_duration[duration].require()
            except DurationUnavailableError as e:
                logger.debug("Duration unavailable", provider=self.provider_name, reason=str(e))
                slots.append(TimeSlotResponse(duration_hours=to_hours(duration), available=False))
                continue
            slots.append(TimeSlotResponse(
                duration_hours=to_hours(duration),
                available=True,
                starts_at=window.window_start.astimezone(display_tz),
                ends_at=window.window_end.astimezone(display_tz),
                average_price=window.average_price,
            ))

        logger.debug("Computed time slots",
                     durations=[slot.duration_hours for slot in slots],
                     available=sum(1 for slot in slots if slot.available))
        return slots

    async def get_prices(self, moment_start: datetime, moment_end: datetime) -> List[PriceSampleResponse]:
        """
        List stored samples overlapping the range.

        Raises:
            NoDataInRangeError: If nothing is stored for the range
        """
        validate_range(moment_start, moment_end)

        provider = await self.store.get_provider(self.provider_name)
        samples = await self.store.range_query(
            provider.id,
            moment_start.astimezone(REFERENCE_TZ),
            moment_end.astimezone(REFERENCE_TZ),
        )
        if not samples:
            raise NoDataInRangeError("No price data available for the specified range")

        display_tz = moment_start.tzinfo
        return [
            PriceSampleResponse(
                starts_at=sample.interval_start.astimezone(display_tz),
                ends_at=sample.interval_end.astimezone(display_tz),
                price=sample.price,
            )
            for sample in samples
        ]


# Global price service instance
price_service = PriceService(db_service, settings.price_provider)
