"""
Time utility functions for timezone normalization and duration parsing.
All stored instants are UTC; provider-local naive instants are localized with pytz.
"""

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Tuple

import pytz

REFERENCE_TZ = pytz.UTC


def to_reference(moment: datetime, local_tz_name: str, is_dst: bool = False) -> Tuple[datetime, timedelta]:
    """
    Normalize an instant to the reference timezone (UTC).

    Args:
        moment: Aware or naive datetime. Naive values are taken as provider-local time.
        local_tz_name: Provider timezone used to localize naive values
        is_dst: Reading of a naive wall-clock time that occurs twice on a
            fall-back day; ignored for every other instant

    Returns:
        Tuple of (UTC datetime, original UTC offset)
    """
    if moment.tzinfo is None or moment.utcoffset() is None:
        moment = pytz.timezone(local_tz_name).localize(moment, is_dst=is_dst)

    return moment.astimezone(REFERENCE_TZ), moment.utcoffset()


def is_ambiguous(moment: datetime, local_tz_name: str) -> bool:
    """Check whether a naive local time occurs twice, as on a DST fall-back day."""
    try:
        pytz.timezone(local_tz_name).localize(moment, is_dst=None)
    except pytz.exceptions.AmbiguousTimeError:
        return True
    except pytz.exceptions.NonExistentTimeError:
        return False
    return False


def is_aware(moment: datetime) -> bool:
    """Check whether a datetime carries a usable UTC offset."""
    return moment.tzinfo is not None and moment.utcoffset() is not None


def parse_hours(value: str) -> timedelta:
    """
    Parse a duration given in hours, e.g. "2" or "1.5".

    Raises:
        ValueError: If the value is not a finite decimal number
    """
    try:
        hours = Decimal(value.strip())
    except (InvalidOperation, AttributeError):
        raise ValueError(f"Invalid duration '{value}'")

    if not hours.is_finite():
        raise ValueError(f"Invalid duration '{value}'")

    # Whole microseconds keep window arithmetic exact
    micros = int(hours * 3600 * 1_000_000)
    if hours > 0 and micros == 0:
        raise ValueError(f"Duration '{value}' is below the one microsecond resolution")

    try:
        return timedelta(microseconds=micros)
    except OverflowError:
        raise ValueError(f"Duration '{value}' is out of range")


def to_hours(duration: timedelta) -> float:
    """Express a duration in hours."""
    return duration.total_seconds() / 3600


def local_day_span(tz_name: str, now: datetime = None, days: int = 2) -> Tuple[datetime, datetime]:
    """
    Get the span from local midnight of today over the given number of days.

    Day-ahead markets publish tomorrow's prices in the afternoon, so the default
    span of two days covers everything a provider can have published.

    Args:
        tz_name: Provider timezone name
        now: Reference time, defaults to the current time
        days: Number of local calendar days to cover

    Returns:
        Tuple of (start, end) as UTC datetimes
    """
    local_tz = pytz.timezone(tz_name)

    if now is None:
        local_now = datetime.now(local_tz)
    elif not is_aware(now):
        local_now = local_tz.localize(now)
    else:
        local_now = now.astimezone(local_tz)

    start_day = local_now.date()
    start = local_tz.localize(datetime.combine(start_day, datetime.min.time()))
    end = local_tz.localize(datetime.combine(start_day + timedelta(days=days), datetime.min.time()))

    return start.astimezone(REFERENCE_TZ), end.astimezone(REFERENCE_TZ)
