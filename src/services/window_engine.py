"""
Cheapest-window engine over a price time series.

For a window length d the cost C(t) = integral of price over [t, t+d) is
piecewise linear in t. Its slope only changes where t or t+d crosses a sample
boundary, so a minimum is always reached at a window that starts on a boundary
or ends on one. Both candidate families are scanned; start-aligned windows
alone miss the optimum when d is not a whole number of sample lengths.

Cost: one sort/clip pass over the samples, then an independent two-pointer
sweep per duration, O(|durations| * samples) in total.

All instants are converted to integer microseconds from the range start and
prices are Decimals, so equal windows compare equal and the earliest wins.
"""

import heapq
from datetime import datetime, timedelta
from decimal import Decimal, localcontext
from typing import Iterable, List, NamedTuple, Optional, Sequence

from src.exceptions import InvalidQueryError
from src.models.price import PRICE_QUANTUM, PriceSample, WindowResult

_MICROSECOND = timedelta(microseconds=1)

# Wide enough for price * microseconds sums over years of samples
_PRECISION = 60


class Segment(NamedTuple):
    """A sample clipped to the query range, in microseconds from range start."""
    start: int
    end: int
    price: Decimal


class ScanOutcome(NamedTuple):
    """Best window of one run for one duration."""
    start: Optional[int]
    cost: Optional[Decimal]
    steps: int


def _offset(moment: datetime, origin: datetime) -> int:
    return (moment - origin) // _MICROSECOND


def build_runs(samples: Iterable[PriceSample], range_start: datetime, range_end: datetime) -> List[List[Segment]]:
    """
    Clip samples to [range_start, range_end) and split them into gap-free runs.

    Returns:
        Runs in ascending order; inside a run each segment starts where the
        previous one ends.
    """
    horizon = _offset(range_end, range_start)
    runs: List[List[Segment]] = []
    current: List[Segment] = []

    for sample in sorted(samples, key=lambda s: s.interval_start):
        start = max(_offset(sample.interval_start, range_start), 0)
        end = min(_offset(sample.interval_end, range_start), horizon)

        if current and start < current[-1].end:
            # Overlapping input: the earlier sample keeps the shared time
            start = current[-1].end
        if end <= start:
            continue

        if current and start > current[-1].end:
            runs.append(current)
            current = []
        current.append(Segment(start, end, Decimal(sample.price)))

    if current:
        runs.append(current)

    return runs


def scan_run(run: Sequence[Segment], duration: int) -> ScanOutcome:
    """
    Find the cheapest window of `duration` microseconds inside one gap-free run.

    Candidates are windows starting on a segment start or ending on a segment
    end, visited in ascending start order. Both pointers only move forward, so
    the sweep takes O(len(run)) steps.
    """
    run_start, run_end = run[0].start, run[-1].end
    if run_end - run_start < duration:
        return ScanOutcome(None, None, 0)

    with localcontext() as ctx:
        ctx.prec = _PRECISION

        # prefix[i] = cost from run start up to the start of segment i
        prefix = [Decimal(0)]
        for segment in run:
            prefix.append(prefix[-1] + segment.price * (segment.end - segment.start))

        def integral(index: int, moment: int) -> Decimal:
            segment = run[index]
            return prefix[index] + segment.price * (moment - segment.start)

        start_aligned = (s.start for s in run if s.start + duration <= run_end)
        end_aligned = (s.end - duration for s in run if s.end - duration >= run_start)

        left = right = steps = 0
        best_start = best_cost = None

        for candidate in heapq.merge(start_aligned, end_aligned):
            while run[left].end <= candidate:
                left += 1
                steps += 1

            window_end = candidate + duration
            while run[right].end < window_end:
                right += 1
                steps += 1

            cost = integral(right, window_end) - integral(left, candidate)
            steps += 1

            if best_cost is None or cost < best_cost:
                best_start, best_cost = candidate, cost

    return ScanOutcome(best_start, best_cost, steps)


def cheapest_window(runs: Sequence[Sequence[Segment]], duration: int) -> ScanOutcome:
    """Cheapest window over all runs; ties go to the earliest start."""
    best = ScanOutcome(None, None, 0)
    steps = 0

    for run in runs:
        outcome = scan_run(run, duration)
        steps += outcome.steps
        if outcome.cost is not None and (best.cost is None or outcome.cost < best.cost):
            best = outcome

    return ScanOutcome(best.start, best.cost, steps)


def find_cheapest_windows(
    samples: Iterable[PriceSample],
    durations: Iterable[timedelta],
    range_start: datetime,
    range_end: datetime,
) -> List[WindowResult]:
    """
    Compute the cheapest gap-free window for every requested duration.

    Args:
        samples: Samples overlapping the range, any order
        durations: Requested window lengths; duplicates are collapsed
        range_start: Earliest allowed window start (aware)
        range_end: Latest allowed window end (aware, exclusive)

    Returns:
        One WindowResult per distinct duration in request order. Durations
        with no gap-free fit get the unavailable marker.

    Raises:
        InvalidQueryError: For non-positive durations or an empty range
    """
    if range_end <= range_start:
        raise InvalidQueryError("Range end must be after range start")

    requested = list(dict.fromkeys(durations))
    for duration in requested:
        if duration <= timedelta(0):
            raise InvalidQueryError(f"Duration must be positive, got {duration}")

    runs = build_runs(samples, range_start, range_end)
    results = []

    for duration in requested:
        micros = duration // _MICROSECOND
        best = cheapest_window(runs, micros)

        if best.cost is None:
            results.append(WindowResult.unavailable(duration))
            continue

        with localcontext() as ctx:
            ctx.prec = _PRECISION
            average = (best.cost / Decimal(micros)).quantize(PRICE_QUANTUM)

        window_start = range_start + timedelta(microseconds=best.start)
        results.append(WindowResult(
            duration=duration,
            window_start=window_start,
            window_end=window_start + duration,
            average_price=average,
        ))

    return results
