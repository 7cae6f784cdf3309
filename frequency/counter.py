"""
Counts scheduled stop visits inside a time window.

A stop visit (one stop_times.txt row) qualifies when:
  - its trip_id is eligible (runs on the service date), and
  - window_start <= departure_time < window_end   (half-open)

Counts are aggregated in a hash map keyed by the visit's own stop_id, so the
cost is linear in the number of stop_times rows.  window_end may exceed 24:00:00
so that late-night trips of the service day are included.

Counting is data-parallel: count_visits_partitioned() splits the rows into
contiguous partitions, counts each, and merges by key-wise addition.  The
result does not depend on the number of partitions.
"""

import logging
from collections import Counter
from typing import Callable, Iterable, Sequence

from schedule.times import TimeOfDay, check_window, format_time_of_day
from schedule.types import StopVisit

logger = logging.getLogger(__name__)

VisitCount = dict[str, int]


def count_visits(
    stop_visits: Iterable[StopVisit],
    eligible_trips: frozenset[str] | set[str],
    window_start: TimeOfDay,
    window_end: TimeOfDay,
    stop_ids: Iterable[str] = (),
) -> VisitCount:
    """
    Count qualifying visits per stop_id.

    Args:
        stop_visits:    Scheduled stop visits (any order).
        eligible_trips: trip_ids running on the service date.
        window_start:   Inclusive window start, seconds since service-day start.
        window_end:     Exclusive window end; may be >= 86400.
        stop_ids:       Known stops, each reported with at least a 0 count.

    Raises:
        InvalidInputError: If window_end <= window_start.
    """
    check_window(window_start, window_end)

    counts: Counter[str] = Counter({stop_id: 0 for stop_id in stop_ids})
    for trip_id, stop_id, departure in stop_visits:
        if trip_id in eligible_trips and window_start <= departure < window_end:
            counts[stop_id] += 1
    return dict(counts)


def merge_counts(*partials: VisitCount) -> VisitCount:
    """Key-wise sum of partial counts (zero entries are kept)."""
    merged: dict[str, int] = {}
    for partial in partials:
        for stop_id, n in partial.items():
            merged[stop_id] = merged.get(stop_id, 0) + n
    return merged


def partition(stop_visits: Sequence[StopVisit], partitions: int) -> list[Sequence[StopVisit]]:
    """Split rows into at most `partitions` contiguous slices."""
    partitions = max(1, min(partitions, len(stop_visits)))
    size, extra = divmod(len(stop_visits), partitions)
    slices = []
    start = 0
    for i in range(partitions):
        end = start + size + (1 if i < extra else 0)
        slices.append(stop_visits[start:end])
        start = end
    return slices


def _count_partition(job: tuple) -> VisitCount:
    # Module-level so ProcessPoolExecutor can pickle it.
    visits, eligible_trips, window_start, window_end = job
    return count_visits(visits, eligible_trips, window_start, window_end)


def count_visits_partitioned(
    stop_visits: Sequence[StopVisit],
    eligible_trips: frozenset[str] | set[str],
    window_start: TimeOfDay,
    window_end: TimeOfDay,
    stop_ids: Iterable[str] = (),
    partitions: int = 1,
    map_fn: Callable = map,
) -> VisitCount:
    """
    count_visits() over `partitions` slices of stop_visits, merged.

    map_fn lets the caller run partitions concurrently, e.g.
    ProcessPoolExecutor().map; the built-in map runs them sequentially.
    """
    check_window(window_start, window_end)
    logger.info(
        "Counting %d stop visits between %s and %s (%d partition(s)).",
        len(stop_visits),
        format_time_of_day(window_start),
        format_time_of_day(window_end),
        max(1, min(partitions, len(stop_visits))),
    )

    eligible = frozenset(eligible_trips)
    jobs = [(chunk, eligible, window_start, window_end) for chunk in partition(stop_visits, partitions)]
    seed = {stop_id: 0 for stop_id in stop_ids}
    counts = merge_counts(seed, *map_fn(_count_partition, jobs))

    logger.info("Counted %d qualifying stop visits.", sum(counts.values()))
    return counts
