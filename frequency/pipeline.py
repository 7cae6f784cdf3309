"""
Computes per-stop service frequency for one service date and time window.

Pipeline (each stage a pure function, data flows strictly forward):
  1. schedule.calendar.resolve_active_services  — which service_ids run
  2. schedule.trips.select_trips                — which trips run
  3. frequency.counter.count_visits_partitioned — visits per stop in the window
  4. frequency.tiers.classify                   — trips/hour + tier

Parameters are validated before any table is read; a bad time, date or window
raises InvalidInputError and nothing is computed.
"""

import logging
from datetime import date
from typing import Callable, Optional, Sequence

from frequency.counter import count_visits_partitioned
from frequency.tiers import StopFrequency, classify, tier_counts
from schedule.calendar import resolve_active_services
from schedule.errors import MissingRequiredDataError
from schedule.times import TimeOfDay, parse_service_date, parse_time_of_day, window_hours
from schedule.trips import select_trips
from schedule.types import (
    Feed, ServiceDateException, StopInfo, StopVisit, TripService, WeeklyServicePattern,
)

logger = logging.getLogger(__name__)

FrequencyResult = dict[str, StopFrequency]


def _as_time(value: TimeOfDay | str) -> TimeOfDay:
    return value if isinstance(value, int) else parse_time_of_day(value)


def compute_frequencies(
    service_date: date | str,
    window_start: TimeOfDay | str,
    window_end: TimeOfDay | str,
    trips: Optional[Sequence[TripService]],
    stop_visits: Optional[Sequence[StopVisit]],
    stops: Optional[Sequence[StopInfo]],
    weekly_patterns: Optional[Sequence[WeeklyServicePattern]] = None,
    exceptions: Optional[Sequence[ServiceDateException]] = None,
    partitions: int = 1,
    map_fn: Callable = map,
) -> FrequencyResult:
    """
    Return {stop_id: StopFrequency(count, trips_per_hour, tier)} for every stop.

    Args:
        service_date:    Date to analyse (date, YYYY-MM-DD or YYYYMMDD).
        window_start:    Inclusive start, seconds or HH:MM:SS.
        window_end:      Exclusive end, seconds or HH:MM:SS; may exceed 24:00:00.
        trips:           trips.txt rows.
        stop_visits:     stop_times.txt rows.
        stops:           stops.txt rows; defines which stops are reported.
        weekly_patterns: calendar.txt rows, or None when absent.
        exceptions:      calendar_dates.txt rows, or None when absent.
        partitions:      Number of partitions for visit counting.
        map_fn:          map-like callable used to count partitions.

    Raises:
        InvalidInputError:        Unparseable date/time or empty window.
        MissingRequiredDataError: trips, stop_visits or stops is None.
    """
    day = parse_service_date(service_date)
    start = _as_time(window_start)
    end = _as_time(window_end)
    hours = window_hours(start, end)

    for name, table in (("trips", trips), ("stop_times", stop_visits), ("stops", stops)):
        if table is None:
            raise MissingRequiredDataError(f"Required table {name}.txt is missing from the feed.")

    active_services = resolve_active_services(day, weekly_patterns, exceptions)
    eligible_trips = select_trips(trips, active_services)

    stop_ids = [s.stop_id for s in stops]
    counts = count_visits_partitioned(
        stop_visits, eligible_trips, start, end,
        stop_ids=stop_ids, partitions=partitions, map_fn=map_fn,
    )

    known = set(stop_ids)
    unknown = [stop_id for stop_id in counts if stop_id not in known]
    if unknown:
        logger.debug("Ignoring visits at %d stop_ids missing from stops.txt.", len(unknown))
    results = classify({stop_id: counts[stop_id] for stop_id in stop_ids}, hours)

    summary = tier_counts(results)
    logger.info(
        "Frequencies computed for %d stops over %.2f h: %s",
        len(results), hours,
        ", ".join(f"{tier.value}={n}" for tier, n in summary.items()),
    )
    return results


def compute_feed_frequencies(
    feed: Feed,
    service_date: date | str,
    window_start: TimeOfDay | str,
    window_end: TimeOfDay | str,
    partitions: int = 1,
    map_fn: Callable = map,
) -> FrequencyResult:
    """compute_frequencies() over the tables of a loaded Feed."""
    if feed.has_frequencies:
        logger.warning(
            "Feed defines headway-based service (frequencies.txt), which is not "
            "supported. Some stops may show 0 trips."
        )
    return compute_frequencies(
        service_date, window_start, window_end,
        feed.trips, feed.stop_visits, feed.stops,
        weekly_patterns=feed.weekly_patterns,
        exceptions=feed.exceptions,
        partitions=partitions,
        map_fn=map_fn,
    )
