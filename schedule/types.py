"""
Immutable record types for the parts of a GTFS feed the frequency pipeline reads.

These are snapshots built once per run by ingestion.gtfs_static and never
mutated.  StopVisit and TripService are NamedTuples because a feed can hold
hundreds of thousands of stop_times rows.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import NamedTuple, Optional

from schedule.times import TimeOfDay


class ExceptionKind(IntEnum):
    """calendar_dates.txt exception_type."""
    ADD = 1
    REMOVE = 2


@dataclass(frozen=True)
class WeeklyServicePattern:
    """One calendar.txt row."""
    service_id: str
    monday: bool
    tuesday: bool
    wednesday: bool
    thursday: bool
    friday: bool
    saturday: bool
    sunday: bool
    start_date: str  # YYYYMMDD, inclusive
    end_date: str    # YYYYMMDD, inclusive

    def runs_on(self, weekday: str) -> bool:
        return getattr(self, weekday)


@dataclass(frozen=True)
class ServiceDateException:
    """One calendar_dates.txt row."""
    service_id: str
    date: str  # YYYYMMDD
    kind: ExceptionKind


class TripService(NamedTuple):
    trip_id: str
    service_id: str


class StopVisit(NamedTuple):
    trip_id: str
    stop_id: str
    departure_time: TimeOfDay


@dataclass(frozen=True)
class StopInfo:
    stop_id: str
    name: str
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Feed:
    """
    The tables of one feed.

    weekly_patterns / exceptions are None when calendar.txt /
    calendar_dates.txt are absent, which is distinct from an empty table.
    """
    trips: tuple[TripService, ...]
    stop_visits: tuple[StopVisit, ...]
    stops: tuple[StopInfo, ...]
    weekly_patterns: Optional[tuple[WeeklyServicePattern, ...]] = None
    exceptions: Optional[tuple[ServiceDateException, ...]] = None
    has_frequencies: bool = False
