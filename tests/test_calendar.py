"""
Unit tests for service-date resolution (schedule.calendar) and trip
selection (schedule.trips).
"""

import random
from datetime import date

from schedule.calendar import resolve_active_services
from schedule.times import WEEKDAYS
from schedule.trips import index_trips_by_service, select_trips
from schedule.types import ExceptionKind, ServiceDateException, TripService, WeeklyServicePattern

FRIDAY = date(2023, 10, 13)
SATURDAY = date(2023, 10, 14)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _pattern(service_id: str, *days: str, start: str = "20230101", end: str = "20231231") -> WeeklyServicePattern:
    flags = {day: day in days for day in WEEKDAYS}
    return WeeklyServicePattern(service_id=service_id, start_date=start, end_date=end, **flags)


def _add(service_id: str, on: str = "20231013") -> ServiceDateException:
    return ServiceDateException(service_id, on, ExceptionKind.ADD)


def _remove(service_id: str, on: str = "20231013") -> ServiceDateException:
    return ServiceDateException(service_id, on, ExceptionKind.REMOVE)


# ---------------------------------------------------------------------------
# resolve_active_services
# ---------------------------------------------------------------------------

class TestWeeklyPatterns:
    def test_matching_weekday_in_range(self):
        assert resolve_active_services(FRIDAY, [_pattern("A", "friday")], None) == {"A"}

    def test_other_weekday_not_active(self):
        assert resolve_active_services(SATURDAY, [_pattern("A", "friday")], None) == frozenset()

    def test_range_ending_before_date_excluded(self):
        patterns = [_pattern("A", "friday", end="20231012")]
        assert resolve_active_services(FRIDAY, patterns, None) == frozenset()

    def test_range_starting_after_date_excluded(self):
        patterns = [_pattern("A", "friday", start="20231014")]
        assert resolve_active_services(FRIDAY, patterns, None) == frozenset()

    def test_range_start_inclusive(self):
        patterns = [_pattern("A", "friday", start="20231013")]
        assert resolve_active_services(FRIDAY, patterns, None) == {"A"}

    def test_range_end_inclusive(self):
        patterns = [_pattern("A", "friday", end="20231013")]
        assert resolve_active_services(FRIDAY, patterns, None) == {"A"}

    def test_duplicate_rows_harmless(self):
        patterns = [_pattern("A", "friday"), _pattern("A", "friday")]
        assert resolve_active_services(FRIDAY, patterns, None) == {"A"}

    def test_several_services(self):
        patterns = [
            _pattern("WEEKDAY", *WEEKDAYS[:5]),
            _pattern("WEEKEND", "saturday", "sunday"),
            _pattern("FRI", "friday"),
        ]
        assert resolve_active_services(FRIDAY, patterns, None) == {"WEEKDAY", "FRI"}
        assert resolve_active_services(SATURDAY, patterns, None) == {"WEEKEND"}


class TestExceptions:
    def test_add_without_calendar(self):
        assert resolve_active_services(FRIDAY, None, [_add("B")]) == {"B"}

    def test_add_on_other_date_ignored(self):
        assert resolve_active_services(FRIDAY, None, [_add("B", on="20231014")]) == frozenset()

    def test_remove_beats_weekly_match(self):
        result = resolve_active_services(FRIDAY, [_pattern("A", "friday")], [_remove("A")])
        assert result == frozenset()

    def test_remove_beats_add_for_same_pair(self):
        result = resolve_active_services(FRIDAY, None, [_add("A"), _remove("A")])
        assert result == frozenset()

    def test_remove_beats_add_and_weekly_in_any_order(self):
        result = resolve_active_services(
            FRIDAY, [_pattern("A", "friday")], [_remove("A"), _add("A"), _add("A")]
        )
        assert result == frozenset()

    def test_remove_on_other_date_ignored(self):
        result = resolve_active_services(FRIDAY, [_pattern("A", "friday")], [_remove("A", on="20231020")])
        assert result == {"A"}

    def test_add_extends_weekly(self):
        result = resolve_active_services(FRIDAY, [_pattern("A", "friday")], [_add("HOLIDAY")])
        assert result == {"A", "HOLIDAY"}

    def test_row_order_and_duplicates_do_not_matter(self):
        patterns = [_pattern("A", "friday"), _pattern("C", "friday")]
        exceptions = [_add("B"), _add("B"), _remove("C"), _add("D", on="20231014"), _remove("A", on="20231001")]
        expected = resolve_active_services(FRIDAY, patterns, exceptions)
        rng = random.Random(7)
        for _ in range(10):
            shuffled = exceptions * 2
            rng.shuffle(shuffled)
            assert resolve_active_services(FRIDAY, patterns, shuffled) == expected
        assert expected == {"A", "B"}


class TestMissingTables:
    def test_both_absent_is_empty(self):
        assert resolve_active_services(FRIDAY, None, None) == frozenset()

    def test_both_empty_is_empty(self):
        assert resolve_active_services(FRIDAY, [], []) == frozenset()

    def test_calendar_only(self):
        assert resolve_active_services(FRIDAY, [_pattern("A", "friday")], None) == {"A"}


# ---------------------------------------------------------------------------
# select_trips
# ---------------------------------------------------------------------------

class TestSelectTrips:
    TRIPS = [
        TripService("T1", "A"),
        TripService("T2", "A"),
        TripService("T3", "B"),
        TripService("T4", "UNKNOWN"),
    ]

    def test_selects_trips_of_active_services(self):
        assert select_trips(self.TRIPS, {"A"}) == {"T1", "T2"}

    def test_multiple_services(self):
        assert select_trips(self.TRIPS, {"A", "B"}) == {"T1", "T2", "T3"}

    def test_no_active_services(self):
        assert select_trips(self.TRIPS, frozenset()) == frozenset()

    def test_service_in_no_calendar_never_selected(self):
        active = resolve_active_services(FRIDAY, [_pattern("A", "friday")], [_add("B")])
        assert "T4" not in select_trips(self.TRIPS, active)

    def test_active_service_without_trips(self):
        assert select_trips(self.TRIPS, {"Z"}) == frozenset()

    def test_index_groups_by_service(self):
        index = index_trips_by_service(self.TRIPS)
        assert index["A"] == ["T1", "T2"]
        assert index["B"] == ["T3"]
