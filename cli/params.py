"""
Parameter providers for the stop frequency CLI.

Parameters come either from the command line or from interactive prompts.
Both produce the same validated FrequencyParams; nothing downstream knows
which provider was used.
"""

from dataclasses import dataclass
from datetime import date
from typing import Callable, Sequence

from schedule.errors import InvalidInputError
from schedule.times import TimeOfDay, check_window, parse_service_date, parse_time_of_day


@dataclass(frozen=True)
class FrequencyParams:
    window_start: TimeOfDay
    window_end: TimeOfDay
    service_date: date
    source: str


def _build(start: str, end: str, service_date: str, source: str) -> FrequencyParams:
    params = FrequencyParams(
        window_start=parse_time_of_day(start),
        window_end=parse_time_of_day(end),
        service_date=parse_service_date(service_date),
        source=source.strip().strip("\"'"),
    )
    check_window(params.window_start, params.window_end)
    if not params.source:
        raise InvalidInputError("A GTFS source path is required.")
    return params


def params_from_args(values: Sequence[str]) -> FrequencyParams:
    """Build params from (start, end, date, source) command-line values."""
    if len(values) != 4:
        raise InvalidInputError(
            f"Expected 4 arguments (start, end, date, source), got {len(values)}."
        )
    return _build(*values)


def params_from_prompt(
    input_fn: Callable[[str], str] = input,
    print_fn: Callable[[str], None] = print,
) -> FrequencyParams:
    """Ask the user for each parameter."""
    print_fn("Please enter the start time (format: HH:MM:SS)")
    start = input_fn("Start time: ")
    print_fn(
        "Please enter the end time (format: HH:MM:SS). For late-night trips "
        "belonging to the previous service day, use a time past 23:59:59."
    )
    end = input_fn("End time: ")
    print_fn("Please enter the sample date (format: YYYY-MM-DD)")
    service_date = input_fn("Sample date: ")
    print_fn("Please enter the file path of the directory or zip containing the GTFS data")
    source = input_fn("File path: ")
    return _build(start, end, service_date, source)
