"""
Errors raised by the stop frequency computation.

Both are fatal for a run: no partial results are produced.  Missing optional
calendar tables are not errors and have no exception type here.
"""


class InvalidInputError(ValueError):
    """Unparseable time or date, or an empty / inverted time window."""


class MissingRequiredDataError(RuntimeError):
    """The trips, stop_times or stops table is absent from the feed."""
