"""
Resolves which service_ids run on a given service date.

Inputs are the two GTFS calendar tables, either of which may be absent:
  calendar.txt       → WeeklyServicePattern (weekday flags + date range)
  calendar_dates.txt → ServiceDateException (ADD / REMOVE on one date)

Active services = (exception ADDs ∪ weekly matches) minus exception REMOVEs.
An explicit REMOVE always wins, even over an ADD for the same date.
"""

import logging
from datetime import date
from typing import Iterable, Optional

from schedule.times import service_date_key, weekday_name
from schedule.types import ExceptionKind, ServiceDateException, WeeklyServicePattern

logger = logging.getLogger(__name__)


def resolve_active_services(
    service_date: date,
    weekly_patterns: Optional[Iterable[WeeklyServicePattern]],
    exceptions: Optional[Iterable[ServiceDateException]],
) -> frozenset[str]:
    """
    Return the set of service_ids active on service_date.

    Args:
        service_date:    The service day being analysed.
        weekly_patterns: calendar.txt rows, or None if the feed has no calendar.txt.
        exceptions:      calendar_dates.txt rows, or None if the feed has none.

    Returns:
        Active service_ids.  Empty when neither table is supplied; a service
        referenced by trips but by neither table is never active.
    """
    date_key = service_date_key(service_date)

    added: set[str] = set()
    removed: set[str] = set()
    for exc in exceptions or ():
        if exc.date != date_key:
            continue
        if exc.kind == ExceptionKind.ADD:
            added.add(exc.service_id)
        elif exc.kind == ExceptionKind.REMOVE:
            removed.add(exc.service_id)

    recurrence: set[str] = set()
    if weekly_patterns is not None:
        weekday = weekday_name(service_date)
        for pattern in weekly_patterns:
            if pattern.runs_on(weekday) and pattern.start_date <= date_key <= pattern.end_date:
                recurrence.add(pattern.service_id)

    active = frozenset((added | recurrence) - removed)
    logger.info(
        "Service date %s (%s): %d active services (%d weekly, %d added, %d removed).",
        date_key, weekday_name(service_date), len(active),
        len(recurrence), len(added), len(removed),
    )
    return active
