"""Selects the trips that run on a service date."""

import logging
from collections import defaultdict
from typing import Iterable

from schedule.types import TripService

logger = logging.getLogger(__name__)


def index_trips_by_service(trips: Iterable[TripService]) -> dict[str, list[str]]:
    """Build a service_id → [trip_id] index."""
    index: dict[str, list[str]] = defaultdict(list)
    for trip in trips:
        index[trip.service_id].append(trip.trip_id)
    return index


def select_trips(trips: Iterable[TripService], active_services: Iterable[str]) -> frozenset[str]:
    """Return the trip_ids whose service_id is in active_services."""
    index = index_trips_by_service(trips)
    selected = frozenset(
        trip_id
        for service_id in set(active_services)
        for trip_id in index.get(service_id, ())
    )
    logger.info("Selected %d trips from %d services.", len(selected), len(index))
    return selected
