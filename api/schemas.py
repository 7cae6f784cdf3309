from __future__ import annotations
from typing import Literal
from pydantic import BaseModel


TierName = Literal["dark-green", "green", "yellow", "orange", "red", "dark-red", "black"]


# ---------------------------------------------------------------------------
# GET /frequencies
# ---------------------------------------------------------------------------

class StopFrequencyResult(BaseModel):
    stop_id: str
    stop_name: str
    lat: float
    lon: float
    count: int
    trips_per_hour: float
    tier: TierName


class FrequenciesResponse(BaseModel):
    service_date: str        # YYYY-MM-DD
    window_start: str        # HH:MM:SS — may exceed 24:00:00
    window_end: str          # HH:MM:SS — may exceed 24:00:00
    window_hours: float
    tier_counts: dict[str, int]
    warnings: list[str]
    stops: list[StopFrequencyResult]


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------

class FeedHealth(BaseModel):
    stops: int
    trips: int
    stop_times: int
    has_calendar: bool
    has_calendar_dates: bool
    has_frequencies: bool
    last_imported_at: str | None
    feed_loaded: bool
    last_loaded_at: str | None
    next_refresh_at: str | None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    gtfs: FeedHealth


# ---------------------------------------------------------------------------
# POST /ingest/gtfs-static
# ---------------------------------------------------------------------------

class IngestResponse(BaseModel):
    status: str
    message: str
