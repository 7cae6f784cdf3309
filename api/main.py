"""
FastAPI application entry point.

On startup:
  1. Initialise the database schema.
  2. Load the stored GTFS feed into the in-memory feed cache (if available).
  3. Start the APScheduler with a GTFS static refresh every GTFS_REFRESH_HOURS
     (only when GTFS_STATIC_URL is set).

Endpoints (v1):
  GET  /frequencies?date=<YYYY-MM-DD>&start=<HH:MM:SS>&end=<HH:MM:SS>&tier=<tier>
  GET  /map?date=<YYYY-MM-DD>&start=<HH:MM:SS>&end=<HH:MM:SS>
  GET  /health
  POST /ingest/gtfs-static
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

import httpx
import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import Depends, FastAPI, HTTPException, Query, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from fastapi.security import APIKeyHeader
from sqlalchemy import func
from sqlalchemy.orm import Session

from api.schemas import FrequenciesResponse, HealthResponse, IngestResponse
from config import (
    API_HOST, API_PORT, CORS_ORIGINS, GTFS_REFRESH_HOURS, GTFS_STATIC_URL, INGEST_API_KEY,
)
from db.models import Stop, StopTime, Trip
from db.session import get_session, init_db, session_scope
from frequency.pipeline import FrequencyResult, compute_feed_frequencies
from frequency.tiers import FrequencyTier, tier_counts
from ingestion.feed_cache import get_feed, get_last_loaded_at, load_feed_cache, set_feed
from ingestion.gtfs_static import latest_import, refresh_static_data
from rendering.stop_map import render_stop_map_html
from schedule.errors import InvalidInputError, MissingRequiredDataError
from schedule.times import format_time_of_day, parse_service_date, parse_time_of_day, window_hours
from schedule.types import Feed

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_ingest_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _require_ingest_key(key: str | None = Security(_ingest_key_header)) -> None:
    """
    Optional API-key guard for the ingest endpoint.

    If INGEST_API_KEY is not set the endpoint is open (local dev / testing).
    If it is set, the request must include the matching X-API-Key header.
    """
    if not INGEST_API_KEY:
        return  # no key configured → open
    if key != INGEST_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid or missing X-API-Key header.")

scheduler = AsyncIOScheduler()

HEADWAY_WARNING = (
    "The feed defines headway-based service (frequencies.txt), which is not "
    "supported. Some stops may show 0 trips."
)

# ---------------------------------------------------------------------------
# Result cache — keyed by (YYYYMMDD, start_seconds, end_seconds)
# Cleared whenever the feed is reloaded.
# ---------------------------------------------------------------------------
_results_cache: dict[tuple[str, int, int], tuple[FrequencyResult, datetime]] = {}
_RESULTS_CACHE_TTL = timedelta(hours=1)


def _get_cached_results(key: tuple[str, int, int]) -> FrequencyResult | None:
    entry = _results_cache.get(key)
    if entry is None:
        return None
    results, cached_at = entry
    if datetime.now() - cached_at > _RESULTS_CACHE_TTL:
        del _results_cache[key]
        return None
    return results


def _clear_results_cache() -> None:
    _results_cache.clear()
    logger.info("Frequency result cache cleared.")


def _parse_request(date: str | None, start: str, end: str) -> tuple:
    """Validate query parameters before any feed data is read."""
    try:
        service_date = parse_service_date(date) if date else datetime.now().date()
        start_sec = parse_time_of_day(start)
        end_sec = parse_time_of_day(end)
        hours = window_hours(start_sec, end_sec)
    except InvalidInputError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return service_date, start_sec, end_sec, hours


def _loaded_feed() -> Feed:
    try:
        return get_feed()
    except RuntimeError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


def _frequencies(feed: Feed, service_date, start_sec: int, end_sec: int) -> FrequencyResult:
    key = (service_date.strftime("%Y%m%d"), start_sec, end_sec)
    results = _get_cached_results(key)
    if results is None:
        results = compute_feed_frequencies(feed, service_date, start_sec, end_sec)
        _results_cache[key] = (results, datetime.now())
    return results


async def _scheduled_gtfs_refresh() -> None:
    """
    Scheduled job: refresh GTFS static data and reload the feed cache.

    Opens its own DB session because APScheduler jobs run outside FastAPI's
    DI system.  Exceptions are caught and logged so a transient network
    failure cannot crash the scheduler process.
    """
    logger.info("Scheduled GTFS static refresh starting.")
    with session_scope() as db:
        try:
            feed = await refresh_static_data(db)
            set_feed(feed)
            _clear_results_cache()
            logger.info("Scheduled GTFS static refresh complete.")
        except Exception as exc:
            logger.error("Scheduled GTFS static refresh failed: %s", exc, exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_db()
    logger.info("Database initialised.")

    with session_scope() as db:
        try:
            load_feed_cache(db)
        except MissingRequiredDataError as exc:
            logger.warning("Could not load feed on startup (no GTFS data yet?): %s", exc)

    if GTFS_STATIC_URL:
        scheduler.add_job(
            _scheduled_gtfs_refresh,
            "interval",
            hours=GTFS_REFRESH_HOURS,
            id="gtfs_static_refresh",
        )
        scheduler.start()
        logger.info("Scheduler started. GTFS refresh every %dh.", GTFS_REFRESH_HOURS)
    else:
        logger.info("Scheduled GTFS refresh disabled — GTFS_STATIC_URL not set.")

    yield

    # Shutdown
    if scheduler.running:
        scheduler.shutdown()


app = FastAPI(
    title="Stop Frequency Map",
    description="Scheduled trips per hour at every stop of a GTFS feed.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
async def health(session: Session = Depends(get_session)) -> HealthResponse:
    """
    Liveness + data-freshness check.

    Returns stored feed counts, optional-file presence and timestamps so
    operators can tell whether GTFS data has been loaded.
    """
    info = latest_import(session)
    loaded_at = get_last_loaded_at()

    next_refresh_at: str | None = None
    job = scheduler.get_job("gtfs_static_refresh")
    if job and job.next_run_time:
        next_refresh_at = job.next_run_time.isoformat()

    try:
        get_feed()
        feed_loaded = True
    except RuntimeError:
        feed_loaded = False

    return {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat(),
        "gtfs": {
            "stops": session.query(func.count(Stop.stop_id)).scalar() or 0,
            "trips": session.query(func.count(Trip.trip_id)).scalar() or 0,
            "stop_times": session.query(func.count(StopTime.id)).scalar() or 0,
            "has_calendar": bool(info and info.has_calendar),
            "has_calendar_dates": bool(info and info.has_calendar_dates),
            "has_frequencies": bool(info and info.has_frequencies),
            "last_imported_at": info.imported_at if info else None,
            "feed_loaded": feed_loaded,
            "last_loaded_at": loaded_at.isoformat() if loaded_at else None,
            "next_refresh_at": next_refresh_at,
        },
    }


@app.get("/frequencies", response_model=FrequenciesResponse)
def get_frequencies(
    date: str | None = Query(None, description="Service date as YYYY-MM-DD. Defaults to today."),
    start: str = Query(..., description="Window start (inclusive) as HH:MM:SS"),
    end: str = Query(..., description="Window end (exclusive) as HH:MM:SS; may exceed 24:00:00"),
    tier: FrequencyTier | None = Query(None, description="Only return stops in this tier"),
) -> FrequenciesResponse:
    """Return scheduled trips per hour and tier for every stop."""
    service_date, start_sec, end_sec, hours = _parse_request(date, start, end)
    feed = _loaded_feed()
    results = _frequencies(feed, service_date, start_sec, end_sec)

    stops = [
        {
            "stop_id": s.stop_id,
            "stop_name": s.name,
            "lat": s.latitude,
            "lon": s.longitude,
            "count": results[s.stop_id].count,
            "trips_per_hour": round(results[s.stop_id].frequency, 3),
            "tier": results[s.stop_id].tier.value,
        }
        for s in feed.stops
        if tier is None or results[s.stop_id].tier == tier
    ]
    return {
        "service_date": service_date.isoformat(),
        "window_start": format_time_of_day(start_sec),
        "window_end": format_time_of_day(end_sec),
        "window_hours": hours,
        "tier_counts": {t.value: n for t, n in tier_counts(results).items()},
        "warnings": [HEADWAY_WARNING] if feed.has_frequencies else [],
        "stops": stops,
    }


@app.get("/map", response_class=HTMLResponse)
def get_map(
    date: str | None = Query(None, description="Service date as YYYY-MM-DD. Defaults to today."),
    start: str = Query(..., description="Window start (inclusive) as HH:MM:SS"),
    end: str = Query(..., description="Window end (exclusive) as HH:MM:SS; may exceed 24:00:00"),
) -> HTMLResponse:
    """Render the frequency map as a standalone HTML page."""
    service_date, start_sec, end_sec, _ = _parse_request(date, start, end)
    feed = _loaded_feed()
    results = _frequencies(feed, service_date, start_sec, end_sec)
    return HTMLResponse(render_stop_map_html(feed.stops, results))


@app.post("/ingest/gtfs-static", response_model=IngestResponse)
async def trigger_gtfs_ingest(
    session: Session = Depends(get_session),
    _: None = Depends(_require_ingest_key),
) -> IngestResponse:
    """
    Manually trigger a GTFS static data refresh and reload the feed cache.
    (When GTFS_STATIC_URL is set this also runs on a schedule.)
    """
    try:
        feed = await refresh_static_data(session)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except httpx.HTTPError as exc:
        raise HTTPException(status_code=502, detail=f"Feed download failed: {exc}")
    except MissingRequiredDataError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    set_feed(feed)
    _clear_results_cache()
    return {
        "status": "ok",
        "message": (
            f"GTFS static data refreshed: {len(feed.stops)} stops, "
            f"{len(feed.trips)} trips, {len(feed.stop_visits)} stop times."
        ),
    }


def serve() -> None:
    """Run the API with uvicorn on API_HOST:API_PORT."""
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    serve()
