"""
Loads a GTFS static feed for frequency analysis.

A feed can come from an unzipped directory of .txt files, a .zip archive on
disk, zip bytes downloaded from GTFS_STATIC_URL, or the database (after
parse_and_store).  Every path produces the same schedule.types.Feed.

Feed contents used:
  trips.txt          → TripService          (required)
  stop_times.txt     → StopVisit            (required)
  stops.txt          → StopInfo             (required)
  calendar.txt       → WeeklyServicePattern (optional)
  calendar_dates.txt → ServiceDateException (optional)
  frequencies.txt    — not supported; only its presence is recorded
"""

import io
import logging
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Optional

import httpx
import pandas as pd
from sqlalchemy.orm import Session

from config import DATA_DIR, GTFS_STATIC_URL
from db.models import (
    FeedImport, ServiceCalendar, ServiceCalendarDate, Stop, StopTime, Trip,
)
from schedule.errors import InvalidInputError, MissingRequiredDataError
from schedule.times import WEEKDAYS, format_time_of_day, parse_time_of_day
from schedule.types import (
    ExceptionKind, Feed, ServiceDateException, StopInfo, StopVisit, TripService,
    WeeklyServicePattern,
)

logger = logging.getLogger(__name__)

GTFS_ZIP_PATH = DATA_DIR / "gtfs_static.zip"

REQUIRED_FILES = ("trips.txt", "stop_times.txt", "stops.txt")
OPTIONAL_FILES = ("calendar.txt", "calendar_dates.txt")
FREQUENCIES_FILE = "frequencies.txt"

_COLUMNS: dict[str, list[str]] = {
    "trips.txt": ["trip_id", "service_id"],
    "stop_times.txt": ["trip_id", "stop_id", "departure_time"],
    "stops.txt": ["stop_id", "stop_name", "stop_lat", "stop_lon"],
    "calendar.txt": ["service_id", *WEEKDAYS, "start_date", "end_date"],
    "calendar_dates.txt": ["service_id", "date", "exception_type"],
}


# ---------------------------------------------------------------------------
# Reading raw tables
# ---------------------------------------------------------------------------

def _read_csv(f, filename: str) -> pd.DataFrame:
    wanted = _COLUMNS[filename]
    df = pd.read_csv(f, dtype=str, encoding="utf-8-sig", usecols=lambda c: c.strip() in wanted)
    df.columns = [c.strip() for c in df.columns]
    missing = [c for c in wanted if c not in df.columns]
    if missing:
        raise MissingRequiredDataError(f"{filename} is missing columns: {', '.join(missing)}.")
    # Publishers sometimes pad values after the comma.
    return df.fillna("").apply(lambda col: col.str.strip())


def _read_tables_from_zip(zf: zipfile.ZipFile) -> tuple[dict[str, pd.DataFrame], bool]:
    # Some publishers nest the .txt files inside a folder.
    members = {Path(name).name: name for name in zf.namelist() if not name.endswith("/")}
    logger.info("GTFS zip contains: %s", sorted(members))
    tables = {}
    for filename in (*REQUIRED_FILES, *OPTIONAL_FILES):
        if filename in members:
            with zf.open(members[filename]) as f:
                tables[filename] = _read_csv(f, filename)
    return tables, FREQUENCIES_FILE in members


def _read_tables_from_dir(directory: Path) -> tuple[dict[str, pd.DataFrame], bool]:
    tables = {}
    for filename in (*REQUIRED_FILES, *OPTIONAL_FILES):
        path = directory / filename
        if path.is_file():
            tables[filename] = _read_csv(path, filename)
    return tables, (directory / FREQUENCIES_FILE).is_file()


def read_tables(source: str | Path | bytes) -> tuple[dict[str, pd.DataFrame], bool]:
    """
    Read the feed tables the pipeline needs.

    Args:
        source: Directory of GTFS .txt files, path to a .zip, or zip bytes.

    Returns:
        ({filename: DataFrame of str columns}, has_frequencies)

    Raises:
        MissingRequiredDataError: If the source does not exist or a required
                                  file is absent.
    """
    if isinstance(source, bytes):
        with zipfile.ZipFile(io.BytesIO(source)) as zf:
            tables, has_frequencies = _read_tables_from_zip(zf)
    else:
        path = Path(source)
        if path.is_dir():
            tables, has_frequencies = _read_tables_from_dir(path)
        elif path.is_file() and zipfile.is_zipfile(path):
            with zipfile.ZipFile(path) as zf:
                tables, has_frequencies = _read_tables_from_zip(zf)
        else:
            raise MissingRequiredDataError(f"GTFS source {str(path)!r} is not a directory or zip file.")

    missing = [name for name in REQUIRED_FILES if name not in tables]
    if missing:
        raise MissingRequiredDataError(f"Feed is missing required files: {', '.join(missing)}.")
    if has_frequencies:
        logger.warning("Reading of %s is not supported. Some stops may show 0 trips.", FREQUENCIES_FILE)
    return tables, has_frequencies


# ---------------------------------------------------------------------------
# DataFrame → records
# ---------------------------------------------------------------------------

def _parse_departures(series: pd.Series) -> pd.Series:
    """Parse HH:MM:SS once per distinct value; unparseable values become None."""
    parsed: dict[str, Optional[int]] = {}
    for value in series.unique():
        try:
            parsed[value] = parse_time_of_day(value)
        except InvalidInputError:
            parsed[value] = None
    return series.map(parsed)


def _trips(df: pd.DataFrame) -> tuple[TripService, ...]:
    return tuple(TripService(t, s) for t, s in zip(df["trip_id"], df["service_id"]))


def _stop_visits(df: pd.DataFrame) -> tuple[StopVisit, ...]:
    departures = _parse_departures(df["departure_time"])
    valid = departures.notna()
    skipped = int((~valid).sum())
    if skipped:
        logger.warning("Skipped %d stop_times with a blank or invalid departure_time.", skipped)
    return tuple(
        StopVisit(trip_id, stop_id, int(dep))
        for trip_id, stop_id, dep in zip(df["trip_id"][valid], df["stop_id"][valid], departures[valid])
    )


def _stops(df: pd.DataFrame) -> tuple[StopInfo, ...]:
    stops = []
    skipped = 0
    for stop_id, name, lat, lon in zip(df["stop_id"], df["stop_name"], df["stop_lat"], df["stop_lon"]):
        try:
            stops.append(StopInfo(stop_id, name, float(lat), float(lon)))
        except ValueError:
            skipped += 1
    if skipped:
        logger.warning("Skipped %d stops with invalid coordinates.", skipped)
    return tuple(stops)


def _weekly_patterns(df: pd.DataFrame) -> tuple[WeeklyServicePattern, ...]:
    return tuple(
        WeeklyServicePattern(
            service_id=row["service_id"],
            **{day: row[day].strip() == "1" for day in WEEKDAYS},
            start_date=row["start_date"].strip(),
            end_date=row["end_date"].strip(),
        )
        for row in df.to_dict("records")
    )


def _exceptions(df: pd.DataFrame) -> tuple[ServiceDateException, ...]:
    records = []
    skipped = 0
    for service_id, date, exception_type in zip(df["service_id"], df["date"], df["exception_type"]):
        try:
            kind = ExceptionKind(int(exception_type))
        except ValueError:
            skipped += 1
            continue
        records.append(ServiceDateException(service_id, date.strip(), kind))
    if skipped:
        logger.warning("Skipped %d calendar_dates rows with an invalid exception_type.", skipped)
    return tuple(records)


def feed_from_tables(tables: dict[str, pd.DataFrame], has_frequencies: bool = False) -> Feed:
    """Build a Feed from the DataFrames returned by read_tables()."""
    feed = Feed(
        trips=_trips(tables["trips.txt"]),
        stop_visits=_stop_visits(tables["stop_times.txt"]),
        stops=_stops(tables["stops.txt"]),
        weekly_patterns=(
            _weekly_patterns(tables["calendar.txt"]) if "calendar.txt" in tables else None
        ),
        exceptions=(
            _exceptions(tables["calendar_dates.txt"]) if "calendar_dates.txt" in tables else None
        ),
        has_frequencies=has_frequencies,
    )
    logger.info(
        "Loaded feed: %d stops, %d trips, %d stop times, calendar=%s, calendar_dates=%s.",
        len(feed.stops), len(feed.trips), len(feed.stop_visits),
        "absent" if feed.weekly_patterns is None else len(feed.weekly_patterns),
        "absent" if feed.exceptions is None else len(feed.exceptions),
    )
    return feed


def load_feed(source: str | Path | bytes) -> Feed:
    """Read a GTFS directory, zip path or zip bytes into a Feed."""
    if not isinstance(source, bytes):
        logger.info("Retrieving data from %s.", source)
    tables, has_frequencies = read_tables(source)
    return feed_from_tables(tables, has_frequencies)


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------

async def download_gtfs_zip(url: str = GTFS_STATIC_URL) -> bytes:
    """Download GTFS zip from the given URL and cache it to disk."""
    if not url:
        raise ValueError("GTFS_STATIC_URL is not configured. Set it in your .env file.")
    logger.info("Downloading GTFS static feed from %s", url)
    async with httpx.AsyncClient(timeout=60) as client:
        response = await client.get(url, follow_redirects=True)
        response.raise_for_status()
    GTFS_ZIP_PATH.write_bytes(response.content)
    logger.info("Saved GTFS zip to %s (%d bytes)", GTFS_ZIP_PATH, len(response.content))
    return response.content


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

def store_feed(feed: Feed, session: Session, source: str = "") -> None:
    """
    Replace the stored feed with `feed`.
    Clears existing data before inserting fresh records.
    """
    for model in (StopTime, Trip, Stop, ServiceCalendar, ServiceCalendarDate):
        session.query(model).delete()

    session.bulk_save_objects([
        Stop(stop_id=s.stop_id, stop_name=s.name, stop_lat=s.latitude, stop_lon=s.longitude)
        for s in feed.stops
    ])
    session.bulk_save_objects([Trip(trip_id=t.trip_id, service_id=t.service_id) for t in feed.trips])

    # The feed occasionally contains stop_times that reference trips or stops
    # not present in the feed.  SQLite silently ignores FK violations;
    # PostgreSQL raises immediately.
    valid_trips = {t.trip_id for t in feed.trips}
    valid_stops = {s.stop_id for s in feed.stops}
    records = [
        StopTime(trip_id=v.trip_id, stop_id=v.stop_id, departure_time=format_time_of_day(v.departure_time))
        for v in feed.stop_visits
        if v.trip_id in valid_trips and v.stop_id in valid_stops
    ]
    skipped = len(feed.stop_visits) - len(records)
    if skipped:
        logger.warning("Skipped %d stop_times with invalid trip_id or stop_id.", skipped)
    session.bulk_save_objects(records)

    session.bulk_save_objects([
        ServiceCalendar(
            service_id=p.service_id,
            **{day: p.runs_on(day) for day in WEEKDAYS},
            start_date=p.start_date,
            end_date=p.end_date,
        )
        for p in feed.weekly_patterns or ()
    ])
    session.bulk_save_objects([
        ServiceCalendarDate(service_id=e.service_id, date=e.date, exception_type=int(e.kind))
        for e in feed.exceptions or ()
    ])

    session.add(FeedImport(
        source=source,
        has_calendar=feed.weekly_patterns is not None,
        has_calendar_dates=feed.exceptions is not None,
        has_frequencies=feed.has_frequencies,
        imported_at=datetime.utcnow().isoformat(),
    ))
    session.commit()
    logger.info("GTFS static data committed to database (%d stop times).", len(records))


def parse_and_store(zip_bytes: bytes, session: Session, source: str = "") -> Feed:
    """Parse GTFS zip bytes and store them; returns the parsed Feed."""
    feed = load_feed(zip_bytes)
    store_feed(feed, session, source=source)
    return feed


def latest_import(session: Session) -> Optional[FeedImport]:
    return session.query(FeedImport).order_by(FeedImport.id.desc()).first()


def load_feed_from_db(session: Session) -> Feed:
    """
    Rebuild the stored feed.

    Raises:
        MissingRequiredDataError: If no feed has been stored yet.
    """
    info = latest_import(session)
    if info is None:
        raise MissingRequiredDataError("No GTFS feed stored — run POST /ingest/gtfs-static first.")

    trips = tuple(
        TripService(*row)
        for row in session.query(Trip.trip_id, Trip.service_id).order_by(Trip.trip_id)
    )
    stops = tuple(
        StopInfo(*row)
        for row in session.query(Stop.stop_id, Stop.stop_name, Stop.stop_lat, Stop.stop_lon)
        .order_by(Stop.stop_id)
    )
    stop_visits = tuple(
        StopVisit(trip_id, stop_id, parse_time_of_day(dep))
        for trip_id, stop_id, dep in session.query(
            StopTime.trip_id, StopTime.stop_id, StopTime.departure_time
        ).order_by(StopTime.id)
    )

    weekly_patterns = None
    if info.has_calendar:
        weekly_patterns = tuple(
            WeeklyServicePattern(
                service_id=c.service_id,
                **{day: bool(getattr(c, day)) for day in WEEKDAYS},
                start_date=c.start_date,
                end_date=c.end_date,
            )
            for c in session.query(ServiceCalendar).order_by(ServiceCalendar.id)
        )

    exceptions = None
    if info.has_calendar_dates:
        exceptions = tuple(
            ServiceDateException(d.service_id, d.date, ExceptionKind(d.exception_type))
            for d in session.query(ServiceCalendarDate).order_by(ServiceCalendarDate.id)
        )

    return Feed(
        trips=trips,
        stop_visits=stop_visits,
        stops=stops,
        weekly_patterns=weekly_patterns,
        exceptions=exceptions,
        has_frequencies=bool(info.has_frequencies),
    )


async def refresh_static_data(session: Session, url: str = GTFS_STATIC_URL) -> Feed:
    """Download and ingest a fresh copy of GTFS static data."""
    zip_bytes = await download_gtfs_zip(url)
    return parse_and_store(zip_bytes, session, source=url)
