"""
SQLAlchemy ORM models for the stored GTFS static feed.

GTFS time fields (departure_time) are stored as HH:MM:SS strings because the
GTFS spec allows values >= 24:00:00 for trips crossing midnight.  They are
converted to seconds by schedule.times when the feed is loaded for counting.
"""

from sqlalchemy import (
    Boolean, Column, Float, ForeignKey, Integer, String
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Stop(Base):
    __tablename__ = "stops"

    stop_id = Column(String, primary_key=True)
    stop_name = Column(String, nullable=False)
    stop_lat = Column(Float, nullable=False)
    stop_lon = Column(Float, nullable=False)


class Trip(Base):
    __tablename__ = "trips"

    trip_id = Column(String, primary_key=True)
    service_id = Column(String, index=True)


class StopTime(Base):
    __tablename__ = "stop_times"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(String, ForeignKey("trips.trip_id"), index=True)
    departure_time = Column(String)  # HH:MM:SS (may exceed 24:00:00)
    stop_id = Column(String, ForeignKey("stops.stop_id"), index=True)


class ServiceCalendar(Base):
    __tablename__ = "service_calendar"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_id = Column(String, index=True)
    monday = Column(Boolean)
    tuesday = Column(Boolean)
    wednesday = Column(Boolean)
    thursday = Column(Boolean)
    friday = Column(Boolean)
    saturday = Column(Boolean)
    sunday = Column(Boolean)
    start_date = Column(String)  # YYYYMMDD
    end_date = Column(String)    # YYYYMMDD


class ServiceCalendarDate(Base):
    __tablename__ = "service_calendar_dates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_id = Column(String, index=True)
    date = Column(String, index=True)  # YYYYMMDD
    exception_type = Column(Integer)   # 1 = service added, 2 = service removed


class FeedImport(Base):
    """One row per stored feed; records which optional files the feed had."""
    __tablename__ = "feed_imports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String)
    has_calendar = Column(Boolean, default=False)
    has_calendar_dates = Column(Boolean, default=False)
    has_frequencies = Column(Boolean, default=False)
    imported_at = Column(String)  # ISO 8601 timestamp
