"""
In-memory cache of the feed stored in the database.

Loading every stop_times row from the DB on each API request would dominate
request time, so the feed is loaded once after ingestion and kept at module
level.  It must be reloaded after each GTFS refresh.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ingestion.gtfs_static import load_feed_from_db
from schedule.types import Feed

logger = logging.getLogger(__name__)

_feed: Optional[Feed] = None
_last_loaded_at: Optional[datetime] = None


def get_feed() -> Feed:
    """Return the cached feed. Raises if not yet loaded."""
    if _feed is None:
        raise RuntimeError("GTFS feed has not been loaded yet. Call load_feed_cache() first.")
    return _feed


def get_last_loaded_at() -> Optional[datetime]:
    """Return the UTC timestamp of the last successful load_feed_cache() call, or None."""
    return _last_loaded_at


def load_feed_cache(session: Session) -> Feed:
    """Load the stored feed from the database and cache it."""
    global _feed, _last_loaded_at
    feed = load_feed_from_db(session)
    _feed = feed
    _last_loaded_at = datetime.utcnow()
    logger.info(
        "Feed cache loaded: %d stops, %d trips, %d stop times.",
        len(feed.stops), len(feed.trips), len(feed.stop_visits),
    )
    return feed


def set_feed(feed: Feed) -> None:
    """Replace the cached feed with one that is already in memory."""
    global _feed, _last_loaded_at
    _feed = feed
    _last_loaded_at = datetime.utcnow()


def clear_feed_cache() -> None:
    global _feed, _last_loaded_at
    _feed = None
    _last_loaded_at = None
