"""
Integration tests for API endpoints.

The FastAPI lifespan (init_db, feed cache load) is patched out for every
test.  Each test gets its own in-memory SQLite database via the db_session
/ client fixtures, and the module-level feed cache is reset around it.
"""

import pytest
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from db.session import get_session
from frequency.pipeline import compute_feed_frequencies
from ingestion.feed_cache import clear_feed_cache, get_feed, set_feed
from schedule.times import WEEKDAYS
from schedule.types import (
    ExceptionKind, Feed, ServiceDateException, StopInfo, StopVisit, TripService,
    WeeklyServicePattern,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _feed(**overrides) -> Feed:
    """Service A runs on Fridays of 2023; T1 visits S1 at 08:00 and 25:00."""
    kwargs = dict(
        trips=(TripService("T1", "A"),),
        stop_visits=(StopVisit("T1", "S1", 8 * 3600), StopVisit("T1", "S1", 25 * 3600)),
        stops=(
            StopInfo("S1", "Main St", 43.65, -79.38),
            StopInfo("S2", "King St", 43.66, -79.39),
        ),
        weekly_patterns=(
            WeeklyServicePattern(
                service_id="A", start_date="20230101", end_date="20231231",
                **{day: day == "friday" for day in WEEKDAYS},
            ),
        ),
        exceptions=(),
    )
    kwargs.update(overrides)
    return Feed(**kwargs)


@pytest.fixture
def client(db_session):
    """
    TestClient with:
      - lifespan init_db / load_feed_cache patched to no-ops
      - get_session dependency overridden to use the test db_session
      - empty feed cache and result cache
    """
    from api.main import _clear_results_cache, app

    def override_get_session():
        yield db_session

    clear_feed_cache()
    _clear_results_cache()
    with (
        patch("api.main.init_db"),
        patch("api.main.load_feed_cache"),
        patch("api.main.GTFS_STATIC_URL", ""),
    ):
        app.dependency_overrides[get_session] = override_get_session
        with TestClient(app, raise_server_exceptions=True) as c:
            yield c
        app.dependency_overrides.clear()
    clear_feed_cache()
    _clear_results_cache()


@pytest.fixture
def loaded_client(client):
    set_feed(_feed())
    return client


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------

class TestHealth:
    def test_returns_200(self, client):
        assert client.get("/health").status_code == 200

    def test_contains_status_ok(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert "timestamp" in body

    def test_gtfs_section_present(self, client):
        gtfs = client.get("/health").json()["gtfs"]
        for key in (
            "stops", "trips", "stop_times", "has_calendar", "has_calendar_dates",
            "has_frequencies", "last_imported_at", "feed_loaded", "last_loaded_at",
            "next_refresh_at",
        ):
            assert key in gtfs

    def test_empty_db_returns_zero_counts(self, client):
        gtfs = client.get("/health").json()["gtfs"]
        assert gtfs["stops"] == 0
        assert gtfs["trips"] == 0
        assert gtfs["stop_times"] == 0
        assert gtfs["last_imported_at"] is None
        assert gtfs["has_calendar"] is False

    def test_feed_not_loaded_reports_false(self, client):
        assert client.get("/health").json()["gtfs"]["feed_loaded"] is False

    def test_feed_loaded_reports_true(self, loaded_client):
        gtfs = loaded_client.get("/health").json()["gtfs"]
        assert gtfs["feed_loaded"] is True
        assert gtfs["last_loaded_at"] is not None


# ---------------------------------------------------------------------------
# GET /frequencies
# ---------------------------------------------------------------------------

class TestFrequencies:
    URL = "/frequencies?date=2023-10-13&start=06:00:00&end=21:00:00"

    def test_no_feed_returns_409(self, client):
        assert client.get(self.URL).status_code == 409

    def test_friday_counts(self, loaded_client):
        body = loaded_client.get(self.URL).json()
        stops = {s["stop_id"]: s for s in body["stops"]}
        assert stops["S1"]["count"] == 1
        assert stops["S1"]["trips_per_hour"] == pytest.approx(0.067)
        assert stops["S1"]["tier"] == "dark-red"
        assert stops["S2"]["count"] == 0
        assert stops["S2"]["tier"] == "black"

    def test_window_echoed(self, loaded_client):
        body = loaded_client.get(self.URL).json()
        assert body["service_date"] == "2023-10-13"
        assert body["window_start"] == "06:00:00"
        assert body["window_end"] == "21:00:00"
        assert body["window_hours"] == 15.0

    def test_tier_counts(self, loaded_client):
        counts = loaded_client.get(self.URL).json()["tier_counts"]
        assert counts["dark-red"] == 1
        assert counts["black"] == 1
        assert counts["green"] == 0

    def test_late_night_window(self, loaded_client):
        body = loaded_client.get("/frequencies?date=2023-10-13&start=06:00:00&end=27:00:00").json()
        s1 = next(s for s in body["stops"] if s["stop_id"] == "S1")
        assert s1["count"] == 2
        assert body["window_end"] == "27:00:00"

    def test_removed_service(self, client):
        removal = ServiceDateException("A", "20231013", ExceptionKind.REMOVE)
        set_feed(_feed(exceptions=(removal,)))
        body = client.get(self.URL).json()
        assert all(s["tier"] == "black" for s in body["stops"])

    def test_tier_filter(self, loaded_client):
        body = loaded_client.get(self.URL + "&tier=black").json()
        assert [s["stop_id"] for s in body["stops"]] == ["S2"]

    def test_unknown_tier_returns_422(self, loaded_client):
        assert loaded_client.get(self.URL + "&tier=purple").status_code == 422

    def test_invalid_time_returns_422(self, loaded_client):
        resp = loaded_client.get("/frequencies?date=2023-10-13&start=6am&end=21:00:00")
        assert resp.status_code == 422

    def test_inverted_window_returns_422(self, loaded_client):
        resp = loaded_client.get("/frequencies?date=2023-10-13&start=21:00:00&end=06:00:00")
        assert resp.status_code == 422

    def test_invalid_date_returns_422(self, loaded_client):
        resp = loaded_client.get("/frequencies?date=2023-02-30&start=06:00:00&end=21:00:00")
        assert resp.status_code == 422

    def test_invalid_input_checked_before_feed(self, client):
        # No feed loaded, but the bad window is reported first.
        resp = client.get("/frequencies?date=2023-10-13&start=21:00:00&end=21:00:00")
        assert resp.status_code == 422

    def test_headway_warning(self, client):
        set_feed(_feed(has_frequencies=True))
        body = client.get(self.URL).json()
        assert len(body["warnings"]) == 1
        assert "frequencies.txt" in body["warnings"][0]

    def test_no_warning_for_plain_feed(self, loaded_client):
        assert loaded_client.get(self.URL).json()["warnings"] == []

    def test_results_cached(self, loaded_client):
        with patch("api.main.compute_feed_frequencies", wraps=compute_feed_frequencies) as compute:
            loaded_client.get(self.URL)
            loaded_client.get(self.URL)
        assert compute.call_count == 1


# ---------------------------------------------------------------------------
# GET /map
# ---------------------------------------------------------------------------

class TestMap:
    def test_returns_html(self, loaded_client):
        resp = loaded_client.get("/map?date=2023-10-13&start=06:00:00&end=21:00:00")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        assert "Main St" in resp.text

    def test_no_feed_returns_409(self, client):
        assert client.get("/map?date=2023-10-13&start=06:00:00&end=21:00:00").status_code == 409

    def test_invalid_window_returns_422(self, loaded_client):
        assert loaded_client.get("/map?date=2023-10-13&start=21:00:00&end=06:00:00").status_code == 422


# ---------------------------------------------------------------------------
# POST /ingest/gtfs-static
# ---------------------------------------------------------------------------

class TestIngest:
    """
    The ingest endpoint is open when INGEST_API_KEY is unset (local dev)
    and requires a matching X-API-Key header when it is set.
    """

    def test_refresh_loads_feed(self, client):
        feed = _feed()
        with patch("api.main.refresh_static_data", new=AsyncMock(return_value=feed)):
            resp = client.post("/ingest/gtfs-static")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert "2 stops" in resp.json()["message"]
        assert get_feed() is feed

    def test_refresh_clears_result_cache(self, loaded_client):
        url = "/frequencies?date=2023-10-13&start=06:00:00&end=21:00:00"
        assert loaded_client.get(url).json()["stops"][0]["count"] == 1
        removal = ServiceDateException("A", "20231013", ExceptionKind.REMOVE)
        with patch("api.main.refresh_static_data", new=AsyncMock(return_value=_feed(exceptions=(removal,)))):
            loaded_client.post("/ingest/gtfs-static")
        assert loaded_client.get(url).json()["stops"][0]["count"] == 0

    def test_missing_url_returns_400(self, client):
        with patch("api.main.refresh_static_data", new=AsyncMock(side_effect=ValueError("not configured"))):
            assert client.post("/ingest/gtfs-static").status_code == 400

    def test_open_without_key(self, client):
        with (
            patch("api.main.INGEST_API_KEY", ""),
            patch("api.main.refresh_static_data", new=AsyncMock(return_value=_feed())),
        ):
            assert client.post("/ingest/gtfs-static").status_code == 200

    def test_missing_key_rejected(self, client):
        with (
            patch("api.main.INGEST_API_KEY", "secret"),
            patch("api.main.refresh_static_data", new=AsyncMock(return_value=_feed())),
        ):
            assert client.post("/ingest/gtfs-static").status_code == 401

    def test_matching_key_accepted(self, client):
        with (
            patch("api.main.INGEST_API_KEY", "secret"),
            patch("api.main.refresh_static_data", new=AsyncMock(return_value=_feed())),
        ):
            resp = client.post("/ingest/gtfs-static", headers={"X-API-Key": "secret"})
        assert resp.status_code == 200


# ---------------------------------------------------------------------------
# serve()
# ---------------------------------------------------------------------------

class TestServe:
    def test_runs_uvicorn_on_configured_address(self):
        from api.main import app, serve

        with (
            patch("api.main.API_HOST", "127.0.0.1"),
            patch("api.main.API_PORT", 9000),
            patch("api.main.uvicorn.run") as run,
        ):
            serve()
        run.assert_called_once_with(app, host="127.0.0.1", port=9000)
