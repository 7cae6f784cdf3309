"""
Renders stop frequencies as an interactive Leaflet map (via folium).

One circle marker per stop, colored by FrequencyTier, on OpenStreetMap tiles.
The popup shows the stop name, trips per hour and total trips in the window.
"""

import html
import logging
from pathlib import Path
from typing import Iterable

import folium

from config import MAP_OUTPUT_PATH
from frequency.tiers import FrequencyTier, StopFrequency
from schedule.types import StopInfo

logger = logging.getLogger(__name__)

_EMPTY = StopFrequency(0, 0.0, FrequencyTier.BLACK)


def stop_popup_html(stop: StopInfo, result: StopFrequency) -> str:
    return (
        f"{html.escape(stop.name)}<br>"
        f"{result.frequency:.3f} trips per hour<br>"
        f"Total trips: {result.count}"
    )


def build_stop_map(stops: Iterable[StopInfo], results: dict[str, StopFrequency]) -> folium.Map:
    """
    Build a folium map with one marker per stop.

    Stops absent from `results` are drawn as black (0 trips).
    """
    stops = list(stops)
    if stops:
        center = [
            sum(s.latitude for s in stops) / len(stops),
            sum(s.longitude for s in stops) / len(stops),
        ]
    else:
        center = [0.0, 0.0]

    m = folium.Map(location=center, zoom_start=12, tiles="OpenStreetMap")
    for stop in stops:
        result = results.get(stop.stop_id, _EMPTY)
        folium.CircleMarker(
            location=[stop.latitude, stop.longitude],
            radius=6,
            color=result.tier.color,
            fill=True,
            fill_color=result.tier.color,
            fill_opacity=0.7,
            popup=folium.Popup(stop_popup_html(stop, result), max_width=300),
        ).add_to(m)

    if stops:
        m.fit_bounds([
            [min(s.latitude for s in stops), min(s.longitude for s in stops)],
            [max(s.latitude for s in stops), max(s.longitude for s in stops)],
        ])
    logger.info("Map created with %d stop markers.", len(stops))
    return m


def render_stop_map_html(stops: Iterable[StopInfo], results: dict[str, StopFrequency]) -> str:
    """Full standalone HTML document for the map."""
    return build_stop_map(stops, results).get_root().render()


def save_stop_map(m: folium.Map, path: str | Path = MAP_OUTPUT_PATH) -> Path:
    """Write the map to an HTML file, creating the parent directory."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    m.save(str(path))
    logger.info("Map was saved successfully to %s.", path.resolve())
    return path
