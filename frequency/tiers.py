"""
Converts per-stop visit counts into trips-per-hour and a color tier.

Tiers (closed-open bands, highest first):

  frequency (trips/hour)   tier
  >= 6                     dark-green
  [4, 6)                   green
  [3, 4)                   yellow
  [2, 3)                   orange
  [1, 2)                   red
  (0, 1)                   dark-red
  0                        black
"""

from enum import Enum
from typing import NamedTuple


class FrequencyTier(str, Enum):
    DARK_GREEN = "dark-green"
    GREEN = "green"
    YELLOW = "yellow"
    ORANGE = "orange"
    RED = "red"
    DARK_RED = "dark-red"
    BLACK = "black"

    @property
    def color(self) -> str:
        """CSS color name used for the map marker."""
        return self.value.replace("-", "")


# (lower bound inclusive, tier) — checked in order
_THRESHOLDS: list[tuple[float, FrequencyTier]] = [
    (6.0, FrequencyTier.DARK_GREEN),
    (4.0, FrequencyTier.GREEN),
    (3.0, FrequencyTier.YELLOW),
    (2.0, FrequencyTier.ORANGE),
    (1.0, FrequencyTier.RED),
]


class StopFrequency(NamedTuple):
    count: int
    frequency: float  # trips per hour
    tier: FrequencyTier


def classify_frequency(frequency: float) -> FrequencyTier:
    for lower, tier in _THRESHOLDS:
        if frequency >= lower:
            return tier
    if frequency > 0:
        return FrequencyTier.DARK_RED
    return FrequencyTier.BLACK


def classify(visit_counts: dict[str, int], window_duration_hours: float) -> dict[str, StopFrequency]:
    """Map each stop's count to (count, trips/hour, tier).  window_duration_hours must be > 0."""
    results = {}
    for stop_id, count in visit_counts.items():
        frequency = count / window_duration_hours
        results[stop_id] = StopFrequency(count, frequency, classify_frequency(frequency))
    return results


def tier_counts(results: dict[str, StopFrequency]) -> dict[FrequencyTier, int]:
    """Number of stops per tier, every tier present."""
    summary = {tier: 0 for tier in FrequencyTier}
    for result in results.values():
        summary[result.tier] += 1
    return summary
