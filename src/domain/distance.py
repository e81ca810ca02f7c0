"""
Distance tracking using the Haversine formula.

Drivers report GPS fixes while a trip is running.  Each fix is compared
with the previous one and the great-circle distance between the two is
added to the trip total.  No map matching is attempted, so a trip that
follows curved roads between sparse samples is under-counted.

Complexity: O(1) per sample.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **metres** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


@dataclass
class DistanceTracker:
    """Running distance total fed by successive position samples."""

    total_meters: float = 0.0
    last_position: Optional[tuple[float, float]] = None

    def add_sample(self, lat: float, lng: float) -> float:
        """Record a fix and return the metres it added to the total."""
        added = 0.0
        if self.last_position is not None:
            added = haversine_m(
                self.last_position[0], self.last_position[1], lat, lng
            )
            self.total_meters += added
        self.last_position = (lat, lng)
        return added

    def reset(self) -> None:
        self.total_meters = 0.0
        self.last_position = None
