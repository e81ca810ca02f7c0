"""
Trip Timer & Fare Calculator
============================

Formula
-------
duration_seconds = max(1, floor(elapsed_ms / 1000))
duration_minutes = max(1, round(duration_seconds / 60))
fare             = round2(duration_minutes x Rate_Per_Minute)
driver_payout    = round2(fare x Payout_Fraction)

* The one-second / one-minute floors keep fares positive when clocks skew
  or a trip is ended straight after it was started.
* Rounding is half-up, both for whole minutes and for cents.

Complexity: O(1) per calculation.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

_CENT = Decimal("0.01")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def round2(value: float) -> float:
    """Round to cents, halves away from zero."""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def elapsed_ms(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() * 1000


# ── Value objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class TripMetrics:
    duration_seconds: int
    duration_minutes: int
    distance_meters: int
    fare: float
    driver_payout: float


@dataclass(frozen=True)
class LiveTripEstimate:
    elapsed_seconds: int
    elapsed_minutes: float
    estimated_fare: float


# ── Calculator ────────────────────────────────────────────────────────


class FareCalculator:
    """High-level API used by the dispatch coordinator and the live feed."""

    def __init__(self, rate_per_minute: float = 1.0, payout_fraction: float = 0.8):
        self.rate_per_minute = rate_per_minute
        self.payout_fraction = payout_fraction

    @staticmethod
    def duration_seconds(start: datetime, end: datetime) -> int:
        return max(1, math.floor(elapsed_ms(start, end) / 1000))

    @staticmethod
    def duration_minutes(duration_seconds: int) -> int:
        return max(1, round_half_up(duration_seconds / 60))

    @staticmethod
    def billable_distance(
        accumulated_meters: float, stored_meters: Optional[float] = None
    ) -> int:
        """Prefer a previously stored non-zero distance over the live total."""
        if stored_meters is not None and stored_meters > 0:
            total = stored_meters
        else:
            total = accumulated_meters
        return max(0, round_half_up(total))

    def fare_for(self, duration_minutes: int) -> float:
        return round2(duration_minutes * self.rate_per_minute)

    def payout_for(self, fare: float) -> float:
        return round2(fare * self.payout_fraction)

    def complete_trip(
        self,
        start: datetime,
        end: datetime,
        accumulated_meters: float,
        stored_meters: Optional[float] = None,
    ) -> TripMetrics:
        seconds = self.duration_seconds(start, end)
        minutes = self.duration_minutes(seconds)
        fare = self.fare_for(minutes)
        return TripMetrics(
            duration_seconds=seconds,
            duration_minutes=minutes,
            distance_meters=self.billable_distance(accumulated_meters, stored_meters),
            fare=fare,
            driver_payout=self.payout_for(fare),
        )

    def live_estimate(self, start: datetime, now: datetime) -> LiveTripEstimate:
        """Display-only running fare; never persisted."""
        ms = max(0.0, elapsed_ms(start, now))
        minutes = ms / 60_000
        return LiveTripEstimate(
            elapsed_seconds=math.floor(ms / 1000),
            elapsed_minutes=minutes,
            estimated_fare=minutes * self.rate_per_minute,
        )
