"""Unit tests for the trip timer and fare calculator."""

from datetime import datetime, timedelta, timezone

import pytest

from src.domain.fare import FareCalculator, round2, round_half_up

START = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class TestRounding:
    def test_round2_rounds_half_up(self):
        assert round2(1.005) == 1.01
        assert round2(2.675) == 2.68

    def test_round_half_up_is_not_bankers(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2


class TestDuration:
    @pytest.mark.parametrize(
        "seconds, minutes",
        [(0, 1), (1, 1), (59, 1), (60, 1), (61, 1), (90, 2), (150, 3), (3599, 60)],
    )
    def test_duration_minutes_floor_and_rounding(self, seconds, minutes):
        assert FareCalculator.duration_minutes(seconds) == minutes

    def test_instant_completion_counts_one_second(self):
        assert FareCalculator.duration_seconds(START, START) == 1

    def test_clock_skew_counts_one_second(self):
        assert FareCalculator.duration_seconds(START, START - timedelta(seconds=30)) == 1

    def test_partial_seconds_are_floored(self):
        end = START + timedelta(seconds=125, milliseconds=900)
        assert FareCalculator.duration_seconds(START, end) == 125


class TestFare:
    def setup_method(self):
        self.calc = FareCalculator(rate_per_minute=1.0, payout_fraction=0.8)

    def test_fare_is_rate_times_minutes(self):
        assert self.calc.fare_for(17) == 17.0

    def test_payout_is_eighty_percent_to_the_cent(self):
        for minutes in range(1, 200):
            fare = self.calc.fare_for(minutes)
            assert self.calc.payout_for(fare) == round2(fare * 0.8)
        assert self.calc.payout_for(7.0) == 5.6

    def test_fare_never_decreases_with_duration(self):
        fares = [self.calc.fare_for(m) for m in range(1, 500)]
        assert fares == sorted(fares)

    def test_fractional_rate_rounds_to_cents(self):
        calc = FareCalculator(rate_per_minute=0.333, payout_fraction=0.8)
        assert calc.fare_for(3) == 1.0
        assert calc.payout_for(calc.fare_for(3)) == 0.8


class TestCompleteTrip:
    def setup_method(self):
        self.calc = FareCalculator(rate_per_minute=1.0, payout_fraction=0.8)

    def test_reference_trip(self):
        metrics = self.calc.complete_trip(
            START, START + timedelta(seconds=125), accumulated_meters=1609.2
        )
        assert metrics.duration_seconds == 125
        assert metrics.duration_minutes == 2
        assert metrics.distance_meters == 1609
        assert metrics.fare == 2.00
        assert metrics.driver_payout == 1.60

    def test_stored_distance_wins_over_live_total(self):
        assert FareCalculator.billable_distance(500.0, stored_meters=2400) == 2400

    def test_zero_stored_distance_falls_back_to_live_total(self):
        assert FareCalculator.billable_distance(500.4, stored_meters=0) == 500
        assert FareCalculator.billable_distance(500.5, stored_meters=None) == 501


class TestLiveEstimate:
    def test_estimate_tracks_elapsed_time(self):
        calc = FareCalculator(rate_per_minute=1.0)
        estimate = calc.live_estimate(START, START + timedelta(seconds=90))
        assert estimate.elapsed_seconds == 90
        assert estimate.elapsed_minutes == 1.5
        assert estimate.estimated_fare == 1.5

    def test_estimate_never_negative(self):
        calc = FareCalculator(rate_per_minute=1.0)
        estimate = calc.live_estimate(START, START - timedelta(seconds=5))
        assert estimate.elapsed_seconds == 0
        assert estimate.estimated_fare == 0.0
