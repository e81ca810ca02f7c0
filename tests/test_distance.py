"""Unit tests for haversine distance and the running distance tracker."""

import math

import pytest

from src.domain.distance import EARTH_RADIUS_M, DistanceTracker, haversine_m


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_m(19.0, 72.0, 19.0, 72.0) == 0.0

    def test_one_hundredth_degree_at_equator(self):
        d = haversine_m(0.0, 0.0, 0.0, 0.01)
        assert d == pytest.approx(1111.95, abs=0.01)

    def test_meridian_arc_matches_radius(self):
        dlat = math.degrees(1609 / EARTH_RADIUS_M)
        assert haversine_m(0.0, 0.0, dlat, 0.0) == pytest.approx(1609.0)

    def test_symmetric(self):
        d1 = haversine_m(19.0, 72.0, 20.0, 73.0)
        d2 = haversine_m(20.0, 73.0, 19.0, 72.0)
        assert abs(d1 - d2) < 1e-6


class TestDistanceTracker:
    def test_first_sample_adds_nothing(self):
        tracker = DistanceTracker()
        assert tracker.add_sample(0.0, 0.0) == 0.0
        assert tracker.total_meters == 0.0
        assert tracker.last_position == (0.0, 0.0)

    def test_two_equal_steps_double_the_single_step(self):
        step = haversine_m(0.0, 0.0, 0.0, 0.01)
        tracker = DistanceTracker()
        for lng in (0.0, 0.01, 0.02):
            tracker.add_sample(0.0, lng)
        assert tracker.total_meters == pytest.approx(2 * step)

    def test_add_sample_returns_step_distance(self):
        tracker = DistanceTracker()
        tracker.add_sample(0.0, 0.0)
        added = tracker.add_sample(0.0, 0.01)
        assert added == pytest.approx(haversine_m(0.0, 0.0, 0.0, 0.01))
        assert tracker.last_position == (0.0, 0.01)

    def test_reset_clears_total_and_position(self):
        tracker = DistanceTracker()
        tracker.add_sample(0.0, 0.0)
        tracker.add_sample(0.0, 0.01)
        tracker.reset()
        assert tracker.total_meters == 0.0
        assert tracker.last_position is None
        assert tracker.add_sample(5.0, 5.0) == 0.0
