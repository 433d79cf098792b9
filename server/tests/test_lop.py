"""
Tests for lines of position, fixes and the LOP store.
"""

import math
import threading

import pytest
from datetime import datetime, timezone

from celnav.config import ReductionConfig
from celnav.errors import NoIntersection
from celnav.models import FixKind, GeoPosition, bearing_and_distance
from celnav.sight.lop import (
    LineOfPosition, LopStore, advance_lop, crossing_angle, fix_quality,
    intersect_lops, least_squares_fix,
)
from celnav.sight.reduction import SightReduction

WHEN = datetime(2024, 3, 15, 23, 30, tzinfo=timezone.utc)
AP = GeoPosition(30.0, -40.0)


def make_lop(azimuth: float, intercept: float, ap: GeoPosition = AP) -> LineOfPosition:
    reduction = SightReduction(
        body="Vega", time=WHEN, assumed_position=ap, gha=0.0, dec=0.0, lha=0.0,
        computed_altitude=30.0, azimuth=azimuth,
        observed_altitude=30.0 + intercept / 60.0, intercept=intercept,
    )
    return LineOfPosition.from_reduction(reduction)


def rms_distance(lops, position: GeoPosition) -> float:
    """RMS perpendicular distance in nm from a position to each line."""
    total = 0.0
    for lop in lops:
        east, north = lop.intercept_point.to_local(position)
        a = math.radians(lop.azimuth)
        total += (east * math.sin(a) + north * math.cos(a)) ** 2
    return math.sqrt(total / len(lops))


class TestLineOfPosition:
    """Tests for LOP construction."""

    def test_chord_perpendicular_to_azimuth(self):
        lop = make_lop(0.0, 5.0)
        assert lop.intercept_point.lat == pytest.approx(30.0 + 5.0 / 60.0)
        assert lop.bearing == 90.0

        bearing, distance = bearing_and_distance(lop.intercept_point, lop.start)
        assert bearing == pytest.approx(90.0)
        assert distance == pytest.approx(60.0)
        bearing, distance = bearing_and_distance(lop.intercept_point, lop.end)
        assert bearing == pytest.approx(270.0)
        assert distance == pytest.approx(60.0)

    def test_custom_half_length(self):
        lop = LineOfPosition.from_reduction(make_lop(45.0, 0.0).reduction, half_length_nm=10.0)
        _, distance = bearing_and_distance(lop.intercept_point, lop.start)
        assert distance == pytest.approx(10.0)


class TestCrossing:
    """Tests for crossing angles and fix quality."""

    @pytest.mark.parametrize("a,b,expected", [
        (0.0, 90.0, 90.0), (10.0, 200.0, 10.0), (350.0, 10.0, 20.0), (0.0, 180.0, 0.0), (45.0, 45.0, 0.0),
    ])
    def test_crossing_angle(self, a, b, expected):
        assert crossing_angle(a, b) == pytest.approx(expected)

    @pytest.mark.parametrize("angle,quality", [
        (90.0, "good"), (31.0, "good"), (30.0, "fair"), (15.0, "fair"), (14.9, "poor"), (0.0, "poor"),
    ])
    def test_fix_quality(self, angle, quality):
        assert fix_quality(angle) == quality

    def test_fix_quality_thresholds_configurable(self):
        config = ReductionConfig(good_fix_angle_deg=60.0, fair_fix_angle_deg=40.0)
        assert fix_quality(50.0, config) == "fair"
        assert fix_quality(30.0, config) == "poor"


class TestIntersection:
    """Tests for two-LOP fixes."""

    def test_perpendicular_lops(self):
        north = make_lop(0.0, 5.0)
        east = make_lop(90.0, 3.0)
        fix = intersect_lops(north, east)

        assert fix.kind is FixKind.CELESTIAL
        assert fix.position.lat == pytest.approx(north.intercept_point.lat, abs=1e-9)
        assert fix.position.lon == pytest.approx(east.intercept_point.lon, abs=1e-9)
        assert fix.crossing_angle == pytest.approx(90.0)
        assert fix.quality == "good"

    def test_order_does_not_matter(self):
        a = make_lop(20.0, 7.0)
        b = make_lop(130.0, -4.0)
        ab = intersect_lops(a, b)
        ba = intersect_lops(b, a)
        assert ab.position.lat == pytest.approx(ba.position.lat, abs=1e-6)
        assert ab.position.lon == pytest.approx(ba.position.lon, abs=1e-6)

    def test_fix_lies_on_both_lines(self):
        a = make_lop(20.0, 7.0)
        b = make_lop(130.0, -4.0)
        fix = intersect_lops(a, b)
        for lop in (a, b):
            bearing, distance = bearing_and_distance(lop.intercept_point, fix.position)
            # the fix is along the chord, perpendicular to the azimuth
            assert crossing_angle(bearing, lop.bearing) == pytest.approx(0.0, abs=1e-3)
            assert distance < 60.0

    @pytest.mark.parametrize("az_a,az_b", [(0.0, 180.0), (45.0, 45.0), (90.0, 270.0)])
    def test_parallel_lops(self, az_a, az_b):
        result = intersect_lops(make_lop(az_a, 5.0), make_lop(az_b, 2.0))
        assert isinstance(result, NoIntersection)
        assert result.code == "GEOMETRY.NO_INTERSECTION"
        assert "parallel" in result.reason

    def test_shallow_crossing_is_poor(self):
        fix = intersect_lops(make_lop(0.0, 0.0), make_lop(10.0, 1.0))
        assert fix.quality == "poor"


class TestLeastSquares:
    """Tests for the multi-LOP fix."""

    def test_two_lops_match_intersection(self):
        a = make_lop(0.0, 5.0)
        b = make_lop(90.0, 3.0)
        result = least_squares_fix([a, b])
        crossed = intersect_lops(a, b)

        assert result.lop_count == 2
        assert result.rms_residual_nm == pytest.approx(0.0, abs=1e-6)
        assert result.fix.position.lat == pytest.approx(crossed.position.lat, abs=1e-6)
        assert result.fix.position.lon == pytest.approx(crossed.position.lon, abs=1e-6)

    def test_concurrent_lines(self):
        """Three LOPs through the same point give that point with no residual."""
        lops = [make_lop(az, 0.0) for az in (10.0, 130.0, 250.0)]
        result = least_squares_fix(lops)
        assert result.fix.position.lat == pytest.approx(AP.lat, abs=1e-6)
        assert result.fix.position.lon == pytest.approx(AP.lon, abs=1e-6)
        assert result.rms_residual_nm == pytest.approx(0.0, abs=1e-6)
        assert result.fix.quality == "good"

    def test_cocked_hat(self):
        lops = [make_lop(0.0, 5.0), make_lop(90.0, 3.0), make_lop(225.0, 0.0)]
        result = least_squares_fix(lops)
        assert result.lop_count == 3
        assert result.rms_residual_nm > 0.1
        assert 29.9 < result.fix.position.lat < 30.2
        assert result.iterations >= 1

    def test_needs_two_lops(self):
        assert isinstance(least_squares_fix([]), NoIntersection)
        assert isinstance(least_squares_fix([make_lop(0.0, 1.0)]), NoIntersection)

    def test_parallel_set(self):
        result = least_squares_fix([make_lop(0.0, 1.0), make_lop(180.0, 4.0)])
        assert isinstance(result, NoIntersection)

    def test_cocked_hat_is_a_minimum(self):
        lops = [make_lop(0.0, 5.0), make_lop(90.0, 3.0), make_lop(225.0, 0.0)]
        result = least_squares_fix(lops)
        best = rms_distance(lops, result.fix.position)
        assert result.rms_residual_nm == pytest.approx(best, abs=1e-9)
        for bearing in (0.0, 90.0, 180.0, 270.0):
            assert rms_distance(lops, result.fix.position.offset(bearing, 0.5)) > best

    def test_shallow_crossing_still_solved(self):
        result = least_squares_fix([make_lop(0.0, 1.0), make_lop(1.0, 2.0)])
        assert not isinstance(result, NoIntersection)
        assert result.fix.quality == "poor"
        assert result.rms_residual_nm == pytest.approx(0.0, abs=1e-6)


class TestAdvance:
    """Tests for moving an LOP along the vessel's run."""

    def test_advance_north(self):
        lop = make_lop(90.0, 0.0)
        moved = advance_lop(lop, course=0.0, speed_kn=10.0, hours=1.5)

        assert moved.intercept_point.lat == pytest.approx(lop.intercept_point.lat + 0.25)
        assert moved.intercept_point.lon == pytest.approx(lop.intercept_point.lon)
        assert moved.start.lat == pytest.approx(lop.start.lat + 0.25)
        assert moved.azimuth == lop.azimuth
        assert moved.advanced_nm == pytest.approx(15.0)

    def test_advance_accumulates(self):
        lop = make_lop(90.0, 0.0)
        moved = advance_lop(advance_lop(lop, 0.0, 6.0, 1.0), 90.0, 6.0, 0.5)
        assert moved.advanced_nm == pytest.approx(9.0)

    def test_original_untouched(self):
        lop = make_lop(90.0, 0.0)
        advance_lop(lop, 0.0, 10.0, 1.0)
        assert lop.advanced_nm == 0.0


class TestLopStore:
    """Tests for the user-managed LOP collection."""

    def test_ids_assigned_in_order(self):
        store = LopStore()
        first = store.add(make_lop(0.0, 1.0))
        second = store.add_reduction(make_lop(90.0, 1.0).reduction)
        assert (first.lop_id, second.lop_id) == (1, 2)
        assert [lop.lop_id for lop in store.list()] == [1, 2]
        assert store.get(2) == second

    def test_oldest_evicted_when_full(self):
        store = LopStore(ReductionConfig(max_lops=2))
        for az in (0.0, 60.0, 120.0):
            store.add(make_lop(az, 1.0))
        assert [lop.lop_id for lop in store.list()] == [2, 3]
        assert store.get(1) is None
        assert len(store) == 2

    def test_delete(self):
        store = LopStore()
        stored = store.add(make_lop(0.0, 1.0))
        assert store.delete(stored.lop_id) is True
        assert store.delete(stored.lop_id) is False
        assert store.list() == []

    def test_clear(self):
        store = LopStore()
        for az in (0.0, 60.0, 120.0):
            store.add(make_lop(az, 1.0))
        assert store.clear() == 3
        assert store.clear() == 0
        # ids keep increasing after a clear
        assert store.add(make_lop(0.0, 1.0)).lop_id == 4

    def test_len_while_adding_from_threads(self):
        store = LopStore()
        sizes = []

        def add_lines():
            for az in range(0, 200, 10):
                store.add(make_lop(float(az), 1.0))
                sizes.append(len(store))

        workers = [threading.Thread(target=add_lines) for _ in range(4)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        assert len(store) == 80
        assert all(1 <= size <= 80 for size in sizes)
        assert [lop.lop_id for lop in store.list()] == list(range(1, 81))
