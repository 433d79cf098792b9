"""
Tests for time and frame utilities: Julian Day conversion, sidereal time,
and angle normalization.
"""

import pytest
from datetime import datetime, timedelta, timezone

from celnav.ephemeris.timescale import (
    J2000_JD, julian_day, julian_day_to_datetime, julian_centuries, sidereal_time_deg,
    gha_aries, normalize_degrees, normalize_signed_degrees, normalize_latitude,
    normalize_longitude, clamp_unit, equatorial_from_ecliptic, mean_obliquity_deg,
)


class TestJulianDay:
    """Tests for civil date <-> Julian Day conversion."""

    def test_j2000_epoch(self, j2000):
        """J2000.0 is JD 2451545.0."""
        assert julian_day(j2000) == 2451545.0

    def test_sputnik_launch(self):
        """Meeus example 7.a: 1957 October 4.81."""
        dt = datetime(1957, 10, 4, 19, 26, 24, tzinfo=timezone.utc)
        assert julian_day(dt) == pytest.approx(2436116.31, abs=1e-6)

    def test_january_uses_previous_year(self):
        """Jan/Feb dates are counted as months 13/14 of the previous year."""
        dt = datetime(2000, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        assert julian_day(dt) == 2451544.5

    def test_naive_datetime_is_utc(self):
        """Naive datetimes are treated as UTC."""
        aware = datetime(2024, 6, 1, 6, 0, tzinfo=timezone.utc)
        assert julian_day(aware.replace(tzinfo=None)) == julian_day(aware)

    def test_offset_datetime_converted(self):
        """Aware non-UTC datetimes are converted before conversion."""
        local = datetime(2024, 6, 1, 8, 0, tzinfo=timezone(timedelta(hours=2)))
        utc = datetime(2024, 6, 1, 6, 0, tzinfo=timezone.utc)
        assert julian_day(local) == julian_day(utc)

    def test_round_trip_whole_seconds(self):
        """Whole-second instants survive a round trip through the Julian Day."""
        t = datetime(1900, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        end = datetime(2100, 1, 1, tzinfo=timezone.utc)
        step = timedelta(days=37, hours=1, minutes=13, seconds=7)
        checked = 0
        while t < end:
            assert julian_day_to_datetime(julian_day(t)) == t
            t += step
            checked += 1
        assert checked > 1900

    def test_round_trip_day_boundaries(self):
        """Instants at midnight and one second before round-trip."""
        for dt in (
            datetime(2024, 2, 29, 0, 0, 0, tzinfo=timezone.utc),
            datetime(2024, 2, 28, 23, 59, 59, tzinfo=timezone.utc),
            datetime(1999, 12, 31, 23, 59, 59, tzinfo=timezone.utc),
        ):
            assert julian_day_to_datetime(julian_day(dt)) == dt


class TestSiderealTime:
    """Tests for Julian centuries and GMST."""

    def test_julian_centuries(self):
        assert julian_centuries(J2000_JD) == 0.0
        assert julian_centuries(J2000_JD + 36525.0) == pytest.approx(1.0)

    def test_gmst_at_epoch(self):
        assert sidereal_time_deg(J2000_JD) == pytest.approx(280.46061837, abs=1e-8)

    def test_gmst_meeus_example(self):
        """Meeus example 12.a: 1987-04-10 0h UT, GMST 13h10m46.3668s."""
        dt = datetime(1987, 4, 10, 0, 0, 0, tzinfo=timezone.utc)
        expected = (13 + 10 / 60 + 46.3668 / 3600) * 15
        assert gha_aries(dt) == pytest.approx(expected, abs=1e-4)

    def test_gmst_normalized(self):
        t = datetime(2020, 1, 1, tzinfo=timezone.utc)
        for hours in range(0, 24 * 40, 7):
            value = gha_aries(t + timedelta(hours=hours))
            assert 0.0 <= value < 360.0

    def test_mean_obliquity_at_epoch(self):
        assert mean_obliquity_deg(0.0) == pytest.approx(23.4392911, abs=1e-6)


class TestNormalization:
    """Tests for angle normalization helpers."""

    @pytest.mark.parametrize("angle,expected", [
        (0.0, 0.0), (360.0, 0.0), (720.0, 0.0), (-90.0, 270.0), (450.0, 90.0), (-720.5, 359.5),
    ])
    def test_normalize_degrees(self, angle, expected):
        assert normalize_degrees(angle) == pytest.approx(expected)

    def test_tiny_negative_stays_below_360(self):
        assert 0.0 <= normalize_degrees(-1e-15) < 360.0

    def test_normalize_idempotent(self):
        for angle in (-1000.25, -1.0, 0.0, 123.4, 359.999, 1e6):
            once = normalize_degrees(angle)
            assert normalize_degrees(once) == once

    @pytest.mark.parametrize("angle,expected", [(190.0, -170.0), (-190.0, 170.0), (180.0, -180.0), (10.0, 10.0)])
    def test_normalize_signed(self, angle, expected):
        assert normalize_signed_degrees(angle) == pytest.approx(expected)

    def test_latitude_clamped(self):
        assert normalize_latitude(91.0) == 90.0
        assert normalize_latitude(-95.0) == -90.0
        assert normalize_latitude(45.0) == 45.0

    def test_longitude_wrapped(self):
        assert normalize_longitude(190.0) == pytest.approx(-170.0)
        assert normalize_longitude(-181.0) == pytest.approx(179.0)

    def test_clamp_unit(self):
        assert clamp_unit(1.0000000002) == 1.0
        assert clamp_unit(-1.0000000002) == -1.0
        assert clamp_unit(0.5) == 0.5


class TestEclipticRotation:
    """Tests for ecliptic -> equatorial conversion."""

    def test_equinox_point(self):
        ra, dec = equatorial_from_ecliptic(0.0, 0.0, 23.44)
        assert ra == pytest.approx(0.0, abs=1e-9)
        assert dec == pytest.approx(0.0, abs=1e-9)

    def test_solstice_point(self):
        ra, dec = equatorial_from_ecliptic(90.0, 0.0, 23.44)
        assert ra == pytest.approx(90.0)
        assert dec == pytest.approx(23.44)

    def test_ecliptic_pole(self):
        ra, dec = equatorial_from_ecliptic(0.0, 90.0, 23.44)
        assert dec == pytest.approx(90.0 - 23.44)
