"""
Tests for horizon geometry, visibility, recommendations and identification.
"""

import pytest
from datetime import datetime, timedelta, timezone

from celnav.config import VisibilityConfig
from celnav.ephemeris.bodies import BodyKind
from celnav.ephemeris.timescale import normalize_signed_degrees
from celnav.horizon import (
    alt_az, identify_bodies, navigational_triangle, recommendation_reason,
    recommended_bodies, sun_altitude, visible_bodies,
)
from celnav.models import GeoPosition


def circular_diff(a: float, b: float) -> float:
    return abs(normalize_signed_degrees(a - b))


class TestNavigationalTriangle:
    """Tests for altitude/azimuth from the navigational triangle."""

    def test_zenith(self):
        """Body at the observer's zenith: LHA 0, dec = lat."""
        altitude, azimuth = navigational_triangle(0.0, 35.0, 35.0)
        assert altitude == pytest.approx(90.0)
        assert 0.0 <= azimuth < 360.0

    def test_on_meridian_south(self):
        """Northern observer, body on the meridian with lower declination bears south."""
        altitude, azimuth = navigational_triangle(0.0, 10.0, 40.0)
        assert altitude == pytest.approx(60.0)
        assert azimuth == pytest.approx(180.0)

    def test_west_of_meridian(self):
        """LHA in (0, 180): body is west."""
        _, azimuth = navigational_triangle(60.0, 0.0, 30.0)
        assert 180.0 < azimuth < 360.0

    def test_east_of_meridian(self):
        """LHA in (180, 360): body is east."""
        _, azimuth = navigational_triangle(300.0, 0.0, 30.0)
        assert 0.0 < azimuth < 180.0

    def test_east_west_symmetry(self):
        alt_w, az_w = navigational_triangle(45.0, 15.0, 20.0)
        alt_e, az_e = navigational_triangle(315.0, 15.0, 20.0)
        assert alt_w == pytest.approx(alt_e)
        assert az_w == pytest.approx(360.0 - az_e)

    def test_pole_has_no_nan(self):
        altitude, azimuth = navigational_triangle(123.0, 20.0, 90.0)
        assert altitude == pytest.approx(20.0)
        assert azimuth == 0.0

    def test_outputs_normalized(self):
        for lha in range(0, 360, 17):
            for dec in (-80, -23, 0, 23, 80):
                for lat in (-89, -45, 0, 45, 89):
                    altitude, azimuth = navigational_triangle(float(lha), float(dec), float(lat))
                    assert -90.0 <= altitude <= 90.0
                    assert 0.0 <= azimuth < 360.0
                    assert altitude == altitude and azimuth == azimuth  # not NaN

    def test_alt_az_uses_east_longitude(self):
        """LHA = GHA + longitude (east positive)."""
        horizon = alt_az(250.0, 20.0, 40.0, -70.0)
        assert horizon.lha == pytest.approx(180.0)
        assert horizon.altitude == pytest.approx(-30.0)


class TestVisibility:
    """Tests for visible bodies, recommendations and identification."""

    # Mid-Atlantic evening twilight
    observer = GeoPosition(35.0, -40.0)
    night = datetime(2024, 3, 16, 0, 0, tzinfo=timezone.utc)
    noon = datetime(2024, 3, 15, 14, 40, tzinfo=timezone.utc)

    def test_sun_altitude_at_local_noon(self):
        assert sun_altitude(self.observer, self.noon) > 50.0

    def test_no_stars_in_daylight(self):
        bodies = visible_bodies(self.observer, self.noon)
        assert all(b.position.body.kind is not BodyKind.STAR for b in bodies)
        assert any(b.position.body.kind is BodyKind.SUN for b in bodies)

    def test_stars_at_night(self):
        assert sun_altitude(self.observer, self.night) < -6.0
        bodies = visible_bodies(self.observer, self.night)
        stars = [b for b in bodies if b.position.body.kind is BodyKind.STAR]
        assert len(stars) > 10

    def test_sorted_and_above_minimum(self):
        bodies = visible_bodies(self.observer, self.night, min_altitude=15.0)
        altitudes = [b.altitude for b in bodies]
        assert altitudes == sorted(altitudes, reverse=True)
        assert all(a >= 15.0 for a in altitudes)

    def test_recommendations_well_spread(self):
        picks = recommended_bodies(self.observer, self.night)
        assert 1 <= len(picks) <= 3
        for i, a in enumerate(picks):
            for b in picks[i + 1:]:
                assert circular_diff(a.body.azimuth, b.body.azimuth) >= 30.0
            assert a.reason

    def test_recommendations_respect_count(self):
        config = VisibilityConfig(recommend_count=2, min_azimuth_separation_deg=20.0)
        picks = recommended_bodies(self.observer, self.night, config=config)
        assert len(picks) <= 2

    def test_recommendations_prefer_solar_system(self):
        picks = recommended_bodies(self.observer, self.noon)
        assert picks[0].body.position.body.kind is BodyKind.SUN

    def test_identify_finds_pointed_body(self):
        target = visible_bodies(self.observer, self.night)[0]
        matches = identify_bodies(self.observer, self.night, target.altitude, target.azimuth, radius=2.0)
        assert matches
        assert matches[0].body.name == target.name
        assert matches[0].distance == pytest.approx(0.0, abs=1e-5)

    def test_identify_sorted_by_distance(self):
        matches = identify_bodies(self.observer, self.night, 45.0, 180.0, radius=40.0)
        distances = [m.distance for m in matches]
        assert distances == sorted(distances)
        assert all(d <= 40.0 for d in distances)

    def test_identify_includes_polaris_at_night(self):
        # Polaris stands close to the observer's latitude, due north
        matches = identify_bodies(self.observer, self.night, 35.0, 0.0, radius=3.0)
        assert "Polaris" in [m.body.name for m in matches]

    def test_reason_for_polaris(self):
        matches = identify_bodies(self.observer, self.night, 35.0, 0.0, radius=3.0)
        polaris = next(m.body for m in matches if m.body.name == "Polaris")
        assert "Latitude reference" in recommendation_reason(polaris)
