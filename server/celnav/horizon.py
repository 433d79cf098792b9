"""
Horizon geometry: altitude/azimuth of a body for an observer, visibility
filtering, observation recommendations, and identification of bodies
near a pointing direction.
"""

import math
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from .config import VisibilityConfig
from .ephemeris.bodies import BodyKind, BodyPosition, NAVIGATIONAL_PLANETS
from .ephemeris.compute import get_solar_system_positions
from .ephemeris.sun import get_sun_position
from .ephemeris.timescale import clamp_unit, normalize_degrees, normalize_latitude
from .models import GeoPosition, HorizonPosition
from .stars.catalog import find_star
from .stars.compute import angular_distance, get_navigation_star_positions, get_star_position

logger = logging.getLogger(__name__)

# cos(latitude) or cos(altitude) below this leaves the azimuth undefined
AZIMUTH_EPSILON = 1e-9

# Reference stars called out by name in recommendations
_REFERENCE_STARS = {"Sirius", "Canopus", "Vega"}


def navigational_triangle(lha: float, dec: float, lat: float) -> Tuple[float, float]:
    """
    Solve the navigational triangle for altitude and true azimuth.

    Args:
        lha: local hour angle, degrees (west of the meridian)
        dec: declination, degrees
        lat: observer latitude, degrees

    Returns:
        (altitude in [-90, 90], true azimuth in [0, 360))
    """
    lha_r = math.radians(lha)
    dec_r = math.radians(dec)
    lat_r = math.radians(lat)

    sin_h = math.sin(lat_r) * math.sin(dec_r) + math.cos(lat_r) * math.cos(dec_r) * math.cos(lha_r)
    h = math.asin(clamp_unit(sin_h))

    cos_lat = math.cos(lat_r)
    cos_h = math.cos(h)
    if abs(cos_lat) < AZIMUTH_EPSILON or abs(cos_h) < AZIMUTH_EPSILON:
        # pole or zenith: azimuth is undefined
        return normalize_latitude(math.degrees(h)), 0.0

    cos_z = (math.sin(dec_r) - math.sin(lat_r) * sin_h) / (cos_lat * cos_h)
    z = math.degrees(math.acos(clamp_unit(cos_z)))

    # LHA in (0, 180): body west of the meridian, azimuth mirrors
    if math.sin(lha_r) > 0:
        zn = 360.0 - z
    else:
        zn = z

    return normalize_latitude(math.degrees(h)), normalize_degrees(zn)


def alt_az(gha: float, dec: float, lat: float, lon: float) -> HorizonPosition:
    """
    Altitude and azimuth of a body at (GHA, dec) seen from (lat, lon).

    Longitude is east positive, so LHA = GHA + lon.
    """
    lha = normalize_degrees(gha + lon)
    altitude, azimuth = navigational_triangle(lha, dec, lat)
    return HorizonPosition(altitude=altitude, azimuth=azimuth, lha=lha)


@dataclass(frozen=True)
class SkyBody:
    """A body's ephemeris position together with where it stands in the sky."""

    position: BodyPosition
    horizon: HorizonPosition

    @property
    def name(self) -> str:
        return self.position.body.name

    @property
    def altitude(self) -> float:
        return self.horizon.altitude

    @property
    def azimuth(self) -> float:
        return self.horizon.azimuth


@dataclass(frozen=True)
class Recommendation:
    """A body chosen for a well-spread set of sights."""

    body: SkyBody
    reason: str


@dataclass(frozen=True)
class Identification:
    """A body found near a pointing direction."""

    body: SkyBody
    distance: float  # degrees from the pointing direction


def _sky_body(position: BodyPosition, observer: GeoPosition) -> SkyBody:
    return SkyBody(position, alt_az(position.gha, position.dec, observer.lat, observer.lon))


def sun_altitude(observer: GeoPosition, when: datetime) -> float:
    """Altitude of the Sun's centre, degrees."""
    sun = get_sun_position(when)
    return alt_az(sun.gha, sun.dec, observer.lat, observer.lon).altitude


def visible_bodies(observer: GeoPosition, when: datetime,
                   min_altitude: Optional[float] = None,
                   config: Optional[VisibilityConfig] = None) -> List[SkyBody]:
    """
    Bodies above a minimum altitude, highest first.

    Stars are only offered while the Sun is below civil twilight; the Sun
    itself is listed whenever it is above the minimum altitude.

    Args:
        observer: Observer position
        when: UTC instant
        min_altitude: Minimum altitude in degrees (defaults to config)
        config: Visibility settings
    """
    config = config or VisibilityConfig()
    if min_altitude is None:
        min_altitude = config.min_altitude_deg

    bodies = [_sky_body(p, observer) for p in get_solar_system_positions(when)]

    sun = next(b for b in bodies if b.position.body.kind is BodyKind.SUN)
    if sun.altitude < config.twilight_sun_altitude_deg:
        bodies.extend(_sky_body(p, observer) for p in get_navigation_star_positions(when))

    visible = [b for b in bodies if b.altitude >= min_altitude]
    visible.sort(key=lambda b: b.altitude, reverse=True)
    return visible


def _azimuth_separation(a: float, b: float) -> float:
    diff = abs(normalize_degrees(a - b))
    return min(diff, 360.0 - diff)


def recommendation_reason(body: SkyBody) -> str:
    """Short human-readable reason for picking a body."""
    kind = body.position.body.kind
    if kind is BodyKind.SUN:
        return "Daytime reference, easy to find"
    if kind is BodyKind.MOON:
        return "Excellent target - easy to find, large semi-diameter"
    if kind is BodyKind.PLANET:
        return "Bright planet, easy to identify"

    reasons = []
    magnitude = body.position.magnitude
    if magnitude is not None:
        if magnitude < 0.5:
            reasons.append("Very bright")
        elif magnitude < 1.5:
            reasons.append("Bright")

    if 30 <= body.altitude <= 60:
        reasons.append("Good altitude")
    elif body.altitude < 25:
        reasons.append("Low altitude")
    elif body.altitude > 70:
        reasons.append("High altitude")

    if body.name == "Polaris":
        reasons.append("Latitude reference")
    if body.name in _REFERENCE_STARS:
        reasons.append("Navigation star")

    return ", ".join(reasons) or "Navigation star"


def _candidate_order(bodies: List[SkyBody], magnitude_limit: float) -> List[SkyBody]:
    """Sun, Moon, planets (brightest first), then stars by magnitude."""
    def rank(body: SkyBody):
        b = body.position.body
        if b.kind is BodyKind.SUN:
            return (0, 0.0)
        if b.kind is BodyKind.MOON:
            return (1, 0.0)
        if b.kind is BodyKind.PLANET:
            return (2, float(NAVIGATIONAL_PLANETS.index(b.planet)))
        return (3, body.position.magnitude)

    pool = [
        b for b in bodies
        if b.position.body.kind is not BodyKind.STAR
        or (b.position.magnitude is not None and b.position.magnitude <= magnitude_limit)
    ]
    return sorted(pool, key=rank)


def recommended_bodies(observer: GeoPosition, when: datetime,
                       config: Optional[VisibilityConfig] = None) -> List[Recommendation]:
    """
    Greedily pick up to ``recommend_count`` visible bodies whose azimuths are
    pairwise at least ``min_azimuth_separation_deg`` apart.

    Candidates are considered in priority order: Sun, Moon, planets, then the
    brightest stars.
    """
    config = config or VisibilityConfig()
    candidates = _candidate_order(visible_bodies(observer, when, config=config),
                                  config.star_magnitude_limit)

    chosen: List[SkyBody] = []
    for body in candidates:
        if len(chosen) >= config.recommend_count:
            break
        if all(_azimuth_separation(body.azimuth, c.azimuth) >= config.min_azimuth_separation_deg
               for c in chosen):
            chosen.append(body)

    return [Recommendation(body=b, reason=recommendation_reason(b)) for b in chosen]


def identify_bodies(observer: GeoPosition, when: datetime, altitude: float, azimuth: float,
                    radius: float = 10.0,
                    config: Optional[VisibilityConfig] = None) -> List[Identification]:
    """
    Bodies within ``radius`` degrees of a pointing direction, closest first.

    Considers every body above the horizon, including Polaris, regardless of
    the usual minimum sight altitude.
    """
    config = config or VisibilityConfig()
    bodies = visible_bodies(observer, when, min_altitude=0.0, config=config)

    polaris = find_star("Polaris")
    if polaris and any(b.position.body.kind is BodyKind.STAR for b in bodies):
        polaris_body = _sky_body(get_star_position(polaris.name, when), observer)
        if polaris_body.altitude >= 0.0:
            bodies.append(polaris_body)

    found = []
    for body in bodies:
        distance = angular_distance(altitude, azimuth, body.altitude, body.azimuth)
        if distance <= radius:
            found.append(Identification(body=body, distance=distance))

    found.sort(key=lambda i: i.distance)
    return found
