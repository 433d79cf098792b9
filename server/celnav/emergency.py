"""
Emergency and manual navigation methods.

Closed-form single-observation techniques: latitude by noon sight and by
Polaris, longitude from the time of meridian passage, prediction of
local apparent noon, running fixes, and a sun compass.
"""

import math
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from .ephemeris.sun import get_sun_position
from .ephemeris.timescale import (
    normalize_degrees, normalize_latitude, normalize_longitude, normalize_signed_degrees,
)
from .errors import DegenerateGeometryError, InputError, NoIntersection
from .horizon import alt_az
from .models import Fix, FixKind, GeoPosition
from .sight.lop import LineOfPosition, advance_lop, intersect_lops
from .stars.compute import get_star_position
from .util.dates import ensure_utc

logger = logging.getLogger(__name__)

NOON_ITERATIONS = 4
SECONDS_PER_DEGREE_OF_HOUR_ANGLE = 240.0  # 86400 s / 360 deg
SUN_COMPASS_MAX_ALTITUDE = 89.5  # azimuth undefined near the zenith


def noon_sight_latitude(observed_altitude: float, declination: Optional[float] = None,
                        bearing: str = "south", when: Optional[datetime] = None) -> float:
    """
    Latitude from the Sun's altitude at meridian passage.

    Args:
        observed_altitude: Ho at local apparent noon, degrees
        declination: Sun's declination; computed from ``when`` if omitted
        bearing: "south" when the Sun bears south at noon (observer north of it),
            "north" otherwise
        when: UTC time of the sight, used when declination is not given

    Returns:
        Latitude in degrees, north positive
    """
    if declination is None:
        if when is None:
            raise InputError("Either the declination or the sight time is required")
        declination = get_sun_position(when).dec

    zenith_distance = 90.0 - observed_altitude
    bearing = bearing.strip().lower()
    if bearing == "south":
        latitude = declination + zenith_distance
    elif bearing == "north":
        latitude = declination - zenith_distance
    else:
        raise InputError(f"Bearing must be 'north' or 'south', got {bearing!r}")
    return normalize_latitude(latitude)


@dataclass(frozen=True)
class PolarisLatitude:
    latitude: float
    correction: float  # degrees subtracted from Ho; 0 when uncorrected


def polaris_latitude(observed_altitude: float, when: Optional[datetime] = None,
                     longitude: Optional[float] = None) -> PolarisLatitude:
    """
    Latitude from the altitude of Polaris.

    With a time and approximate longitude the polar-distance correction
    ``p * cos(LHA)`` is applied; otherwise Ho is returned as the latitude,
    good to about a degree.
    """
    if when is None or longitude is None:
        return PolarisLatitude(latitude=normalize_latitude(observed_altitude), correction=0.0)

    polaris = get_star_position("Polaris", when)
    polar_distance = 90.0 - polaris.dec
    lha = normalize_degrees(polaris.gha + longitude)
    correction = polar_distance * math.cos(math.radians(lha))
    return PolarisLatitude(
        latitude=normalize_latitude(observed_altitude - correction),
        correction=correction,
    )


def meridian_passage_longitude(passage_time: datetime) -> float:
    """
    Longitude from the UTC time of the Sun's meridian passage.

    At passage the Sun's LHA is zero, so longitude = -GHA (east positive).
    """
    sun = get_sun_position(passage_time)
    return normalize_longitude(-sun.gha)


def local_apparent_noon(longitude: float, day: Union[date, datetime]) -> datetime:
    """
    UTC time of local apparent noon (Sun on the meridian) for a longitude.

    Starts from 12:00 UTC corrected for longitude and iterates on the Sun's
    hour angle, which absorbs the equation of time.
    """
    if isinstance(day, datetime):
        day = ensure_utc(day).date()
    noon = datetime.combine(day, time(12, 0), tzinfo=timezone.utc)
    t = noon - timedelta(seconds=longitude * SECONDS_PER_DEGREE_OF_HOUR_ANGLE)

    for _ in range(NOON_ITERATIONS):
        sun = get_sun_position(t)
        lha = normalize_signed_degrees(sun.gha + longitude)
        t -= timedelta(seconds=lha * SECONDS_PER_DEGREE_OF_HOUR_ANGLE)
    return t


def running_fix(earlier: LineOfPosition, later: LineOfPosition, course: float,
                speed_kn: float) -> Union[Fix, NoIntersection]:
    """
    Cross an earlier LOP, advanced by the run between sights, with a later one.
    """
    hours = (later.reduction.time - earlier.reduction.time).total_seconds() / 3600.0
    if hours < 0:
        earlier, later = later, earlier
        hours = -hours

    advanced = advance_lop(earlier, course, speed_kn, hours)
    result = intersect_lops(advanced, later)
    if isinstance(result, NoIntersection):
        return result
    return Fix(position=result.position, kind=FixKind.RUNNING_FIX,
               quality=result.quality, crossing_angle=result.crossing_angle)


@dataclass(frozen=True)
class SunCompassResult:
    sun_azimuth: float
    sun_altitude: float
    north_relative_bearing: float  # where true north lies, relative to the device
    true_heading: float            # device heading, degrees true
    deviation: Optional[float] = None  # compass minus true, degrees


def sun_compass(measured_bearing: float, when: datetime, position: GeoPosition,
                compass_heading: Optional[float] = None) -> SunCompassResult:
    """
    True north from a relative bearing to the Sun.

    Args:
        measured_bearing: Sun's bearing relative to the device heading, degrees clockwise
        when: UTC time of the measurement
        position: Observer position
        compass_heading: Optional compass reading to derive the deviation

    Raises:
        DegenerateGeometryError: the Sun is too close to the zenith for an azimuth
    """
    sun = get_sun_position(when)
    horizon = alt_az(sun.gha, sun.dec, position.lat, position.lon)
    if horizon.altitude > SUN_COMPASS_MAX_ALTITUDE:
        raise DegenerateGeometryError(
            f"Sun altitude {horizon.altitude:.2f}° is too close to the zenith for a bearing",
            code="GEOMETRY.SUN_AT_ZENITH",
            title="Sun azimuth undefined",
            tip="Wait until the Sun is lower, or use a different method."
        )

    north = normalize_degrees(measured_bearing + 360.0 - horizon.azimuth)
    true_heading = normalize_degrees(horizon.azimuth - measured_bearing)

    deviation = None
    if compass_heading is not None:
        deviation = normalize_signed_degrees(compass_heading - true_heading)

    if horizon.altitude < 0:
        logger.warning(f"Sun compass used with the Sun below the horizon ({horizon.altitude:.1f}°)")

    return SunCompassResult(
        sun_azimuth=horizon.azimuth,
        sun_altitude=horizon.altitude,
        north_relative_bearing=north,
        true_heading=true_heading,
        deviation=deviation,
    )
