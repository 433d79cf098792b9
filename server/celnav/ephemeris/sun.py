"""
Low-precision solar theory (Meeus, "Astronomical Algorithms", Ch. 25).

Accurate to roughly 0.01 degree, well inside the 1 arcminute almanac
target for navigation.
"""

import math
from datetime import datetime

from .bodies import Body, BodyPosition
from .timescale import (
    julian_day, julian_centuries, sidereal_time_deg, mean_obliquity_deg,
    equatorial_from_ecliptic, normalize_degrees, normalize_signed_degrees,
)

SUN_SEMI_DIAMETER_1AU = 15.99  # arcminutes
SUN_HORIZONTAL_PARALLAX_1AU = 0.1466  # arcminutes (8.794")


def solar_coordinates(T: float) -> dict:
    """
    Apparent geocentric solar coordinates for Julian centuries T.

    Returns:
        Dictionary with mean longitude, apparent longitude, radius vector (AU),
        true obliquity, right ascension and declination (all degrees)
    """
    L0 = normalize_degrees(280.46646 + T * (36000.76983 + T * 0.0003032))
    M = normalize_degrees(357.52911 + T * (35999.05029 - T * 0.0001537))
    e = 0.016708634 - T * (0.000042037 + T * 0.0000001267)

    m = math.radians(M)
    C = (
        (1.914602 - T * (0.004817 + T * 0.000014)) * math.sin(m)
        + (0.019993 - 0.000101 * T) * math.sin(2 * m)
        + 0.000289 * math.sin(3 * m)
    )

    true_longitude = L0 + C
    true_anomaly = math.radians(M + C)
    radius = 1.000001018 * (1 - e * e) / (1 + e * math.cos(true_anomaly))

    # Nutation and aberration through the longitude of the Moon's ascending node
    omega = math.radians(125.04 - 1934.136 * T)
    apparent_longitude = normalize_degrees(true_longitude - 0.00569 - 0.00478 * math.sin(omega))
    obliquity = mean_obliquity_deg(T) + 0.00256 * math.cos(omega)

    ra, dec = equatorial_from_ecliptic(apparent_longitude, 0.0, obliquity)

    return {
        "mean_longitude": L0,
        "apparent_longitude": apparent_longitude,
        "radius": radius,
        "obliquity": obliquity,
        "ra": ra,
        "dec": dec,
    }


def equation_of_time_minutes(mean_longitude: float, ra: float) -> float:
    """
    Equation of time (apparent minus mean solar time), signed minutes.

    Derived from the difference between the Sun's mean longitude (corrected
    for aberration) and its right ascension.
    """
    return normalize_signed_degrees(mean_longitude - 0.0057183 - ra) * 4.0


def get_sun_position(dt: datetime) -> BodyPosition:
    """
    Compute the Sun's GHA, declination, semi-diameter and parallax.

    Args:
        dt: UTC instant

    Returns:
        BodyPosition snapshot for the Sun
    """
    jd = julian_day(dt)
    coords = solar_coordinates(julian_centuries(jd))
    gha = normalize_degrees(sidereal_time_deg(jd) - coords["ra"])

    return BodyPosition(
        body=Body.sun(),
        gha=gha,
        dec=coords["dec"],
        ra=coords["ra"],
        distance=coords["radius"],
        semi_diameter=SUN_SEMI_DIAMETER_1AU / coords["radius"],
        horizontal_parallax=SUN_HORIZONTAL_PARALLAX_1AU / coords["radius"],
        magnitude=-26.7,
        equation_of_time=equation_of_time_minutes(coords["mean_longitude"], coords["ra"]),
    )
