"""
Periodic-term lunar theory.

The ten dominant terms of each of the longitude, latitude and distance
series from Meeus, "Astronomical Algorithms", Ch. 47 (tables 47.A/47.B).
"""

import math
from datetime import datetime

from .bodies import Body, BodyPosition
from .sun import solar_coordinates
from .timescale import (
    julian_day, julian_centuries, sidereal_time_deg, equatorial_from_ecliptic,
    normalize_degrees, clamp_unit,
)

EARTH_RADIUS_KM = 6378.14
MOON_MEAN_DISTANCE_KM = 385000.56
MOON_MEAN_SEMI_DIAMETER = 15.53  # arcminutes at mean distance

# (D, M, M', F, coefficient) with coefficients in 1e-6 degree
LONGITUDE_TERMS = (
    (0, 0, 1, 0, 6288774),
    (2, 0, -1, 0, 1274027),
    (2, 0, 0, 0, 658314),
    (0, 0, 2, 0, 213618),
    (0, 1, 0, 0, -185116),
    (0, 0, 0, 2, -114332),
    (2, 0, -2, 0, 58793),
    (2, -1, -1, 0, 57066),
    (2, 0, 1, 0, 53322),
    (2, -1, 0, 0, 45758),
)

# Coefficients in metres (cosine series)
DISTANCE_TERMS = (
    (0, 0, 1, 0, -20905355),
    (2, 0, -1, 0, -3699111),
    (2, 0, 0, 0, -2955968),
    (0, 0, 2, 0, -569925),
    (0, 1, 0, 0, 48888),
    (0, 0, 0, 2, -3149),
    (2, 0, -2, 0, 246158),
    (2, -1, -1, 0, -152138),
    (2, 0, 1, 0, -170733),
    (2, -1, 0, 0, -204586),
)

LATITUDE_TERMS = (
    (0, 0, 0, 1, 5128122),
    (0, 0, 1, 1, 280602),
    (0, 0, 1, -1, 277693),
    (2, 0, 0, -1, 173237),
    (2, 0, -1, 1, 55413),
    (2, 0, -1, -1, 46271),
    (2, 0, 0, 1, 32573),
    (0, 0, 2, 1, 17198),
    (2, 0, 1, -1, 9266),
    (0, 0, 2, -1, 8822),
)


def fundamental_arguments(T: float) -> dict:
    """Mean longitude, elongation, solar anomaly, lunar anomaly and argument of latitude (degrees)."""
    return {
        "L": normalize_degrees(218.3164477 + 481267.88123421 * T - 0.0015786 * T * T),
        "D": normalize_degrees(297.8501921 + 445267.1114034 * T - 0.0018819 * T * T),
        "M": normalize_degrees(357.5291092 + 35999.0502909 * T - 0.0001536 * T * T),
        "Mp": normalize_degrees(134.9633964 + 477198.8675055 * T + 0.0087414 * T * T),
        "F": normalize_degrees(93.2720950 + 483202.0175233 * T - 0.0036539 * T * T),
    }


def _series(terms, args: dict, E: float, trig) -> float:
    D = math.radians(args["D"])
    M = math.radians(args["M"])
    Mp = math.radians(args["Mp"])
    F = math.radians(args["F"])

    total = 0.0
    for d, m, mp, f, coefficient in terms:
        # Terms containing the solar anomaly shrink with Earth's orbital eccentricity
        scale = E ** abs(m)
        total += coefficient * scale * trig(d * D + m * M + mp * Mp + f * F)
    return total


def lunar_coordinates(T: float) -> dict:
    """
    Geocentric ecliptic coordinates of the Moon.

    Returns:
        Dictionary with longitude/latitude (degrees) and distance (km)
    """
    args = fundamental_arguments(T)
    E = 1 - 0.002516 * T - 0.0000074 * T * T

    sigma_l = _series(LONGITUDE_TERMS, args, E, math.sin)
    sigma_b = _series(LATITUDE_TERMS, args, E, math.sin)
    sigma_r = _series(DISTANCE_TERMS, args, E, math.cos)

    omega = math.radians(125.04 - 1934.136 * T)
    longitude = normalize_degrees(args["L"] + sigma_l / 1e6 - 0.00478 * math.sin(omega))
    latitude = sigma_b / 1e6
    distance = MOON_MEAN_DISTANCE_KM + sigma_r / 1000.0

    return {"longitude": longitude, "latitude": latitude, "distance": distance}


def get_moon_position(dt: datetime) -> BodyPosition:
    """
    Compute the Moon's GHA, declination, horizontal parallax, semi-diameter and phase.

    Args:
        dt: UTC instant

    Returns:
        BodyPosition snapshot for the Moon
    """
    jd = julian_day(dt)
    T = julian_centuries(jd)
    moon = lunar_coordinates(T)
    sun = solar_coordinates(T)

    ra, dec = equatorial_from_ecliptic(moon["longitude"], moon["latitude"], sun["obliquity"])
    gha = normalize_degrees(sidereal_time_deg(jd) - ra)

    distance = moon["distance"]
    hp = math.degrees(math.asin(clamp_unit(EARTH_RADIUS_KM / distance))) * 60.0
    sd = MOON_MEAN_SEMI_DIAMETER * MOON_MEAN_DISTANCE_KM / distance

    cos_elongation = (
        math.cos(math.radians(moon["latitude"]))
        * math.cos(math.radians(moon["longitude"] - sun["apparent_longitude"]))
    )
    elongation = math.degrees(math.acos(clamp_unit(cos_elongation)))

    return BodyPosition(
        body=Body.moon(),
        gha=gha,
        dec=dec,
        ra=ra,
        distance=distance,
        semi_diameter=sd,
        horizontal_parallax=hp,
        illuminated_fraction=(1 - cos_elongation) / 2,
        elongation=elongation,
    )
