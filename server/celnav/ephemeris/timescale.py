"""
Time and frame utilities.

Civil date <-> Julian Day conversion, Julian centuries since J2000.0,
Greenwich Mean Sidereal Time, and the angle normalizations applied at
every angle-producing boundary of the engine.
"""

import math
from datetime import datetime, timedelta, timezone

# Constants
J2000_JD = 2451545.0  # Julian Date of J2000.0 epoch
DAYS_PER_CENTURY = 36525.0
SECONDS_PER_DAY = 86400.0


def normalize_degrees(angle: float) -> float:
    """Normalize an angle to [0, 360)."""
    result = math.fmod(angle, 360.0)
    if result < 0.0:
        result += 360.0
    # fmod of a tiny negative number can round up to exactly 360.0
    if result >= 360.0:
        result -= 360.0
    return result


def normalize_signed_degrees(angle: float) -> float:
    """Normalize an angle to [-180, 180)."""
    return normalize_degrees(angle + 180.0) - 180.0


def normalize_latitude(lat: float) -> float:
    """Clamp a latitude or declination to [-90, 90]."""
    return max(-90.0, min(90.0, lat))


def normalize_longitude(lon: float) -> float:
    """Wrap a longitude to [-180, 180)."""
    return normalize_signed_degrees(lon)


def clamp_unit(value: float) -> float:
    """Clamp an inverse-trig argument into [-1, 1]."""
    return max(-1.0, min(1.0, value))


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        # assume UTC if naive
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def julian_day(dt: datetime) -> float:
    """
    Convert a UTC instant to a (fractional, UT-based) Julian Day.

    Algorithm from Jean Meeus, "Astronomical Algorithms", Ch. 7, using the
    proleptic Gregorian calendar throughout.

    Args:
        dt: datetime; naive values are taken to be UTC

    Returns:
        Julian Day number
    """
    dt = _as_utc(dt)

    year = dt.year
    month = dt.month
    day_fraction = (
        dt.hour * 3600.0 + dt.minute * 60.0 + dt.second + dt.microsecond / 1e6
    ) / SECONDS_PER_DAY

    if month <= 2:
        year -= 1
        month += 12

    # Gregorian calendar correction
    A = year // 100
    B = 2 - A + (A // 4)

    jd = int(365.25 * (year + 4716)) + int(30.6001 * (month + 1)) + dt.day + B - 1524.5
    return jd + day_fraction


def julian_day_to_datetime(jd: float) -> datetime:
    """
    Convert a Julian Day back to an aware UTC datetime, rounded to the whole second.

    Exact inverse of :func:`julian_day` for whole-second instants.
    """
    z = math.floor(jd + 0.5)
    f = (jd + 0.5) - z

    alpha = int((z - 1867216.25) / 36524.25)
    a = z + 1 + alpha - alpha // 4
    b = a + 1524
    c = int((b - 122.1) / 365.25)
    d = int(365.25 * c)
    e = int((b - d) / 30.6001)

    day = b - d - int(30.6001 * e)
    month = e - 1 if e < 14 else e - 13
    year = c - 4716 if month > 2 else c - 4715

    seconds = round(f * SECONDS_PER_DAY)
    return datetime(year, month, day, tzinfo=timezone.utc) + timedelta(seconds=seconds)


def julian_centuries(jd: float) -> float:
    """Julian centuries elapsed since J2000.0."""
    return (jd - J2000_JD) / DAYS_PER_CENTURY


def sidereal_time_deg(jd: float) -> float:
    """
    Greenwich Mean Sidereal Time in degrees, normalized to [0, 360).

    Meeus eq. 12.4. Used directly as the GHA of the First Point of Aries.
    """
    T = julian_centuries(jd)
    theta = (
        280.46061837
        + 360.98564736629 * (jd - J2000_JD)
        + 0.000387933 * T * T
        - T * T * T / 38710000.0
    )
    return normalize_degrees(theta)


def gha_aries(dt: datetime) -> float:
    """Greenwich Hour Angle of the First Point of Aries at a UTC instant."""
    return sidereal_time_deg(julian_day(dt))


def mean_obliquity_deg(T: float) -> float:
    """Mean obliquity of the ecliptic (Meeus eq. 22.2), degrees."""
    seconds = 21.448 - T * (46.8150 + T * (0.00059 - T * 0.001813))
    return 23.0 + (26.0 + seconds / 60.0) / 60.0


def equatorial_from_ecliptic(lon_deg: float, lat_deg: float, obliquity_deg: float):
    """
    Rotate ecliptic longitude/latitude into right ascension/declination.

    Returns:
        (right_ascension_deg in [0, 360), declination_deg in [-90, 90])
    """
    lam = math.radians(lon_deg)
    beta = math.radians(lat_deg)
    eps = math.radians(obliquity_deg)

    ra = math.atan2(
        math.sin(lam) * math.cos(eps) - math.tan(beta) * math.sin(eps),
        math.cos(lam),
    )
    dec = math.asin(clamp_unit(
        math.sin(beta) * math.cos(eps) + math.cos(beta) * math.sin(eps) * math.sin(lam)
    ))
    return normalize_degrees(math.degrees(ra)), normalize_latitude(math.degrees(dec))
