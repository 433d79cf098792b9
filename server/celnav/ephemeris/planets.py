"""
Planet positions from Keplerian orbital elements.

Heliocentric positions come from mean J2000 elements with linear secular
rates (Standish, "Keplerian Elements for Approximate Positions of the Major
Planets", valid 1800-2050). Earth's orbit is propagated at the same
instant and subtracted to get the geocentric vector.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Tuple, Union

from .bodies import Body, BodyPosition, Planet
from .sun import solar_coordinates
from .timescale import (
    julian_day, julian_centuries, sidereal_time_deg, equatorial_from_ecliptic,
    normalize_degrees,
)
from ..errors import NotFound

KEPLER_ITERATIONS = 10


@dataclass(frozen=True)
class PlanetElements:
    """J2000 Keplerian elements and their rates per Julian century."""

    a: float        # semi-major axis, AU
    a_rate: float
    e: float        # eccentricity
    e_rate: float
    i: float        # inclination, degrees
    i_rate: float
    L: float        # mean longitude, degrees
    L_rate: float
    varpi: float    # longitude of perihelion, degrees
    varpi_rate: float
    node: float     # longitude of ascending node, degrees
    node_rate: float


PLANET_ELEMENTS: Dict[str, PlanetElements] = {
    "mercury": PlanetElements(0.38709927, 0.00000037, 0.20563593, 0.00001906,
                              7.00497902, -0.00594749, 252.25032350, 149472.67411175,
                              77.45779628, 0.16047689, 48.33076593, -0.12534081),
    "venus": PlanetElements(0.72333566, 0.00000390, 0.00677672, -0.00004107,
                            3.39467605, -0.00078890, 181.97909950, 58517.81538729,
                            131.60246718, 0.00268329, 76.67984255, -0.27769418),
    "earth": PlanetElements(1.00000261, 0.00000562, 0.01671123, -0.00004392,
                            -0.00001531, -0.01294668, 100.46457166, 35999.37244981,
                            102.93768193, 0.32327364, 0.0, 0.0),
    "mars": PlanetElements(1.52371034, 0.00001847, 0.09339410, 0.00007882,
                           1.84969142, -0.00813131, -4.55343205, 19140.30268499,
                           -23.94362959, 0.44441088, 49.55953891, -0.29257343),
    "jupiter": PlanetElements(5.20288700, -0.00011607, 0.04838624, -0.00013253,
                              1.30439695, -0.00183714, 34.39644051, 3034.74612775,
                              14.72847983, 0.21252668, 100.47390909, 0.20469106),
    "saturn": PlanetElements(9.53667594, -0.00125060, 0.05386179, -0.00050991,
                             2.48599187, 0.00193609, 49.95424423, 1222.49362201,
                             92.59887831, -0.41897216, 113.66242448, -0.28867794),
}

# Equatorial angular radius at 1 AU, arcseconds
ANGULAR_RADIUS_1AU = {
    "mercury": 3.36,
    "venus": 8.41,
    "mars": 4.68,
    "jupiter": 98.44,
    "saturn": 82.73,
}


def solve_kepler(M: float, e: float) -> float:
    """
    Solve Kepler's equation E - e*sin(E) = M by Newton's method.

    A fixed iteration count is sufficient for planetary eccentricities.

    Args:
        M: mean anomaly, radians
        e: eccentricity

    Returns:
        Eccentric anomaly, radians
    """
    E = M + e * math.sin(M)
    for _ in range(KEPLER_ITERATIONS):
        E = E - (E - e * math.sin(E) - M) / (1 - e * math.cos(E))
    return E


def heliocentric_position(elements: PlanetElements, T: float) -> Tuple[float, float, float]:
    """
    Heliocentric ecliptic (J2000) rectangular coordinates in AU.
    """
    a = elements.a + elements.a_rate * T
    e = elements.e + elements.e_rate * T
    inc = math.radians(elements.i + elements.i_rate * T)
    L = elements.L + elements.L_rate * T
    varpi = elements.varpi + elements.varpi_rate * T
    node = elements.node + elements.node_rate * T

    M = math.radians(normalize_degrees(L - varpi))
    omega = math.radians(varpi - node)  # argument of perihelion
    node = math.radians(node)

    E = solve_kepler(M, e)

    # Position in the orbital plane
    xp = a * (math.cos(E) - e)
    yp = a * math.sqrt(1 - e * e) * math.sin(E)

    cos_w, sin_w = math.cos(omega), math.sin(omega)
    cos_n, sin_n = math.cos(node), math.sin(node)
    cos_i, sin_i = math.cos(inc), math.sin(inc)

    x = (cos_w * cos_n - sin_w * sin_n * cos_i) * xp + (-sin_w * cos_n - cos_w * sin_n * cos_i) * yp
    y = (cos_w * sin_n + sin_w * cos_n * cos_i) * xp + (-sin_w * sin_n + cos_w * cos_n * cos_i) * yp
    z = (sin_w * sin_i) * xp + (cos_w * sin_i) * yp
    return x, y, z


def get_planet_position(planet: Union[Planet, str], dt: datetime) -> Union[BodyPosition, NotFound]:
    """
    Compute a planet's GHA, declination and semi-diameter.

    Args:
        planet: Planet enum member or name ("venus", "Mars", ...)
        dt: UTC instant

    Returns:
        BodyPosition, or NotFound for names outside Mercury-Saturn
    """
    if not isinstance(planet, Planet):
        try:
            planet = Planet(str(planet).strip().lower())
        except ValueError:
            return NotFound("planet", str(planet))

    jd = julian_day(dt)
    T = julian_centuries(jd)

    px, py, pz = heliocentric_position(PLANET_ELEMENTS[planet.value], T)
    ex, ey, ez = heliocentric_position(PLANET_ELEMENTS["earth"], T)
    gx, gy, gz = px - ex, py - ey, pz - ez

    distance = math.sqrt(gx * gx + gy * gy + gz * gz)

    # J2000 ecliptic -> ecliptic of date via general precession in longitude
    precession = 1.396971 * T + 0.0003086 * T * T
    longitude = normalize_degrees(math.degrees(math.atan2(gy, gx)) + precession)
    latitude = math.degrees(math.atan2(gz, math.sqrt(gx * gx + gy * gy)))

    obliquity = solar_coordinates(T)["obliquity"]
    ra, dec = equatorial_from_ecliptic(longitude, latitude, obliquity)
    gha = normalize_degrees(sidereal_time_deg(jd) - ra)

    return BodyPosition(
        body=Body.of_planet(planet),
        gha=gha,
        dec=dec,
        ra=ra,
        distance=distance,
        semi_diameter=ANGULAR_RADIUS_1AU[planet.value] / 60.0 / distance,
        horizontal_parallax=8.794 / 60.0 / distance,
    )
