"""
Star position computation.

Star GHA is the GHA of Aries plus the catalog sidereal hour angle;
declination is the catalog value. No precession or proper motion is
applied, which stays inside the almanac accuracy target for a few
years either side of the catalog epoch.
"""

import math
import logging
from datetime import datetime
from typing import List, Union

from .catalog import StarCatalogEntry, find_star, navigation_stars
from ..ephemeris.bodies import Body, BodyPosition
from ..ephemeris.timescale import gha_aries, normalize_degrees, clamp_unit
from ..errors import NotFound

logger = logging.getLogger(__name__)


def star_position(star: StarCatalogEntry, aries: float) -> BodyPosition:
    """Position of a catalog star given the GHA of Aries (degrees)."""
    return BodyPosition(
        body=Body.of_star(star.name),
        gha=normalize_degrees(aries + star.sha),
        dec=star.dec,
        ra=normalize_degrees(360.0 - star.sha),
        magnitude=star.magnitude,
    )


def get_star_position(name: str, dt: datetime) -> Union[BodyPosition, NotFound]:
    """
    Compute GHA and declination of a named star.

    Args:
        name: Star name, e.g. "Sirius", "rigil kentaurus"
        dt: UTC instant

    Returns:
        BodyPosition, or NotFound for names not in the catalog
    """
    star = find_star(name)
    if isinstance(star, NotFound):
        return star
    return star_position(star, gha_aries(dt))


def get_navigation_star_positions(dt: datetime) -> List[BodyPosition]:
    """Positions of all 57 navigation stars at one instant."""
    aries = gha_aries(dt)
    return [star_position(star, aries) for star in navigation_stars()]


def angular_distance(alt1: float, az1: float, alt2: float, az2: float) -> float:
    """
    Great-circle separation between two horizon directions, degrees.

    Args:
        alt1, az1: first direction (altitude, azimuth) in degrees
        alt2, az2: second direction in degrees
    """
    a1 = math.radians(alt1)
    a2 = math.radians(alt2)
    d_az = math.radians(az2 - az1)

    cos_d = math.sin(a1) * math.sin(a2) + math.cos(a1) * math.cos(a2) * math.cos(d_az)
    return math.degrees(math.acos(clamp_unit(cos_d)))
