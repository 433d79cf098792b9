"""
Ephemeris dispatch.

Single entry point resolving a body (variant or name) to its position at
an instant. Unknown names produce a NotFound result, never an exception.
"""

import logging
from datetime import datetime
from typing import List, Union

from .bodies import Body, BodyKind, BodyPosition, NAVIGATIONAL_PLANETS, resolve_body
from .moon import get_moon_position
from .planets import get_planet_position
from .sun import get_sun_position
from ..errors import NotFound

logger = logging.getLogger(__name__)


def get_body_position(body: Union[Body, str], dt: datetime) -> Union[BodyPosition, NotFound]:
    """
    Compute the position of any supported body.

    Args:
        body: Body variant, or a name resolved with resolve_body
        dt: UTC instant

    Returns:
        BodyPosition, or NotFound for unknown names
    """
    if not isinstance(body, Body):
        body = resolve_body(body)
        if isinstance(body, NotFound):
            return body

    if body.kind is BodyKind.SUN:
        return get_sun_position(dt)
    if body.kind is BodyKind.MOON:
        return get_moon_position(dt)
    if body.kind is BodyKind.PLANET:
        return get_planet_position(body.planet, dt)
    if body.kind is BodyKind.STAR:
        from ..stars.compute import get_star_position
        return get_star_position(body.star, dt)

    raise ValueError(f"Unhandled body kind: {body.kind}")


def get_solar_system_positions(dt: datetime) -> List[BodyPosition]:
    """Sun, Moon and the navigational planets at one instant."""
    positions = [get_sun_position(dt), get_moon_position(dt)]
    positions.extend(get_planet_position(planet, dt) for planet in NAVIGATIONAL_PLANETS)
    return positions
