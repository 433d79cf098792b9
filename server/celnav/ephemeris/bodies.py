"""
Celestial body identities and the ephemeris result snapshot.

A body is resolved once from its name at the boundary into a closed
variant (Sun, Moon, Planet(kind), Star(name)); everything downstream
dispatches on ``Body.kind``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from ..errors import NotFound


class BodyKind(str, Enum):
    SUN = "sun"
    MOON = "moon"
    PLANET = "planet"
    STAR = "star"


class Planet(str, Enum):
    MERCURY = "mercury"
    VENUS = "venus"
    MARS = "mars"
    JUPITER = "jupiter"
    SATURN = "saturn"


# Planets used for sights, brightest first
NAVIGATIONAL_PLANETS = (Planet.VENUS, Planet.JUPITER, Planet.MARS, Planet.SATURN)


@dataclass(frozen=True)
class Body:
    """Closed body variant. Build with the classmethods, not the constructor."""

    kind: BodyKind
    planet: Optional[Planet] = None
    star: Optional[str] = None

    @classmethod
    def sun(cls) -> "Body":
        return cls(BodyKind.SUN)

    @classmethod
    def moon(cls) -> "Body":
        return cls(BodyKind.MOON)

    @classmethod
    def of_planet(cls, planet: Planet) -> "Body":
        return cls(BodyKind.PLANET, planet=planet)

    @classmethod
    def of_star(cls, name: str) -> "Body":
        return cls(BodyKind.STAR, star=name)

    @property
    def name(self) -> str:
        if self.kind is BodyKind.PLANET:
            return self.planet.value.capitalize()
        if self.kind is BodyKind.STAR:
            return self.star
        return self.kind.value.capitalize()

    @property
    def has_disk(self) -> bool:
        """True for bodies observed by a limb (Sun and Moon)."""
        return self.kind in (BodyKind.SUN, BodyKind.MOON)


@dataclass(frozen=True)
class BodyPosition:
    """
    Ephemeris snapshot of one body at one instant.

    Angles in degrees; semi-diameter and horizontal parallax in arcminutes;
    distance in AU for the Sun and planets, kilometres for the Moon, and
    None for stars.
    """

    body: Body
    gha: float
    dec: float
    ra: float
    distance: Optional[float] = None
    semi_diameter: float = 0.0
    horizontal_parallax: float = 0.0
    magnitude: Optional[float] = None
    equation_of_time: Optional[float] = None   # Sun only, minutes
    illuminated_fraction: Optional[float] = None  # Moon only
    elongation: Optional[float] = None  # Moon only, degrees


def resolve_body(name: str) -> Union[Body, NotFound]:
    """
    Resolve a body name into the closed variant.

    Sun, Moon and planet names are matched case-insensitively; anything
    else must be a catalog star.

    Returns:
        Body, or NotFound for unknown names
    """
    from ..stars.catalog import find_star

    key = (name or "").strip().lower()
    if key == "sun":
        return Body.sun()
    if key == "moon":
        return Body.moon()
    for planet in Planet:
        if planet.value == key:
            return Body.of_planet(planet)

    star = find_star(name)
    if isinstance(star, NotFound):
        return NotFound("body", name)
    return Body.of_star(star.name)
