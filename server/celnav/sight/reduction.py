"""
Sight reduction by the intercept (Marcq St Hilaire) method.

From an assumed position and a body's GHA/declination, compute Hc and
Zn from the navigational triangle, then the intercept between the
observed and computed altitudes.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Union

from ..config import ReductionConfig
from ..ephemeris.bodies import Body, BodyPosition
from ..ephemeris.compute import get_body_position
from ..errors import InvalidStateError, NotFound
from ..horizon import alt_az
from ..models import GeoPosition

logger = logging.getLogger(__name__)

TOWARD = "toward"
AWAY = "away"


class PositionProvider(Protocol):
    """Anything that can supply a default assumed position for an instant."""

    def current_position(self, when: datetime) -> Optional[GeoPosition]:
        ...


@dataclass(frozen=True)
class SightReduction:
    """Result of reducing one sight. Derived; never edited after creation."""

    body: str
    time: datetime
    assumed_position: GeoPosition
    gha: float
    dec: float
    lha: float
    computed_altitude: float  # Hc, degrees
    azimuth: float            # Zn, degrees true
    observed_altitude: float  # Ho, degrees
    intercept: float          # nautical miles, positive toward

    @property
    def direction(self) -> str:
        return TOWARD if self.intercept >= 0 else AWAY

    @property
    def intercept_point(self) -> GeoPosition:
        """Assumed position moved by the intercept along the azimuth."""
        return self.assumed_position.offset(self.azimuth, self.intercept)


def intercept_nm(observed_altitude: float, computed_altitude: float) -> float:
    """(Ho - Hc) in arcminutes, i.e. nautical miles; positive is toward."""
    return (observed_altitude - computed_altitude) * 60.0


def reduce_sight(body_position: BodyPosition, observed_altitude: float,
                 assumed_position: GeoPosition, when: datetime,
                 round_assumed_position: bool = True) -> SightReduction:
    """
    Reduce a sight against an explicit assumed position.

    Args:
        body_position: Ephemeris position of the body at the sight time
        observed_altitude: Ho in degrees
        assumed_position: Assumed position (rounded to the arcminute unless disabled)
        when: Sight time (UTC)
        round_assumed_position: Round the AP to the nearest whole arcminute

    Returns:
        SightReduction
    """
    ap = assumed_position.rounded_to_arcminute() if round_assumed_position else assumed_position
    horizon = alt_az(body_position.gha, body_position.dec, ap.lat, ap.lon)

    return SightReduction(
        body=body_position.body.name,
        time=when,
        assumed_position=ap,
        gha=body_position.gha,
        dec=body_position.dec,
        lha=horizon.lha,
        computed_altitude=horizon.altitude,
        azimuth=horizon.azimuth,
        observed_altitude=observed_altitude,
        intercept=intercept_nm(observed_altitude, horizon.altitude),
    )


class SightReducer:
    """
    Sight reduction entry point with an injected position provider.

    The provider (for example the dead-reckoning state) is consulted only
    when a caller does not give an assumed position.
    """

    def __init__(self, config: Optional[ReductionConfig] = None,
                 position_provider: Optional[PositionProvider] = None):
        self.config = config or ReductionConfig()
        self.position_provider = position_provider

    def assumed_position_for(self, when: datetime,
                             assumed_position: Optional[GeoPosition] = None) -> GeoPosition:
        if assumed_position is not None:
            return assumed_position
        if self.position_provider is not None:
            position = self.position_provider.current_position(when)
            if position is not None:
                return position
        raise InvalidStateError(
            "No assumed position given and no position provider has a position",
            code="STATE.NO_ASSUMED_POSITION",
            title="Assumed position required",
            tip="Supply an assumed position or initialize dead reckoning first."
        )

    def reduce(self, body: Union[Body, str], when: datetime, observed_altitude: float,
               assumed_position: Optional[GeoPosition] = None) -> Union[SightReduction, NotFound]:
        """
        Reduce a sight of ``body`` observed at ``when``.

        Returns:
            SightReduction, or NotFound for unknown bodies
        """
        position = get_body_position(body, when)
        if isinstance(position, NotFound):
            return position

        ap = self.assumed_position_for(when, assumed_position)
        return reduce_sight(position, observed_altitude, ap, when,
                            round_assumed_position=self.config.round_assumed_position)
