"""Shared value types passed between the ephemeris, sight and reckoning layers."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .ephemeris.timescale import normalize_degrees, normalize_latitude, normalize_longitude


class FixKind(str, Enum):
    """Origin of a position fix."""

    GPS = "gps"
    CELESTIAL = "celestial"
    MANUAL = "manual"
    RUNNING_FIX = "running_fix"
    DEAD_RECKONING = "dr"


@dataclass(frozen=True)
class GeoPosition:
    """Geographic position in decimal degrees (north and east positive)."""

    lat: float
    lon: float

    def __post_init__(self):
        object.__setattr__(self, "lat", normalize_latitude(self.lat))
        object.__setattr__(self, "lon", normalize_longitude(self.lon))

    def rounded_to_arcminute(self) -> "GeoPosition":
        """Nearest whole arcminute, as used for an assumed position."""
        return GeoPosition(round(self.lat * 60.0) / 60.0, round(self.lon * 60.0) / 60.0)

    def offset(self, bearing: float, distance_nm: float) -> "GeoPosition":
        """
        Move along a rhumb line using the flat-Earth approximation
        (1 nm = 1 arcminute of latitude). Not valid near the poles.
        """
        b = math.radians(bearing)
        d_lat = distance_nm * math.cos(b) / 60.0
        d_lon = distance_nm * math.sin(b) / (60.0 * _cos_lat(self.lat))
        return GeoPosition(self.lat + d_lat, self.lon + d_lon)

    def to_local(self, origin: "GeoPosition") -> Tuple[float, float]:
        """(east, north) in nautical miles on a plane tangent at ``origin``."""
        d_lon = normalize_longitude(self.lon - origin.lon)
        return d_lon * 60.0 * _cos_lat(origin.lat), (self.lat - origin.lat) * 60.0

    @classmethod
    def from_local(cls, origin: "GeoPosition", east: float, north: float) -> "GeoPosition":
        """Inverse of :meth:`to_local`."""
        return cls(origin.lat + north / 60.0, origin.lon + east / (60.0 * _cos_lat(origin.lat)))


def _cos_lat(lat: float) -> float:
    # keep the longitude scale finite at the poles
    return max(math.cos(math.radians(lat)), 1e-6)


def bearing_and_distance(start: GeoPosition, end: GeoPosition) -> Tuple[float, float]:
    """Flat-Earth (bearing deg, distance nm) from ``start`` to ``end``."""
    east, north = end.to_local(start)
    distance = math.hypot(east, north)
    if distance == 0.0:
        return 0.0, 0.0
    return normalize_degrees(math.degrees(math.atan2(east, north))), distance


@dataclass(frozen=True)
class HorizonPosition:
    """Altitude and true azimuth of a body seen from an observer."""

    altitude: float  # degrees, -90..90
    azimuth: float   # degrees, [0, 360)
    lha: float       # local hour angle, degrees [0, 360)


@dataclass(frozen=True)
class Fix:
    """A position estimate with its origin and optional quality grade."""

    position: GeoPosition
    kind: FixKind
    quality: Optional[str] = None
    crossing_angle: Optional[float] = None
