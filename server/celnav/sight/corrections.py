"""
Sextant altitude corrections.

Hs -> Ho as an ordered fold over five stages (index error, dip,
refraction, semi-diameter, parallax). Every stage records its signed
contribution in arcminutes so the full trace can be shown alongside the
observed altitude; the contributions always sum to Ho - Hs.
"""

import math
import bisect
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..config import CorrectionsConfig
from ..ephemeris.bodies import BodyKind, BodyPosition
from ..errors import InputError

DIP_COEFFICIENT = 0.97  # arcminutes per sqrt(foot)
SUN_PARALLAX_ARCMIN = 0.15
STANDARD_PRESSURE_MB = 1010.0
STANDARD_TEMPERATURE_K = 283.0

# Low-altitude refraction, (apparent altitude deg, refraction arcmin), standard atmosphere.
# Used below 5 degrees in place of the closed form, giving a small step at 5 degrees.
LOW_ALTITUDE_REFRACTION = (
    (0.0, 34.5),
    (0.5, 28.7),
    (1.0, 24.3),
    (1.5, 20.9),
    (2.0, 18.3),
    (2.5, 16.2),
    (3.0, 14.4),
    (3.5, 13.0),
    (4.0, 11.8),
    (4.5, 10.7),
    (5.0, 9.9),
)
LOW_ALTITUDE_LIMIT = 5.0

_TABLE_ALTITUDES = [row[0] for row in LOW_ALTITUDE_REFRACTION]


class Limb(str, Enum):
    LOWER = "lower"
    UPPER = "upper"
    CENTER = "center"


@dataclass(frozen=True)
class CorrectionSettings:
    """Sextant and atmosphere settings for one set of sights."""

    index_error: float = 0.0       # arcminutes, positive when on the arc
    height_of_eye_ft: float = 8.0
    temperature_c: float = 10.0
    pressure_mb: float = 1010.0
    limb: Limb = Limb.LOWER

    def __post_init__(self):
        if self.height_of_eye_ft < 0:
            raise InputError(f"Height of eye cannot be negative: {self.height_of_eye_ft}",
                             tip="Enter the height of your eye above the water in feet.")
        if self.temperature_c <= -273.0:
            raise InputError(f"Temperature below absolute zero: {self.temperature_c}")
        if self.pressure_mb <= 0:
            raise InputError(f"Pressure must be positive: {self.pressure_mb}")
        object.__setattr__(self, "limb", Limb(self.limb))

    @classmethod
    def from_config(cls, config: Optional[CorrectionsConfig] = None) -> "CorrectionSettings":
        config = config or CorrectionsConfig()
        return cls(
            index_error=config.index_error_arcmin,
            height_of_eye_ft=config.height_of_eye_ft,
            temperature_c=config.temperature_c,
            pressure_mb=config.pressure_mb,
            limb=Limb(config.limb),
        )


@dataclass(frozen=True)
class CorrectionStep:
    name: str
    correction: float  # signed, arcminutes
    altitude: float    # running altitude after this stage, degrees


@dataclass(frozen=True)
class CorrectionResult:
    """Itemized Hs -> Ho trace."""

    sextant_altitude: float
    steps: Tuple[CorrectionStep, ...]
    observed_altitude: float

    @property
    def total_correction(self) -> float:
        """Sum of all contributions, arcminutes."""
        return sum(step.correction for step in self.steps)

    @property
    def apparent_altitude(self) -> float:
        """Ha: altitude after index error and dip."""
        return self.get("dip").altitude

    def get(self, name: str) -> CorrectionStep:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(name)

    def as_dict(self) -> dict:
        return {step.name: step.correction for step in self.steps}


def dip_arcmin(height_of_eye_ft: float) -> float:
    """Dip of the sea horizon in arcminutes (always subtracted)."""
    return DIP_COEFFICIENT * math.sqrt(max(0.0, height_of_eye_ft))


def _atmosphere_factor(temperature_c: float, pressure_mb: float) -> float:
    return (pressure_mb / STANDARD_PRESSURE_MB) * (STANDARD_TEMPERATURE_K / (273.0 + temperature_c))


def _table_refraction(altitude: float) -> float:
    altitude = max(0.0, altitude)
    i = bisect.bisect_right(_TABLE_ALTITUDES, altitude)
    if i >= len(LOW_ALTITUDE_REFRACTION):
        return LOW_ALTITUDE_REFRACTION[-1][1]
    (a0, r0), (a1, r1) = LOW_ALTITUDE_REFRACTION[i - 1], LOW_ALTITUDE_REFRACTION[i]
    return r0 + (r1 - r0) * (altitude - a0) / (a1 - a0)


def refraction_arcmin(apparent_altitude: float, temperature_c: float = 10.0,
                      pressure_mb: float = 1010.0) -> float:
    """
    Atmospheric refraction in arcminutes for an apparent altitude in degrees.

    Bennett's formula above 5 degrees, table interpolation below; both
    scaled for non-standard temperature and pressure. The two disagree
    slightly at 5 degrees and the table wins below it, so the result steps
    there.
    """
    if apparent_altitude < LOW_ALTITUDE_LIMIT:
        r = _table_refraction(apparent_altitude)
    else:
        h = apparent_altitude
        r = 1.02 / math.tan(math.radians(h + 7.31 / (h + 4.4)))
    return r * _atmosphere_factor(temperature_c, pressure_mb)


def correct_altitude(sextant_altitude: float, body: Optional[BodyPosition] = None,
                     settings: Optional[CorrectionSettings] = None) -> CorrectionResult:
    """
    Convert a sextant altitude into an observed altitude.

    Args:
        sextant_altitude: Hs in degrees
        body: Ephemeris position of the observed body; supplies semi-diameter
            and horizontal parallax. None is treated as a star.
        settings: Sextant and atmosphere settings

    Returns:
        CorrectionResult with the per-stage trace and Ho
    """
    settings = settings or CorrectionSettings()
    kind = body.body.kind if body is not None else BodyKind.STAR

    steps = []
    altitude = sextant_altitude

    def apply(name: str, correction: float):
        nonlocal altitude
        altitude += correction / 60.0
        steps.append(CorrectionStep(name, correction, altitude))

    apply("index_error", -settings.index_error)
    apply("dip", -dip_arcmin(settings.height_of_eye_ft))
    apply("refraction", -refraction_arcmin(altitude, settings.temperature_c, settings.pressure_mb))

    semi_diameter = 0.0
    if kind in (BodyKind.SUN, BodyKind.MOON):
        if settings.limb is Limb.LOWER:
            semi_diameter = body.semi_diameter
        elif settings.limb is Limb.UPPER:
            semi_diameter = -body.semi_diameter
    apply("semi_diameter", semi_diameter)

    parallax = 0.0
    if kind is BodyKind.MOON:
        parallax = body.horizontal_parallax * math.cos(math.radians(altitude))
    elif kind is BodyKind.SUN:
        parallax = SUN_PARALLAX_ARCMIN * math.cos(math.radians(altitude))
    apply("parallax", parallax)

    return CorrectionResult(
        sextant_altitude=sextant_altitude,
        steps=tuple(steps),
        observed_altitude=altitude,
    )
