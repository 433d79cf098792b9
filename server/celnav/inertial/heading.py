"""
Heading estimation.

Gyroscope yaw rate is integrated for short-term heading; magnetic
compass heading, corrected for declination, is blended in through a
complementary filter to remove long-term gyro drift.
"""

from enum import Enum
from typing import Optional

from ..config import InertialConfig
from ..ephemeris.timescale import normalize_degrees, normalize_signed_degrees

# Gaps longer than this between gyro samples are not integrated
MAX_GYRO_GAP_S = 1.0


class HeadingSource(str, Enum):
    NONE = "none"
    GYRO = "gyro"
    MAGNETIC = "magnetic"
    FUSED = "fused"
    MANUAL = "manual"


class HeadingFilter:
    """
    Complementary heading filter.

    Yaw rate is clockwise positive in degrees per second, so integrating it
    increases the true heading.
    """

    def __init__(self, config: Optional[InertialConfig] = None):
        self.config = config or InertialConfig()
        self.gyro_bias = 0.0
        self.reset()

    def reset(self) -> None:
        self.heading: Optional[float] = None
        self.source = HeadingSource.NONE
        self._last_gyro_time: Optional[float] = None

    def set_heading(self, heading: float, source: HeadingSource = HeadingSource.MANUAL) -> float:
        self.heading = normalize_degrees(heading)
        self.source = source
        return self.heading

    def update_gyro(self, yaw_rate: float, timestamp: float) -> Optional[float]:
        """Integrate one bias-corrected yaw-rate sample."""
        last = self._last_gyro_time
        self._last_gyro_time = timestamp
        if self.heading is None or last is None:
            return self.heading

        dt = timestamp - last
        if dt <= 0 or dt > MAX_GYRO_GAP_S:
            return self.heading

        self.heading = normalize_degrees(self.heading + (yaw_rate - self.gyro_bias) * dt)
        if self.source in (HeadingSource.NONE, HeadingSource.MANUAL):
            self.source = HeadingSource.GYRO
        return self.heading

    def true_heading(self, magnetic_heading: float) -> float:
        return normalize_degrees(magnetic_heading + self.config.magnetic_declination_deg)

    def update_magnetic(self, magnetic_heading: float) -> float:
        """
        Blend a compass reading into the heading.

        The first reading initializes the heading outright; later readings
        pull it by (1 - gyro_weight) of the wrapped difference.
        """
        true = self.true_heading(magnetic_heading)
        if self.heading is None:
            self.heading = true
            self.source = HeadingSource.MAGNETIC
            return self.heading

        error = normalize_signed_degrees(true - self.heading)
        self.heading = normalize_degrees(self.heading + (1.0 - self.config.gyro_weight) * error)
        self.source = HeadingSource.FUSED
        return self.heading

    def adapt_bias(self, yaw_rate: float) -> float:
        """Nudge the gyro bias toward a rate measured while stationary."""
        self.gyro_bias += self.config.bias_adaptation_rate * (yaw_rate - self.gyro_bias)
        return self.gyro_bias
