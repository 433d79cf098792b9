"""
Inertial (pedestrian) position tracking.

Session state machine ``idle -> tracking -> idle``. While tracking,
motion samples drive the step detector and gyro heading, orientation
samples feed the magnetic side of the heading filter, and every step
advances a local East/North offset from the last external fix.
"""

import asyncio
import math
import time
import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Optional, Protocol, Tuple

from .heading import HeadingFilter, HeadingSource
from .steps import StepDetector
from ..config import InertialConfig
from ..errors import CalibrationError, InvalidStateError, TrackingStartResult
from ..models import GeoPosition
from ..obs.logging import StructuredLogger
from ..obs.metrics import metrics

logger = logging.getLogger(__name__)
business_logger = StructuredLogger(__name__)

STANDARD_GRAVITY = 9.80665  # m/s^2
METERS_PER_DEGREE_LAT = 111320.0


@dataclass(frozen=True)
class MotionSample:
    """Device motion: acceleration including gravity (m/s^2) and yaw rate (deg/s, clockwise positive)."""

    timestamp: float
    acceleration: Tuple[float, float, float]
    yaw_rate: Optional[float] = None


@dataclass(frozen=True)
class OrientationSample:
    timestamp: float
    compass_heading: float  # magnetic, degrees


class SensorSource(Protocol):
    """Push-driven motion/orientation sensors, supplied by the device layer."""

    has_motion: bool
    has_orientation: bool

    async def request_permission(self) -> bool:
        ...

    def subscribe(self, on_motion: Callable[[MotionSample], int],
                  on_orientation: Callable[[OrientationSample], None]) -> Callable[[], None]:
        """Attach listeners; returns a callable that detaches them."""
        ...


class TrackingStatus(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"


@dataclass(frozen=True)
class TrackPoint:
    timestamp: float
    east: float
    north: float


@dataclass(frozen=True)
class InertialState:
    """Read-only snapshot of a tracking session."""

    status: TrackingStatus
    started_at: Optional[float]
    last_update: Optional[float]
    start_position: Optional[GeoPosition]
    position: Optional[GeoPosition]
    east: float
    north: float
    heading: Optional[float]
    heading_source: HeadingSource
    step_count: int
    step_length: float
    distance: float
    cadence: float
    gyro_bias: float
    confidence: float
    drift_m: float


class InertialTracker:
    """
    Owner of the inertial tracking state.

    Mutations are serialized with a lock that is never held across an
    await. ``clock`` supplies wall time in seconds for confidence decay.
    """

    def __init__(self, config: Optional[InertialConfig] = None,
                 clock: Callable[[], float] = time.time):
        self.config = config or InertialConfig()
        self.clock = clock
        self._lock = threading.Lock()
        self.detector = StepDetector(self.config)
        self.heading = HeadingFilter(self.config)
        self.step_length = self.config.step_length_m
        self._history: Deque[TrackPoint] = deque(maxlen=self.config.history_size)
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._calibration_samples: Optional[list] = None
        self.status = TrackingStatus.IDLE
        self._clear_session()

    def _clear_session(self):
        self.started_at: Optional[float] = None
        self.last_update: Optional[float] = None
        self.start_position: Optional[GeoPosition] = None
        self.east = 0.0
        self.north = 0.0
        self.step_count = 0
        self.distance = 0.0
        self._distance_since_fix = 0.0
        self._decay_distance = 0.0
        self._decay_start = self.clock()
        self._history.clear()
        self.detector.reset()
        self.heading.reset()

    @property
    def is_tracking(self) -> bool:
        return self.status is TrackingStatus.TRACKING

    async def start(self, source: SensorSource,
                    start_position: Optional[GeoPosition] = None) -> TrackingStartResult:
        """
        Start a tracking session.

        Checks sensor capability and requests permission before any state
        changes. Failures are reported in the result; tracking does not start.
        """
        if self.is_tracking:
            return TrackingStartResult(False, "Tracking is already active", "STATE.ALREADY_TRACKING")
        if not source.has_motion:
            return self._start_failed("Motion sensors are not available on this device")

        try:
            granted = await source.request_permission()
        except Exception as e:
            return self._start_failed(f"Sensor permission request failed: {e}")
        if not granted:
            return self._start_failed("Permission to use motion sensors was denied")

        with self._lock:
            if self.is_tracking:
                return TrackingStartResult(False, "Tracking is already active", "STATE.ALREADY_TRACKING")
            self._clear_session()
            self.start_position = start_position
            self.started_at = self.clock()
            self.status = TrackingStatus.TRACKING

        self._unsubscribe = source.subscribe(self.handle_motion, self.handle_orientation)
        business_logger.tracking_event("started", {
            "has_orientation": source.has_orientation,
            "anchored": start_position is not None
        })
        return TrackingStartResult(True)

    def _start_failed(self, reason: str) -> TrackingStartResult:
        business_logger.tracking_event("start_failed", {"reason": reason})
        return TrackingStartResult(False, reason, "SENSOR.UNAVAILABLE")

    def stop(self) -> InertialState:
        """Detach sensor listeners and return to idle. Safe to call in any state."""
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        try:
            if unsubscribe is not None:
                unsubscribe()
        finally:
            with self._lock:
                was_tracking = self.is_tracking
                self.status = TrackingStatus.IDLE
                state = self._snapshot()
        if was_tracking:
            business_logger.tracking_event("stopped", {
                "steps": state.step_count,
                "distance_m": round(state.distance, 1)
            })
        return state

    def handle_motion(self, sample: MotionSample) -> int:
        """
        Process one motion sample. Returns the number of steps it completed.

        Ignored while idle.
        """
        ax, ay, az = sample.acceleration
        magnitude = math.sqrt(ax * ax + ay * ay + az * az) / STANDARD_GRAVITY

        with self._lock:
            if not self.is_tracking:
                return 0
            self.last_update = sample.timestamp
            if sample.yaw_rate is not None:
                self.heading.update_gyro(sample.yaw_rate, sample.timestamp)
                if self._calibration_samples is not None:
                    self._calibration_samples.append(sample.yaw_rate)
            step_times = self.detector.process(magnitude, sample.timestamp)
            for step_time in step_times:
                self._advance_step(step_time)
        return len(step_times)

    def handle_orientation(self, sample: OrientationSample) -> None:
        with self._lock:
            if not self.is_tracking:
                return
            self.last_update = sample.timestamp
            self.heading.update_magnetic(sample.compass_heading)

    def set_heading(self, heading: float) -> None:
        """Set the heading manually (e.g. from a known direction of travel)."""
        with self._lock:
            self.heading.set_heading(heading, HeadingSource.MANUAL)

    def register_step(self, timestamp: Optional[float] = None) -> Tuple[float, float]:
        """
        Advance the position by one step along the current heading.

        Returns:
            The new (east, north) offset in metres

        Raises:
            InvalidStateError: not tracking
        """
        with self._lock:
            self._require_tracking("register a step")
            self._advance_step(timestamp if timestamp is not None else self.clock())
            return self.east, self.north

    def _advance_step(self, timestamp: float):
        h = math.radians(self.heading.heading or 0.0)
        self.east += self.step_length * math.sin(h)
        self.north += self.step_length * math.cos(h)
        self.step_count += 1
        self.distance += self.step_length
        self._distance_since_fix += self.step_length
        self._decay_distance += self.step_length
        self._history.append(TrackPoint(timestamp, self.east, self.north))
        metrics.record_step()

    def confidence(self) -> float:
        """Position confidence in [min_confidence, 1.0]."""
        distance_factor = max(0.0, 1.0 - self._decay_distance / self.config.full_degradation_m)
        minutes = max(0.0, self.clock() - self._decay_start) / 60.0
        time_factor = max(0.0, 1.0 - minutes / self.config.time_decay_minutes)
        value = distance_factor * time_factor
        return max(self.config.min_confidence, min(1.0, value))

    def drift_m(self) -> float:
        """Estimated position error since the last fix, metres."""
        return self.config.drift_rate * self._distance_since_fix

    def update_fix(self, position: GeoPosition) -> InertialState:
        """
        Apply an external fix (GPS, celestial or manual).

        Re-anchors the relative offset to ``position`` and restores full
        confidence. Allowed in any state.
        """
        with self._lock:
            self.start_position = position
            self.east = 0.0
            self.north = 0.0
            self._distance_since_fix = 0.0
            self._decay_distance = 0.0
            self._decay_start = self.clock()
            self._history.clear()
            state = self._snapshot()
        business_logger.tracking_event("fix", {"lat": position.lat, "lon": position.lon})
        return state

    def zero_velocity_update(self, yaw_rate: Optional[float] = None) -> float:
        """
        Device known stationary: nudge confidence up and re-estimate gyro bias
        from the current rotation rate. Position is unchanged.

        Returns:
            The new confidence
        """
        with self._lock:
            if yaw_rate is not None:
                self.heading.adapt_bias(yaw_rate)
            # one-off bump: wind both decay inputs back by the bonus fraction
            bonus = self.config.zupt_confidence_bonus
            self._decay_distance = max(0.0, self._decay_distance - bonus * self.config.full_degradation_m)
            self._decay_start = min(self.clock(), self._decay_start + bonus * self.config.time_decay_minutes * 60.0)
            return self.confidence()

    def calibrate_step_length(self, distance_m: float, steps: int) -> float:
        """
        Set the step length from a known walked distance.

        Raises:
            CalibrationError: no steps, or a step length outside the human range
        """
        if steps <= 0:
            raise CalibrationError("Step count must be positive",
                                   tip="Walk a measured distance and count the steps.")
        length = distance_m / steps
        if not self.config.min_step_length_m <= length <= self.config.max_step_length_m:
            business_logger.tracking_event("calibration_rejected", {"step_length_m": round(length, 3)})
            raise CalibrationError(
                f"Step length {length:.2f} m outside {self.config.min_step_length_m}-"
                f"{self.config.max_step_length_m} m",
                tip="Check the measured distance and step count."
            )
        with self._lock:
            self.step_length = length
        business_logger.tracking_event("calibrated", {"step_length_m": round(length, 3)})
        return length

    async def calibrate_gyro_bias(self, duration: Optional[float] = None) -> float:
        """
        Average the yaw rate over a window while the device is stationary.

        Raises:
            InvalidStateError: not tracking (no samples would arrive)
            CalibrationError: no gyro samples during the window
        """
        duration = self.config.gyro_calibration_seconds if duration is None else duration
        with self._lock:
            self._require_tracking("calibrate the gyro")
            self._calibration_samples = []

        try:
            await asyncio.sleep(duration)
        finally:
            with self._lock:
                samples, self._calibration_samples = self._calibration_samples, None

        if not samples:
            business_logger.tracking_event("calibration_rejected", {"reason": "no gyro samples"})
            raise CalibrationError("No gyroscope samples received during calibration",
                                   tip="Keep tracking active and the device still while calibrating.")

        bias = sum(samples) / len(samples)
        with self._lock:
            self.heading.gyro_bias = bias
        business_logger.tracking_event("calibrated", {"gyro_bias": round(bias, 4), "samples": len(samples)})
        return bias

    def reset(self) -> InertialState:
        """Stop tracking and clear the session. Calibrations are kept."""
        self.stop()
        with self._lock:
            self._clear_session()
            return self._snapshot()

    def position(self) -> Optional[GeoPosition]:
        with self._lock:
            return self._absolute_position()

    def history(self):
        with self._lock:
            return list(self._history)

    def get_state(self) -> InertialState:
        with self._lock:
            state = self._snapshot()
        metrics.set_inertial_confidence(state.confidence)
        return state

    def _absolute_position(self) -> Optional[GeoPosition]:
        if self.start_position is None:
            return None
        lat = self.start_position.lat + self.north / METERS_PER_DEGREE_LAT
        cos_lat = max(math.cos(math.radians(self.start_position.lat)), 1e-6)
        lon = self.start_position.lon + self.east / (METERS_PER_DEGREE_LAT * cos_lat)
        return GeoPosition(lat, lon)

    def _require_tracking(self, action: str):
        if not self.is_tracking:
            raise InvalidStateError(
                f"Cannot {action}: inertial tracking is not active",
                code="STATE.NOT_TRACKING",
                title="Tracking not active",
                tip="Start inertial tracking first."
            )

    def _snapshot(self) -> InertialState:
        return InertialState(
            status=self.status,
            started_at=self.started_at,
            last_update=self.last_update,
            start_position=self.start_position,
            position=self._absolute_position(),
            east=self.east,
            north=self.north,
            heading=self.heading.heading,
            heading_source=self.heading.source,
            step_count=self.step_count,
            step_length=self.step_length,
            distance=self.distance,
            cadence=self.detector.cadence(),
            gyro_bias=self.heading.gyro_bias,
            confidence=self.confidence(),
            drift_m=self.drift_m(),
        )
