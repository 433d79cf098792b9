"""
Dead reckoning and fix fusion.

Position is propagated from the last fix by course and speed over
elapsed time (flat-Earth rhumb line). When an independent fix arrives,
the difference between it and the DR position at the same instant gives
the set and drift of unmodeled current, which is then applied to produce
an estimated position until the next fix.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from ..config import DeadReckoningConfig
from ..ephemeris.timescale import normalize_degrees
from ..errors import InputError, InvalidStateError
from ..models import FixKind, GeoPosition, bearing_and_distance
from ..util.dates import ensure_utc

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600.0


def dr_position(start: GeoPosition, course: float, speed_kn: float, hours: float) -> GeoPosition:
    """Advance a position along a course for ``hours`` at ``speed_kn``."""
    if hours == 0 or speed_kn == 0:
        return start
    return start.offset(course, speed_kn * hours)


@dataclass(frozen=True)
class SetAndDrift:
    """Bearing (set, degrees true) and speed (drift, knots) of unmodeled motion."""

    set: float
    drift: float
    elapsed_hours: float
    error_nm: float


@dataclass(frozen=True)
class LoggedPosition:
    time: datetime
    position: GeoPosition
    kind: FixKind


@dataclass(frozen=True)
class DeadReckoningState:
    """Read-only snapshot of the DR state."""

    fix_position: Optional[GeoPosition]
    fix_time: Optional[datetime]
    fix_kind: Optional[FixKind]
    anchor_position: Optional[GeoPosition]
    anchor_time: Optional[datetime]
    course: float
    speed: float
    set_and_drift: Optional[SetAndDrift]
    log_size: int


class DeadReckoning:
    """
    Owner of the dead-reckoning state.

    The anchor is where the current course/speed leg began: the last fix,
    or the DR position at the last course change, whichever is later.
    """

    def __init__(self, config: Optional[DeadReckoningConfig] = None):
        self.config = config or DeadReckoningConfig()
        self._lock = threading.Lock()
        self._log = deque(maxlen=self.config.position_log_size)
        self._reset()

    def _reset(self):
        self._fix_position: Optional[GeoPosition] = None
        self._fix_time: Optional[datetime] = None
        self._fix_kind: Optional[FixKind] = None
        self._anchor_position: Optional[GeoPosition] = None
        self._anchor_time: Optional[datetime] = None
        self._course = 0.0
        self._speed = 0.0
        self._set_and_drift: Optional[SetAndDrift] = None
        self._log.clear()

    @property
    def has_fix(self) -> bool:
        return self._fix_position is not None

    @property
    def set_and_drift(self) -> Optional[SetAndDrift]:
        return self._set_and_drift

    def initialize(self, position: GeoPosition, when: datetime, course: float = 0.0,
                   speed: float = 0.0, kind: FixKind = FixKind.MANUAL) -> DeadReckoningState:
        """Start dead reckoning from a known position, discarding any prior state."""
        _validate_speed(speed)
        when = ensure_utc(when)
        with self._lock:
            self._reset()
            self._set_fix(position, when, kind)
            self._course = normalize_degrees(course)
            self._speed = speed
            state = self._snapshot()
        logger.info(f"DR initialized at {position.lat:.4f}, {position.lon:.4f} ({kind.value})")
        return state

    def set_course_speed(self, course: float, speed: float, when: datetime) -> DeadReckoningState:
        """
        Change course and speed at ``when``.

        The position reached on the old leg becomes the anchor of the new one.

        Raises:
            InvalidStateError: no fix yet, or ``when`` precedes the current leg
        """
        _validate_speed(speed)
        when = ensure_utc(when)
        with self._lock:
            position = self._position_at(when)
            self._anchor_position = position
            self._anchor_time = when
            self._course = normalize_degrees(course)
            self._speed = speed
            self._log.append(LoggedPosition(when, position, FixKind.DEAD_RECKONING))
            state = self._snapshot()
        logger.info(f"DR course {state.course:.1f}° speed {speed:.1f} kn")
        return state

    def calculate_position(self, when: datetime) -> GeoPosition:
        """
        DR position at ``when``.

        Raises:
            InvalidStateError: no fix yet, or ``when`` precedes the current leg
        """
        with self._lock:
            return self._position_at(ensure_utc(when))

    def estimated_position(self, when: datetime) -> GeoPosition:
        """DR position corrected by the persisted set and drift."""
        when = ensure_utc(when)
        with self._lock:
            position = self._position_at(when)
            if self._set_and_drift is None:
                return position
            hours = (when - self._fix_time).total_seconds() / SECONDS_PER_HOUR
            return dr_position(position, self._set_and_drift.set, self._set_and_drift.drift, hours)

    def update_fix(self, position: GeoPosition, when: datetime,
                   kind: FixKind = FixKind.CELESTIAL) -> Optional[SetAndDrift]:
        """
        Apply an independent fix.

        When a previous fix exists, the set and drift are recomputed from the
        DR position at the fix time. The fix becomes the new anchor.

        Returns:
            The new set and drift, or None when there was no earlier fix
            or no time has elapsed since it

        Raises:
            InvalidStateError: the fix is older than the current leg
        """
        when = ensure_utc(when)
        with self._lock:
            computed = None
            if self.has_fix:
                predicted = self._position_at(when)
                hours = (when - self._fix_time).total_seconds() / SECONDS_PER_HOUR
                if hours > 0:
                    bearing, distance = bearing_and_distance(predicted, position)
                    computed = SetAndDrift(set=bearing, drift=distance / hours,
                                           elapsed_hours=hours, error_nm=distance)
                    self._set_and_drift = computed
            self._set_fix(position, when, kind)

        if computed is not None:
            logger.info(f"Fix applied ({kind.value}): set {computed.set:.0f}° drift {computed.drift:.2f} kn")
        else:
            logger.info(f"Fix applied ({kind.value})")
        return computed

    def clear(self) -> None:
        with self._lock:
            self._reset()
        logger.info("DR state cleared")

    def current_position(self, when: datetime) -> Optional[GeoPosition]:
        """Default assumed position for sight reduction: the DR position, if any."""
        with self._lock:
            if not self.has_fix:
                return None
            when = ensure_utc(when)
            if when < self._anchor_time:
                return self._anchor_position
            return self._position_at(when)

    def position_log(self) -> List[LoggedPosition]:
        with self._lock:
            return list(self._log)

    def state(self) -> DeadReckoningState:
        with self._lock:
            return self._snapshot()

    def _set_fix(self, position: GeoPosition, when: datetime, kind: FixKind):
        self._fix_position = position
        self._fix_time = when
        self._fix_kind = kind
        self._anchor_position = position
        self._anchor_time = when
        self._log.append(LoggedPosition(when, position, kind))

    def _position_at(self, when: datetime) -> GeoPosition:
        if not self.has_fix:
            raise InvalidStateError(
                "Dead reckoning has no fix",
                code="STATE.NO_FIX",
                title="No fix available",
                tip="Initialize dead reckoning with a known position first."
            )
        if when < self._anchor_time:
            raise InvalidStateError(
                f"Requested time {when.isoformat()} is before the last fix or course change "
                f"at {self._anchor_time.isoformat()}",
                code="STATE.TIME_BEFORE_FIX",
                title="Time before last fix",
                tip="Dead reckoning only projects forward from the last fix."
            )
        hours = (when - self._anchor_time).total_seconds() / SECONDS_PER_HOUR
        return dr_position(self._anchor_position, self._course, self._speed, hours)

    def _snapshot(self) -> DeadReckoningState:
        return DeadReckoningState(
            fix_position=self._fix_position,
            fix_time=self._fix_time,
            fix_kind=self._fix_kind,
            anchor_position=self._anchor_position,
            anchor_time=self._anchor_time,
            course=self._course,
            speed=self._speed,
            set_and_drift=self._set_and_drift,
            log_size=len(self._log),
        )


def _validate_speed(speed: float):
    if speed < 0:
        raise InputError(f"Speed cannot be negative: {speed}",
                         tip="Give speed over ground in knots.")
