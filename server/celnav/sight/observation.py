"""
Observation lifecycle.

A navigator starts an observation of one body, records any number of
sextant sights, then completes it (averaging the sights into one
observed altitude at the mean time) or cancels it. At most one
observation is active; completed observations move into the session log.
"""

import math
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple, Union

from .corrections import CorrectionResult, CorrectionSettings, correct_altitude
from ..ephemeris.bodies import Body, BodyPosition, resolve_body
from ..ephemeris.compute import get_body_position
from ..errors import InputError, InvalidStateError, NotFound
from ..util.dates import ensure_utc

logger = logging.getLogger(__name__)


class ObservationStatus(str, Enum):
    ACTIVE = "active"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Sight:
    time: datetime
    sextant_altitude: float
    corrections: CorrectionResult
    observed_altitude: float
    body_position: BodyPosition


@dataclass(frozen=True)
class ObservationAverage:
    """Mean of all sights in a completed observation."""

    observed_altitude: float
    time: datetime
    count: int
    std_dev_arcmin: float  # population standard deviation of Ho
    body_position: BodyPosition  # recomputed at the mean time


@dataclass(frozen=True)
class Observation:
    """Snapshot of an observation. Sessions replace snapshots, never mutate them."""

    observation_id: int
    body: Body
    started_at: datetime
    settings: CorrectionSettings
    sights: Tuple[Sight, ...] = ()
    status: ObservationStatus = ObservationStatus.ACTIVE
    average: Optional[ObservationAverage] = None


def average_sights(body: Body, sights: Tuple[Sight, ...]) -> ObservationAverage:
    """Average observed altitude and time over a set of sights."""
    if not sights:
        raise InputError("Cannot average an observation with no sights")

    count = len(sights)
    mean_alt = sum(s.observed_altitude for s in sights) / count
    variance = sum((s.observed_altitude - mean_alt) ** 2 for s in sights) / count

    t0 = sights[0].time
    mean_offset = sum((s.time - t0).total_seconds() for s in sights) / count
    mean_time = t0 + timedelta(seconds=mean_offset)

    return ObservationAverage(
        observed_altitude=mean_alt,
        time=mean_time,
        count=count,
        std_dev_arcmin=math.sqrt(variance) * 60.0,
        body_position=get_body_position(body, mean_time),
    )


class ObservationSession:
    """
    Owner of the active observation and the log of completed ones.

    All mutations are serialized; a rejected command leaves the session
    exactly as it was.
    """

    def __init__(self, default_settings: Optional[CorrectionSettings] = None):
        self.default_settings = default_settings or CorrectionSettings()
        self._active: Optional[Observation] = None
        self._log: List[Observation] = []
        self._next_id = 1
        self._lock = threading.Lock()

    @property
    def active(self) -> Optional[Observation]:
        return self._active

    @property
    def log(self) -> List[Observation]:
        with self._lock:
            return list(self._log)

    def start(self, body: Union[Body, str], when: datetime,
              settings: Optional[CorrectionSettings] = None) -> Union[Observation, NotFound]:
        """
        Start observing a body.

        Returns:
            The new active Observation, or NotFound for an unknown body

        Raises:
            InvalidStateError: another observation is already active
        """
        if not isinstance(body, Body):
            body = resolve_body(body)
            if isinstance(body, NotFound):
                return body

        with self._lock:
            if self._active is not None:
                raise InvalidStateError(
                    f"Observation {self._active.observation_id} of {self._active.body.name} is still active",
                    code="STATE.OBSERVATION_ACTIVE",
                    title="Observation already active",
                    tip="Complete or cancel the current observation first."
                )
            observation = Observation(
                observation_id=self._next_id,
                body=body,
                started_at=ensure_utc(when),
                settings=settings or self.default_settings,
            )
            self._next_id += 1
            self._active = observation

        logger.info(f"Observation {observation.observation_id} started: {body.name}")
        return observation

    def record_sight(self, sextant_altitude: float, when: datetime) -> Sight:
        """
        Append a sextant sight to the active observation.

        Raises:
            InvalidStateError: no observation is active
        """
        with self._lock:
            active = self._require_active("record a sight")
            when = ensure_utc(when)
            position = get_body_position(active.body, when)
            corrections = correct_altitude(sextant_altitude, position, active.settings)
            sight = Sight(
                time=when,
                sextant_altitude=sextant_altitude,
                corrections=corrections,
                observed_altitude=corrections.observed_altitude,
                body_position=position,
            )
            self._active = replace(active, sights=active.sights + (sight,))
        return sight

    def complete(self) -> Observation:
        """
        Finalize the active observation and move it into the log.

        Raises:
            InvalidStateError: no observation is active, or it has no sights
        """
        with self._lock:
            active = self._require_active("complete an observation")
            if not active.sights:
                raise InvalidStateError(
                    "The active observation has no sights",
                    code="STATE.NO_SIGHTS",
                    title="No sights recorded",
                    tip="Record at least one sight before completing."
                )
            completed = replace(
                active,
                status=ObservationStatus.COMPLETE,
                average=average_sights(active.body, active.sights),
            )
            self._log.append(completed)
            self._active = None

        logger.info(
            f"Observation {completed.observation_id} completed: "
            f"{completed.average.count} sights, Ho {completed.average.observed_altitude:.4f}°"
        )
        return completed

    def cancel(self) -> Observation:
        """
        Discard the active observation without touching the log.

        Raises:
            InvalidStateError: no observation is active
        """
        with self._lock:
            active = self._require_active("cancel an observation")
            cancelled = replace(active, status=ObservationStatus.CANCELLED)
            self._active = None

        logger.info(f"Observation {cancelled.observation_id} cancelled")
        return cancelled

    def clear_log(self) -> None:
        with self._lock:
            self._log.clear()

    def _require_active(self, action: str) -> Observation:
        if self._active is None:
            raise InvalidStateError(
                f"Cannot {action}: no observation is active",
                code="STATE.NO_ACTIVE_OBSERVATION",
                title="No active observation",
                tip="Start an observation first."
            )
        return self._active
