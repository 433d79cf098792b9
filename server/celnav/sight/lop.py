"""
Lines of position.

An LOP is a finite chord perpendicular to the body's azimuth through the
intercept point. Two chords are crossed for a fix; three or more are
combined by iterated least squares. LOPs can be advanced in time for a
running fix.
"""

import math
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, replace
from itertools import combinations
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .reduction import SightReduction
from ..config import ReductionConfig
from ..ephemeris.timescale import normalize_degrees
from ..errors import NoIntersection
from ..models import Fix, FixKind, GeoPosition

logger = logging.getLogger(__name__)

# |sin(crossing angle)| below this is treated as parallel
PARALLEL_EPSILON = 1e-9

LEAST_SQUARES_MAX_ITERATIONS = 10
LEAST_SQUARES_TOLERANCE_NM = 1e-6


@dataclass(frozen=True)
class LineOfPosition:
    """A chord of the circle of equal altitude, in geographic coordinates."""

    reduction: SightReduction
    intercept_point: GeoPosition
    start: GeoPosition
    end: GeoPosition
    lop_id: Optional[int] = None
    advanced_nm: float = 0.0

    @property
    def azimuth(self) -> float:
        return self.reduction.azimuth

    @property
    def bearing(self) -> float:
        """Direction of the line itself, perpendicular to the azimuth."""
        return normalize_degrees(self.reduction.azimuth + 90.0)

    @classmethod
    def from_reduction(cls, reduction: SightReduction, half_length_nm: float = 60.0) -> "LineOfPosition":
        point = reduction.intercept_point
        bearing = normalize_degrees(reduction.azimuth + 90.0)
        return cls(
            reduction=reduction,
            intercept_point=point,
            start=point.offset(bearing, half_length_nm),
            end=point.offset(bearing + 180.0, half_length_nm),
        )


def crossing_angle(azimuth_a: float, azimuth_b: float) -> float:
    """Acute angle between two LOPs, in [0, 90] degrees."""
    diff = normalize_degrees(azimuth_a - azimuth_b) % 180.0
    return min(diff, 180.0 - diff)


def fix_quality(angle: float, config: Optional[ReductionConfig] = None) -> str:
    """Grade a fix by the crossing angle of its LOPs."""
    config = config or ReductionConfig()
    if angle > config.good_fix_angle_deg:
        return "good"
    if angle >= config.fair_fix_angle_deg:
        return "fair"
    return "poor"


def _direction(azimuth: float) -> Tuple[float, float]:
    """(east, north) unit vector along an LOP with the given body azimuth."""
    b = math.radians(azimuth + 90.0)
    return math.sin(b), math.cos(b)


def intersect_lops(first: LineOfPosition, second: LineOfPosition,
                   config: Optional[ReductionConfig] = None) -> Union[Fix, NoIntersection]:
    """
    Cross two LOPs.

    The chords are intersected as lines on a plane tangent at the first
    intercept point. Parallel or coincident lines give NoIntersection.
    """
    origin = first.intercept_point
    p1 = (0.0, 0.0)
    p2 = second.intercept_point.to_local(origin)
    d1 = _direction(first.azimuth)
    d2 = _direction(second.azimuth)

    denominator = d1[0] * d2[1] - d1[1] * d2[0]
    if abs(denominator) < PARALLEL_EPSILON:
        return NoIntersection("Lines of position are parallel")

    # p1 + t*d1 = p2 + s*d2
    dx, dy = p2[0] - p1[0], p2[1] - p1[1]
    t = (dx * d2[1] - dy * d2[0]) / denominator

    position = GeoPosition.from_local(origin, p1[0] + t * d1[0], p1[1] + t * d1[1])
    angle = crossing_angle(first.azimuth, second.azimuth)
    return Fix(position=position, kind=FixKind.CELESTIAL,
               quality=fix_quality(angle, config), crossing_angle=angle)


@dataclass(frozen=True)
class LeastSquaresFix:
    fix: Fix
    rms_residual_nm: float
    iterations: int
    lop_count: int


def least_squares_fix(lops: Sequence[LineOfPosition],
                      config: Optional[ReductionConfig] = None) -> Union[LeastSquaresFix, NoIntersection]:
    """
    Best position for two or more LOPs.

    Minimizes the sum of squared perpendicular distances to each line,
    re-linearizing about the current estimate until the correction is
    negligible.
    """
    if len(lops) < 2:
        return NoIntersection("At least two lines of position are required")

    # unit normals (east, north) of each line, i.e. the body azimuths
    azimuths = np.deg2rad([lop.azimuth for lop in lops])
    A = np.column_stack([np.sin(azimuths), np.cos(azimuths)])

    def distances(estimate: GeoPosition) -> np.ndarray:
        offsets = np.array([lop.intercept_point.to_local(estimate) for lop in lops])
        return np.sum(A * offsets, axis=1)

    # start from the centroid of the intercept points
    origin = lops[0].intercept_point
    centroid = np.mean([lop.intercept_point.to_local(origin) for lop in lops], axis=0)
    estimate = GeoPosition.from_local(origin, float(centroid[0]), float(centroid[1]))

    iterations = 0
    for iterations in range(1, LEAST_SQUARES_MAX_ITERATIONS + 1):
        correction, _, rank, _ = np.linalg.lstsq(A, distances(estimate), rcond=None)
        if rank < 2:
            return NoIntersection("Lines of position are parallel")

        east, north = float(correction[0]), float(correction[1])
        estimate = GeoPosition.from_local(estimate, east, north)
        if math.hypot(east, north) < LEAST_SQUARES_TOLERANCE_NM:
            break

    residuals = distances(estimate)
    rms = float(np.sqrt(np.mean(residuals ** 2)))
    angle = max(crossing_angle(a.azimuth, b.azimuth) for a, b in combinations(lops, 2))

    fix = Fix(position=estimate, kind=FixKind.CELESTIAL,
              quality=fix_quality(angle, config), crossing_angle=angle)
    return LeastSquaresFix(fix=fix, rms_residual_nm=rms, iterations=iterations, lop_count=len(lops))


def advance_lop(lop: LineOfPosition, course: float, speed_kn: float, hours: float) -> LineOfPosition:
    """
    Translate an LOP by the vessel's run for a running fix.

    The whole chord moves rigidly; the sight is not re-reduced.
    """
    distance = speed_kn * hours
    return replace(
        lop,
        intercept_point=lop.intercept_point.offset(course, distance),
        start=lop.start.offset(course, distance),
        end=lop.end.offset(course, distance),
        advanced_nm=lop.advanced_nm + distance,
    )


class LopStore:
    """
    User-managed collection of LOPs, oldest first.

    When full, adding evicts the oldest line.
    """

    def __init__(self, config: Optional[ReductionConfig] = None):
        self.config = config or ReductionConfig()
        self._lock = threading.Lock()
        self._lops: "OrderedDict[int, LineOfPosition]" = OrderedDict()
        self._next_id = 1

    def add(self, lop: LineOfPosition) -> LineOfPosition:
        with self._lock:
            stored = replace(lop, lop_id=self._next_id)
            self._lops[stored.lop_id] = stored
            self._next_id += 1
            while len(self._lops) > self.config.max_lops:
                evicted, _ = self._lops.popitem(last=False)
                logger.info(f"LOP store full, evicted LOP {evicted}")
        return stored

    def add_reduction(self, reduction: SightReduction) -> LineOfPosition:
        return self.add(LineOfPosition.from_reduction(reduction, self.config.lop_half_length_nm))

    def list(self) -> List[LineOfPosition]:
        with self._lock:
            return list(self._lops.values())

    def get(self, lop_id: int) -> Optional[LineOfPosition]:
        with self._lock:
            return self._lops.get(lop_id)

    def delete(self, lop_id: int) -> bool:
        with self._lock:
            return self._lops.pop(lop_id, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._lops)
            self._lops.clear()
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._lops)
