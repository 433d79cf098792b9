from dataclasses import dataclass
from fastapi import HTTPException
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class NavigationError(Exception):
    """
    Base class for recoverable navigation errors.

    Carries the same structured payload the HTTP layer returns:
    a CATEGORY.SPECIFIC code, a human-readable title, instance detail,
    and an actionable tip.
    """

    default_code = "NAV.ERROR"
    default_title = "Navigation error"

    def __init__(self, detail: str = "", code: Optional[str] = None,
                 title: Optional[str] = None, tip: str = ""):
        self.code = code or self.default_code
        self.title = title or self.default_title
        self.detail = detail
        self.tip = tip
        super().__init__(f"{self.code}: {detail or self.title}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "title": self.title,
            "detail": self.detail,
            "tip": self.tip
        }


class InvalidStateError(NavigationError):
    """Operation not valid in the current state (no active observation, no fix, time travel)."""

    default_code = "STATE.INVALID"
    default_title = "Operation not valid in current state"


class DegenerateGeometryError(NavigationError):
    """Geometry with no usable solution."""

    default_code = "GEOMETRY.DEGENERATE"
    default_title = "Degenerate geometry"


class SensorUnavailableError(NavigationError):
    """Motion or orientation capability missing or permission denied."""

    default_code = "SENSOR.UNAVAILABLE"
    default_title = "Sensor unavailable"


class CalibrationError(NavigationError):
    """Calibration input rejected."""

    default_code = "CALIBRATION.REJECTED"
    default_title = "Calibration rejected"


class InputError(NavigationError):
    """Caller supplied an invalid value."""

    default_code = "INPUT.INVALID"
    default_title = "Invalid input"


@dataclass(frozen=True)
class NotFound:
    """
    Tagged absent result for unknown bodies, stars and planets.

    Lookups return this instead of raising; callers check with
    ``isinstance(result, NotFound)`` before using body data downstream.
    """

    kind: str
    name: str
    code: str = "BODY.NOT_FOUND"

    @property
    def detail(self) -> str:
        return f"Unknown {self.kind}: {self.name}"

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class NoIntersection:
    """Explicit no-solution result for parallel or coincident lines of position."""

    reason: str
    code: str = "GEOMETRY.NO_INTERSECTION"

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class TrackingStartResult:
    """
    Outcome of starting inertial tracking.

    Missing sensors or denied permission are reported here with a
    human-readable reason; tracking simply does not start.
    """

    started: bool
    reason: str = ""
    code: Optional[str] = None

    def __bool__(self) -> bool:
        return self.started


def _raise_http(status_code: int, code: str, title: str, detail: str, tip: str):
    error_response = {
        "code": code,
        "title": title,
        "detail": detail,
        "tip": tip
    }
    raise HTTPException(status_code=status_code, detail=error_response)


def bad_request(code: str, title: str, detail: str = "", tip: str = ""):
    """
    Raise a 400 Bad Request exception with structured error response.

    Args:
        code: Error code following CATEGORY.SPECIFIC_ERROR pattern
        title: Human-readable error title
        detail: Specific details about this error instance
        tip: Actionable guidance for resolving the error
    """
    logger.warning(f"Bad request: {code} - {title} - {detail}")
    _raise_http(400, code, title, detail, tip)


def not_found(code: str = "BODY.NOT_FOUND", title: str = "Not found",
              detail: str = "", tip: str = ""):
    """Raise a 404 Not Found exception."""
    logger.info(f"Not found: {code} - {detail}")
    _raise_http(404, code, title, detail, tip)


def conflict(code: str, title: str, detail: str = "", tip: str = ""):
    """Raise a 409 Conflict exception for invalid-state operations."""
    logger.warning(f"Conflict: {code} - {title} - {detail}")
    _raise_http(409, code, title, detail, tip)


def unprocessable(code: str, title: str, detail: str = "", tip: str = ""):
    """Raise a 422 exception for inputs with no geometric solution."""
    logger.warning(f"Unprocessable: {code} - {title} - {detail}")
    _raise_http(422, code, title, detail, tip)


def service_unavailable(code: str = "SENSOR.UNAVAILABLE",
                        title: str = "Service temporarily unavailable",
                        detail: str = "", tip: str = ""):
    """Raise a 503 Service Unavailable exception."""
    logger.warning(f"Service unavailable: {detail}")
    _raise_http(503, code, title, detail, tip)


def body_not_found(result: NotFound):
    """Raise a 404 for a tagged not-found lookup result."""
    not_found(
        result.code,
        "Unknown celestial body",
        result.detail,
        "Use Sun, Moon, Mercury, Venus, Mars, Jupiter, Saturn, Polaris, or one of the 57 navigation stars."
    )


class ErrorHandler:
    """
    Centralized mapping of navigation errors onto HTTP responses.
    """

    @staticmethod
    def handle_navigation_error(err: NavigationError):
        """Map a NavigationError to the matching HTTP status and re-raise."""
        from .obs.metrics import metrics

        metrics.record_error(err.code)

        if isinstance(err, InvalidStateError):
            conflict(err.code, err.title, err.detail, err.tip)
        elif isinstance(err, DegenerateGeometryError):
            unprocessable(err.code, err.title, err.detail, err.tip)
        elif isinstance(err, SensorUnavailableError):
            service_unavailable(err.code, err.title, err.detail, err.tip)
        else:
            bad_request(err.code, err.title, err.detail, err.tip)
