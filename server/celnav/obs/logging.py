"""
Structured JSON logging for the navigation engine.

Provides consistent, structured logging with request correlation,
operation timing, and navigation context (bodies, fixes, intercepts).
"""

import json
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Dict, Any, Optional
from datetime import datetime, timezone


# Context variable for request correlation
request_id_context: ContextVar[Optional[str]] = ContextVar('request_id', default=None)

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message'
}


class JsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format with:
    - Standard fields: timestamp, level, logger, message
    - Request correlation: request_id
    - Performance: duration_ms (for timed operations)
    - Navigation context: body, intercept, fix quality, etc.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_context.get()
        if request_id:
            log_entry["request_id"] = request_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Add extra fields from the log record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_entry[key] = value

        return json.dumps(log_entry, ensure_ascii=False, separators=(',', ':'), default=str)


class StructuredLogger:
    """
    Structured logger with navigation context support.

    Provides methods for logging the engine's business events with
    consistent structure and correlation.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def sight_reduced(
        self,
        body: str,
        intercept_nm: float,
        azimuth: float,
        duration_ms: float,
        assumed_from_provider: bool = False
    ):
        """Log a completed sight reduction."""
        self.logger.info(
            "Sight reduced",
            extra={
                "operation": "sight_reduced",
                "body": body,
                "intercept_nm": round(intercept_nm, 2),
                "azimuth": round(azimuth, 1),
                "assumed_from_provider": assumed_from_provider,
                "duration_ms": round(duration_ms, 2),
                "performance_category": self._categorize_performance(duration_ms)
            }
        )

    def fix_computed(
        self,
        method: str,  # "intersection", "least_squares", "running_fix"
        lop_count: int,
        quality: Optional[str],
        duration_ms: float,
        rms_residual_nm: Optional[float] = None
    ):
        """Log a position fix computed from lines of position."""
        self.logger.info(
            f"Fix computed ({method})",
            extra={
                "operation": "fix_computed",
                "method": method,
                "lop_count": lop_count,
                "quality": quality,
                "rms_residual_nm": round(rms_residual_nm, 3) if rms_residual_nm is not None else None,
                "duration_ms": round(duration_ms, 2)
            }
        )

    def observation_event(
        self,
        event: str,  # "started", "sight_recorded", "completed", "cancelled"
        observation_id: int,
        body: str,
        sight_count: int = 0
    ):
        """Log observation lifecycle transitions."""
        self.logger.info(
            f"Observation {event}",
            extra={
                "operation": f"observation_{event}",
                "observation_id": observation_id,
                "body": body,
                "sight_count": sight_count
            }
        )

    def dead_reckoning_event(
        self,
        event: str,  # "initialized", "course_changed", "fix_applied", "cleared"
        details: Optional[Dict[str, Any]] = None
    ):
        """Log dead-reckoning state changes."""
        self.logger.info(
            f"Dead reckoning {event}",
            extra={
                "operation": f"dr_{event}",
                **(details or {})
            }
        )

    def tracking_event(
        self,
        event: str,  # "started", "stopped", "start_failed", "fix", "calibrated", "calibration_rejected"
        details: Optional[Dict[str, Any]] = None
    ):
        """Log inertial tracking state changes."""
        level = logging.WARNING if event in ("start_failed", "calibration_rejected") else logging.INFO
        self.logger.log(
            level,
            f"Inertial tracking {event}",
            extra={
                "operation": f"tracking_{event}",
                **(details or {})
            }
        )

    def startup_event(
        self,
        component: str,
        status: str,  # "starting", "ready", "error"
        duration_ms: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log application startup events."""
        level = logging.ERROR if status == "error" else logging.INFO
        self.logger.log(
            level,
            f"Startup: {component} {status}",
            extra={
                "operation": "startup",
                "component": component,
                "status": status,
                "duration_ms": round(duration_ms, 2) if duration_ms else None,
                **(details or {})
            }
        )

    @staticmethod
    def _categorize_performance(duration_ms: float) -> str:
        """Categorize performance for easy filtering."""
        if duration_ms < 5:
            return "fast"
        elif duration_ms < 50:
            return "normal"
        elif duration_ms < 500:
            return "slow"
        else:
            return "very_slow"


def setup_logging(level: str = "INFO", enable_json: bool = True) -> None:
    """
    Setup structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        enable_json: Whether to use JSON formatting
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[],  # Clear default handlers
        force=True
    )

    console_handler = logging.StreamHandler()

    if enable_json:
        console_handler.setFormatter(JsonFormatter())
    else:
        # Simple formatter for development
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def set_request_context(request_id: Optional[str] = None) -> str:
    """
    Set request context for correlation.

    Args:
        request_id: Optional request ID (generated if not provided)

    Returns:
        The request ID (generated or provided)
    """
    if request_id is None:
        request_id = str(uuid.uuid4())

    request_id_context.set(request_id)
    return request_id


def clear_request_context():
    """Clear request context."""
    request_id_context.set(None)


def get_request_id() -> Optional[str]:
    """Get current request ID from context."""
    return request_id_context.get()


class TimedOperation:
    """Context manager for timing operations with automatic logging."""

    def __init__(self, logger: StructuredLogger, operation_name: str, **context):
        self.logger = logger
        self.operation_name = operation_name
        self.context = context
        self.start_time = None
        self.duration_ms = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000

        if exc_type is None:
            self.logger.logger.debug(
                f"Operation completed: {self.operation_name}",
                extra={
                    "operation": self.operation_name,
                    "duration_ms": round(self.duration_ms, 2),
                    "performance_category": StructuredLogger._categorize_performance(self.duration_ms),
                    **self.context
                }
            )
        else:
            self.logger.logger.error(
                f"Operation failed: {self.operation_name}",
                extra={
                    "operation": self.operation_name,
                    "duration_ms": round(self.duration_ms, 2),
                    "error_type": exc_type.__name__ if exc_type else None,
                    "error_message": str(exc_val) if exc_val else None,
                    **self.context
                }
            )
