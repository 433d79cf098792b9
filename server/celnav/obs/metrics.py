"""
Prometheus metrics collection for the navigation engine.

Provides business metrics for monitoring sight reductions, fix quality,
observation outcomes, error rates, and inertial tracking health.
"""

from prometheus_client import (
    Counter, Histogram, Gauge, Info, CollectorRegistry,
    generate_latest, CONTENT_TYPE_LATEST
)
from typing import Dict, Any, Optional, Tuple
import time


# Global metrics registry
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'celnav_requests_total',
    'Total number of API requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'celnav_request_duration_seconds',
    'Request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
    registry=REGISTRY
)

# Sight reduction metrics
SIGHT_REDUCTIONS = Counter(
    'celnav_sight_reductions_total',
    'Total number of sight reductions',
    ['body_kind'],
    registry=REGISTRY
)

INTERCEPT_NM = Histogram(
    'celnav_intercept_nm',
    'Absolute intercept distance in nautical miles',
    buckets=[1, 2, 5, 10, 20, 30, 60, 120],
    registry=REGISTRY
)

FIXES_COMPUTED = Counter(
    'celnav_fixes_total',
    'Total number of LOP fixes by method and quality',
    ['method', 'quality'],  # quality: good, fair, poor, none
    registry=REGISTRY
)

OBSERVATIONS = Counter(
    'celnav_observations_total',
    'Observation lifecycle outcomes',
    ['outcome'],  # started, completed, cancelled
    registry=REGISTRY
)

DR_FIXES = Counter(
    'celnav_dr_fixes_total',
    'Fixes applied to the dead-reckoning state',
    ['kind'],
    registry=REGISTRY
)

# Error metrics
ERRORS_TOTAL = Counter(
    'celnav_errors_total',
    'Total number of errors by category',
    ['error_code', 'error_category'],
    registry=REGISTRY
)

# Inertial tracking metrics
STEPS_DETECTED = Counter(
    'celnav_steps_detected_total',
    'Total steps registered by inertial tracking',
    registry=REGISTRY
)

INERTIAL_CONFIDENCE = Gauge(
    'celnav_inertial_confidence',
    'Current inertial position confidence (0.0 to 1.0)',
    registry=REGISTRY
)

# System info
SYSTEM_INFO = Info(
    'celnav_system_info',
    'System information',
    registry=REGISTRY
)

# Application uptime
APP_START_TIME = Gauge(
    'celnav_app_start_time_seconds',
    'Unix timestamp when the application started',
    registry=REGISTRY
)


class MetricsCollector:
    """
    High-level metrics collector for navigation operations.

    Provides methods to record metrics for common operations
    with consistent labeling.
    """

    def __init__(self):
        self.start_time = time.time()
        APP_START_TIME.set(self.start_time)

    def record_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration_seconds: float
    ):
        """Record HTTP request metrics."""
        REQUEST_COUNT.labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        REQUEST_DURATION.labels(
            method=method,
            endpoint=endpoint
        ).observe(duration_seconds)

    def record_sight_reduction(self, body_kind: str, intercept_nm: float):
        """Record a sight reduction and its intercept."""
        SIGHT_REDUCTIONS.labels(body_kind=body_kind).inc()
        INTERCEPT_NM.observe(abs(intercept_nm))

    def record_fix(self, method: str, quality: Optional[str]):
        """Record a fix; quality None means no solution."""
        FIXES_COMPUTED.labels(method=method, quality=quality or "none").inc()

    def record_observation(self, outcome: str):
        OBSERVATIONS.labels(outcome=outcome).inc()

    def record_dr_fix(self, kind: str):
        DR_FIXES.labels(kind=kind).inc()

    def record_error(self, error_code: str):
        """Record error metrics."""
        # Extract category from error code (e.g., "STATE.NO_FIX" -> "STATE")
        error_category = error_code.split('.')[0] if '.' in error_code else error_code

        ERRORS_TOTAL.labels(
            error_code=error_code,
            error_category=error_category
        ).inc()

    def record_step(self):
        STEPS_DETECTED.inc()

    def set_inertial_confidence(self, confidence: float):
        INERTIAL_CONFIDENCE.set(confidence)

    def set_system_info(
        self,
        version: str,
        python_version: str,
        star_count: int
    ):
        """Set system information metrics."""
        SYSTEM_INFO.info({
            'version': version,
            'python_version': python_version,
            'star_count': str(star_count)
        })

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get summary of key metrics for health checks."""
        uptime_seconds = time.time() - self.start_time

        return {
            "uptime_seconds": round(uptime_seconds, 1),
            "inertial_confidence": round(INERTIAL_CONFIDENCE._value.get(), 3)
        }


# Global metrics collector instance
metrics = MetricsCollector()


def get_metrics_content() -> Tuple[str, str]:
    """
    Get Prometheus metrics content for /metrics endpoint.

    Returns:
        Tuple of (content, content_type)
    """
    content = generate_latest(REGISTRY)
    return content.decode('utf-8'), CONTENT_TYPE_LATEST


class RequestMetricsMiddleware:
    """
    Middleware to automatically record request metrics.

    Records request count, duration, and response status for all requests.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope["method"]
        endpoint = self._normalize_endpoint(scope["path"])

        start_time = time.perf_counter()
        status_code = 500  # Default to error

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration = time.perf_counter() - start_time
            metrics.record_request(method, endpoint, status_code, duration)

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path for metrics grouping."""
        if "?" in path:
            path = path.split("?")[0]

        # Collapse path parameters so labels stay bounded
        if path.startswith("/v1/bodies/"):
            return "/v1/bodies/{name}"
        if path.startswith("/v1/lops/") and path.rsplit("/", 1)[-1].isdigit():
            return "/v1/lops/{id}"
        if path.startswith("/v1/"):
            return path

        if path in ("/", "/healthz", "/metrics"):
            return path
        elif path.startswith("/docs"):
            return "/docs"
        elif path.startswith("/openapi"):
            return "/openapi"
        else:
            return "/other"
