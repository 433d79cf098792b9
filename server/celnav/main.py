# server/celnav/main.py
import logging
import os
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__, api
from .config import load_config, print_config
from .obs.logging import setup_logging, StructuredLogger, set_request_context, clear_request_context
from .obs.metrics import metrics, get_metrics_content, RequestMetricsMiddleware
from .reckoning.dead_reckoning import DeadReckoning
from .schemas import HealthOut
from .sight.corrections import CorrectionSettings
from .sight.lop import LopStore
from .sight.observation import ObservationSession
from .sight.reduction import SightReducer
from .stars.catalog import all_stars, navigation_stars

# Will be configured in lifespan
logger = logging.getLogger(__name__)
business_logger = StructuredLogger(__name__)

CONFIG_PATH = os.environ.get("CELNAV_CONFIG", "config.yaml")

# Global configuration and services
CONFIG = None
STAR_COUNT = 0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup and shutdown.
    """
    global CONFIG, STAR_COUNT
    startup_start = time.perf_counter()

    # Load configuration first
    CONFIG = load_config(CONFIG_PATH)

    # Setup structured logging
    setup_logging(level=CONFIG.api.log_level, enable_json=CONFIG.api.json_logs)

    logger.info(f"Starting celnav v{__version__}...")
    business_logger.startup_event("application", "starting")

    print_config(CONFIG)

    # Load star catalog
    try:
        catalog_start = time.perf_counter()
        STAR_COUNT = len(all_stars())
        catalog_duration = (time.perf_counter() - catalog_start) * 1000
        business_logger.startup_event(
            "star_catalog", "ready",
            duration_ms=catalog_duration,
            details={"stars": STAR_COUNT, "navigation_stars": len(navigation_stars())}
        )
    except Exception as e:
        business_logger.startup_event("star_catalog", "error")
        logger.error(f"Failed to load star catalog: {e}")
        raise

    metrics.set_system_info(
        version=__version__,
        python_version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        star_count=STAR_COUNT
    )

    # Navigation state lives for the lifetime of the process
    dead_reckoning = DeadReckoning(CONFIG.dead_reckoning)

    # Inject dependencies into API module
    api.CONFIG = CONFIG
    api.DR = dead_reckoning
    api.LOPS = LopStore(CONFIG.reduction)
    api.OBSERVATIONS = ObservationSession(CorrectionSettings.from_config(CONFIG.corrections))
    api.REDUCER = SightReducer(CONFIG.reduction, position_provider=dead_reckoning)

    business_logger.startup_event(
        "application", "ready",
        duration_ms=(time.perf_counter() - startup_start) * 1000
    )
    logger.info(f"celnav v{__version__} startup complete")

    yield

    # Shutdown
    logger.info(f"Shutting down celnav v{__version__}...")
    business_logger.startup_event("application", "stopped")


def _cors_origins():
    origins = load_config(CONFIG_PATH).api.cors_origins
    return origins or ["*"]


# Create FastAPI application
app = FastAPI(
    title="celnav",
    version=__version__,
    description="Celestial navigation: ephemeris, sight reduction, fixes and dead reckoning",
    lifespan=lifespan
)

# Add metrics middleware
app.add_middleware(RequestMetricsMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    """
    Request logging middleware with request id propagation.
    """
    request_id = set_request_context(request.headers.get("x-request-id"))
    start_time = time.perf_counter()

    try:
        response = await call_next(request)

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "HTTP request processed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "user_agent": request.headers.get("user-agent", "unknown")
            }
        )

        response.headers["X-Request-Id"] = request_id
        # Navigation state changes between requests
        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        clear_request_context()


@app.get("/healthz", response_model=HealthOut)
def healthz():
    """
    Health check endpoint.
    """
    summary = metrics.get_metrics_summary()
    return HealthOut(
        status="ok" if STAR_COUNT > 0 and CONFIG is not None else "degraded",
        version=__version__,
        star_count=STAR_COUNT,
        uptime_seconds=summary["uptime_seconds"],
    )


@app.get("/metrics", response_class=PlainTextResponse)
def metrics_endpoint():
    """
    Prometheus metrics endpoint.
    """
    content, content_type = get_metrics_content()
    return PlainTextResponse(content, media_type=content_type)


# Include API routes
app.include_router(api.router)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Return structured error payloads ({code, title, detail, tip}) at the top level.
    """
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"detail": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


# Global exception handler for unhandled exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors.
    """
    logger.error(f"Unhandled exception in {request.method} {request.url}: {exc}")
    metrics.record_error("SERVER.ERROR")

    return JSONResponse(
        status_code=500,
        content={
            "code": "SERVER.ERROR",
            "title": "Internal server error",
            "detail": "An unexpected error occurred",
            "tip": "Please try again or contact support if the problem persists"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
