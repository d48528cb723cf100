"""
Sensor Telemetry Relay - FastAPI Application

Relays the sensor device's snapshot, image, video and prediction endpoints
to the browser, and keeps a dashboard session polling the relay so recent
history is always available, synthetic if the device is down.
"""
import logging
import sys
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sensor_relay.config import get_settings
from sensor_relay.errors import RelayError
from sensor_relay.routes import dashboard, relay
from sensor_relay.services.dashboard import DashboardSession
from sensor_relay.services.device_client import RelayDeviceClient
from sensor_relay.services.fallback import FallbackSynthesizer
from sensor_relay.services.scheduler import PollingScheduler

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(message)s",
    stream=sys.stdout,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Requests issued by the in-process dashboard client never leave the process.
IN_PROCESS_BASE_URL = "http://relay.internal"


def create_dashboard(app: FastAPI) -> tuple[DashboardSession, PollingScheduler]:
    """Build the dashboard session and the scheduler that drives it."""
    if settings.dashboard_relay_url:
        client = RelayDeviceClient(settings.dashboard_relay_url, timeout_s=settings.upstream_timeout_s)
    else:
        client = RelayDeviceClient(
            IN_PROCESS_BASE_URL,
            timeout_s=settings.upstream_timeout_s,
            transport=httpx.ASGITransport(app=app),
        )

    session = DashboardSession(
        client,
        synthesizer=FallbackSynthesizer(seed=settings.fallback_seed),
        capacity=settings.max_history_length,
        fallback_notice=settings.fallback_notice,
    )
    scheduler = PollingScheduler(session.refresh, interval_s=settings.poll_interval_s)
    return session, scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown."""
    logger.info(
        "Starting sensor relay",
        version=settings.app_version,
        device=settings.device_url,
    )
    app.state.upstream = httpx.AsyncClient(
        base_url=settings.device_url,
        timeout=httpx.Timeout(settings.upstream_timeout_s),
    )

    scheduler = None
    app.state.dashboard = None
    app.state.scheduler = None
    if settings.dashboard_enabled:
        session, scheduler = create_dashboard(app)
        await session.mount()
        app.state.dashboard = session
        app.state.scheduler = scheduler
        scheduler.start()

    yield

    logger.info("Shutting down sensor relay")
    if scheduler is not None:
        await scheduler.stop()
        await app.state.dashboard.unmount()
        await scheduler.wait_idle(timeout_s=settings.upstream_timeout_s)
        app.state.dashboard = None
        app.state.scheduler = None
    await app.state.upstream.aclose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Relay and dashboard feed for live sensor device telemetry",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(relay.router)
app.include_router(dashboard.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
    }


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "device": settings.device_url,
        "docs": "/docs",
        "health": "/health",
    }


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    """Uniform error envelope for failed forwards."""
    return JSONResponse(status_code=exc.status_code, content=exc.envelope())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler so tracebacks never reach clients."""
    logger.exception("Unhandled exception", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "sensor_relay.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
