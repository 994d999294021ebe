from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from steptracker import __version__
from steptracker.api.routes import health, steps
from steptracker.config import get_settings
from steptracker.core.error_handlers import (
    generic_exception_handler,
    request_validation_handler,
    step_tracker_exception_handler,
)
from steptracker.core.exceptions import StepTrackerException
from steptracker.core.logging import get_logger, setup_logging
from steptracker.core.middleware import RequestLoggingMiddleware
from steptracker.database import SessionLocal, init_db
from steptracker.services import DatabaseSlot, PushSensor, RolloverScheduler, build_aggregator

settings = get_settings()

# Initialize structured logging
setup_logging(debug=settings.debug, level=settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("application_startup", app_name=settings.app_name)
    init_db()
    logger.info("database_initialized")

    sensor = PushSensor()
    aggregator = build_aggregator(settings, DatabaseSlot(SessionLocal), sensor)
    scheduler = RolloverScheduler(aggregator, max_sleep_seconds=settings.rollover_max_sleep_seconds)

    await aggregator.start()
    await scheduler.start()
    app.state.sensor = sensor
    app.state.aggregator = aggregator
    app.state.scheduler = scheduler

    yield

    # Shutdown
    await scheduler.stop()
    await aggregator.stop()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.app_name,
    description="Daily step totals, goal and history",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
)

# Request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# Register exception handlers
app.add_exception_handler(StepTrackerException, step_tracker_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(steps.router, prefix="/api/steps", tags=["steps"])


@app.get("/")
async def root():
    return {"message": settings.app_name, "version": __version__}
