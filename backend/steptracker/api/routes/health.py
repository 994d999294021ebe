"""Health check endpoints for monitoring service status."""

import time
from enum import Enum
from typing import Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

from steptracker import __version__
from steptracker.api.deps import get_aggregator
from steptracker.database import get_db
from steptracker.services.aggregator import StepAggregator, TrackerState

router = APIRouter(tags=["health"])


class HealthStatus(str, Enum):
    """Health status values."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class DependencyHealth(BaseModel):
    """Health status of a single dependency."""
    status: HealthStatus
    latency_ms: Optional[float] = None
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Full health check response."""
    status: HealthStatus
    version: str
    tracker_state: str
    dependencies: Dict[str, DependencyHealth]


def check_database(db: Session) -> DependencyHealth:
    """Check database connectivity."""
    try:
        start = time.perf_counter()
        db.execute(text("SELECT 1"))
        latency = (time.perf_counter() - start) * 1000
        return DependencyHealth(
            status=HealthStatus.HEALTHY,
            latency_ms=round(latency, 2),
        )
    except Exception as e:
        return DependencyHealth(
            status=HealthStatus.UNHEALTHY,
            message=str(e),
        )


def check_sensor(aggregator: StepAggregator) -> DependencyHealth:
    """Live tracking is optional: without it the day's total is frozen."""
    if aggregator.state == TrackerState.TRACKING:
        return DependencyHealth(status=HealthStatus.HEALTHY)
    return DependencyHealth(
        status=HealthStatus.DEGRADED,
        message=f"Step sensor not tracking (state: {aggregator.state.value})",
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: Session = Depends(get_db),
    aggregator: StepAggregator = Depends(get_aggregator),
) -> HealthResponse:
    """
    Comprehensive health check with dependency status.

    - database: durable store for history and goal
    - sensor: live step updates (optional)
    """
    dependencies = {
        "database": check_database(db),
        "sensor": check_sensor(aggregator),
    }

    if dependencies["database"].status == HealthStatus.UNHEALTHY:
        overall = HealthStatus.UNHEALTHY
    elif any(d.status != HealthStatus.HEALTHY for d in dependencies.values()):
        overall = HealthStatus.DEGRADED
    else:
        overall = HealthStatus.HEALTHY

    return HealthResponse(
        status=overall,
        version=__version__,
        tracker_state=aggregator.state.value,
        dependencies=dependencies,
    )


@router.get("/health/live")
async def liveness():
    """Liveness probe: always 200 while the application is responding."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness(db: Session = Depends(get_db)):
    """Readiness probe: 503 while the database cannot be reached."""
    db_health = check_database(db)

    if db_health.status == HealthStatus.UNHEALTHY:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": db_health.message},
        )

    return {"status": "ready"}
