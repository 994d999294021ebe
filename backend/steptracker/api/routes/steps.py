"""Step tracking API routes."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from steptracker.api.deps import get_aggregator, get_sensor
from steptracker.core.logging import get_logger
from steptracker.services.aggregator import StepAggregator
from steptracker.services.sensor import PushSensor

logger = get_logger(__name__)
router = APIRouter()


class GoalUpdate(BaseModel):
    """Request body for changing the daily goal."""

    # Validated by the goal store so rejections carry the INVALID_GOAL code
    goal: int


class StepIncrement(BaseModel):
    """Steps counted by the device since its previous report."""

    steps: int = Field(ge=0)


class SensorStatusUpdate(BaseModel):
    """Availability reported by the device bridge."""

    available: bool


def _today(aggregator: StepAggregator) -> dict:
    data = aggregator.progress().to_dict()
    data["state"] = aggregator.state.value
    return data


@router.get("/today")
async def get_today(aggregator: StepAggregator = Depends(get_aggregator)):
    """Today's total with progress toward the goal."""
    return _today(aggregator)


@router.get("/history")
async def get_history(aggregator: StepAggregator = Depends(get_aggregator)):
    """Daily totals, most recent day first."""
    return {"entries": [entry.to_dict() for entry in aggregator.get_history()]}


@router.get("/goal")
async def get_goal(aggregator: StepAggregator = Depends(get_aggregator)):
    return {"goal": aggregator.get_goal()}


@router.put("/goal")
async def update_goal(request: GoalUpdate, aggregator: StepAggregator = Depends(get_aggregator)):
    """Set the daily goal; non-positive values are rejected."""
    goal = await aggregator.set_goal(request.goal)
    return {"goal": goal}


@router.post("/increments")
async def push_increment(
    request: StepIncrement,
    aggregator: StepAggregator = Depends(get_aggregator),
    sensor: PushSensor = Depends(get_sensor),
):
    """Feed a step increment from the device into the sensor stream."""
    sensor.push(request.steps)
    await aggregator.drain()
    return _today(aggregator)


@router.put("/sensor")
async def update_sensor_status(
    request: SensorStatusUpdate,
    aggregator: StepAggregator = Depends(get_aggregator),
    sensor: PushSensor = Depends(get_sensor),
):
    """Report whether the device can currently deliver step data."""
    sensor.set_available(request.available)
    await aggregator.drain()
    logger.info("sensor_status_reported", available=request.available)
    return {"available": sensor.is_available(), "state": aggregator.state.value}
