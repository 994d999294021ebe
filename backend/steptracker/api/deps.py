"""API dependencies for dependency injection."""

from fastapi import Request

from steptracker.services.aggregator import StepAggregator
from steptracker.services.sensor import PushSensor


def get_aggregator(request: Request) -> StepAggregator:
    """The aggregator started by the application lifespan."""
    return request.app.state.aggregator


def get_sensor(request: Request) -> PushSensor:
    """The push-fed sensor the device bridge writes increments into."""
    return request.app.state.sensor
