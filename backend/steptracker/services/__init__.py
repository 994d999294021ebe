"""Step tracking services package."""

from collections.abc import Callable
from datetime import datetime

from steptracker.config import Settings
from steptracker.services.aggregator import AggregatorSnapshot, StepAggregator, TrackerState
from steptracker.services.day_keys import DayKeyResolver, utc_now
from steptracker.services.goal import GoalStore
from steptracker.services.history import HistoryEntry, HistoryStore
from steptracker.services.scheduler import RolloverScheduler
from steptracker.services.sensor import PushSensor, Sensor, Subscription
from steptracker.services.storage import DatabaseSlot, InMemorySlot, KeyValueSlot


def build_aggregator(
    settings: Settings,
    slot: KeyValueSlot,
    sensor: Sensor,
    clock: Callable[[], datetime] = utc_now,
) -> StepAggregator:
    """Wire the stores and sensor into an aggregator using ``settings``."""
    history_store = HistoryStore(
        slot,
        key=settings.history_key,
        write_attempts=settings.storage_write_attempts,
    )
    goal_store = GoalStore(slot, key=settings.goal_key, default_goal=settings.default_goal)
    return StepAggregator(
        history_store,
        goal_store,
        sensor,
        resolver=DayKeyResolver(settings.tz),
        clock=clock,
        step_length_m=settings.step_length_m,
    )


__all__ = [
    "AggregatorSnapshot",
    "DatabaseSlot",
    "DayKeyResolver",
    "GoalStore",
    "HistoryEntry",
    "HistoryStore",
    "InMemorySlot",
    "KeyValueSlot",
    "PushSensor",
    "RolloverScheduler",
    "Sensor",
    "StepAggregator",
    "Subscription",
    "TrackerState",
    "build_aggregator",
]
