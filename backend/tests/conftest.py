"""Pytest fixtures for step tracker tests."""

import os

# Settings are read once at import time; point them at throwaway storage first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TIMEZONE", "UTC")

from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from steptracker.core.exceptions import SensorError, StorageError
from steptracker.database import engine
from steptracker.main import app
from steptracker.models import Base
from steptracker.services.aggregator import StepAggregator
from steptracker.services.day_keys import DayKeyResolver
from steptracker.services.goal import GoalStore
from steptracker.services.history import HistoryStore
from steptracker.services.sensor import Sensor, Subscription
from steptracker.services.storage import InMemorySlot


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, instant: datetime) -> None:
        self.now = instant


class FakeSensor(Sensor):
    """Sensor whose answers are set directly by the test."""

    def __init__(self, cumulative: int = 0, available: bool = True):
        self.cumulative = cumulative
        self.available = available
        self.query_error: Optional[SensorError] = None
        self.subscribe_error: Optional[SensorError] = None
        self.queries: list[tuple[datetime, datetime]] = []
        self.subscribers: list = []
        self.watchers: list = []

    def is_available(self) -> bool:
        return self.available

    def set_available(self, available: bool) -> None:
        self.available = available
        for callback in list(self.watchers):
            callback(available)

    def query_cumulative(self, since: datetime, until: datetime) -> int:
        self.queries.append((since, until))
        if self.query_error is not None:
            raise self.query_error
        return self.cumulative

    def subscribe(self, on_increment) -> Subscription:
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.subscribers.append(on_increment)
        return Subscription(lambda: self.subscribers.remove(on_increment))

    def watch_availability(self, callback) -> Subscription:
        self.watchers.append(callback)
        return Subscription(lambda: self.watchers.remove(callback))

    def push(self, delta: int, at: Optional[datetime] = None) -> None:
        for callback in list(self.subscribers):
            callback(delta, at)


class FlakySlot(InMemorySlot):
    """In-memory slot that fails on demand."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        super().__init__(initial)
        self.fail_reads = False
        self.write_failures = 0
        self.writes: list[tuple[str, str]] = []

    def get(self, key: str) -> Optional[str]:
        if self.fail_reads:
            raise StorageError("read", key, "disk unavailable")
        return super().get(key)

    def set(self, key: str, value: str) -> None:
        if self.write_failures:
            self.write_failures -= 1
            raise StorageError("write", key, "disk full")
        self.writes.append((key, value))
        super().set(key, value)


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at noon UTC on 2024-01-01."""
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def resolver() -> DayKeyResolver:
    return DayKeyResolver(timezone.utc)


@pytest.fixture
def slot() -> FlakySlot:
    return FlakySlot()


@pytest.fixture
def sensor() -> FakeSensor:
    return FakeSensor()


@pytest.fixture
def history_store(slot: FlakySlot) -> HistoryStore:
    return HistoryStore(slot, write_attempts=3, retry_wait=0)


@pytest.fixture
def goal_store(slot: FlakySlot) -> GoalStore:
    return GoalStore(slot)


@pytest.fixture
async def make_aggregator(history_store, goal_store, sensor, resolver, clock):
    """Factory for aggregators that are stopped after the test."""
    created: list[StepAggregator] = []

    def factory(**overrides) -> StepAggregator:
        aggregator = StepAggregator(
            overrides.get("history_store", history_store),
            overrides.get("goal_store", goal_store),
            overrides.get("sensor", sensor),
            resolver=resolver,
            clock=clock,
        )
        created.append(aggregator)
        return aggregator

    yield factory

    for aggregator in created:
        await aggregator.stop()


@pytest.fixture
async def aggregator(make_aggregator) -> StepAggregator:
    """A started aggregator over empty storage."""
    tracker = make_aggregator()
    await tracker.start()
    return tracker


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Test client running the full application lifespan on a fresh database."""
    with TestClient(app) as test_client:
        yield test_client
    Base.metadata.drop_all(bind=engine)
