"""Step sensor collaborator contract and the push-fed implementation."""

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Optional

from steptracker.core.exceptions import SensorError
from steptracker.core.logging import get_logger
from steptracker.services.day_keys import utc_now

logger = get_logger(__name__)

# Receives the step delta and the instant the sensor counted it, or None when
# the sensor does not timestamp increments
IncrementCallback = Callable[[int, Optional[datetime]], None]
AvailabilityCallback = Callable[[bool], None]


class Subscription:
    """Handle returned by a subscribe call; ``cancel`` stops delivery."""

    def __init__(self, on_cancel: Callable[[], None] = lambda: None):
        self._on_cancel = on_cancel
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._on_cancel()


class Sensor(ABC):
    """Device motion sensor reporting step counts.

    Implementations deliver a monotonically non-decreasing cumulative count
    for a time range and push step increments to subscribers.
    """

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the sensor can currently provide data."""

    @abstractmethod
    def query_cumulative(self, since: datetime, until: datetime) -> int:
        """Steps counted from ``since`` up to, not including, ``until``.

        Raises:
            SensorError: If the query is unsupported, denied or fails.
        """

    @abstractmethod
    def subscribe(self, on_increment: IncrementCallback) -> Subscription:
        """Deliver each new step increment to ``on_increment(delta, at)``.

        ``at`` must fall inside the ``[since, until)`` range of any cumulative
        query that already counted the increment.

        Raises:
            SensorError: If live updates cannot be provided.
        """

    def watch_availability(self, callback: AvailabilityCallback) -> Subscription:
        """Report availability changes. The default never calls back."""
        return Subscription()


class PushSensor(Sensor):
    """Sensor fed by a device bridge pushing step increments.

    Increments are remembered with their arrival time so cumulative queries
    can be answered for any range. Thread-safe: the bridge may push from any
    thread.
    """

    def __init__(
        self,
        available: bool = True,
        clock: Callable[[], datetime] = utc_now,
        retention: timedelta = timedelta(days=2),
    ):
        self._clock = clock
        self._retention = retention
        self._observing_since = clock()
        self._available = available
        self._lock = threading.Lock()
        self._samples: list[tuple[datetime, int]] = []
        self._subscribers: list[IncrementCallback] = []
        self._watchers: list[AvailabilityCallback] = []

    def is_available(self) -> bool:
        return self._available

    def set_available(self, available: bool) -> None:
        with self._lock:
            changed = available != self._available
            self._available = available
            watchers = list(self._watchers)
        if not changed:
            return
        logger.info("sensor_availability_changed", available=available)
        for callback in watchers:
            callback(available)

    def query_cumulative(self, since: datetime, until: datetime) -> int:
        """Sum of increments received in ``[since, until)``.

        Only ranges that start after the sensor began observing can be
        answered; earlier steps were never seen.
        """
        if not self._available:
            raise SensorError("sensor is unavailable", reason="unavailable")
        if since < self._observing_since:
            raise SensorError(
                f"no step data before {self._observing_since.isoformat()}", reason="unsupported"
            )
        with self._lock:
            return sum(steps for at, steps in self._samples if since <= at < until)

    def subscribe(self, on_increment: IncrementCallback) -> Subscription:
        if not self._available:
            raise SensorError("sensor is unavailable", reason="unavailable")
        with self._lock:
            self._subscribers.append(on_increment)
        return Subscription(lambda: self._remove(self._subscribers, on_increment))

    def watch_availability(self, callback: AvailabilityCallback) -> Subscription:
        with self._lock:
            self._watchers.append(callback)
        return Subscription(lambda: self._remove(self._watchers, callback))

    def push(self, steps: int) -> None:
        """Record an increment and deliver it to subscribers."""
        if isinstance(steps, bool) or not isinstance(steps, int) or steps < 0:
            raise ValueError(f"step increment must be a non-negative integer, got {steps!r}")
        if not self._available:
            raise SensorError("sensor is unavailable", reason="unavailable")
        with self._lock:
            now = self._clock()
            cutoff = now - self._retention
            self._samples = [sample for sample in self._samples if sample[0] >= cutoff]
            self._samples.append((now, steps))
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(steps, now)

    def _remove(self, callbacks: list, callback) -> None:
        with self._lock:
            if callback in callbacks:
                callbacks.remove(callback)
