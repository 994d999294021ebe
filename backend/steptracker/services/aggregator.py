"""Step aggregator: attributes live step counts to day buckets.

The aggregator owns the running total for the current day. It seeds that
total from the sensor's cumulative count on start, adds pushed increments,
writes every new total through to the history store and rolls the bucket
over when the local day changes.

All transitions run under one asyncio lock. Sensor callbacks may fire on any
thread; they are handed to the event loop and applied in arrival order by a
single worker task.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

import structlog

from steptracker.core.exceptions import SensorError
from steptracker.services.day_keys import DayKeyResolver, utc_now
from steptracker.services.goal import GoalStore
from steptracker.services.history import History, HistoryEntry, HistoryStore
from steptracker.services.progress import DEFAULT_STEP_LENGTH_M, ProgressSnapshot, build_progress
from steptracker.services.sensor import Sensor, Subscription

logger = structlog.get_logger(__name__)

UpdateListener = Callable[[str, int], None]


class TrackerState(str, Enum):
    """Lifecycle states of the aggregator."""

    UNINITIALIZED = "uninitialized"
    TRACKING = "tracking"
    UNAVAILABLE = "unavailable"
    STOPPED = "stopped"


@dataclass(frozen=True)
class AggregatorSnapshot:
    state: TrackerState
    day_key: Optional[str]
    steps: int
    baseline: Optional[int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "date": self.day_key,
            "steps": self.steps,
            "baseline": self.baseline,
        }


class StepAggregator:
    """Current-day step bucket reconciled with the persisted history."""

    def __init__(
        self,
        history_store: HistoryStore,
        goal_store: GoalStore,
        sensor: Sensor,
        resolver: Optional[DayKeyResolver] = None,
        clock: Callable[[], datetime] = utc_now,
        step_length_m: float = DEFAULT_STEP_LENGTH_M,
    ):
        self.history_store = history_store
        self.goal_store = goal_store
        self.sensor = sensor
        self.resolver = resolver or DayKeyResolver()
        self._clock = clock
        self.step_length_m = step_length_m

        self.state = TrackerState.UNINITIALIZED
        self.day_key: Optional[str] = None
        self.steps = 0
        self.baseline: Optional[int] = None
        self.history: History = {}
        # Range covered by the last cumulative query that seeded the total
        self._seeded: Optional[tuple[datetime, datetime]] = None

        self._lock = asyncio.Lock()
        self._listeners: list[UpdateListener] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._subscription: Optional[Subscription] = None
        self._availability_watch: Optional[Subscription] = None
        self._logger = logger.bind(component="step_aggregator")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load stored state, seed today's total from the sensor and subscribe."""
        if self.state != TrackerState.UNINITIALIZED:
            return

        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue()
        self._worker = asyncio.create_task(self._process_events())

        async with self._lock:
            self.history = await asyncio.to_thread(self.history_store.load)
            await asyncio.to_thread(self.goal_store.load)

            now = self._clock()
            self.day_key = self.resolver.resolve(now)
            stored = self.history.get(self.day_key)
            self.steps = stored.steps if stored else 0
            self.baseline = None

            self._availability_watch = self.sensor.watch_availability(self._on_availability)
            await self._connect_sensor(now)
            self._logger.info(
                "aggregator_started",
                state=self.state.value,
                day=self.day_key,
                steps=self.steps,
                goal=self.goal_store.goal,
            )
            self._notify()

    async def stop(self) -> None:
        """Unsubscribe from the sensor and stop the event worker."""
        if self.state == TrackerState.STOPPED:
            return

        self._cancel_subscriptions()
        if self._events is not None:
            await self._events.join()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        self.state = TrackerState.STOPPED
        self._logger.info("aggregator_stopped", day=self.day_key, steps=self.steps)

    async def drain(self) -> None:
        """Wait until every queued sensor increment has been applied."""
        if self._events is not None:
            await self._events.join()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def apply_increment(self, delta: int, at: Optional[datetime] = None) -> None:
        """Add a pushed increment to the bucket for the current local day.

        If the day changed since the last transition, the increment starts
        the new day's bucket on its own. The day is read from the clock when
        the increment is applied, so steps counted just before midnight but
        applied after it count toward the new day.

        ``at`` is when the sensor counted the steps. Increments inside the
        range of the query that seeded the total are already part of it and
        are skipped.
        """
        if delta < 0:
            self._logger.warning("negative_increment_ignored", delta=delta)
            return
        if delta == 0:
            return

        async with self._lock:
            if self.state in (TrackerState.UNINITIALIZED, TrackerState.STOPPED):
                self._logger.warning("increment_dropped", state=self.state.value, delta=delta)
                return
            if at is not None and self._already_seeded(at):
                self._logger.debug("increment_already_seeded", delta=delta, at=at.isoformat())
                return

            day = self.resolver.resolve(self._clock())
            if day == self.day_key:
                self.steps += delta
            else:
                self._logger.warning(
                    "implicit_rollover", from_day=self.day_key, to_day=day, delta=delta
                )
                await self._commit()
                self.day_key = day
                self.steps = delta
                self.baseline = None
                self._seeded = None

            await self._commit()
            self._notify()

    async def check_rollover(self) -> bool:
        """Close the current bucket if the local day has changed.

        Returns:
            True if a rollover happened, False if the day is unchanged.
        """
        async with self._lock:
            if self.state in (TrackerState.UNINITIALIZED, TrackerState.STOPPED):
                return False

            now = self._clock()
            today = self.resolver.resolve(now)
            if today == self.day_key:
                return False

            previous_day, previous_steps = self.day_key, self.steps
            # Already committed incrementally; rewriting the final total is idempotent
            await self._commit()

            seed, baseline, seeded = 0, None, None
            if self.state == TrackerState.TRACKING:
                since = self.resolver.start_of_day(now)
                try:
                    seed = self.sensor.query_cumulative(since, now)
                    baseline, seeded = seed, (since, now)
                except SensorError as e:
                    self._logger.warning("rollover_seed_failed", day=today, error=e.message)

            self.day_key = today
            self.steps = seed
            self.baseline = baseline
            self._seeded = seeded
            await self._commit()

            self._logger.info(
                "day_rolled_over",
                from_day=previous_day,
                final_steps=previous_steps,
                to_day=today,
                seed=seed,
            )
            self._notify()
            return True

    async def resume(self) -> bool:
        """Return to live tracking once an unavailable sensor reports available.

        Returns:
            True if the aggregator is tracking again.
        """
        async with self._lock:
            if self.state != TrackerState.UNAVAILABLE:
                return False
            if not self.sensor.is_available():
                return False

            now = self._clock()
            today = self.resolver.resolve(now)
            if today != self.day_key:
                await self._commit()
                stored = self.history.get(today)
                self.day_key = today
                self.steps = stored.steps if stored else 0
                self.baseline = None
                self._seeded = None

            if not await self._connect_sensor(now):
                return False

            self._logger.info("tracking_resumed", day=self.day_key, steps=self.steps)
            self._notify()
            return True

    async def suspend(self) -> bool:
        """Freeze live tracking after the sensor reports it cannot provide data.

        Returns:
            True if the aggregator left the tracking state.
        """
        async with self._lock:
            if self.state != TrackerState.TRACKING:
                return False
            if self._subscription is not None:
                self._subscription.cancel()
                self._subscription = None
            self.state = TrackerState.UNAVAILABLE
            self._logger.warning("tracking_suspended", day=self.day_key, steps=self.steps)
            return True

    # ------------------------------------------------------------------
    # Collaborator-facing API
    # ------------------------------------------------------------------

    def on_update(self, listener: UpdateListener) -> Callable[[], None]:
        """Register a listener for ``(day_key, steps)`` after each commit.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def get_goal(self) -> int:
        return self.goal_store.goal

    async def set_goal(self, goal: Any) -> int:
        """Persist a new daily goal; raises InvalidGoal and keeps the old one."""
        return await asyncio.to_thread(self.goal_store.save, goal)

    def get_history(self) -> list[HistoryEntry]:
        return self.history_store.list_entries(self.history)

    def snapshot(self) -> AggregatorSnapshot:
        return AggregatorSnapshot(
            state=self.state,
            day_key=self.day_key,
            steps=self.steps,
            baseline=self.baseline,
        )

    def progress(self) -> ProgressSnapshot:
        day_key = self.day_key or self.resolver.resolve(self._clock())
        return build_progress(day_key, self.steps, self.goal_store.goal, self.step_length_m)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _connect_sensor(self, now: datetime) -> bool:
        """Seed today's total from the sensor and subscribe to increments.

        Must be called with the lock held.
        """
        if not self.sensor.is_available():
            self.state = TrackerState.UNAVAILABLE
            self._logger.warning("sensor_unavailable", day=self.day_key, steps=self.steps)
            return False

        since = self.resolver.start_of_day(now)
        try:
            seed = self.sensor.query_cumulative(since, now)
        except SensorError as e:
            # Keep the stored total until increments arrive
            self._logger.warning("initial_query_failed", day=self.day_key, error=e.message)
            self._seeded = None
        else:
            self.steps = seed
            self.baseline = seed
            self._seeded = (since, now)
            await self._commit()

        try:
            self._subscription = self.sensor.subscribe(self._on_increment)
        except SensorError as e:
            self.state = TrackerState.UNAVAILABLE
            self._logger.warning("sensor_subscribe_failed", error=e.message)
            return False

        self.state = TrackerState.TRACKING
        return True

    def _already_seeded(self, at: datetime) -> bool:
        if self._seeded is None:
            return False
        since, until = self._seeded
        return since <= at < until

    async def _commit(self) -> None:
        self.history = await asyncio.to_thread(
            self.history_store.upsert, self.history, self.day_key, self.steps
        )

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.day_key, self.steps)
            except Exception as e:
                self._logger.error("update_listener_failed", error=str(e))

    def _cancel_subscriptions(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        if self._availability_watch is not None:
            self._availability_watch.cancel()
            self._availability_watch = None

    def _enqueue(self, kind: str, value: Any) -> None:
        if self._loop is None or self._events is None or self._loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            # Queue immediately so a following drain() sees the event
            self._events.put_nowait((kind, value))
        else:
            self._loop.call_soon_threadsafe(self._events.put_nowait, (kind, value))

    def _on_increment(self, delta: int, at: Optional[datetime] = None) -> None:
        self._enqueue("increment", (delta, at))

    def _on_availability(self, available: bool) -> None:
        self._enqueue("resume" if available else "suspend", None)

    async def _process_events(self) -> None:
        """Apply queued sensor events one at a time."""
        while True:
            kind, value = await self._events.get()
            try:
                if kind == "increment":
                    await self.apply_increment(*value)
                elif kind == "resume":
                    await self.resume()
                elif kind == "suspend":
                    await self.suspend()
            except Exception as e:
                self._logger.error("sensor_event_failed", kind=kind, error=str(e))
            finally:
                self._events.task_done()
