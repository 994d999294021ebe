"""Per-day step history persisted in a key-value slot."""

import json
from dataclasses import dataclass
from typing import Any

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from steptracker.core.exceptions import StorageError, ValidationError
from steptracker.core.logging import get_logger
from steptracker.services.day_keys import is_day_key

logger = get_logger(__name__)


@dataclass(frozen=True)
class HistoryEntry:
    """Step total recorded for one calendar day."""

    date: str
    steps: int

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "steps": self.steps}


History = dict[str, HistoryEntry]


def _parse_entry(raw: Any) -> HistoryEntry:
    if not isinstance(raw, dict):
        raise ValueError(f"entry must be an object, got {type(raw).__name__}")
    day = raw.get("date")
    if not is_day_key(day):
        raise ValueError(f"invalid date {day!r}")
    steps = raw.get("steps")
    if isinstance(steps, bool) or not isinstance(steps, int):
        raise ValueError(f"steps must be an integer, got {steps!r}")
    if steps < 0:
        raise ValueError(f"steps must be non-negative, got {steps}")
    return HistoryEntry(date=day, steps=steps)


def serialize_history(history: History) -> str:
    """JSON array of ``{"date", "steps"}`` objects, oldest first."""
    return json.dumps([history[key].to_dict() for key in sorted(history)])


def deserialize_history(payload: str) -> History:
    """Parse a stored history, skipping malformed entries.

    Raises:
        ValueError: If the payload is not a JSON array.
    """
    data = json.loads(payload)
    if not isinstance(data, list):
        raise ValueError(f"history must be a JSON array, got {type(data).__name__}")

    history: History = {}
    skipped = []
    for idx, raw in enumerate(data):
        try:
            entry = _parse_entry(raw)
        except ValueError as e:
            skipped.append((idx, str(e)))
            continue
        history[entry.date] = entry

    if skipped:
        logger.warning(
            "history_entries_skipped",
            count=len(skipped),
            errors=[f"{idx}: {error}" for idx, error in skipped],
        )
    return history


class HistoryStore:
    """Loads, updates and lists the day-keyed step history.

    Every ``upsert`` writes the complete history through to the slot. A failed
    write is retried with exponential backoff; if it still fails the warning is
    logged and the returned history stays authoritative, and the next
    successful write carries the full state again.
    """

    def __init__(
        self,
        slot,
        key: str = "step_history",
        write_attempts: int = 3,
        retry_wait: float = 0.1,
    ):
        self.slot = slot
        self.key = key
        self.write_attempts = write_attempts
        self.retry_wait = retry_wait
        self.last_write_failed = False

    def load(self) -> History:
        """Read the stored history; missing or corrupt data means no history yet."""
        try:
            payload = self.slot.get(self.key)
        except StorageError as e:
            logger.warning("history_read_failed", key=self.key, error=e.message)
            return {}

        if payload is None:
            return {}

        try:
            history = deserialize_history(payload)
        except ValueError as e:
            # json.JSONDecodeError is a ValueError too
            logger.warning("history_unparsable", key=self.key, error=str(e))
            return {}

        logger.info("history_loaded", key=self.key, days=len(history))
        return history

    def upsert(self, history: History, key: str, steps: int) -> History:
        """Set the total for ``key`` and write the whole history through."""
        if not is_day_key(key):
            raise ValidationError("date", f"invalid day key {key!r}")
        if isinstance(steps, bool) or not isinstance(steps, int) or steps < 0:
            raise ValidationError("steps", f"must be a non-negative integer, got {steps!r}")

        updated = dict(history)
        updated[key] = HistoryEntry(date=key, steps=steps)
        self._write(updated)
        return updated

    def list_entries(self, history: History) -> list[HistoryEntry]:
        """Entries ordered most recent day first."""
        return [history[key] for key in sorted(history, reverse=True)]

    def _write(self, history: History) -> None:
        payload = serialize_history(history)
        retrying = Retrying(
            stop=stop_after_attempt(self.write_attempts),
            wait=wait_exponential(multiplier=self.retry_wait, max=2),
            retry=retry_if_exception_type(StorageError),
            before_sleep=lambda retry_state: logger.warning(
                "history_write_retry", key=self.key, attempt=retry_state.attempt_number
            ),
        )
        try:
            retrying(self.slot.set, self.key, payload)
        except RetryError as e:
            error = e.last_attempt.exception()
            logger.warning(
                "history_write_failed",
                key=self.key,
                attempts=self.write_attempts,
                error=getattr(error, "message", str(error)),
            )
            self.last_write_failed = True
            return

        if self.last_write_failed:
            logger.info("history_write_recovered", key=self.key, days=len(history))
        self.last_write_failed = False
