"""Daily step goal persisted in a key-value slot."""

from typing import Any

from steptracker.core.exceptions import InvalidGoal, StorageError
from steptracker.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DAILY_GOAL = 10000


def parse_goal(value: Any) -> int:
    """Validate a goal given as an int or as user-entered text.

    Raises:
        InvalidGoal: If the value is not a positive integer.
    """
    if isinstance(value, bool):
        raise InvalidGoal(value)
    if isinstance(value, int):
        goal = value
    elif isinstance(value, str):
        try:
            goal = int(value.strip())
        except ValueError:
            raise InvalidGoal(value)
    else:
        raise InvalidGoal(value)

    if goal <= 0:
        raise InvalidGoal(value)
    return goal


class GoalStore:
    """Owns the single persisted daily step goal."""

    def __init__(self, slot, key: str = "daily_goal", default_goal: int = DEFAULT_DAILY_GOAL):
        self.slot = slot
        self.key = key
        self.default_goal = default_goal
        self._goal = default_goal

    @property
    def goal(self) -> int:
        return self._goal

    def load(self) -> int:
        """Return the stored goal, falling back to the default."""
        try:
            stored = self.slot.get(self.key)
        except StorageError as e:
            logger.warning("goal_read_failed", key=self.key, error=e.message)
            stored = None

        if stored is None:
            self._goal = self.default_goal
            return self._goal

        try:
            self._goal = parse_goal(stored)
        except InvalidGoal:
            logger.warning("goal_unparsable", key=self.key, value=stored)
            self._goal = self.default_goal
        return self._goal

    def save(self, goal: Any) -> int:
        """Validate and persist a new goal.

        Raises:
            InvalidGoal: If ``goal`` is not a positive integer; the previous
                goal is kept.
        """
        new_goal = parse_goal(goal)
        self._goal = new_goal
        try:
            self.slot.set(self.key, str(new_goal))
        except StorageError as e:
            logger.warning("goal_write_failed", key=self.key, goal=new_goal, error=e.message)
        else:
            logger.info("goal_saved", goal=new_goal)
        return new_goal
