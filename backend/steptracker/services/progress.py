"""Progress figures derived from a day's step total."""

from dataclasses import dataclass
from typing import Any

# Average walking stride
DEFAULT_STEP_LENGTH_M = 0.7


@dataclass(frozen=True)
class ProgressSnapshot:
    date: str
    steps: int
    goal: int
    progress: float
    distance_km: float
    goal_reached: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "steps": self.steps,
            "goal": self.goal,
            "progress": self.progress,
            "distance_km": self.distance_km,
            "goal_reached": self.goal_reached,
        }


def distance_km(steps: int, step_length_m: float = DEFAULT_STEP_LENGTH_M) -> float:
    """Walked distance in kilometres, rounded to two decimals."""
    return round(steps * step_length_m / 1000, 2)


def build_progress(
    day_key: str, steps: int, goal: int, step_length_m: float = DEFAULT_STEP_LENGTH_M
) -> ProgressSnapshot:
    """Progress toward ``goal``; the fraction is capped at 1.0."""
    return ProgressSnapshot(
        date=day_key,
        steps=steps,
        goal=goal,
        progress=min(steps / goal, 1.0),
        distance_km=distance_km(steps, step_length_m),
        goal_reached=steps >= goal,
    )
