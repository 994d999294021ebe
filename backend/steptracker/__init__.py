"""Personal step tracker: daily step buckets, goal and history."""

__version__ = "0.1.0"
