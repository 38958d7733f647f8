"""Data models for Beaver Habits records."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Habit:
    """A habit as listed by the remote catalog."""
    id: str
    name: str
