"""Error taxonomy shared by the Beaver client and the sync engine."""

from typing import Optional


class HabitDeckError(Exception):
    """Base class for every error HabitDeck reports."""


class AuthError(HabitDeckError):
    """Login failed. Fatal to startup."""


class ConfigurationError(HabitDeckError):
    """Configuration does not match the attached device. Fatal at connect."""


class HabitNotFoundError(HabitDeckError):
    """A configured habit name is missing from the remote catalog."""

    def __init__(self, name: str):
        super().__init__(f"Habit '{name}' does not exist.")
        self.name = name


class NetworkError(HabitDeckError):
    """The request never produced an HTTP response (connect error, timeout)."""


class ApiError(HabitDeckError):
    """The remote API answered with a non-2xx status or an unreadable body."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
