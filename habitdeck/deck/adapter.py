"""Capabilities the sync engine needs from a key panel."""

from typing import Awaitable, Callable, Optional, Protocol

PressCallback = Callable[[int, bool], None]
# Awaited by the panel; raises ConfigurationError if the panel does not fit.
ConnectionCallback = Callable[[bool], Awaitable[None]]


class DeviceAdapter(Protocol):
    """A grid of keys that can light up and report presses."""

    def layout(self) -> tuple[int, int]:
        """Return (rows, cols) of the attached panel."""
        ...

    async def render(self, index: int, is_done: bool) -> None:
        """Draw key index (0-based, row-major) as done or not done."""
        ...

    async def notify(self, message: str) -> None:
        """Show a message to the user. Panels without a display may ignore it."""
        ...

    def on_press(self, callback: Optional[PressCallback]) -> None:
        """Register the key callback, or unregister it with None."""
        ...

    def on_connection(self, callback: Optional[ConnectionCallback]) -> None:
        """Register the attach/detach callback, or unregister it with None."""
        ...
