"""User-facing messages for engine events."""

import logging

from .deck.adapter import DeviceAdapter
from .sync.events import CellChanged, EngineEvent

logger = logging.getLogger(__name__)


def _state(is_done: bool) -> str:
    return "done" if is_done else "not done"


class Notifier:
    """Logs every change and, if enabled, shows it on the deck."""

    def __init__(self, device: DeviceAdapter, date_fmt: str, enabled: bool = True):
        self.device = device
        self.date_fmt = date_fmt
        self.enabled = enabled

    def format(self, event: CellChanged) -> str:
        day = event.date.strftime(self.date_fmt)
        if event.source == "press":
            return f"Marked '{event.habit_name}' on {day} as {_state(event.new_is_done)}."
        return f"Habit '{event.habit_name}' on {day} changed to {_state(event.new_is_done)}."

    async def __call__(self, event: EngineEvent):
        # Errors are logged by the engine and retried every cycle; not worth a popup.
        if not isinstance(event, CellChanged):
            return

        message = self.format(event)
        logger.info(message)
        if self.enabled:
            await self.device.notify(message)
