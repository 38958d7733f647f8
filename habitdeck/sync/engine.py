"""Sync engine: keeps the key panel and Beaver Habits in agreement."""

import asyncio
import inspect
import logging
from dataclasses import replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from ..beaver.catalog import HabitCatalog
from ..beaver.client import BeaverClient
from ..beaver.history import CompletionHistory, window_dates
from ..dashboard.renderer import format_grid
from ..deck.adapter import DeviceAdapter
from .errors import ConfigurationError, HabitDeckError
from .events import (
    CellChanged,
    Connected,
    Disconnected,
    EngineError,
    EngineEvent,
    InboundEvent,
    Press,
    Tick,
)
from .grid import StateGrid

logger = logging.getLogger(__name__)

Listener = Callable[[EngineEvent], Union[Awaitable[None], None]]


class EngineState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"  # panel attached, waiting for the first good sync
    RUNNING = "running"


class SyncEngine:
    """
    Single-writer owner of the state grid.

    Connection changes, timer ticks and key presses are queued and handled
    one at a time by a dispatcher task. Sync cycles do their network calls
    in a separate task so presses are not held up by a slow sync; both
    apply their results to the grid under one lock.
    """

    def __init__(
        self,
        client: BeaverClient,
        device: DeviceAdapter,
        habits: list[str],
        username: str,
        password: str,
        sync_interval: float = 10.0,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize engine.

        Args:
            client: Beaver Habits client (not yet logged in)
            device: Key panel the grid is shown on
            habits: Habit names, one per panel row
            username: Beaver Habits account name
            password: Beaver Habits password
            sync_interval: Seconds between full syncs
            today: Clock returning the current local day
        """
        self.client = client
        self.device = device
        self.habits = list(habits)
        self.sync_interval = sync_interval
        self.catalog = HabitCatalog(client)
        self.history = CompletionHistory(client)

        self.state = EngineState.STOPPED
        self.grid = StateGrid(len(self.habits), 0)
        self.last_sync: Optional[datetime] = None
        self.last_error: Optional[Exception] = None

        self._username = username
        self._password = password
        self._today = today
        self._listeners: list[Listener] = []
        self._lock = asyncio.Lock()
        self._seq = 0
        self._attached = False
        self._tick_pending = False
        self._queue: Optional[asyncio.Queue] = None
        self._dispatcher: Optional[asyncio.Task] = None
        self._ticker: Optional[asyncio.Task] = None
        self._cycle: Optional[asyncio.Task] = None

    def subscribe(self, listener: Listener):
        """Receive CellChanged and EngineError events. Listeners may be async."""
        self._listeners.append(listener)

    # Lifecycle

    async def start(self):
        """
        Log in and wait for the panel.

        Raises:
            AuthError: if login fails; nothing is started in that case
        """
        if self._dispatcher is not None:
            logger.warning("Engine already started")
            return

        await self.client.login(self._username, self._password)

        self._queue = asyncio.Queue()
        self._dispatcher = asyncio.create_task(self._dispatch(), name="habitdeck-dispatcher")
        self.device.on_connection(self._on_connection)
        logger.info(f"Engine started, tracking {len(self.habits)} habits")

    async def stop(self):
        """Stop everything. No grid mutation happens after this returns."""
        if self._dispatcher is None:
            return

        self.device.on_connection(None)
        await self._detach()

        dispatcher, self._dispatcher = self._dispatcher, None
        if dispatcher is not asyncio.current_task():
            dispatcher.cancel()
            await asyncio.gather(dispatcher, return_exceptions=True)

        queue, self._queue = self._queue, None
        while queue is not None and not queue.empty():
            event = queue.get_nowait()
            if event.reply is not None and not event.reply.done():
                event.reply.cancel()

        logger.info("Engine stopped")

    async def device_connected(self):
        """
        Attach the panel: validate its layout and run the first sync.

        Raises:
            ConfigurationError: if the panel rows do not match the habits
        """
        await self._submit(Connected())

    async def device_disconnected(self):
        await self._submit(Disconnected())

    async def press(self, index: int, pressed: bool = True):
        """Toggle a key and wait until the press has been handled."""
        await self._submit(Press(index=index, pressed=pressed))

    async def sync_now(self) -> bool:
        """
        Run one sync cycle and return whether it replaced the grid.

        Returns False straight away if a cycle is already in flight.
        """
        cycle = await self._submit(Tick())
        if cycle is None:
            return False
        return await cycle

    # Queue plumbing

    async def _submit(self, event: InboundEvent) -> Any:
        if self._queue is None:
            raise RuntimeError("Engine is not started")
        event.reply = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(event)
        return await event.reply

    async def _on_connection(self, connected: bool):
        if connected:
            await self.device_connected()
        else:
            await self.device_disconnected()

    def _on_press(self, index: int, pressed: bool):
        if self._queue is None:
            return
        self._queue.put_nowait(Press(index=index, pressed=pressed))

    async def _dispatch(self):
        while True:
            event = await self._queue.get()
            try:
                result = await self._handle(event)
            except Exception as e:
                if event.reply is not None and not event.reply.done():
                    event.reply.set_exception(e)
                else:
                    logger.exception(f"Unhandled error while processing {event}")
            else:
                if event.reply is not None and not event.reply.done():
                    event.reply.set_result(result)
            finally:
                # Cancelled mid-event (stop()): release whoever is waiting.
                if event.reply is not None and not event.reply.done():
                    event.reply.cancel()

    async def _handle(self, event: InboundEvent) -> Any:
        if isinstance(event, Connected):
            return await self._attach()
        if isinstance(event, Disconnected):
            logger.info("Deck disconnected")
            return await self._detach()
        if isinstance(event, Tick):
            return await self._tick()
        if isinstance(event, Press):
            return await self._press(event.index, event.pressed)
        raise TypeError(f"Unknown event: {event!r}")

    # Connection

    async def _attach(self):
        if self._attached:
            logger.warning("Deck already attached, ignoring connect")
            return

        rows, cols = self.device.layout()
        logger.info(f"Deck connected: {rows} rows x {cols} columns")
        if rows != len(self.habits):
            raise ConfigurationError(
                f"'habits' must have exactly {rows} names, got {len(self.habits)}"
            )
        if cols < 1:
            raise ConfigurationError(f"Deck reports {cols} columns")

        self.grid = StateGrid(rows, cols)
        self._attached = True
        self.state = EngineState.STARTING
        self.device.on_press(self._on_press)

        self._cycle = asyncio.create_task(self._sync(), name="habitdeck-sync")
        try:
            await self._cycle
        finally:
            if self._attached:
                self._ticker = asyncio.create_task(self._tick_loop(), name="habitdeck-ticker")

    async def _detach(self):
        self._attached = False
        self.device.on_press(None)

        tasks = [
            task
            for task in (self._ticker, self._cycle)
            if task is not None and task is not asyncio.current_task()
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._ticker = self._cycle = None
        self._tick_pending = False

        self.grid = StateGrid(len(self.habits), 0)
        self.state = EngineState.STOPPED

    # Sync

    async def _tick_loop(self):
        while True:
            await asyncio.sleep(self.sync_interval)
            if self._tick_pending:
                continue
            self._tick_pending = True
            self._queue.put_nowait(Tick())

    async def _tick(self) -> Optional[asyncio.Task]:
        self._tick_pending = False
        if not self._attached:
            logger.debug("No deck attached, nothing to sync")
            return None
        if self._cycle is not None and not self._cycle.done():
            logger.warning("Previous sync still running, skipping this one")
            return None

        self._cycle = asyncio.create_task(self._sync(), name="habitdeck-sync")
        self._cycle.add_done_callback(self._cycle_done)
        return self._cycle

    def _cycle_done(self, task: asyncio.Task):
        if not task.cancelled() and task.exception() is not None:
            logger.error("Sync cycle crashed", exc_info=task.exception())

    async def _sync(self) -> bool:
        """
        One full reconciliation pass.

        Returns:
            True if the grid was replaced, False if the cycle was aborted
        """
        logger.info("Syncing state with Beaver Habits...")
        started = self._seq
        window = window_dates(self._today(), self.grid.cols)

        try:
            ids = await self.catalog.resolve(self.habits)
            done = []
            for name in self.habits:
                done.append(await self.history.completed_days(ids[name], window))
        except HabitDeckError as e:
            logger.error(f"Error syncing with Beaver Habits: {e}")
            await self._report("sync", e)
            return False
        except Exception as e:
            logger.exception("Unexpected error syncing with Beaver Habits")
            await self._report("sync", e)
            return False

        fresh = StateGrid.build([(name, ids[name]) for name in self.habits], window, done)

        async with self._lock:
            if not self._attached:
                return False
            merged = fresh.merge_local(started, self.grid)
            changes = merged.diff(self.grid)
            self.grid = merged
            self.last_sync = datetime.now()
            self.state = EngineState.RUNNING

            for change in changes:
                if change.old is None:
                    continue
                await self._emit(
                    CellChanged(
                        habit_name=change.new.habit_name,
                        date=change.new.date,
                        old_is_done=change.old.is_done,
                        new_is_done=change.new.is_done,
                        source="sync",
                    )
                )

            for cell in self.grid:
                await self.device.render(cell.index, cell.is_done)
            for line in format_grid(self.grid, self.grid.cols):
                logger.info(line)

        logger.info(f"Next sync in {self.sync_interval} seconds.")
        return True

    # Presses

    async def _press(self, index: int, pressed: bool):
        if not pressed:
            return  # releases have no meaning

        cell = self.grid.get(index)
        if cell is None:
            if self.grid.is_populated:
                logger.warning(f"Ignoring press on key {index}, out of range")
            else:
                logger.info(f"Ignoring press on key {index}, grid not populated")
            return

        done = not cell.is_done
        day = self.history.format_date(cell.date)
        try:
            await self.client.post_habit_record(cell.habit_id, day, done)
        except HabitDeckError as e:
            logger.error(f"Error updating '{cell.habit_name}' on {day}: {e}")
            await self._report("press", e)
            return
        except Exception as e:
            logger.exception(f"Unexpected error updating '{cell.habit_name}' on {day}")
            await self._report("press", e)
            return

        async with self._lock:
            if not self._attached:
                return
            current = self.grid.find(cell.habit_id, cell.date)
            if current is None:
                logger.info(f"'{cell.habit_name}' on {day} left the window, not redrawing")
                return

            self._seq += 1
            updated = replace(current, is_done=done, version=self._seq)
            self.grid = self.grid.with_cell(updated)
            await self._emit(
                CellChanged(
                    habit_name=updated.habit_name,
                    date=updated.date,
                    old_is_done=current.is_done,
                    new_is_done=done,
                    source="press",
                )
            )
            await self.device.render(updated.index, updated.is_done)

    # Events

    async def _report(self, operation: str, error: Exception):
        self.last_error = error
        await self._emit(EngineError(operation=operation, error=error))

    async def _emit(self, event: EngineEvent):
        for listener in self._listeners:
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Listener failed on {event}")
