"""Events flowing into and out of the sync engine."""

import asyncio
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Union


# Inbound: everything that may touch the grid goes through the engine queue.

@dataclass
class Connected:
    """The device attached."""
    reply: Optional[asyncio.Future] = field(default=None, repr=False)


@dataclass
class Disconnected:
    """The device went away."""
    reply: Optional[asyncio.Future] = field(default=None, repr=False)


@dataclass
class Tick:
    """The sync timer fired."""
    reply: Optional[asyncio.Future] = field(default=None, repr=False)


@dataclass
class Press:
    """A key changed state."""
    index: int
    pressed: bool
    reply: Optional[asyncio.Future] = field(default=None, repr=False)


InboundEvent = Union[Connected, Disconnected, Tick, Press]


# Outbound: what listeners subscribed to the engine receive.

@dataclass(frozen=True)
class CellChanged:
    """A habit/day flipped, either by a sync or by a confirmed press."""
    habit_name: str
    date: date
    old_is_done: bool
    new_is_done: bool
    source: str  # "sync" or "press"


@dataclass(frozen=True)
class EngineError:
    """A sync cycle or press failed; the engine keeps running."""
    operation: str  # "sync" or "press"
    error: Exception


EngineEvent = Union[CellChanged, EngineError]
