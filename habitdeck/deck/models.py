"""Deck socket messages and HTTP API models."""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


# Panel -> server

class HelloMessage(BaseModel):
    """First message on /deck: the panel announces its key layout."""

    type: Literal["hello"] = "hello"
    rows: int = Field(ge=1)
    cols: int = Field(ge=1)


class PressMessage(BaseModel):
    """A key went down (pressed=True) or up."""

    type: Literal["press"] = "press"
    index: int = Field(ge=0)
    pressed: bool = True


DeckMessage = Annotated[Union[HelloMessage, PressMessage], Field(discriminator="type")]
deck_message = TypeAdapter(DeckMessage)


# Server -> panel

class RenderMessage(BaseModel):
    """Draw one key."""

    type: Literal["render"] = "render"
    index: int
    is_done: bool
    image: str  # base64 PNG


class NotifyMessage(BaseModel):
    type: Literal["notify"] = "notify"
    message: str


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str


# HTTP

class StatusResponse(BaseModel):
    """Response for /status endpoint."""

    status: str = "running"
    engine_state: str
    deck_connected: bool
    rows: int
    cols: int
    habits: list[str]
    sync_interval: float
    last_sync: Optional[datetime] = None
    last_error: Optional[str] = None


class CellResponse(BaseModel):
    index: int
    habit_name: str
    date: str
    is_done: bool


class GridResponse(BaseModel):
    """Response for /grid endpoint."""

    rows: int
    cols: int
    cells: list[CellResponse]
