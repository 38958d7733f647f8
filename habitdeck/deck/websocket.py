"""Key panel attached over a WebSocket."""

import logging
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ValidationError

from ..dashboard.renderer import KeyRenderer
from ..sync.errors import ConfigurationError
from .adapter import ConnectionCallback, PressCallback
from .models import (
    ErrorMessage,
    HelloMessage,
    NotifyMessage,
    PressMessage,
    RenderMessage,
    deck_message,
)

logger = logging.getLogger(__name__)


class WebSocketDeck:
    """
    DeviceAdapter for a panel speaking JSON over /deck.

    The panel sends a hello with its layout, then press messages. Keys are
    drawn by sending render messages carrying a PNG key face. One panel at
    a time.
    """

    def __init__(self, renderer: Optional[KeyRenderer] = None):
        self.renderer = renderer or KeyRenderer()
        self.websocket: Optional[WebSocket] = None
        self._layout: Optional[tuple[int, int]] = None
        self._press_callback: Optional[PressCallback] = None
        self._connection_callback: Optional[ConnectionCallback] = None

    @property
    def is_connected(self) -> bool:
        return self._layout is not None

    # DeviceAdapter

    def layout(self) -> tuple[int, int]:
        if self._layout is None:
            raise RuntimeError("No deck attached")
        return self._layout

    async def render(self, index: int, is_done: bool):
        await self._send(
            RenderMessage(
                index=index,
                is_done=is_done,
                image=self.renderer.render_key_base64(is_done),
            )
        )

    async def notify(self, message: str):
        await self._send(NotifyMessage(message=message))

    def on_press(self, callback: Optional[PressCallback]):
        self._press_callback = callback

    def on_connection(self, callback: Optional[ConnectionCallback]):
        self._connection_callback = callback

    # Socket session

    async def serve(self, websocket: WebSocket):
        """Run one panel session until the socket closes."""
        await websocket.accept()

        if self.websocket is not None:
            logger.warning("Rejecting second deck, one is already attached")
            await self._reject(websocket, "Another deck is already attached")
            return
        self.websocket = websocket

        try:
            hello = deck_message.validate_json(await websocket.receive_text())
        except WebSocketDisconnect:
            self.websocket = None
            logger.info("Deck left before saying hello")
            return
        except ValidationError as e:
            logger.warning(f"Deck did not introduce itself: {e}")
            hello = None
        if not isinstance(hello, HelloMessage):
            self.websocket = None
            await self._reject(websocket, "Expected a hello message with rows and cols")
            return

        self._layout = (hello.rows, hello.cols)
        logger.info(f"Deck attached: {hello.rows} rows x {hello.cols} columns")

        attached = False
        try:
            if self._connection_callback is not None:
                await self._connection_callback(True)
            attached = True
        except ConfigurationError as e:
            logger.error(f"Deck does not match configuration: {e}")
            await self._reject(websocket, str(e))
        except Exception:
            logger.exception("Could not attach deck")
            await self._reject(
                websocket, "Could not attach deck", code=status.WS_1011_INTERNAL_ERROR
            )
        finally:
            # The slot must be free again whatever stopped the attach.
            if not attached:
                self.websocket = None
                self._layout = None
        if not attached:
            return

        try:
            await self._receive_presses(websocket)
        finally:
            self.websocket = None
            self._layout = None
            logger.info("Deck detached")
            if self._connection_callback is not None:
                await self._connection_callback(False)

    async def _receive_presses(self, websocket: WebSocket):
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = deck_message.validate_json(raw)
                except ValidationError as e:
                    logger.warning(f"Ignoring malformed deck message: {e}")
                    await self._send(ErrorMessage(message="Malformed message"))
                    continue

                if isinstance(message, PressMessage):
                    logger.debug(f"Key {message.index} {'down' if message.pressed else 'up'}")
                    if self._press_callback is not None:
                        self._press_callback(message.index, message.pressed)
                else:
                    logger.warning(f"Ignoring unexpected {message.type} message")
        except WebSocketDisconnect:
            logger.info("Deck socket closed")

    async def _send(self, message: BaseModel):
        if self.websocket is None:
            logger.debug(f"No deck attached, dropping {message.type} message")
            return
        try:
            await self.websocket.send_text(message.model_dump_json())
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.warning(f"Could not send {message.type} message to deck: {e}")

    async def _reject(
        self, websocket: WebSocket, reason: str, code: int = status.WS_1008_POLICY_VIOLATION
    ):
        await websocket.send_text(ErrorMessage(message=reason).model_dump_json())
        await websocket.close(code=code)
