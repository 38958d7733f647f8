"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Callable, Optional

from fastapi import FastAPI, WebSocket

from .beaver.client import BeaverClient
from .config import Settings, settings
from .dashboard.renderer import KeyRenderer
from .deck.models import CellResponse, GridResponse, StatusResponse
from .deck.websocket import WebSocketDeck
from .notify import Notifier
from .sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app(
    config: Optional[Settings] = None,
    client: Optional[BeaverClient] = None,
    deck: Optional[WebSocketDeck] = None,
    today: Callable[[], date] = date.today,
) -> FastAPI:
    """
    Build the HabitDeck service.

    Args:
        config: Settings, defaults to the environment
        client: Beaver client, defaults to one built from config
        deck: Panel adapter, defaults to a WebSocketDeck
        today: Clock for the day window

    Returns:
        FastAPI application; the engine starts with its lifespan
    """
    config = config or settings
    client = client or BeaverClient(
        config.endpoint, timeout=config.request_timeout, date_fmt=config.date_fmt
    )
    deck = deck or WebSocketDeck(KeyRenderer(config.key_size))
    engine = SyncEngine(
        client,
        deck,
        habits=config.habits,
        username=config.username,
        password=config.password,
        sync_interval=config.sync_interval,
        today=today,
    )
    engine.subscribe(
        Notifier(deck, config.date_fmt, enabled=config.enable_notifications)
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting HabitDeck against {config.endpoint}")
        try:
            await engine.start()  # AuthError aborts startup
            yield
        finally:
            await engine.stop()
            await client.close()

    app = FastAPI(
        title="HabitDeck",
        description="Keeps a key panel in sync with Beaver Habits",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.deck = deck

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "HabitDeck",
            "version": "0.1.0",
            "endpoints": {
                "deck": "/deck",
                "grid": "/grid",
                "status": "/status",
            },
        }

    @app.get("/status", response_model=StatusResponse)
    async def status():
        """Engine status."""
        return StatusResponse(
            engine_state=engine.state.value,
            deck_connected=deck.is_connected,
            rows=engine.grid.rows,
            cols=engine.grid.cols,
            habits=engine.habits,
            sync_interval=engine.sync_interval,
            last_sync=engine.last_sync,
            last_error=str(engine.last_error) if engine.last_error else None,
        )

    @app.get("/grid", response_model=GridResponse)
    async def grid():
        """Current state of every key."""
        snapshot = engine.grid
        return GridResponse(
            rows=snapshot.rows,
            cols=snapshot.cols,
            cells=[
                CellResponse(
                    index=cell.index,
                    habit_name=cell.habit_name,
                    date=cell.date.strftime(config.date_fmt),
                    is_done=cell.is_done,
                )
                for cell in snapshot
            ],
        )

    @app.websocket("/deck")
    async def deck_endpoint(websocket: WebSocket):
        """
        Key panel session.

        The panel sends {"type": "hello", "rows": r, "cols": c} first, then
        {"type": "press", "index": i, "pressed": true} per key event.
        """
        await deck.serve(websocket)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    configure_logging(settings.log_level)
    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )
