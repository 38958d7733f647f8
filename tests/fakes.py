"""In-memory Beaver Habits server and key panel for tests."""

import asyncio
import json
from datetime import date, datetime
from typing import Optional
from urllib.parse import parse_qs

import httpx

from habitdeck.beaver.client import BeaverClient
from habitdeck.sync.engine import SyncEngine

HABITS = ["Read", "Meditate", "Journal"]
TODAY = date(2024, 1, 10)
JAN_6 = date(2024, 1, 6)
JAN_10 = TODAY
DATE_FMT = "%d-%m-%Y"


def async_test(coro):
    """Decorator to run async tests with asyncio.run."""

    def wrapper(*args, **kwargs):
        return asyncio.run(coro(*args, **kwargs))

    return wrapper


class FakeBeaver:
    """
    Minimal Beaver Habits server behind an httpx.MockTransport.

    completions maps habit ID to a set of dates. Set fail to a
    (method, path-suffix) -> status dict to make routes fail, add to garbled
    to answer with a body that does not match its Content-Encoding, or set
    down=True to raise connection errors.
    """

    def __init__(self, habits=None, username="alice", password="secret"):
        names = habits if habits is not None else HABITS
        self.habits = [{"id": f"h{i}", "name": name} for i, name in enumerate(names)]
        self.completions: dict[str, set[date]] = {h["id"]: set() for h in self.habits}
        self.username = username
        self.password = password
        self.token = "token-123"
        self.requests: list[httpx.Request] = []
        self.fail: dict[tuple[str, str], int] = {}
        self.garbled: set[tuple[str, str]] = set()
        self.down = False
        # When set, completion reads answer with the data as it was on
        # arrival but only once the gate opens.
        self.gate: Optional[asyncio.Event] = None
        self.waiting = asyncio.Event()

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def habit_id(self, name: str) -> str:
        return next(h["id"] for h in self.habits if h["name"] == name)

    def mark(self, name: str, *days: date):
        self.completions[self.habit_id(name)].update(days)

    def calls(self, method: str, suffix: str = "") -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method and r.url.path.endswith(suffix)
        ]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        for (method, suffix), status in self.fail.items():
            if request.method == method and path.endswith(suffix):
                return httpx.Response(status, json={"detail": "boom"})
        for method, suffix in self.garbled:
            if request.method == method and path.endswith(suffix):
                return httpx.Response(
                    200,
                    headers={"Content-Encoding": "gzip"},
                    stream=httpx.ByteStream(b"not gzip"),
                )

        if path == "/auth/login":
            return self._login(request)
        if request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"detail": "Unauthorized"})

        if path == "/api/v1/habits" and request.method == "GET":
            return httpx.Response(200, json=self.habits)

        parts = path.split("/")
        if len(parts) == 6 and parts[-1] == "completions":
            habit_id = parts[-2]
            if habit_id not in self.completions:
                return httpx.Response(404, json={"detail": "Habit not found"})
            if request.method == "GET":
                response = self._list_completions(request, habit_id)
                if self.gate is not None:
                    self.waiting.set()
                    await self.gate.wait()
                return response
            if request.method == "POST":
                return self._upsert_completion(request, habit_id)

        return httpx.Response(404, json={"detail": "Not found"})

    def _login(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        if (
            form.get("grant_type") == "password"
            and form.get("username") == self.username
            and form.get("password") == self.password
        ):
            return httpx.Response(200, json={"access_token": self.token, "token_type": "bearer"})
        return httpx.Response(400, json={"detail": "LOGIN_BAD_CREDENTIALS"})

    def _list_completions(self, request: httpx.Request, habit_id: str) -> httpx.Response:
        params = request.url.params
        fmt = params["date_fmt"]
        start = datetime.strptime(params["date_start"], fmt).date()
        end = datetime.strptime(params["date_end"], fmt).date()
        days = sorted(d for d in self.completions[habit_id] if start <= d <= end)
        if params.get("sort") == "desc":
            days.reverse()
        return httpx.Response(200, json=[d.strftime(fmt) for d in days])

    def _upsert_completion(self, request: httpx.Request, habit_id: str) -> httpx.Response:
        body = json.loads(request.content)
        day = datetime.strptime(body["date"], body["date_fmt"]).date()
        if body["done"]:
            self.completions[habit_id].add(day)
        else:
            self.completions[habit_id].discard(day)
        return httpx.Response(200, json={"day": body["date"], "done": body["done"]})


class FakeDeck:
    """DeviceAdapter recording everything the engine asks of it."""

    def __init__(self, rows: int = 3, cols: int = 5):
        self.rows = rows
        self.cols = cols
        self.renders: list[tuple[int, bool]] = []
        self.notifications: list[str] = []
        self.press_callback = None
        self.connection_callback = None

    def layout(self) -> tuple[int, int]:
        return self.rows, self.cols

    async def render(self, index: int, is_done: bool):
        self.renders.append((index, is_done))

    async def notify(self, message: str):
        self.notifications.append(message)

    def on_press(self, callback):
        self.press_callback = callback

    def on_connection(self, callback):
        self.connection_callback = callback

    async def connect(self):
        await self.connection_callback(True)

    async def disconnect(self):
        await self.connection_callback(False)


def make_engine(server: FakeBeaver, deck: FakeDeck, habits=None, password="secret"):
    """Engine wired to the fakes, on TODAY, with a timer that never fires in a test."""
    client = BeaverClient("http://beaver.test", transport=server.transport())
    engine = SyncEngine(
        client,
        deck,
        habits=habits if habits is not None else HABITS,
        username="alice",
        password=password,
        sync_interval=3600,
        today=lambda: TODAY,
    )
    return engine, client
