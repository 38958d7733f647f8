"""Beaver Habits HTTP client."""

import logging
from typing import Any, Optional

import httpx

from ..sync.errors import ApiError, AuthError, HabitDeckError, NetworkError

logger = logging.getLogger(__name__)

API_BASE_PATH = "/api/v1/habits"
DEFAULT_DATE_FMT = "%d-%m-%Y"


class BeaverClient:
    """Async client for the Beaver Habits REST API."""

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        date_fmt: str = DEFAULT_DATE_FMT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Beaver client.

        Args:
            endpoint: Server URL (e.g., https://beaver.example.com)
            timeout: Per-request timeout in seconds
            date_fmt: strftime format used for dates on the wire
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.endpoint = endpoint.rstrip("/")
        self.date_fmt = date_fmt
        self._token: Optional[str] = None
        self._http = httpx.AsyncClient(
            base_url=self.endpoint,
            timeout=httpx.Timeout(timeout),
            headers={"accept": "application/json"},
            transport=transport,
        )

    async def close(self):
        """Close the underlying connection pool."""
        await self._http.aclose()

    async def login(self, username: str, password: str) -> str:
        """
        Authenticate and keep the bearer token for later requests.

        Args:
            username: Beaver Habits account name
            password: Beaver Habits password

        Returns:
            The access token

        Raises:
            AuthError: on any failure, including network errors
        """
        logger.info(f"Logging in to {self.endpoint} as {username}")
        form = {"grant_type": "password", "username": username, "password": password}
        try:
            body = await self._request(
                "POST",
                "/auth/login",
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                authenticated=False,
            )
        except HabitDeckError as e:
            raise AuthError(f"Login failed: {e}") from e

        token = body.get("access_token") if isinstance(body, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthError("Could not parse response body of the login request")

        self._token = token
        logger.info("✓ Authenticated with Beaver Habits")
        return token

    async def get_habit_list(self) -> list[dict]:
        """Get all habits of the account."""
        habits = await self._request("GET", API_BASE_PATH)
        if not isinstance(habits, list):
            raise ApiError(f"Expected a list of habits, got {type(habits).__name__}")
        return habits

    async def get_habit_records(
        self, habit_id: str, date_start: str, date_end: str
    ) -> list[str]:
        """
        Get completion dates of a habit in an inclusive range, oldest first.

        Args:
            habit_id: Remote habit ID
            date_start: First day, formatted with date_fmt
            date_end: Last day, formatted with date_fmt

        Returns:
            List of date strings formatted with date_fmt
        """
        params = {
            "date_fmt": self.date_fmt,
            "date_start": date_start,
            "date_end": date_end,
            "sort": "asc",
        }
        records = await self._request(
            "GET", f"{API_BASE_PATH}/{habit_id}/completions", params=params
        )
        if not isinstance(records, list):
            raise ApiError(f"Expected a list of dates, got {type(records).__name__}")
        return records

    async def post_habit_record(self, habit_id: str, date: str, done: bool):
        """
        Set the completion state of a habit on one day.

        The remote side upserts, so repeating the same call is harmless.
        """
        body = {"date_fmt": self.date_fmt, "date": date, "done": done}
        await self._request(
            "POST", f"{API_BASE_PATH}/{habit_id}/completions", json=body
        )

    async def _request(
        self,
        method: str,
        path: str,
        authenticated: bool = True,
        headers: Optional[dict] = None,
        **kwargs,
    ) -> Any:
        """Send a request and decode the JSON body, mapping failures to HabitDeckError."""
        headers = dict(headers or {})
        if authenticated and self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        logger.debug(f"{method} {path}")
        try:
            response = await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request to '{path}' timed out") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Request to '{path}' failed. Cause: {e}") from e
        except httpx.DecodingError as e:
            raise ApiError(f"Response from '{path}' could not be decoded. Cause: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to '{path}' failed. Cause: {e}") from e

        if not response.is_success:
            if response.status_code == 401:
                logger.error("Beaver Habits rejected the access token; restart to log in again")
            raise ApiError(
                f"Request to '{path}' failed. Cause: HTTP error "
                f"{response.status_code}: {response.text}",
                status=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(
                f"Request to '{path}' returned invalid JSON", status=response.status_code
            ) from e
