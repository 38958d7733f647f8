"""
Tests for the Beaver Habits client.

All HTTP goes through httpx.MockTransport, no real server is contacted.
"""

import json
from datetime import date

import httpx
import pytest

from habitdeck.beaver.client import BeaverClient
from habitdeck.sync.errors import ApiError, AuthError, NetworkError

from fakes import FakeBeaver, async_test


def _client(server: FakeBeaver) -> BeaverClient:
    return BeaverClient("http://beaver.test/", transport=server.transport())


class TestLogin:
    """Test the password login."""

    @async_test
    async def test_login_stores_token(self):
        """A good login keeps the token and sends it as a bearer header."""
        server = FakeBeaver()
        client = _client(server)

        token = await client.login("alice", "secret")
        await client.get_habit_list()
        await client.close()

        assert token == "token-123"
        login, listing = server.requests
        assert login.headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert b"grant_type=password" in login.content
        assert "Authorization" not in login.headers
        assert listing.headers["Authorization"] == "Bearer token-123"

    @async_test
    async def test_wrong_password_raises_auth_error(self):
        server = FakeBeaver()
        client = _client(server)

        with pytest.raises(AuthError, match="Login failed"):
            await client.login("alice", "wrong")
        with pytest.raises(ApiError) as excinfo:
            await client.get_habit_list()
        await client.close()

        assert excinfo.value.status == 401
        assert "Authorization" not in server.requests[-1].headers

    @async_test
    async def test_login_without_token_raises_auth_error(self):
        """A 2xx body without access_token is a failed login."""
        client = BeaverClient(
            "http://beaver.test",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"detail": "ok"})),
        )

        with pytest.raises(AuthError, match="Could not parse"):
            await client.login("alice", "secret")
        await client.close()

    @async_test
    async def test_login_network_error_raises_auth_error(self):
        server = FakeBeaver()
        server.down = True
        client = _client(server)

        with pytest.raises(AuthError):
            await client.login("alice", "secret")
        await client.close()


class TestRequests:
    """Test the habit endpoints and error mapping."""

    @async_test
    async def test_get_habit_records_query(self):
        server = FakeBeaver()
        server.mark("Read", date(2024, 1, 6), date(2024, 1, 8), date(2023, 12, 1))
        client = _client(server)
        await client.login("alice", "secret")

        records = await client.get_habit_records("h0", "06-01-2024", "10-01-2024")
        await client.close()

        assert records == ["06-01-2024", "08-01-2024"]
        params = server.requests[-1].url.params
        assert params["date_fmt"] == "%d-%m-%Y"
        assert params["date_start"] == "06-01-2024"
        assert params["date_end"] == "10-01-2024"
        assert params["sort"] == "asc"

    @async_test
    async def test_post_habit_record_body(self):
        server = FakeBeaver()
        client = _client(server)
        await client.login("alice", "secret")

        await client.post_habit_record("h1", "09-01-2024", True)
        await client.close()

        request = server.requests[-1]
        assert request.url.path == "/api/v1/habits/h1/completions"
        assert json.loads(request.content) == {
            "date_fmt": "%d-%m-%Y",
            "date": "09-01-2024",
            "done": True,
        }

    @async_test
    async def test_repeated_upsert_is_idempotent(self):
        """Two identical upserts leave the same remote state as one."""
        server = FakeBeaver()
        client = _client(server)
        await client.login("alice", "secret")

        await client.post_habit_record("h0", "10-01-2024", True)
        once = set(server.completions["h0"])
        await client.post_habit_record("h0", "10-01-2024", True)
        await client.close()

        assert server.completions["h0"] == once == {date(2024, 1, 10)}

    @async_test
    async def test_http_error_raises_api_error(self):
        server = FakeBeaver()
        server.fail[("GET", "/api/v1/habits")] = 503
        client = _client(server)
        await client.login("alice", "secret")

        with pytest.raises(ApiError) as excinfo:
            await client.get_habit_list()
        await client.close()

        assert excinfo.value.status == 503

    @async_test
    async def test_expired_token_raises_api_error_401(self):
        server = FakeBeaver()
        client = _client(server)
        await client.login("alice", "secret")
        server.token = "rotated"

        with pytest.raises(ApiError) as excinfo:
            await client.get_habit_list()
        await client.close()

        assert excinfo.value.status == 401

    @async_test
    async def test_connection_error_raises_network_error(self):
        server = FakeBeaver()
        client = _client(server)
        await client.login("alice", "secret")
        server.down = True

        with pytest.raises(NetworkError):
            await client.get_habit_list()
        await client.close()

    @async_test
    async def test_timeout_raises_network_error(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        client = BeaverClient("http://beaver.test", transport=httpx.MockTransport(handler))

        with pytest.raises(NetworkError, match="timed out"):
            await client.get_habit_list()
        await client.close()

    @async_test
    async def test_invalid_json_raises_api_error(self):
        client = BeaverClient(
            "http://beaver.test",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>")),
        )

        with pytest.raises(ApiError, match="invalid JSON"):
            await client.get_habit_list()
        await client.close()

    @async_test
    async def test_undecodable_body_raises_api_error(self):
        """A body that does not match its Content-Encoding is an API error, not a raw httpx one."""
        client = BeaverClient(
            "http://beaver.test",
            transport=httpx.MockTransport(
                lambda r: httpx.Response(
                    200,
                    headers={"Content-Encoding": "gzip"},
                    stream=httpx.ByteStream(b"not gzip"),
                )
            ),
        )

        with pytest.raises(ApiError, match="could not be decoded"):
            await client.get_habit_list()
        await client.close()

    @async_test
    async def test_unexpected_shape_raises_api_error(self):
        client = BeaverClient(
            "http://beaver.test",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"habits": []})),
        )

        with pytest.raises(ApiError, match="Expected a list"):
            await client.get_habit_list()
        await client.close()
