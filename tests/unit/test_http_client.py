"""
Tests for nodeswitch/http_client.py

Covers:
- RateLimitState header tracking and throttle thresholds
- Error translation from httpx to NetworkError / ParseError
- Client lifecycle
"""

import asyncio

import httpx
import pytest

from nodeswitch.exceptions import NetworkError, ParseError
from nodeswitch.http_client import AsyncHttpClient, RateLimitState

URL = "https://api.github.com/repos/Schniz/fnm/releases/latest"


@pytest.mark.unit
class TestRateLimitState:
    """Tests for RateLimitState."""

    def test_initial_state(self):
        state = RateLimitState()
        assert state.remaining is None
        assert state.limit is None
        assert state.should_throttle is False

    def test_update_from_headers(self):
        """Headers are read case-insensitively."""
        state = RateLimitState()
        state.update_from_headers(
            {"X-RateLimit-Remaining": "55", "x-ratelimit-limit": "60", "X-RateLimit-Reset": "1"}
        )
        assert state.remaining == 55
        assert state.limit == 60
        assert state.reset_time == 1.0
        assert state.should_throttle is False

    def test_throttle_below_ten_percent(self):
        state = RateLimitState()
        state.update_from_headers({"x-ratelimit-remaining": "5", "x-ratelimit-limit": "60"})
        assert state.should_throttle is True
        assert state.warning_active is True

    def test_warning_clears_above_half(self):
        state = RateLimitState()
        state.update_from_headers({"x-ratelimit-remaining": "1", "x-ratelimit-limit": "60"})
        state.update_from_headers({"x-ratelimit-remaining": "40", "x-ratelimit-limit": "60"})
        assert state.warning_active is False

    def test_malformed_headers_ignored(self):
        state = RateLimitState()
        state.update_from_headers({"x-ratelimit-remaining": "lots", "x-ratelimit-reset": "soon"})
        assert state.remaining is None
        assert state.reset_time is None


def _run(handler, factory):
    async def scenario():
        async with AsyncHttpClient(transport=httpx.MockTransport(handler)) as client:
            return await factory(client)

    return asyncio.run(scenario())


@pytest.mark.unit
class TestAsyncHttpClient:
    """Tests for AsyncHttpClient."""

    def test_get_json(self):
        data = _run(
            lambda request: httpx.Response(200, json={"tag_name": "v1.0.0"}),
            lambda client: client.get_json(URL),
        )
        assert data == {"tag_name": "v1.0.0"}

    def test_rate_limit_tracked(self):
        def handler(request):
            return httpx.Response(
                200, json={}, headers={"X-RateLimit-Remaining": "10", "X-RateLimit-Limit": "60"}
            )

        async def factory(client):
            await client.get(URL)
            return client.rate_limit_state

        state = _run(handler, factory)
        assert state.remaining == 10

    def test_get_returns_error_statuses(self):
        """Plain get() leaves status handling to the caller."""
        response = _run(lambda request: httpx.Response(404), lambda client: client.get(URL))
        assert response.status_code == 404

    def test_get_ok_raises_with_snippet(self):
        """get_ok() includes status and the leading part of the body."""
        body = "x" * 500
        with pytest.raises(NetworkError) as exc_info:
            _run(lambda request: httpx.Response(500, text=body), lambda client: client.get_ok(URL))

        assert exc_info.value.status_code == 500
        assert exc_info.value.url == URL
        assert len(exc_info.value.body) == 160

    def test_transport_error(self):
        """Connection failures become NetworkError."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError, match="connection refused"):
            _run(handler, lambda client: client.get(URL))

    def test_invalid_json(self):
        with pytest.raises(ParseError):
            _run(
                lambda request: httpx.Response(200, text="not json"),
                lambda client: client.get_json(URL),
            )

    def test_close_resets_client(self):
        async def scenario():
            client = AsyncHttpClient(transport=httpx.MockTransport(lambda r: httpx.Response(204)))
            await client.get(URL)
            assert client._client is not None
            await client.close()
            assert client._client is None
            # Closing twice is harmless
            await client.close()

        asyncio.run(scenario())
