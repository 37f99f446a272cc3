"""Async HTTP client with GitHub rate-limit tracking.

Wraps a lazily created httpx.AsyncClient and translates transport failures,
non-success statuses and undecodable bodies into NetworkError / ParseError so
no httpx exception leaks out of the services that use it.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import httpx

from nodeswitch.config import NETWORK
from nodeswitch.exceptions import NetworkError, ParseError
from nodeswitch.logging_config import get_logger

logger = get_logger(__name__)


class RateLimitState:
    """Tracks GitHub rate limit state across requests."""

    def __init__(self) -> None:
        self.remaining: int | None = None
        self.limit: int | None = None
        self.reset_time: float | None = None
        self.warning_active: bool = False

    def update_from_headers(self, headers: dict[str, str]) -> None:
        """Update rate limit state from X-RateLimit-* response headers."""
        lowered = {key.lower(): value for key, value in headers.items()}

        self.remaining = _int_header(lowered, "x-ratelimit-remaining", self.remaining)
        self.limit = _int_header(lowered, "x-ratelimit-limit", self.limit)
        if "x-ratelimit-reset" in lowered:
            try:
                self.reset_time = float(lowered["x-ratelimit-reset"])
            except ValueError:
                logger.debug("Ignoring malformed X-RateLimit-Reset header")

        if self.remaining is not None and self.limit is not None and self.limit > 0:
            ratio = self.remaining / self.limit
            if ratio < 0.1:
                if not self.warning_active:
                    logger.warning(
                        "GitHub rate limit low (%d/%d, %.1f%%), throttling requests",
                        self.remaining,
                        self.limit,
                        ratio * 100,
                    )
                    self.warning_active = True
            elif ratio > 0.5:
                self.warning_active = False

    @property
    def should_throttle(self) -> bool:
        if self.remaining is None or self.limit is None:
            return False
        if self.limit == 0:
            return True
        return (self.remaining / self.limit) < 0.1


def _int_header(headers: dict[str, str], name: str, current: Optional[int]) -> Optional[int]:
    if name not in headers:
        return current
    try:
        return int(headers[name])
    except ValueError:
        logger.debug("Ignoring malformed %s header", name)
        return current


class AsyncHttpClient:
    """Async HTTP client used by the update service and backend installers.

    Usage:
        async with AsyncHttpClient() as client:
            data = await client.get_json("https://api.github.com/repos/Schniz/fnm/releases/latest")
    """

    def __init__(
        self,
        timeout: float = NETWORK.REQUEST_TIMEOUT_SEC,
        connect_timeout: float = NETWORK.CONNECT_TIMEOUT_SEC,
        user_agent: str = NETWORK.USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the client.

        Args:
            timeout: Default request timeout in seconds
            connect_timeout: Connection timeout in seconds
            user_agent: User-Agent header sent with every request
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self._timeout = timeout
        self._connect_timeout = connect_timeout
        self._user_agent = user_agent
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._rate_limit = RateLimitState()
        self._throttle_delay = 0.5  # seconds to wait when throttled

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=self._connect_timeout),
                headers={"User-Agent": self._user_agent},
                follow_redirects=True,
                transport=self._transport,
            )
            logger.debug("Created httpx client (timeout=%.1fs)", self._timeout)
        return self._client

    async def _check_throttle(self) -> None:
        if self._rate_limit.should_throttle:
            logger.debug("Applying throttle delay of %.1fs", self._throttle_delay)
            await asyncio.sleep(self._throttle_delay)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Make an HTTP request.

        Returns the response whatever its status.

        Raises:
            NetworkError: On connection failure or timeout
        """
        await self._check_throttle()

        client = await self._get_client()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise NetworkError(f"Request failed: {e}", url=url) from e

        self._rate_limit.update_from_headers(dict(response.headers))
        return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def get_ok(self, url: str, **kwargs: Any) -> httpx.Response:
        """GET a URL and require a 2xx status.

        Raises:
            NetworkError: On transport failure or non-success status; the error
                carries the status code and a leading snippet of the body
        """
        response = await self.get(url, **kwargs)
        if not response.is_success:
            snippet = response.text[: NETWORK.ERROR_BODY_SNIPPET_CHARS].strip()
            logger.error(f"GET {url} returned {response.status_code}")
            raise NetworkError(
                "Unexpected HTTP status",
                url=url,
                status_code=response.status_code,
                body=snippet or None,
            )
        return response

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        """GET a URL and decode its JSON body.

        Raises:
            NetworkError: On transport failure or non-success status
            ParseError: If the body is not valid JSON
        """
        response = await self.get_ok(url, **kwargs)
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(f"Invalid JSON from {url}: {e}") from e

    @property
    def rate_limit_state(self) -> RateLimitState:
        return self._rate_limit

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Closed httpx client")

    async def __aenter__(self) -> "AsyncHttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
