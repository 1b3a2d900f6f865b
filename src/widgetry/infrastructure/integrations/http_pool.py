"""Shared HTTP client pool for connection reuse across loaders.

Hey future me - the remote loader AND the asset loader both hit CDNs, usually the SAME
hosts. Instead of each creating its own httpx.AsyncClient (wasting TCP connections and
ignoring keep-alive), they share one pool owned by the registry. The pool is an
INSTANCE, not a class-level singleton: every registry gets its own and closes it in
aclose(). No ambient global state - two registries in one process (tests!) never
share sockets.

Usage:
    pool = HttpClientPool(settings.http)
    response = await pool.fetch("https://cdn.jsdelivr.net/...", url_guard=policy.check)
    ...
    await pool.close()
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import httpx

from widgetry.config import HttpSettings

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 10

UrlGuard = Callable[[str], None]


class HttpClientPool:
    """Lazily created, lock-guarded shared httpx.AsyncClient.

    Features:
    - Lazy initialization (created on first use)
    - asyncio.Lock around creation/close so concurrent first calls build ONE client
    - Configurable limits (connections, timeouts)
    - Proper cleanup at shutdown
    """

    def __init__(
        self,
        settings: HttpSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the pool.

        Args:
            settings: Timeout and connection limits (defaults if None)
            transport: Optional transport override (httpx.MockTransport in tests)
        """
        self._settings = settings or HttpSettings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._lock: asyncio.Lock | None = None

    # Lazy lock: asyncio.Lock binds to the running loop on first use, so create it there.
    def _ensure_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def get_client(self) -> httpx.AsyncClient:
        """Get the shared HTTP client, creating it on first call."""
        async with self._ensure_lock():
            if self._client is None:
                # HTTP/2 only for real network transports - MockTransport doesn't speak it.
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self._settings.timeout),
                    limits=httpx.Limits(
                        max_keepalive_connections=self._settings.max_keepalive,
                        max_connections=self._settings.max_connections,
                    ),
                    http2=self._transport is None,
                    follow_redirects=True,
                    transport=self._transport,
                )
                logger.info(
                    "HTTP client pool initialized (timeout=%.1fs, keepalive=%d, max_conn=%d)",
                    self._settings.timeout,
                    self._settings.max_keepalive,
                    self._settings.max_connections,
                )
            return self._client

    @property
    def is_open(self) -> bool:
        """True while a client exists."""
        return self._client is not None

    async def close(self) -> None:
        """Close the shared client. A later get_client() creates a fresh one."""
        async with self._ensure_lock():
            if self._client is not None:
                await self._client.aclose()
                self._client = None
                logger.info("HTTP client pool closed")

    # Hey future me - the client follows redirects on its own, which would let an allowed
    # CDN bounce us to ANY host before we get to look. fetch() walks the redirect chain one
    # hop at a time and runs the guard on every URL before requesting it.
    async def fetch(
        self,
        url: str,
        *,
        url_guard: UrlGuard | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """GET a URL, following redirects manually so every hop passes url_guard.

        Args:
            url: Absolute URL to fetch
            url_guard: Called with each URL before it is requested; raises to refuse
            **kwargs: Passed through to AsyncClient.get (headers, ...)

        Raises:
            httpx.TooManyRedirects: More than MAX_REDIRECTS hops
            httpx.HTTPError: Network errors
        """
        client = await self.get_client()
        if url_guard is not None:
            url_guard(url)
        response = await client.get(url, follow_redirects=False, **kwargs)

        hops = 0
        while response.next_request is not None:
            next_request = response.next_request
            await response.aclose()
            hops += 1
            if hops > MAX_REDIRECTS:
                raise httpx.TooManyRedirects(
                    f"Exceeded {MAX_REDIRECTS} redirects fetching {url}", request=next_request
                )
            if url_guard is not None:
                url_guard(str(next_request.url))
            response = await client.send(next_request, follow_redirects=False)
        return response
