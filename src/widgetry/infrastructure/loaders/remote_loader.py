"""Remote (CDN) widget loader.

Hey future me - a remote widget is a JSON DESCRIPTOR served over http(s):

    {
      "metadata": {"id": "widget-b", "name": "...", "version": "1.2.0", ...},
      "config": {"type": "kpi", "title": "CAC"},
      "componentUrl": "https://cdn.jsdelivr.net/.../component.json",   # optional
      "assets": {"styles": ["style.css"], "scripts": [], "images": []},
      "locales": {...},
      "schema": {...}
    }

The component itself is NOT fetched at load time! The bundle's component factory fetches
componentUrl (default "<source>/component") on FIRST invocation and memoizes the result.
Registering 50 widgets therefore costs 50 small descriptor requests, not 50 component
downloads.

Caching: parsed bundles are cached per source URL. options.cache=False bypasses the cache
for that call (no read, no write). clear_cache() is what registry.clear_cache() calls.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

import httpx

from widgetry.domain.entities import (
    ComponentFactory,
    LoadOptions,
    WidgetAssets,
    WidgetBundle,
    WidgetMetadata,
)
from widgetry.domain.exceptions import InvalidBundleShape, LoadError, ValidationException
from widgetry.domain.ports import IWidgetLoader
from widgetry.infrastructure.integrations.http_pool import HttpClientPool, UrlGuard
from widgetry.infrastructure.security.policy import SecurityPolicyEnforcer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteComponent:
    """What a remote component factory resolves to.

    The rendering layer decides how to mount it (iframe, script tag, server-side template).
    """

    url: str
    content_type: str | None
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class RemoteBundleLoader(IWidgetLoader):
    """Fetches widget descriptors over HTTP(S) through the shared client pool."""

    def __init__(
        self,
        http_pool: HttpClientPool,
        security_policy: SecurityPolicyEnforcer | None = None,
    ) -> None:
        """Initialize remote loader.

        Args:
            http_pool: Shared HTTP client pool (owned by the registry)
            security_policy: If given, componentUrl hosts are gated too
        """
        self._http_pool = http_pool
        self._security_policy = security_policy
        self._cache: dict[str, WidgetBundle] = {}
        # Background descriptor prefetches started by preload(), awaited by load()
        self._prefetching: dict[str, asyncio.Task[dict[str, Any]]] = {}

    @property
    def name(self) -> str:
        return "remote"

    def can_load(self, source: str) -> bool:
        lowered = source.lower()
        return lowered.startswith("http://") or lowered.startswith("https://")

    @property
    def _url_guard(self) -> UrlGuard | None:
        return self._security_policy.check if self._security_policy is not None else None

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def is_cached(self, source: str) -> bool:
        return source in self._cache

    async def load(self, source: str, options: LoadOptions | None = None) -> WidgetBundle:
        """Load a bundle from a descriptor URL.

        Raises:
            LoadError: On HTTP errors, network errors or a non-JSON descriptor
            InvalidBundleShape: If the descriptor's metadata is malformed
        """
        use_cache = options.cache if options is not None else True

        if use_cache and source in self._cache:
            logger.debug("Remote widget cache hit: %s", source)
            return self._cache[source]

        descriptor = await self._get_descriptor(source, use_cache)
        bundle = self._parse_bundle(descriptor, source)

        if use_cache:
            self._cache[source] = bundle

        return bundle

    async def _get_descriptor(self, source: str, use_cache: bool) -> dict[str, Any]:
        prefetch = self._prefetching.pop(source, None)
        if prefetch is not None and not use_cache:
            # Uncached load fetches fresh, a leftover prefetch must not keep running
            prefetch.cancel()
            prefetch = None
        if prefetch is not None:
            try:
                return await asyncio.shield(prefetch)
            except LoadError:
                logger.debug("Prefetch of %s failed, fetching again", source)
        return await self._fetch_descriptor(source)

    async def _fetch_descriptor(self, source: str) -> dict[str, Any]:
        try:
            response = await self._http_pool.fetch(
                source, url_guard=self._url_guard, headers={"Accept": "application/json"}
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise LoadError(
                source,
                f"HTTP {e.response.status_code}: {e.response.reason_phrase}",
                e,
            ) from e
        except httpx.HTTPError as e:
            raise LoadError(source, f"{type(e).__name__}: {e}", e) from e
        except ValueError as e:
            raise LoadError(source, f"descriptor is not valid JSON: {e}", e) from e

        if not isinstance(data, dict):
            raise LoadError(source, f"descriptor must be a JSON object, got {type(data).__name__}")
        return data

    def _parse_bundle(self, data: dict[str, Any], source: str) -> WidgetBundle:
        # Missing parts stay None - the BundleValidator reports them as InvalidBundleShape.
        metadata: WidgetMetadata | None = None
        raw_metadata = data.get("metadata")
        if isinstance(raw_metadata, dict):
            try:
                metadata = WidgetMetadata.from_dict(raw_metadata)
            except (KeyError, TypeError, ValueError, ValidationException) as e:
                raise InvalidBundleShape(f"Invalid widget metadata from {source}: {e}") from e

        component_url = data.get("componentUrl") or data.get("component_url")
        component_url = urljoin(source, component_url) if component_url else f"{source.rstrip('/')}/component"

        assets = WidgetAssets.from_dict(data.get("assets"))
        if assets is not None:
            assets = WidgetAssets(
                styles=[urljoin(source, url) for url in assets.styles],
                scripts=[urljoin(source, url) for url in assets.scripts],
                images=[urljoin(source, url) for url in assets.images],
            )

        return WidgetBundle(
            metadata=metadata,
            config=data.get("config"),
            component=self._lazy_component(component_url),
            assets=assets,
            locales=data.get("locales"),
            schema=data.get("schema"),
        )

    # Hey future me - the lock makes concurrent first calls share ONE fetch. A failed fetch
    # is NOT memoized, the next call retries.
    def _lazy_component(self, url: str) -> ComponentFactory:
        resolved: RemoteComponent | None = None
        lock = asyncio.Lock()

        async def component() -> RemoteComponent:
            nonlocal resolved
            async with lock:
                if resolved is None:
                    resolved = await self._fetch_component(url)
            return resolved

        return component

    async def _fetch_component(self, url: str) -> RemoteComponent:
        try:
            response = await self._http_pool.fetch(url, url_guard=self._url_guard)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise LoadError(url, f"HTTP {e.response.status_code}: {e.response.reason_phrase}", e) from e
        except httpx.HTTPError as e:
            raise LoadError(url, f"{type(e).__name__}: {e}", e) from e

        logger.debug("Resolved remote component %s (%d bytes)", url, len(response.content))
        return RemoteComponent(
            url=url,
            content_type=response.headers.get("content-type"),
            body=response.content,
        )

    async def unload(self, widget_id: str) -> None:
        """Evict cached bundles with this widget id."""
        stale = [
            source
            for source, bundle in self._cache.items()
            if bundle.metadata is not None and bundle.metadata.id == widget_id
        ]
        for source in stale:
            del self._cache[source]
        if stale:
            logger.debug("Evicted %d cached descriptor(s) for %s", len(stale), widget_id)

    async def preload(self, source: str) -> None:
        """Start a background prefetch of the descriptor and return immediately."""
        if source in self._cache or source in self._prefetching:
            return

        task = asyncio.create_task(self._fetch_descriptor(source), name=f"prefetch:{source}")
        self._prefetching[source] = task
        task.add_done_callback(self._prefetch_done(source))

    def _prefetch_done(self, source: str) -> Callable[["asyncio.Task[dict[str, Any]]"], None]:
        def callback(task: "asyncio.Task[dict[str, Any]]") -> None:
            if task.cancelled():
                return
            error = task.exception()
            if error is not None:
                logger.info("Prefetch of %s failed: %s", source, error)
                if self._prefetching.get(source) is task:
                    del self._prefetching[source]

        return callback

    def clear_cache(self) -> None:
        """Drop every cached bundle."""
        count = len(self._cache)
        self._cache.clear()
        logger.info("Remote widget cache cleared (%d entries)", count)

    async def close(self) -> None:
        """Cancel outstanding prefetches. The HTTP pool is closed by its owner."""
        for task in self._prefetching.values():
            task.cancel()
        self._prefetching.clear()
