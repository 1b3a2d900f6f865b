"""Asset loader for widget stylesheets, scripts and images.

Hey future me - all assets of a bundle load CONCURRENTLY, each one succeeds or fails on
its own, but the phase as a whole is FAIL-FAST: the first failure cancels the
still-running fetches and surfaces as AssetLoadError, which aborts the registration.
A widget with a broken stylesheet never shows up half-styled.

URL kinds:
- http(s)://...  fetched through the shared HttpClientPool, every hop (redirects too) must
                 pass the security policy when one is given
- data:...       accepted as-is (inline)
- anything else  a local file path, must exist (relative paths use base_dir)
"""

import asyncio
import logging
from pathlib import Path
from urllib.parse import urljoin, urlsplit

import httpx

from widgetry.domain.entities import AssetKind, LoadedAsset, WidgetAssets
from widgetry.domain.exceptions import AssetLoadError
from widgetry.domain.ports import IAssetLoader
from widgetry.infrastructure.integrations.http_pool import HttpClientPool
from widgetry.infrastructure.security.policy import SecurityPolicyEnforcer

logger = logging.getLogger(__name__)


class AssetLoader(IAssetLoader):
    """Loads declared bundle assets over HTTP or from disk."""

    def __init__(
        self,
        http_pool: HttpClientPool,
        base_dir: Path | None = None,
        security_policy: SecurityPolicyEnforcer | None = None,
    ) -> None:
        """Initialize asset loader.

        Args:
            http_pool: Shared HTTP client pool
            base_dir: Directory relative file assets are resolved against
            security_policy: Domain allow-list for http(s) assets (None = unrestricted)
        """
        self._http_pool = http_pool
        self._base_dir = base_dir
        self._security_policy = security_policy

    async def load_assets(
        self, assets: WidgetAssets, base_url: str | None = None
    ) -> list[LoadedAsset]:
        items = assets.items()
        if not items:
            return []

        tasks = [
            asyncio.create_task(self._load_one(kind, url, base_url), name=f"asset:{url}")
            for kind, url in items
        ]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            # Declaration order decides which error wins when several finished failing together
            failed = [task for task in tasks if task in done and task.exception() is not None]
            if failed:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                error = failed[0].exception()
                assert error is not None
                raise error
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        loaded = [task.result() for task in tasks]
        logger.debug("Loaded %d asset(s)", len(loaded))
        return loaded

    async def _load_one(self, kind: AssetKind, url: str, base_url: str | None) -> LoadedAsset:
        if base_url and not urlsplit(url).scheme and not url.startswith("/"):
            url = urljoin(base_url, url)

        scheme = urlsplit(url).scheme.lower()
        if scheme == "data":
            return LoadedAsset(kind=kind, url=url, size=len(url))
        if scheme in ("http", "https"):
            return await self._fetch(kind, url)
        return await self._stat_file(kind, url)

    async def _fetch(self, kind: AssetKind, url: str) -> LoadedAsset:
        url_guard = self._security_policy.check if self._security_policy is not None else None
        try:
            response = await self._http_pool.fetch(url, url_guard=url_guard)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AssetLoadError(url, kind.value, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise AssetLoadError(url, kind.value, f"{type(e).__name__}: {e}") from e

        return LoadedAsset(
            kind=kind,
            url=url,
            size=len(response.content),
            content_type=response.headers.get("content-type"),
        )

    async def _stat_file(self, kind: AssetKind, url: str) -> LoadedAsset:
        path = Path(url)
        if not path.is_absolute() and self._base_dir is not None:
            path = self._base_dir / path
        try:
            stat = await asyncio.to_thread(path.stat)
        except OSError as e:
            raise AssetLoadError(url, kind.value, e.strerror or str(e)) from e
        if not path.is_file():
            raise AssetLoadError(url, kind.value, "not a file")
        return LoadedAsset(kind=kind, url=str(path), size=stat.st_size)
