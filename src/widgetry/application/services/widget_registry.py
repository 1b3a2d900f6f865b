"""Widget registry: the orchestrator of loading, validation, plugins and dependencies.

Hey future me - this is THE CENTRAL PLACE of widgetry! Everything else (loaders,
validator, compatibility checker, plugin pipeline, asset loader, event bus) is a
collaborator this class wires together.

register_widget(source) flow:
    coalesce identical in-flight loads
    -> security gate (allow-list, BEFORE any network I/O)
    -> first loader whose can_load() says yes
    -> load -> validate shape -> platform compatibility
    -> before_load hooks -> assets (fail-fast) -> plugin transforms
    -> COMMIT (widgets map + dependency graph, under the widget id's lock)
    -> after_load hooks -> "widget:loaded"

Registration is ALL-OR-NOTHING: nothing touches the widgets map or the dependency graph
before the commit step, and the commit step has no await between its writes. Any failure
before that emits "widget:error", runs on_error hooks and re-raises to the caller.

Concurrency model (single event loop, no threads):
- Concurrent register_widget() calls for the SAME source share one asyncio.Task. Callers
  await it through asyncio.shield(), so a caller that gets cancelled just stops waiting -
  the load itself runs to completion (there is no cancellation of an in-flight load).
- Register and unregister of the SAME widget id are serialized by a per-id asyncio.Lock:
  unregister holds it for its whole run, register only for the commit. Whoever takes
  the lock last wins.

No global singleton! Build one registry at startup (see infrastructure/lifecycle.py),
pass it to whoever needs it, and aclose() it at shutdown.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any

from widgetry.application.services.compatibility_checker import CompatibilityChecker
from widgetry.application.services.event_bus import EventBus, Listener, Unsubscribe
from widgetry.application.services.plugin_pipeline import HookPhase, PluginPipeline
from widgetry.config import Settings
from widgetry.domain.entities import (
    LoadOptions,
    RegistryEvent,
    RegistryStats,
    WidgetBundle,
    WidgetMetadata,
    WidgetPlugin,
    WidgetQuery,
)
from widgetry.domain.exceptions import (
    DependentsExistError,
    DomainException,
    LoadError,
    NoLoaderAvailable,
    WidgetNotFoundError,
)
from widgetry.domain.ports import IAssetLoader, IWidgetLoader
from widgetry.domain.validation import BundleValidator
from widgetry.infrastructure.integrations.http_pool import HttpClientPool
from widgetry.infrastructure.observability.logger_template import log_operation
from widgetry.infrastructure.observability.logging import set_correlation_id
from widgetry.infrastructure.security.policy import (
    ContentSecurityPolicy,
    SecurityPolicyEnforcer,
)

logger = logging.getLogger(__name__)

# Loads slower than this get an extra "operation.slow" warning
SLOW_LOAD_THRESHOLD_MS = 2000


class WidgetRegistry:
    """Dynamic widget and plugin registry."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        loaders: Iterable[IWidgetLoader] | None = None,
        asset_loader: IAssetLoader | None = None,
        event_bus: EventBus | None = None,
        security_policy: SecurityPolicyEnforcer | None = None,
        compatibility_checker: CompatibilityChecker | None = None,
        pipeline: PluginPipeline | None = None,
        validator: BundleValidator | None = None,
        http_pool: HttpClientPool | None = None,
        owns_http_pool: bool | None = None,
    ) -> None:
        """Initialize the registry.

        Every collaborator is optional; missing ones are built from settings.

        Args:
            settings: Platform, security and HTTP configuration
            loaders: Source loaders, tried in this order (default: local, remote, package)
            asset_loader: Loader for bundle assets
            event_bus: Event bus for lifecycle events
            security_policy: Allow-list gate for network sources
            compatibility_checker: Platform version/feature checker
            pipeline: Plugin pipeline
            validator: Bundle shape validator
            http_pool: Shared HTTP client pool
            owns_http_pool: Close http_pool in aclose() (default: only if the registry created it)
        """
        self._settings = settings or Settings()
        self._owns_http_pool = http_pool is None if owns_http_pool is None else owns_http_pool
        self._http_pool = http_pool or HttpClientPool(self._settings.http)

        self._security = security_policy or SecurityPolicyEnforcer(
            self._settings.security.allowed_domains
        )
        self._csp = ContentSecurityPolicy.from_mapping(
            self._settings.security.content_security_policy
        )
        self._validator = validator or BundleValidator()
        self._checker = compatibility_checker or CompatibilityChecker.from_settings(
            self._settings.platform
        )
        self._pipeline = pipeline or PluginPipeline()
        self._events = event_bus or EventBus()
        self._loaders: list[IWidgetLoader] = (
            list(loaders) if loaders is not None else self._default_loaders()
        )
        self._asset_loader = asset_loader or self._default_asset_loader()

        self._widgets: dict[str, WidgetBundle] = {}
        self._sources: dict[str, str] = {}  # source -> widget id
        self._widget_loaders: dict[str, IWidgetLoader] = {}  # widget id -> loader that loaded it
        self._dependency_graph: dict[str, set[str]] = {}
        self._loading: dict[str, asyncio.Task[WidgetBundle]] = {}
        self._id_locks: dict[str, asyncio.Lock] = {}
        self._id_lock_users: dict[str, int] = {}  # holders + waiters per id lock
        self._closed = False

    # Lazy imports: the application layer only depends on infrastructure when nobody
    # injected collaborators (production wiring).
    def _default_loaders(self) -> list[IWidgetLoader]:
        from widgetry.infrastructure.loaders import (
            LocalBundleLoader,
            PackageBundleLoader,
            RemoteBundleLoader,
        )

        return [
            LocalBundleLoader(validator=self._validator),
            RemoteBundleLoader(self._http_pool, self._security),
            PackageBundleLoader(),
        ]

    def _default_asset_loader(self) -> IAssetLoader:
        from widgetry.infrastructure.assets import AssetLoader

        return AssetLoader(self._http_pool, security_policy=self._security)

    # =========================================================================
    # Configuration (read-only after construction)
    # =========================================================================

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def content_security_policy(self) -> ContentSecurityPolicy:
        return self._csp

    @property
    def allowed_domains(self) -> tuple[str, ...]:
        return self._security.allowed_domains

    @property
    def loaders(self) -> tuple[IWidgetLoader, ...]:
        return tuple(self._loaders)

    @property
    def http_pool(self) -> HttpClientPool:
        return self._http_pool

    @property
    def event_bus(self) -> EventBus:
        return self._events

    def register_loader(self, loader: IWidgetLoader) -> None:
        """Append a loader; it is tried after the ones already configured."""
        self._loaders.append(loader)

    # =========================================================================
    # Registration
    # =========================================================================

    async def register_widget(
        self,
        source: str,
        *,
        preload: bool = False,
        cache: bool = True,
        force: bool = False,
    ) -> WidgetBundle:
        """Load, validate and register a widget from a source string.

        Args:
            source: Local name/path, http(s) descriptor URL or "pkg:" specifier
            preload: Give the loader a preload hint before loading
            cache: Allow loader-level caches (remote descriptor cache)
            force: Start a fresh load even if one is in flight or the widget is active

        Returns:
            The registered (transformed) bundle

        Raises:
            DomainNotAllowedError, NoLoaderAvailable, LoadError, InvalidBundleShape,
            IncompatiblePlatformError, MissingFeatureError, AssetLoadError,
            PluginTransformError
        """
        if not force:
            in_flight = self._loading.get(source)
            if in_flight is not None:
                logger.debug("Joining in-flight load for %s", source)
                return await asyncio.shield(in_flight)

            existing = self._active_bundle_for(source)
            if existing is not None:
                logger.debug("Widget from %s already registered as %s", source, existing.id)
                return existing

        options = LoadOptions(preload=preload, cache=cache, force=force)
        task = asyncio.create_task(self._register(source, options), name=f"register:{source}")
        self._loading[source] = task
        task.add_done_callback(lambda finished: self._load_finished(source, finished))
        return await asyncio.shield(task)

    def _active_bundle_for(self, source: str) -> WidgetBundle | None:
        widget_id = self._sources.get(source)
        if widget_id is None:
            return None
        return self._widgets.get(widget_id)

    def _load_finished(self, source: str, task: "asyncio.Task[WidgetBundle]") -> None:
        # Only the owning task may clear the entry - a forced reload may have replaced it
        if self._loading.get(source) is task:
            del self._loading[source]
        # Mark the exception as retrieved; callers may all have stopped waiting
        if not task.cancelled():
            task.exception()

    async def _register(self, source: str, options: LoadOptions) -> WidgetBundle:
        # Runs in its own task = its own context, so this ID covers exactly this load
        set_correlation_id()
        self._events.emit(RegistryEvent.WIDGET_LOADING, {"source": source})
        metadata: WidgetMetadata | None = None

        try:
            async with log_operation(
                logger,
                "widget_register",
                slow_threshold_ms=SLOW_LOAD_THRESHOLD_MS,
                source=source,
            ):
                self._security.check(source)
                loader = self._select_loader(source)

                if options.preload:
                    await loader.preload(source)

                bundle = self._validator.validate(await self._load_with(loader, source, options))
                metadata = bundle.metadata
                assert metadata is not None

                self._checker.check(metadata)

                await self._pipeline.run_hooks(HookPhase.BEFORE_LOAD, metadata)

                if bundle.assets:
                    base_url = source if self._security.is_network_source(source) else None
                    await self._asset_loader.load_assets(bundle.assets, base_url=base_url)

                bundle = self._validator.validate(self._pipeline.apply_transforms(bundle))
                bundle = replace(bundle, source=source)

                await self._commit(bundle, source, loader)
        except Exception as error:
            self._events.emit(RegistryEvent.WIDGET_ERROR, {"error": error, "source": source})
            await self._pipeline.run_hooks(HookPhase.ON_ERROR, error, metadata)
            raise

        await self._pipeline.run_hooks(HookPhase.AFTER_LOAD, bundle)
        self._events.emit(RegistryEvent.WIDGET_LOADED, {"bundle": bundle, "source": source})
        self._events.emit(
            RegistryEvent.REGISTRY_UPDATED, {"action": "loaded", "widget_id": bundle.id}
        )
        return bundle

    def _select_loader(self, source: str) -> IWidgetLoader:
        for loader in self._loaders:
            if loader.can_load(source):
                return loader
        raise NoLoaderAvailable(source)

    async def _load_with(
        self, loader: IWidgetLoader, source: str, options: LoadOptions
    ) -> WidgetBundle:
        try:
            return await loader.load(source, options)
        except DomainException:
            raise
        except Exception as e:
            # Loaders should wrap their own failures; this catches the ones that don't
            raise LoadError(source, f"{type(e).__name__}: {e}", e) from e

    # Hey future me - one lock per widget id, but ONLY while someone holds or waits on it.
    # The last user out drops it, so ids that come and go (or never existed) don't pile
    # up in _id_locks for the registry's lifetime.
    @asynccontextmanager
    async def _locked(self, widget_id: str) -> AsyncIterator[None]:
        lock = self._id_locks.get(widget_id)
        if lock is None:
            lock = self._id_locks[widget_id] = asyncio.Lock()
        self._id_lock_users[widget_id] = self._id_lock_users.get(widget_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._id_lock_users.get(widget_id, 1) - 1
            if remaining > 0:
                self._id_lock_users[widget_id] = remaining
            else:
                self._id_lock_users.pop(widget_id, None)
                if self._id_locks.get(widget_id) is lock:
                    del self._id_locks[widget_id]

    async def _commit(self, bundle: WidgetBundle, source: str, loader: IWidgetLoader) -> None:
        widget_id = bundle.id
        assert bundle.metadata is not None

        async with self._locked(widget_id):
            # No awaits from here on - the writes below are atomic on the event loop
            previous = self._widgets.get(widget_id)
            if previous is not None and previous.source and previous.source != source:
                logger.info(
                    "Widget %s from %s replaces the one from %s",
                    widget_id,
                    source,
                    previous.source,
                )
                if self._sources.get(previous.source) == widget_id:
                    del self._sources[previous.source]

            self._widgets[widget_id] = bundle
            self._sources[source] = widget_id
            self._widget_loaders[widget_id] = loader
            self._dependency_graph[widget_id] = bundle.metadata.declared_dependencies

        logger.info(
            "Registered widget %s %s via %s loader",
            widget_id,
            bundle.metadata.version,
            loader.name,
            extra={"widget_id": widget_id, "source": source},
        )

    # =========================================================================
    # Unregistration
    # =========================================================================

    async def unregister_widget(self, widget_id: str) -> None:
        """Unregister a widget nobody depends on.

        Raises:
            WidgetNotFoundError: If the widget isn't registered
            DependentsExistError: If registered widgets still depend on it
        """
        if widget_id not in self._widgets:
            raise WidgetNotFoundError(widget_id)

        async with self._locked(widget_id):
            bundle = self._widgets.get(widget_id)
            if bundle is None:
                raise WidgetNotFoundError(widget_id)

            self._ensure_no_dependents(widget_id)

            metadata = bundle.metadata
            self._events.emit(RegistryEvent.WIDGET_UNLOADING, {"bundle": bundle})
            await self._pipeline.run_hooks(HookPhase.BEFORE_UNLOAD, metadata)

            loader = self._widget_loaders.get(widget_id)
            if loader is not None:
                try:
                    await loader.unload(widget_id)
                except Exception as e:
                    logger.warning(
                        "Loader %s failed to unload %s: %s", loader.name, widget_id, e,
                        exc_info=True,
                    )

            # A dependent may have committed while we awaited above
            self._ensure_no_dependents(widget_id)

            del self._widgets[widget_id]
            self._dependency_graph.pop(widget_id, None)
            self._widget_loaders.pop(widget_id, None)
            if bundle.source and self._sources.get(bundle.source) == widget_id:
                del self._sources[bundle.source]

        logger.info("Unregistered widget %s", widget_id, extra={"widget_id": widget_id})

        await self._pipeline.run_hooks(HookPhase.AFTER_UNLOAD, metadata)
        self._events.emit(RegistryEvent.WIDGET_UNLOADED, {"bundle": bundle})
        self._events.emit(
            RegistryEvent.REGISTRY_UPDATED, {"action": "unloaded", "widget_id": widget_id}
        )

    def _ensure_no_dependents(self, widget_id: str) -> None:
        dependents = self.get_dependents(widget_id)
        if dependents:
            raise DependentsExistError(widget_id, dependents)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_widget(self, widget_id: str) -> WidgetBundle | None:
        return self._widgets.get(widget_id)

    def get_all_widgets(self) -> list[WidgetBundle]:
        return list(self._widgets.values())

    def is_loading(self, source: str) -> bool:
        return source in self._loading

    def get_dependents(self, widget_id: str) -> list[str]:
        """Ids of registered widgets whose dependency set contains widget_id."""
        return [
            dependent
            for dependent, dependencies in self._dependency_graph.items()
            if widget_id in dependencies and dependent != widget_id
        ]

    def get_dependency_graph(self) -> dict[str, frozenset[str]]:
        """Read-only copy of widget id -> declared dependency ids."""
        return {widget_id: frozenset(deps) for widget_id, deps in self._dependency_graph.items()}

    def search_widgets(self, query: WidgetQuery) -> list[WidgetBundle]:
        """Filter registered widgets; every criterion that is set must match.

        - category / author: exact match
        - keywords: EVERY query keyword must be a case-insensitive substring of SOME widget keyword
        - version: substring of the formatted version ("1.2" matches "1.2.0" and "2.1.2")
        """
        results: list[WidgetBundle] = []
        for bundle in self._widgets.values():
            metadata = bundle.metadata
            assert metadata is not None

            if query.category and metadata.category != query.category:
                continue

            if query.author and metadata.author != query.author:
                continue

            if query.keywords:
                widget_keywords = [keyword.lower() for keyword in metadata.keywords]
                if not all(
                    any(wanted.lower() in keyword for keyword in widget_keywords)
                    for wanted in query.keywords
                ):
                    continue

            if query.version and query.version not in str(metadata.version):
                continue

            results.append(bundle)
        return results

    # =========================================================================
    # Plugins
    # =========================================================================

    async def install_plugin(self, plugin: WidgetPlugin) -> None:
        """Install a plugin, or upgrade/replace one with the same id.

        Raises:
            PluginVersionConflict: If a higher version with the same id is installed
        """
        self._pipeline.install(plugin)
        self._events.emit(RegistryEvent.PLUGIN_INSTALLED, {"plugin": plugin})
        self._events.emit(
            RegistryEvent.REGISTRY_UPDATED, {"action": "plugin_installed", "plugin_id": plugin.id}
        )

    async def uninstall_plugin(self, plugin_id: str) -> None:
        """Remove an installed plugin.

        Raises:
            PluginNotFoundError: If no plugin with that id is installed
        """
        plugin = self._pipeline.uninstall(plugin_id)
        self._events.emit(RegistryEvent.PLUGIN_UNINSTALLED, {"plugin": plugin})
        self._events.emit(
            RegistryEvent.REGISTRY_UPDATED, {"action": "plugin_uninstalled", "plugin_id": plugin_id}
        )

    def get_plugin(self, plugin_id: str) -> WidgetPlugin | None:
        return self._pipeline.get(plugin_id)

    def get_all_plugins(self) -> list[WidgetPlugin]:
        return self._pipeline.plugins

    # =========================================================================
    # Events, stats, cache
    # =========================================================================

    def on(self, event: RegistryEvent | str, listener: Listener) -> Unsubscribe:
        """Subscribe to a registry event; returns the unsubscribe function."""
        return self._events.on(event, listener)

    def get_stats(self) -> RegistryStats:
        categories: dict[str, int] = {}
        total_size = 0
        for bundle in self._widgets.values():
            metadata = bundle.metadata
            assert metadata is not None
            categories[metadata.category] = categories.get(metadata.category, 0) + 1
            total_size += metadata.size.bundled

        return RegistryStats(
            total_widgets=len(self._widgets),
            total_plugins=len(self._pipeline),
            loading_widgets=len(self._loading),
            categories=categories,
            memory_usage=total_size,
        )

    def clear_cache(self) -> None:
        """Clear loader response caches (only the remote loader keeps one)."""
        for loader in self._loaders:
            clear = getattr(loader, "clear_cache", None)
            if callable(clear):
                clear()

    # =========================================================================
    # Disposal
    # =========================================================================

    async def aclose(self) -> None:
        """Dispose the registry: stop in-flight loads, close loaders and HTTP clients."""
        if self._closed:
            return
        self._closed = True

        pending = list(self._loading.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for closable in [*self._loaders, self._asset_loader]:
            try:
                await closable.close()
            except Exception as e:
                logger.warning("Failed to close %r: %s", closable, e)

        if self._owns_http_pool:
            await self._http_pool.close()

        self._widgets.clear()
        self._sources.clear()
        self._widget_loaders.clear()
        self._dependency_graph.clear()
        self._id_locks.clear()
        self._id_lock_users.clear()
        self._events.clear()
        logger.info("Widget registry closed")

    async def __aenter__(self) -> "WidgetRegistry":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
