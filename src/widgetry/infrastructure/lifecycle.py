"""Registry lifecycle: build at startup, dispose at shutdown.

Hey future me - there is exactly ONE WidgetRegistry per process and it is created here,
never at import time. Two entry points share the wiring:

- registry_lifespan(settings)  plain async context manager (scripts, workers, tests)
- lifespan(app)                FastAPI lifespan, stores the registry on app.state.registry
"""

import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from widgetry.application.services import (
    CompatibilityChecker,
    EventBus,
    PluginPipeline,
    WidgetRegistry,
)
from widgetry.config import Settings, get_settings
from widgetry.domain.validation import BundleValidator
from widgetry.infrastructure.assets import AssetLoader
from widgetry.infrastructure.integrations import HttpClientPool
from widgetry.infrastructure.loaders import (
    LocalBundleLoader,
    PackageBundleLoader,
    RemoteBundleLoader,
)
from widgetry.infrastructure.observability import configure_logging
from widgetry.infrastructure.security import SecurityPolicyEnforcer

logger = logging.getLogger(__name__)


def create_registry(
    settings: Settings,
    *,
    local_widgets: Mapping[str, Any] | None = None,
    http_pool: HttpClientPool | None = None,
) -> WidgetRegistry:
    """Wire a registry with the production collaborators.

    Args:
        settings: Application settings
        local_widgets: Initial in-process table for the local loader (name -> bundle/factory)
        http_pool: Shared pool; pass one with a custom transport in tests

    Returns:
        Registry that closes the HTTP pool in aclose() unless one was passed in
    """
    owns_pool = http_pool is None
    pool = http_pool or HttpClientPool(settings.http)
    security = SecurityPolicyEnforcer(settings.security.allowed_domains)
    validator = BundleValidator()

    local_loader = LocalBundleLoader(table=dict(local_widgets or {}), validator=validator)

    registry = WidgetRegistry(
        settings,
        loaders=[
            local_loader,
            RemoteBundleLoader(pool, security),
            PackageBundleLoader(),
        ],
        asset_loader=AssetLoader(pool, security_policy=security),
        event_bus=EventBus(),
        security_policy=security,
        compatibility_checker=CompatibilityChecker.from_settings(settings.platform),
        pipeline=PluginPipeline(),
        validator=validator,
        http_pool=pool,
        owns_http_pool=owns_pool,
    )
    logger.debug(
        "Registry wired: platform %s, %d allowed domain(s)",
        settings.platform.version,
        len(settings.security.allowed_domains),
    )
    return registry


@asynccontextmanager
async def registry_lifespan(
    settings: Settings | None = None,
    **kwargs: Any,
) -> AsyncGenerator[WidgetRegistry, None]:
    """Yield a wired registry and always close it afterwards (kwargs go to create_registry)."""
    registry = create_registry(settings or get_settings(), **kwargs)
    try:
        yield registry
    finally:
        await registry.aclose()


# Listen future me, @asynccontextmanager makes this a CONTEXT MANAGER for FastAPI lifespan!
# Everything before `yield` runs at STARTUP, everything after runs at SHUTDOWN. The
# try/finally ensures the registry is closed even when a request handler blew up.
# Settings (plus optional local_widgets and http_pool) come from app.state, where
# create_app puts them, so tests can inject.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles:
    - Logging configuration
    - Registry construction (stored on app.state.registry)
    - Registry disposal on shutdown
    """
    settings: Settings = getattr(app.state, "settings", None) or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s", settings.app_name)

    async with registry_lifespan(
        settings,
        local_widgets=getattr(app.state, "local_widgets", None),
        http_pool=getattr(app.state, "http_pool", None),
    ) as registry:
        app.state.registry = registry
        try:
            yield
        finally:
            logger.info("Shutting down application: %s", settings.app_name)
