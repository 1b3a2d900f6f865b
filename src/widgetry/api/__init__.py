"""API module for widgetry.

Hey future me - this module builds the optional HTTP surface around the registry.
The main entry point is create_app(); it wires:

- routers/: Widget endpoints (mounted under /api)
- schemas/: Pydantic models for request/response
- dependencies.py: Dependency injection (registry from app.state)
- exception_handlers.py: Domain error -> HTTP status mapping
"""

from collections.abc import Mapping
from typing import Any

from fastapi import FastAPI

from widgetry import __version__
from widgetry.api.exception_handlers import register_exception_handlers
from widgetry.api.routers import api_router
from widgetry.config import Settings, get_settings
from widgetry.infrastructure.integrations import HttpClientPool
from widgetry.infrastructure.lifecycle import lifespan


def create_app(
    settings: Settings | None = None,
    *,
    local_widgets: Mapping[str, Any] | None = None,
    http_pool: HttpClientPool | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use (default: cached get_settings())
        local_widgets: Initial in-process widget table for the local loader
        http_pool: HTTP pool for remote widgets and assets (tests pass a MockTransport pool)
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )
    # lifespan() reads these when it builds the registry
    app.state.settings = settings
    app.state.local_widgets = local_widgets
    app.state.http_pool = http_pool

    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")
    return app


__all__ = ["create_app"]
