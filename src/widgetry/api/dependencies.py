"""Dependency injection for API endpoints."""

from typing import cast

from fastapi import HTTPException, Request

from widgetry.application.services import WidgetRegistry


# Hey future me - the registry is built in lifespan() and attached to app.state.registry.
# If it's missing, startup didn't run (or failed) - answer 503 instead of crashing with
# AttributeError deep inside a route.
def get_registry(request: Request) -> WidgetRegistry:
    """Get the widget registry from app state.

    Raises:
        HTTPException: 503 if the registry is not initialized
    """
    if not hasattr(request.app.state, "registry"):
        raise HTTPException(
            status_code=503,
            detail="Widget registry not initialized",
        )
    return cast(WidgetRegistry, request.app.state.registry)
