"""API router initialization."""

# Hey future me, this is the MAIN API router aggregator! create_app() mounts it under /api,
# so the widgets router (prefix "/widgets") ends up at /api/widgets/...

from fastapi import APIRouter

from widgetry.api.routers import widgets

api_router = APIRouter()
api_router.include_router(widgets.router)

__all__ = ["api_router", "widgets"]
