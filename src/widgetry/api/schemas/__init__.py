"""Pydantic request/response models for the HTTP API."""

from widgetry.api.schemas.widgets import (
    CacheClearResponse,
    PluginResponse,
    RegistryStatsResponse,
    RegisterWidgetRequest,
    WidgetListResponse,
    WidgetResponse,
    serialize_event_data,
)

__all__ = [
    "CacheClearResponse",
    "PluginResponse",
    "RegisterWidgetRequest",
    "RegistryStatsResponse",
    "WidgetListResponse",
    "WidgetResponse",
    "serialize_event_data",
]
