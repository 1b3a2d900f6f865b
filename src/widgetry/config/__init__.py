"""Configuration module for widgetry."""

from .settings import (
    HttpSettings,
    ObservabilitySettings,
    PlatformSettings,
    SecuritySettings,
    Settings,
    get_settings,
)

__all__ = [
    "HttpSettings",
    "ObservabilitySettings",
    "PlatformSettings",
    "SecuritySettings",
    "Settings",
    "get_settings",
]
