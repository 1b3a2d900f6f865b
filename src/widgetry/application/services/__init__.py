"""Application services - registry orchestration and its building blocks."""

from widgetry.application.services.compatibility_checker import CompatibilityChecker
from widgetry.application.services.event_bus import EventBus, Listener, Unsubscribe
from widgetry.application.services.plugin_pipeline import (
    HookPhase,
    PluginPipeline,
    wrap_component,
)

# Hey future me - WidgetRegistry is the one everybody else talks to. The others are
# exported for people who want to swap a single collaborator (tests mostly).
from widgetry.application.services.widget_registry import WidgetRegistry

__all__ = [
    "CompatibilityChecker",
    "EventBus",
    "HookPhase",
    "Listener",
    "PluginPipeline",
    "Unsubscribe",
    "WidgetRegistry",
    "wrap_component",
]
