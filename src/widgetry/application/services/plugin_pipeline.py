"""Plugin pipeline: lifecycle hooks and bundle transforms contributed by plugins.

Hey future me - two very different error policies live here:

HOOKS are observers. Every installed plugin's hook for a phase runs CONCURRENTLY
(asyncio.gather) and we wait for all of them. A hook that raises is logged and
ignored - it never blocks sibling hooks and never reaches the registry caller.

TRANSFORMS change what gets registered. They run in plugin INSTALLATION order:
all metadata transforms, then all config transforms, then component wrapping.
A transform that raises fails the registration (PluginTransformError) - better no
widget than a half-transformed one.

Component wrapping order is FIXED and tested: the first-installed plugin's wrapper is
innermost (closest to the original factory), later plugins wrap around it. With
plugins A then B installed, calling the factory yields B(A(original())).
"""

import asyncio
import copy
import inspect
import logging
from collections.abc import Callable
from dataclasses import replace
from enum import Enum
from typing import Any

from widgetry.domain.entities import ComponentFactory, WidgetBundle, WidgetPlugin
from widgetry.domain.exceptions import (
    PluginNotFoundError,
    PluginTransformError,
    PluginVersionConflict,
)

logger = logging.getLogger(__name__)


class HookPhase(str, Enum):
    """Lifecycle phases; values match PluginHooks attribute names."""

    BEFORE_LOAD = "before_load"
    AFTER_LOAD = "after_load"
    BEFORE_UNLOAD = "before_unload"
    AFTER_UNLOAD = "after_unload"
    ON_ERROR = "on_error"


def wrap_component(inner: ComponentFactory, transform: Callable[[Any], Any]) -> ComponentFactory:
    """Decorate a component factory: await the inner factory, then transform its result."""

    async def wrapped() -> Any:
        component = await inner()
        return transform(component)

    return wrapped


class PluginPipeline:
    """Installed plugins, kept in installation order."""

    def __init__(self) -> None:
        # dict preserves insertion order; replacing an id keeps its original position
        self._plugins: dict[str, WidgetPlugin] = {}

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, plugin_id: object) -> bool:
        return plugin_id in self._plugins

    @property
    def plugins(self) -> list[WidgetPlugin]:
        """Installed plugins in installation order."""
        return list(self._plugins.values())

    def get(self, plugin_id: str) -> WidgetPlugin | None:
        return self._plugins.get(plugin_id)

    def install(self, plugin: WidgetPlugin) -> WidgetPlugin | None:
        """Install or upgrade a plugin.

        Returns:
            The replaced plugin, or None for a fresh install

        Raises:
            PluginVersionConflict: If an installed plugin with the same id has a higher version
        """
        existing = self._plugins.get(plugin.id)
        if existing is not None and existing.version.compare(plugin.version) > 0:
            raise PluginVersionConflict(plugin.id, str(existing.version), str(plugin.version))

        self._plugins[plugin.id] = plugin
        if existing is not None:
            logger.info(
                "Replaced plugin %s %s -> %s", plugin.id, existing.version, plugin.version
            )
        else:
            logger.info("Installed plugin %s %s", plugin.id, plugin.version)
        return existing

    def uninstall(self, plugin_id: str) -> WidgetPlugin:
        """Remove a plugin.

        Raises:
            PluginNotFoundError: If no plugin with that id is installed
        """
        plugin = self._plugins.pop(plugin_id, None)
        if plugin is None:
            raise PluginNotFoundError(plugin_id)
        logger.info("Uninstalled plugin %s", plugin_id)
        return plugin

    async def run_hooks(self, phase: HookPhase, *args: Any) -> None:
        """Run every installed plugin's hook for phase concurrently; never raises for hook errors."""
        calls = [
            (plugin, hook)
            for plugin in self.plugins
            if (hook := getattr(plugin.hooks, phase.value, None)) is not None
        ]
        if not calls:
            return

        results = await asyncio.gather(
            *(self._call_hook(hook, args) for _, hook in calls),
            return_exceptions=True,
        )

        for (plugin, _), result in zip(calls, results, strict=True):
            if isinstance(result, Exception):
                logger.error(
                    "Plugin %s %s hook failed: %s",
                    plugin.id,
                    phase.value,
                    result,
                    exc_info=result,
                )
            elif isinstance(result, BaseException):
                raise result

    @staticmethod
    async def _call_hook(hook: Callable[..., Any], args: tuple[Any, ...]) -> None:
        result = hook(*args)
        if inspect.isawaitable(result):
            await result

    def apply_transforms(self, bundle: WidgetBundle) -> WidgetBundle:
        """Return a transformed COPY of bundle (the input is never mutated).

        Raises:
            PluginTransformError: If a metadata/config transform raises or returns None
        """
        plugins = self.plugins
        metadata_plugins = [p for p in plugins if p.transforms.metadata is not None]
        config_plugins = [p for p in plugins if p.transforms.config is not None]
        component_plugins = [p for p in plugins if p.transforms.component is not None]

        if not (metadata_plugins or config_plugins or component_plugins):
            return bundle

        # Deep copies so transforms that mutate in place can't touch loader caches
        metadata = copy.deepcopy(bundle.metadata) if metadata_plugins else bundle.metadata
        for plugin in metadata_plugins:
            metadata = self._apply(plugin, "metadata", plugin.transforms.metadata, metadata)

        config = copy.deepcopy(bundle.config) if config_plugins else bundle.config
        for plugin in config_plugins:
            config = self._apply(plugin, "config", plugin.transforms.config, config)

        component = bundle.component
        assert component is not None
        for plugin in component_plugins:
            assert plugin.transforms.component is not None
            component = wrap_component(component, plugin.transforms.component)

        return replace(bundle, metadata=metadata, config=config, component=component)

    @staticmethod
    def _apply(plugin: WidgetPlugin, phase: str, transform: Any, value: Any) -> Any:
        try:
            result = transform(value)
        except Exception as e:
            raise PluginTransformError(plugin.id, phase, f"{type(e).__name__}: {e}") from e
        if result is None:
            raise PluginTransformError(plugin.id, phase, "transform returned None")
        return result
