"""Package loader: widgets shipped as installed Python distributions.

Source format:  pkg:<name>[:<attribute>]

    pkg:acme_widgets.kpi            -> WIDGET_BUNDLE from module acme_widgets.kpi
    pkg:acme_widgets.kpi:CAC_WIDGET -> CAC_WIDGET from the same module
    pkg:acme-cac                    -> entry point "acme-cac" in group "widgetry.widgets"

Hey future me - entry points win over module names! A distribution can declare

    [project.entry-points."widgetry.widgets"]
    acme-cac = "acme_widgets.kpi:CAC_WIDGET"

and users register "pkg:acme-cac" without knowing the module layout. If no entry point
matches, we fall back to importing <name> as a module.
"""

import asyncio
import importlib
import importlib.util
import logging
from importlib.metadata import EntryPoint, entry_points
from types import ModuleType
from typing import Any

from widgetry.domain.entities import LoadOptions, WidgetBundle
from widgetry.domain.exceptions import InvalidBundleShape, LoadError
from widgetry.domain.ports import IWidgetLoader
from widgetry.infrastructure.loaders.base import (
    BUNDLE_ATTRIBUTE,
    PACKAGE_PREFIX,
    bundle_attribute,
    resolve_export,
)

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "widgetry.widgets"


def parse_package_source(source: str) -> tuple[str, str | None]:
    """Split "pkg:name[:attr]" into (name, attr or None).

    Raises:
        ValueError: If the specifier has no name
    """
    specifier = source[len(PACKAGE_PREFIX) :] if source.startswith(PACKAGE_PREFIX) else source
    name, _, attribute = specifier.partition(":")
    name = name.strip()
    if not name:
        raise ValueError(f"Empty package specifier in {source!r}")
    return name, attribute.strip() or None


class PackageBundleLoader(IWidgetLoader):
    """Resolves package specifiers to the bundle symbol they export."""

    def __init__(self, entry_point_group: str = ENTRY_POINT_GROUP) -> None:
        self._group = entry_point_group

    @property
    def name(self) -> str:
        return "package"

    def can_load(self, source: str) -> bool:
        return source.startswith(PACKAGE_PREFIX)

    def _find_entry_point(self, name: str) -> EntryPoint | None:
        matches = entry_points(group=self._group, name=name)
        return next(iter(matches), None)

    def _import(self, name: str, attribute: str | None) -> Any:
        entry_point = self._find_entry_point(name)
        if entry_point is not None:
            exported = entry_point.load()
            if isinstance(exported, ModuleType):
                return bundle_attribute(exported, attribute or BUNDLE_ATTRIBUTE)
            return exported

        module = importlib.import_module(name)
        return bundle_attribute(module, attribute or BUNDLE_ATTRIBUTE)

    async def load(self, source: str, options: LoadOptions | None = None) -> WidgetBundle:
        """Import the package and extract its exported bundle.

        Raises:
            LoadError: If the package can't be imported or doesn't export a bundle
        """
        try:
            name, attribute = parse_package_source(source)
            exported = await asyncio.to_thread(self._import, name, attribute)
            bundle = await resolve_export(exported)
        except InvalidBundleShape:
            raise
        except Exception as e:
            raise LoadError(source, f"{type(e).__name__}: {e}", e) from e

        logger.debug("Loaded package widget from %s", source)
        return bundle

    async def unload(self, widget_id: str) -> None:
        logger.info("Unloading package widget: %s (module code stays loaded)", widget_id)

    # Only checks that the package is findable, never raises. find_spec on a dotted name
    # imports the parent packages, and their import-time errors can be anything.
    async def preload(self, source: str) -> None:
        try:
            name, _ = parse_package_source(source)
            if self._find_entry_point(name) is not None:
                return
            if importlib.util.find_spec(name) is None:
                logger.info("Preload: package %s not found, load will fail", name)
        except Exception as e:
            logger.debug("Preload check for %s failed: %s", source, e)
