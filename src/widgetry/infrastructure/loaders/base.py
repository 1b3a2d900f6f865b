"""Helpers shared by the Python-module based loaders (local + package)."""

import inspect
from types import ModuleType
from typing import Any

from widgetry.domain.entities import WidgetBundle
from widgetry.domain.validation import coerce_bundle

# Module attribute a widget module must export (the "default export" of a widget module).
BUNDLE_ATTRIBUTE = "WIDGET_BUNDLE"

# Source prefix reserved for the package loader.
PACKAGE_PREFIX = "pkg:"


async def resolve_export(obj: Any) -> Any:
    """Resolve an exported object into a bundle candidate.

    Exports may be:
    - a WidgetBundle (or a mapping with metadata/config/component)
    - a zero-arg callable returning one of the above (sync or async)
    """
    if isinstance(obj, WidgetBundle):
        return obj

    if callable(obj) and not isinstance(obj, (dict, ModuleType, type)):
        obj = obj()
        if inspect.isawaitable(obj):
            obj = await obj

    return coerce_bundle(obj)


def bundle_attribute(module: ModuleType, attribute: str = BUNDLE_ATTRIBUTE) -> Any:
    """Read the exported bundle symbol from a module.

    Raises:
        AttributeError: If the module doesn't export it
    """
    if not hasattr(module, attribute):
        raise AttributeError(f"module {module.__name__} does not export {attribute}")
    return getattr(module, attribute)
