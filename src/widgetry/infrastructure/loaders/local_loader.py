"""Local widget loader: in-process table, .py files, importable modules.

Hey future me - "local" means "no network". Three resolution steps, in order:
1. The in-process table - built-in widgets register themselves by name
   (LocalBundleLoader({"widget-a": bundle}) or register_local()). This is the
   "compiled-in registry" - fastest and the one tests use.
2. A path to a .py file ("./widgets/kpi.py", "/opt/widgets/kpi.py") executed as a
   module that exports WIDGET_BUNDLE.
3. A dotted module path ("acme_widgets.kpi") imported with importlib, same export.

unload() is a documented NO-OP for code: Python can't reliably evict an imported
module (other modules may hold references), so we only log it.
"""

import asyncio
import hashlib
import importlib
import importlib.util
import logging
import sys
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from types import ModuleType
from typing import Any

from widgetry.domain.entities import LoadOptions, WidgetBundle
from widgetry.domain.exceptions import InvalidBundleShape, LoadError
from widgetry.domain.ports import IWidgetLoader
from widgetry.domain.validation import BundleValidator
from widgetry.infrastructure.loaders.base import (
    BUNDLE_ATTRIBUTE,
    PACKAGE_PREFIX,
    bundle_attribute,
    resolve_export,
)

logger = logging.getLogger(__name__)

LocalEntry = WidgetBundle | Callable[[], WidgetBundle | Awaitable[WidgetBundle]]


class LocalBundleLoader(IWidgetLoader):
    """Loads bundles from the local process / filesystem."""

    def __init__(
        self,
        table: Mapping[str, LocalEntry] | None = None,
        base_dir: Path | None = None,
        validator: BundleValidator | None = None,
    ) -> None:
        """Initialize local loader.

        Args:
            table: Name -> bundle (or bundle factory) for built-in widgets
            base_dir: Directory relative .py paths are resolved against (default: cwd)
            validator: Shape validator (shared with the registry)
        """
        self._table: dict[str, LocalEntry] = dict(table or {})
        self._base_dir = base_dir
        self._validator = validator or BundleValidator()

    @property
    def name(self) -> str:
        return "local"

    def register_local(self, name: str, entry: LocalEntry) -> None:
        """Add (or replace) a built-in widget in the table."""
        self._table[name] = entry

    def can_load(self, source: str) -> bool:
        return "://" not in source and not source.startswith(PACKAGE_PREFIX)

    async def load(self, source: str, options: LoadOptions | None = None) -> WidgetBundle:
        """Resolve a local source and validate its shape.

        Raises:
            LoadError: If the source can't be found/imported/executed
            InvalidBundleShape: If it resolves to an incomplete bundle
        """
        try:
            exported = await self._resolve(source)
            candidate = await resolve_export(exported)
        except (LoadError, InvalidBundleShape):
            raise
        except Exception as e:
            raise LoadError(source, f"{type(e).__name__}: {e}", e) from e

        bundle = self._validator.validate(candidate)
        logger.debug("Loaded local widget %s from %s", bundle.id, source)
        return bundle

    async def _resolve(self, source: str) -> Any:
        if source in self._table:
            return self._table[source]

        if source.endswith(".py"):
            module = await asyncio.to_thread(self._exec_file, source)
        else:
            module = await asyncio.to_thread(importlib.import_module, source)
        return bundle_attribute(module, BUNDLE_ATTRIBUTE)

    def _exec_file(self, source: str) -> ModuleType:
        path = Path(source)
        if not path.is_absolute() and self._base_dir is not None:
            path = self._base_dir / path
        path = path.resolve()
        if not path.is_file():
            raise FileNotFoundError(f"No widget module at {path}")

        # Unique module name per path so two widgets named "kpi.py" don't collide in sys.modules
        digest = hashlib.sha1(str(path).encode()).hexdigest()[:12]
        module_name = f"widgetry_local_{path.stem}_{digest}"

        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot create module spec for {path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(module_name, None)
            raise
        return module

    async def unload(self, widget_id: str) -> None:
        # Imported code stays linked - see module docstring.
        logger.info("Unloading local widget: %s (module code stays loaded)", widget_id)

    async def preload(self, source: str) -> None:
        logger.debug("Preload hint for local source %s ignored", source)

    def has_entry(self, name: str) -> bool:
        """True if name is in the in-process table."""
        return name in self._table

