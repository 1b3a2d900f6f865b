"""Ports (interfaces) the registry core depends on.

Hey future me - the registry only ever talks to these ABCs! Concrete loaders
(local table/module, remote CDN descriptor, package entry point) and the asset
loader live in infrastructure/. Tests plug in fakes implementing these.
"""

from abc import ABC, abstractmethod

from widgetry.domain.entities import LoadedAsset, LoadOptions, WidgetAssets, WidgetBundle


class IWidgetLoader(ABC):
    """Resolves a source string into a WidgetBundle.

    Implementations must:
    1. Decide can_load() purely from the string's shape (no I/O!)
    2. Raise LoadError from load() for ANY underlying failure
    3. Keep unload()/preload() best-effort - they must never raise for normal misses
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short loader name for logs ("local", "remote", "package")."""
        ...

    @abstractmethod
    def can_load(self, source: str) -> bool:
        """Return True if this loader understands the source string."""
        ...

    @abstractmethod
    async def load(self, source: str, options: LoadOptions | None = None) -> WidgetBundle:
        """Load a bundle.

        Raises:
            LoadError: On any failure resolving the source
        """
        ...

    @abstractmethod
    async def unload(self, widget_id: str) -> None:
        """Release whatever the loader holds for this widget (best-effort)."""
        ...

    @abstractmethod
    async def preload(self, source: str) -> None:
        """Low-priority hint that source will be loaded soon. Never blocks on I/O."""
        ...

    async def close(self) -> None:
        """Release resources (HTTP clients etc.). Default: nothing to release."""
        return None


class IAssetLoader(ABC):
    """Fetches the stylesheets, scripts and images a bundle declares."""

    @abstractmethod
    async def load_assets(
        self, assets: WidgetAssets, base_url: str | None = None
    ) -> list[LoadedAsset]:
        """Load every asset concurrently, failing fast.

        Args:
            assets: Declared assets
            base_url: Optional URL relative asset paths are resolved against

        Raises:
            AssetLoadError: On the first asset that fails
        """
        ...

    async def close(self) -> None:
        """Release resources. Default: nothing to release."""
        return None


__all__ = ["IAssetLoader", "IWidgetLoader"]
