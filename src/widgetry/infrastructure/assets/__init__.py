"""Asset loading for widget bundles."""

from widgetry.infrastructure.assets.asset_loader import AssetLoader

__all__ = ["AssetLoader"]
