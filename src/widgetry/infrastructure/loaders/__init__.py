"""Widget source loaders (local, remote CDN, package)."""

from widgetry.infrastructure.loaders.base import BUNDLE_ATTRIBUTE, PACKAGE_PREFIX
from widgetry.infrastructure.loaders.local_loader import LocalBundleLoader
from widgetry.infrastructure.loaders.package_loader import (
    ENTRY_POINT_GROUP,
    PackageBundleLoader,
    parse_package_source,
)
from widgetry.infrastructure.loaders.remote_loader import RemoteBundleLoader, RemoteComponent

__all__ = [
    "BUNDLE_ATTRIBUTE",
    "ENTRY_POINT_GROUP",
    "LocalBundleLoader",
    "PACKAGE_PREFIX",
    "PackageBundleLoader",
    "RemoteBundleLoader",
    "RemoteComponent",
    "parse_package_source",
]
