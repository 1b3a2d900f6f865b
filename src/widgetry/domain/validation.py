"""Structural validation of widget bundles.

Hey future me - this is the gate between "a loader found SOMETHING" and "we have a
usable bundle". It lives in the domain layer because both the local loader (which
validates right after import) and the registry core (which validates every bundle,
whatever loader produced it) need it.
"""

from collections.abc import Mapping
from typing import Any

from widgetry.domain.entities import WidgetAssets, WidgetBundle, WidgetMetadata
from widgetry.domain.exceptions import InvalidBundleShape, ValidationException

REQUIRED_PARTS = ("metadata", "config", "component")


def coerce_bundle(obj: Any) -> Any:
    """Turn a mapping export ({"metadata": ..., "config": ..., "component": ...}) into a bundle.

    Anything that is neither a WidgetBundle nor a mapping is returned unchanged so the
    validator can reject it with a proper message.

    Raises:
        InvalidBundleShape: If a metadata mapping is present but malformed
    """
    if isinstance(obj, WidgetBundle) or not isinstance(obj, Mapping):
        return obj

    metadata = obj.get("metadata")
    if isinstance(metadata, Mapping):
        try:
            metadata = WidgetMetadata.from_dict(dict(metadata))
        except (KeyError, TypeError, ValueError, ValidationException) as e:
            raise InvalidBundleShape(f"Invalid widget metadata: {e}") from e

    assets = obj.get("assets")
    if isinstance(assets, Mapping):
        assets = WidgetAssets.from_dict(dict(assets))

    return WidgetBundle(
        metadata=metadata,
        config=obj.get("config"),
        component=obj.get("component"),
        assets=assets,
        locales=obj.get("locales"),
        schema=obj.get("schema"),
    )


class BundleValidator:
    """Checks that a bundle has everything the registry needs."""

    def validate(self, bundle: Any) -> WidgetBundle:
        """Validate bundle shape.

        Args:
            bundle: Whatever a loader produced

        Returns:
            The same bundle, typed

        Raises:
            InvalidBundleShape: If it's not a bundle or parts are missing
        """
        if not isinstance(bundle, WidgetBundle):
            raise InvalidBundleShape(
                f"Invalid widget bundle structure: expected WidgetBundle, got {type(bundle).__name__}"
            )

        missing = [part for part in REQUIRED_PARTS if getattr(bundle, part) is None]
        if missing:
            raise InvalidBundleShape(
                f"Invalid widget bundle structure: missing {', '.join(missing)}",
                missing=missing,
            )

        if not isinstance(bundle.metadata, WidgetMetadata):
            raise InvalidBundleShape("Invalid widget bundle structure: metadata has wrong type")
        if not bundle.metadata.id:
            raise InvalidBundleShape("Invalid widget bundle structure: metadata.id is empty")
        if not callable(bundle.component):
            raise InvalidBundleShape("Invalid widget bundle structure: component is not callable")
        if not isinstance(bundle.config, Mapping):
            raise InvalidBundleShape("Invalid widget bundle structure: config is not a mapping")

        return bundle
