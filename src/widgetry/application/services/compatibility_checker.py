"""Platform compatibility checks for widget metadata."""

import logging
from collections.abc import Iterable

from widgetry.config import PlatformSettings
from widgetry.domain.entities import WidgetMetadata
from widgetry.domain.exceptions import IncompatiblePlatformError, MissingFeatureError
from widgetry.domain.value_objects import compare_versions

logger = logging.getLogger(__name__)


class CompatibilityChecker:
    """Compares a widget's declared requirements with the host platform.

    The platform's version and capability flags are fixed at construction, the same way
    the host exposes them for its whole lifetime.
    """

    def __init__(self, platform_version: str, features: Iterable[str]) -> None:
        self._platform_version = platform_version
        self._features = frozenset(features)

    @classmethod
    def from_settings(cls, settings: PlatformSettings) -> "CompatibilityChecker":
        return cls(settings.version, settings.features)

    @property
    def platform_version(self) -> str:
        return self._platform_version

    @property
    def features(self) -> frozenset[str]:
        return self._features

    def is_feature_available(self, feature: str) -> bool:
        return feature in self._features

    def missing_features(self, metadata: WidgetMetadata) -> list[str]:
        """Required features the platform lacks, in declaration order."""
        return [
            feature
            for feature in metadata.compatibility.required_features
            if not self.is_feature_available(feature)
        ]

    def check(self, metadata: WidgetMetadata) -> None:
        """Validate version range first, then required features.

        Raises:
            IncompatiblePlatformError: Platform version below min or above max
            MissingFeatureError: One or more required features unavailable (all listed)
        """
        compatibility = metadata.compatibility
        min_version = compatibility.min_platform_version
        max_version = compatibility.max_platform_version

        if compare_versions(self._platform_version, min_version) < 0:
            raise IncompatiblePlatformError(metadata.id, self._platform_version, min_version)

        if max_version and compare_versions(self._platform_version, max_version) > 0:
            raise IncompatiblePlatformError(
                metadata.id, self._platform_version, min_version, max_version
            )

        missing = self.missing_features(metadata)
        if missing:
            raise MissingFeatureError(metadata.id, missing)

        unavailable_optional = [
            feature
            for feature in compatibility.optional_features
            if not self.is_feature_available(feature)
        ]
        if unavailable_optional:
            logger.debug(
                "Widget %s optional features unavailable: %s",
                metadata.id,
                ", ".join(unavailable_optional),
            )
