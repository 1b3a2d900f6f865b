"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing str(exception).
    # This is your base class - DON'T raise it directly! Always use a specific subclass
    # (WidgetNotFoundError, LoadError, etc) so callers can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    # entity_type and entity_id are stored separately so error handlers can log them structured.
    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when a bundle or its metadata violates a structural or platform rule.

    HTTP Status: 422
    """

    pass


class InvalidStateException(DomainException):
    """Raised when the registry is in an invalid state for the requested operation.

    Example: unregistering a widget other widgets still depend on.

    HTTP Status: 409
    """

    pass


class ConfigurationError(DomainException):
    """Registry misconfiguration.

    Raised when required configuration (loaders, settings) is missing or invalid.

    HTTP Status: 503 (Service Unavailable)
    """

    pass


class AuthorizationError(DomainException):
    """The operation is not permitted by the security policy.

    HTTP Status: 403
    """

    pass


class ExternalServiceError(DomainException):
    """An external source (CDN, filesystem, package import) failed.

    HTTP Status: 502 (Bad Gateway)
    """

    pass


# =============================================================================
# Widget registry errors
# =============================================================================


class WidgetNotFoundError(EntityNotFoundException):
    """No widget with the given id is registered."""

    def __init__(self, widget_id: str) -> None:
        super().__init__("Widget", widget_id)
        self.widget_id = widget_id


class PluginNotFoundError(EntityNotFoundException):
    """No plugin with the given id is installed."""

    def __init__(self, plugin_id: str) -> None:
        super().__init__("Plugin", plugin_id)
        self.plugin_id = plugin_id


class NoLoaderAvailable(ConfigurationError):
    """None of the configured loaders accepts the source string."""

    def __init__(self, source: str) -> None:
        super().__init__(f"No loader available for source: {source}")
        self.source = source


class DomainNotAllowedError(AuthorizationError):
    """A network source points at a host outside the allow-list."""

    def __init__(self, hostname: str, source: str) -> None:
        super().__init__(f"Domain {hostname} is not in allowed list")
        self.hostname = hostname
        self.source = source


class LoadError(ExternalServiceError):
    """A loader failed to resolve a source into a bundle.

    The underlying failure is chained via ``raise ... from`` and also kept on
    ``original_error`` for handlers that only see this exception.
    """

    def __init__(
        self,
        source: str,
        reason: str,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(f"Failed to load widget from {source}: {reason}")
        self.source = source
        self.reason = reason
        self.original_error = original_error


class AssetLoadError(ExternalServiceError):
    """A stylesheet, script or image declared by a bundle failed to load."""

    def __init__(self, url: str, kind: str, reason: str) -> None:
        super().__init__(f"Failed to load {kind}: {url} ({reason})")
        self.url = url
        self.kind = kind
        self.reason = reason


class InvalidBundleShape(ValidationException):
    """A bundle lacks metadata, config or a component factory."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class IncompatiblePlatformError(ValidationException):
    """The host platform version is outside the widget's supported range."""

    def __init__(
        self,
        widget_id: str,
        platform_version: str,
        min_version: str,
        max_version: str | None = None,
    ) -> None:
        if max_version is not None:
            detail = f"{max_version} or lower"
        else:
            detail = f"{min_version} or higher"
        super().__init__(
            f"Widget {widget_id} requires platform version {detail}, "
            f"current: {platform_version}"
        )
        self.widget_id = widget_id
        self.platform_version = platform_version
        self.min_version = min_version
        self.max_version = max_version


class MissingFeatureError(ValidationException):
    """The host platform lacks one or more features the widget requires."""

    def __init__(self, widget_id: str, missing_features: list[str]) -> None:
        super().__init__(
            f"Widget {widget_id} is missing required platform features: "
            f"{', '.join(missing_features)}"
        )
        self.widget_id = widget_id
        self.missing_features = missing_features


class DependentsExistError(InvalidStateException):
    """Other registered widgets still depend on the widget being unregistered."""

    def __init__(self, widget_id: str, dependents: list[str]) -> None:
        super().__init__(
            f"Cannot unload widget {widget_id}. Dependents: {', '.join(dependents)}"
        )
        self.widget_id = widget_id
        self.dependents = dependents


class PluginVersionConflict(InvalidStateException):
    """A plugin with the same id is already installed at a higher version."""

    def __init__(self, plugin_id: str, installed: str, requested: str) -> None:
        super().__init__(
            f"Plugin {plugin_id} version conflict: installed {installed}, "
            f"requested {requested}"
        )
        self.plugin_id = plugin_id
        self.installed = installed
        self.requested = requested


class PluginTransformError(DomainException):
    """A plugin transform raised while being applied to a bundle.

    HTTP Status: 500
    """

    def __init__(self, plugin_id: str, phase: str, reason: str) -> None:
        super().__init__(f"Plugin {plugin_id} {phase} transform failed: {reason}")
        self.plugin_id = plugin_id
        self.phase = phase


# =============================================================================
# Public API - All exceptions that can be imported
# =============================================================================
__all__ = [
    # Base
    "DomainException",
    "EntityNotFoundException",
    "ValidationException",
    "InvalidStateException",
    "ConfigurationError",
    "AuthorizationError",
    "ExternalServiceError",
    # Registry
    "AssetLoadError",
    "DependentsExistError",
    "DomainNotAllowedError",
    "IncompatiblePlatformError",
    "InvalidBundleShape",
    "LoadError",
    "MissingFeatureError",
    "NoLoaderAvailable",
    "PluginNotFoundError",
    "PluginTransformError",
    "PluginVersionConflict",
    "WidgetNotFoundError",
]
