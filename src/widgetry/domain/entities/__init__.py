"""Domain entities for the widget registry.

Hey future me - these are the shapes EVERY loader must produce and every plugin
receives. Loaders convert whatever they found (a Python module attribute, a JSON
descriptor from a CDN) into a WidgetBundle; nothing downstream ever looks at
raw descriptor dicts again.

Flow: source string -> Loader -> WidgetBundle -> validator/compat -> plugins -> registry map
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from widgetry.domain.value_objects import WidgetVersion

# An async zero-arg callable producing whatever the rendering layer mounts.
# The registry treats the produced object as opaque.
ComponentFactory = Callable[[], Awaitable[Any]]

# Config is an open mapping (type, title, default size, refresh interval ...).
# The rendering layer owns its meaning, we only carry and transform it.
WidgetConfig = dict[str, Any]


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key - descriptors come in snake_case AND camelCase."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass
class WidgetCompatibility:
    """Platform requirements declared by a widget."""

    min_platform_version: str = "0.0.0"
    max_platform_version: str | None = None
    required_features: list[str] = field(default_factory=list)
    optional_features: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "WidgetCompatibility":
        data = data or {}
        return cls(
            min_platform_version=str(
                _pick(data, "min_platform_version", "minPlatformVersion", default="0.0.0")
            ),
            max_platform_version=_pick(data, "max_platform_version", "maxPlatformVersion"),
            required_features=list(
                _pick(data, "required_features", "requiredFeatures", default=[])
            ),
            optional_features=list(
                _pick(data, "optional_features", "optionalFeatures", default=[])
            ),
        )


@dataclass
class WidgetSize:
    """Bundle size in bytes."""

    bundled: int = 0
    minified: int = 0
    gzipped: int = 0


@dataclass
class WidgetPerformance:
    """Measured or declared performance characteristics (ms / bytes)."""

    initial_load: float = 0.0
    render_time: float = 0.0
    memory_usage: int = 0


@dataclass
class WidgetSecurity:
    """Security descriptor: requested permissions, sandboxing, extra CSP sources."""

    permissions: list[str] = field(default_factory=list)
    sandbox: bool = False
    csp: list[str] = field(default_factory=list)


@dataclass
class WidgetMetadata:
    """Identity and requirements of a widget."""

    id: str
    name: str
    version: WidgetVersion
    description: str = ""
    author: str = ""
    license: str = ""
    repository: str | None = None
    homepage: str | None = None
    keywords: list[str] = field(default_factory=list)
    category: str = ""
    compatibility: WidgetCompatibility = field(default_factory=WidgetCompatibility)
    # Hey future me - keys of BOTH dicts are widget ids, values are version ranges.
    # Ranges are informational only, the registry never resolves them.
    dependencies: dict[str, str] = field(default_factory=dict)
    peer_dependencies: dict[str, str] = field(default_factory=dict)
    size: WidgetSize = field(default_factory=WidgetSize)
    performance: WidgetPerformance = field(default_factory=WidgetPerformance)
    security: WidgetSecurity = field(default_factory=WidgetSecurity)

    def __post_init__(self) -> None:
        if not isinstance(self.version, WidgetVersion):
            self.version = WidgetVersion.parse(self.version)

    @property
    def declared_dependencies(self) -> set[str]:
        """Ids of every widget this one declares a need for (regular + peer)."""
        return set(self.dependencies) | set(self.peer_dependencies)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WidgetMetadata":
        """Build metadata from a descriptor mapping (snake_case or camelCase keys).

        Raises:
            KeyError: If id or name is missing
            ValidationException: If the version cannot be parsed
        """
        size = data.get("size") or {}
        performance = data.get("performance") or {}
        security = data.get("security") or {}
        return cls(
            id=data["id"],
            name=data["name"],
            version=WidgetVersion.parse(data.get("version", "0.0.0")),
            description=data.get("description", ""),
            author=data.get("author", ""),
            license=data.get("license", ""),
            repository=data.get("repository"),
            homepage=data.get("homepage"),
            keywords=list(data.get("keywords") or []),
            category=data.get("category", ""),
            compatibility=WidgetCompatibility.from_dict(data.get("compatibility")),
            dependencies=dict(data.get("dependencies") or {}),
            peer_dependencies=dict(
                _pick(data, "peer_dependencies", "peerDependencies", default={})
            ),
            size=WidgetSize(
                bundled=int(size.get("bundled", 0)),
                minified=int(size.get("minified", 0)),
                gzipped=int(size.get("gzipped", 0)),
            ),
            performance=WidgetPerformance(
                initial_load=float(_pick(performance, "initial_load", "initialLoad", default=0)),
                render_time=float(_pick(performance, "render_time", "renderTime", default=0)),
                memory_usage=int(_pick(performance, "memory_usage", "memoryUsage", default=0)),
            ),
            security=WidgetSecurity(
                permissions=list(security.get("permissions") or []),
                sandbox=bool(security.get("sandbox", False)),
                csp=list(security.get("csp") or []),
            ),
        )


class AssetKind(str, Enum):
    """Kinds of auxiliary files a bundle can declare."""

    STYLE = "stylesheet"
    SCRIPT = "script"
    IMAGE = "image"


@dataclass
class WidgetAssets:
    """Auxiliary files fetched before a widget becomes visible."""

    styles: list[str] = field(default_factory=list)
    scripts: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "WidgetAssets | None":
        if not data:
            return None
        return cls(
            styles=list(data.get("styles") or []),
            scripts=list(data.get("scripts") or []),
            images=list(data.get("images") or []),
        )

    def items(self) -> list[tuple[AssetKind, str]]:
        """Flatten into (kind, url) pairs, styles first, then scripts, then images."""
        return (
            [(AssetKind.STYLE, url) for url in self.styles]
            + [(AssetKind.SCRIPT, url) for url in self.scripts]
            + [(AssetKind.IMAGE, url) for url in self.images]
        )

    def __len__(self) -> int:
        return len(self.styles) + len(self.scripts) + len(self.images)


@dataclass
class LoadedAsset:
    """Result of fetching one asset."""

    kind: AssetKind
    url: str
    size: int = 0
    content_type: str | None = None


# Hey future me - metadata/config/component are Optional ON PURPOSE! Loaders hand us
# whatever they found and the BundleValidator decides if it's complete. Don't make
# them required or a broken CDN descriptor crashes inside the loader with a TypeError
# instead of a clean InvalidBundleShape.
@dataclass
class WidgetBundle:
    """Everything needed to mount one widget."""

    metadata: WidgetMetadata | None
    config: WidgetConfig | None
    component: ComponentFactory | None
    assets: WidgetAssets | None = None
    locales: dict[str, Any] | None = None
    schema: dict[str, Any] | None = None
    # Set by the registry on commit - the source string this bundle was registered from.
    source: str | None = None

    @property
    def id(self) -> str:
        """Widget id (only valid on validated bundles)."""
        assert self.metadata is not None
        return self.metadata.id


@dataclass(frozen=True)
class LoadOptions:
    """Per-call options passed from register_widget down to loaders."""

    preload: bool = False
    cache: bool = True
    force: bool = False


# Hooks may be plain functions or coroutines; the pipeline awaits whatever comes back.
MetadataHook = Callable[[WidgetMetadata], Awaitable[None] | None]
BundleHook = Callable[[WidgetBundle], Awaitable[None] | None]
ErrorHook = Callable[[BaseException, WidgetMetadata | None], Awaitable[None] | None]


@dataclass
class PluginHooks:
    """Lifecycle callbacks a plugin can contribute. All optional."""

    before_load: MetadataHook | None = None
    after_load: BundleHook | None = None
    before_unload: MetadataHook | None = None
    after_unload: MetadataHook | None = None
    on_error: ErrorHook | None = None


@dataclass
class PluginTransforms:
    """Pure transforms applied to a bundle during registration. All optional."""

    metadata: Callable[[WidgetMetadata], WidgetMetadata] | None = None
    config: Callable[[WidgetConfig], WidgetConfig] | None = None
    # Receives the component produced by the (already wrapped) inner factory.
    component: Callable[[Any], Any] | None = None


@dataclass
class WidgetPlugin:
    """A registry plugin: lifecycle hooks plus bundle transforms."""

    id: str
    version: WidgetVersion
    name: str = ""
    description: str = ""
    hooks: PluginHooks = field(default_factory=PluginHooks)
    transforms: PluginTransforms = field(default_factory=PluginTransforms)

    def __post_init__(self) -> None:
        if not isinstance(self.version, WidgetVersion):
            self.version = WidgetVersion.parse(self.version)
        if not self.name:
            self.name = self.id


class RegistryEvent(str, Enum):
    """Lifecycle events emitted by the registry."""

    WIDGET_LOADING = "widget:loading"
    WIDGET_LOADED = "widget:loaded"
    WIDGET_UNLOADING = "widget:unloading"
    WIDGET_UNLOADED = "widget:unloaded"
    WIDGET_ERROR = "widget:error"
    PLUGIN_INSTALLED = "plugin:installed"
    PLUGIN_UNINSTALLED = "plugin:uninstalled"
    REGISTRY_UPDATED = "registry:updated"


@dataclass
class RegistryEventRecord:
    """One emitted event, kept in the event bus history."""

    event: str
    data: Any
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class WidgetQuery:
    """Search criteria; every set field must match."""

    category: str | None = None
    keywords: list[str] | None = None
    author: str | None = None
    version: str | None = None


@dataclass
class RegistryStats:
    """Snapshot of registry counters."""

    total_widgets: int
    total_plugins: int
    loading_widgets: int
    categories: dict[str, int]
    memory_usage: int


__all__ = [
    "AssetKind",
    "BundleHook",
    "ComponentFactory",
    "ErrorHook",
    "LoadOptions",
    "LoadedAsset",
    "MetadataHook",
    "PluginHooks",
    "PluginTransforms",
    "RegistryEvent",
    "RegistryEventRecord",
    "RegistryStats",
    "WidgetAssets",
    "WidgetBundle",
    "WidgetCompatibility",
    "WidgetConfig",
    "WidgetMetadata",
    "WidgetPerformance",
    "WidgetPlugin",
    "WidgetQuery",
    "WidgetSecurity",
    "WidgetSize",
]
