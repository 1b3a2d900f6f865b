"""API schemas for widget registry endpoints."""

from typing import Any

from pydantic import BaseModel, Field

from widgetry.domain.entities import RegistryStats, WidgetBundle, WidgetPlugin


class RegisterWidgetRequest(BaseModel):
    """Request schema for registering a widget."""

    source: str = Field(..., min_length=1, description="Local name/path, descriptor URL or pkg: specifier")
    preload: bool = Field(default=False, description="Give the loader a preload hint")
    cache: bool = Field(default=True, description="Allow loader-level response caches")
    force: bool = Field(
        default=False, description="Reload even if the widget is active or loading"
    )


class WidgetResponse(BaseModel):
    """One registered widget."""

    id: str = Field(description="Widget id")
    name: str = Field(description="Display name")
    version: str = Field(description="Formatted version, e.g. 1.2.0-beta")
    description: str = Field(default="")
    author: str = Field(default="")
    license: str = Field(default="")
    category: str = Field(default="")
    keywords: list[str] = Field(default_factory=list)
    source: str | None = Field(default=None, description="Source string it was loaded from")
    dependencies: dict[str, str] = Field(default_factory=dict)
    peer_dependencies: dict[str, str] = Field(default_factory=dict)
    dependents: list[str] = Field(
        default_factory=list, description="Registered widgets depending on this one"
    )
    min_platform_version: str = Field(default="0.0.0")
    max_platform_version: str | None = Field(default=None)
    required_features: list[str] = Field(default_factory=list)
    config: dict[str, Any] = Field(default_factory=dict)
    assets: dict[str, list[str]] | None = Field(default=None)
    locales: list[str] = Field(default_factory=list, description="Available locale codes")
    bundled_size: int = Field(default=0, description="Declared bundle size in bytes")

    @classmethod
    def from_entity(
        cls, bundle: WidgetBundle, dependents: list[str] | None = None
    ) -> "WidgetResponse":
        metadata = bundle.metadata
        assert metadata is not None
        compatibility = metadata.compatibility
        assets = None
        if bundle.assets is not None:
            assets = {
                "styles": list(bundle.assets.styles),
                "scripts": list(bundle.assets.scripts),
                "images": list(bundle.assets.images),
            }
        return cls(
            id=metadata.id,
            name=metadata.name,
            version=str(metadata.version),
            description=metadata.description,
            author=metadata.author,
            license=metadata.license,
            category=metadata.category,
            keywords=list(metadata.keywords),
            source=bundle.source,
            dependencies=dict(metadata.dependencies),
            peer_dependencies=dict(metadata.peer_dependencies),
            dependents=dependents or [],
            min_platform_version=compatibility.min_platform_version,
            max_platform_version=compatibility.max_platform_version,
            required_features=list(compatibility.required_features),
            config=dict(bundle.config or {}),
            assets=assets,
            locales=sorted(bundle.locales or {}),
            bundled_size=metadata.size.bundled,
        )


class WidgetListResponse(BaseModel):
    """List/search result."""

    widgets: list[WidgetResponse] = Field(description="Matching widgets")
    total: int = Field(description="Number of matching widgets")


class PluginResponse(BaseModel):
    """Installed plugin summary."""

    id: str
    name: str
    version: str
    description: str = ""

    @classmethod
    def from_entity(cls, plugin: WidgetPlugin) -> "PluginResponse":
        return cls(
            id=plugin.id,
            name=plugin.name,
            version=str(plugin.version),
            description=plugin.description,
        )


class RegistryStatsResponse(BaseModel):
    """Registry statistics."""

    total_widgets: int = Field(description="Registered widgets")
    total_plugins: int = Field(description="Installed plugins")
    loading_widgets: int = Field(description="Loads currently in flight")
    categories: dict[str, int] = Field(description="Widget count per category")
    memory_usage: int = Field(description="Sum of declared bundle sizes in bytes")

    @classmethod
    def from_entity(cls, stats: RegistryStats) -> "RegistryStatsResponse":
        return cls(
            total_widgets=stats.total_widgets,
            total_plugins=stats.total_plugins,
            loading_widgets=stats.loading_widgets,
            categories=dict(stats.categories),
            memory_usage=stats.memory_usage,
        )


class CacheClearResponse(BaseModel):
    """Result of clearing loader caches."""

    cleared: bool = Field(default=True)


# Hey future me - event payloads carry live objects (bundles, plugins, exceptions) which
# json.dumps can't handle. This turns one event's data into plain JSON-able values for
# the SSE stream. Unknown objects fall back to their repr so the stream never breaks.
def serialize_event_data(data: Any) -> Any:
    """Convert an event payload into JSON-serializable values."""
    if isinstance(data, WidgetBundle):
        if data.metadata is None:
            return {"source": data.source}
        return WidgetResponse.from_entity(data).model_dump(mode="json", exclude={"config"})
    if isinstance(data, WidgetPlugin):
        return PluginResponse.from_entity(data).model_dump(mode="json")
    if isinstance(data, BaseException):
        return {"type": type(data).__name__, "message": str(data)}
    if isinstance(data, dict):
        return {str(key): serialize_event_data(value) for key, value in data.items()}
    if isinstance(data, list | tuple):
        return [serialize_event_data(item) for item in data]
    if data is None or isinstance(data, str | int | float | bool):
        return data
    return repr(data)
