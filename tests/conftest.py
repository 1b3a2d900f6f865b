"""Shared fixtures for widgetry tests.

Hey future me - most registry tests don't care HOW a bundle is loaded, so they use
FakeLoader: a scriptable IWidgetLoader that hands out prepared bundles (or raises
prepared errors) and records every call. Loader-specific behavior is tested in
tests/unit/infrastructure/loaders/ against the real loaders.
"""

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from widgetry.application.services import WidgetRegistry
from widgetry.config import PlatformSettings, Settings
from widgetry.domain.entities import (
    LoadOptions,
    WidgetAssets,
    WidgetBundle,
    WidgetCompatibility,
    WidgetMetadata,
)
from widgetry.domain.ports import IWidgetLoader

BundleFactory = Callable[..., WidgetBundle]


def _make_bundle(
    widget_id: str = "widget-a",
    *,
    version: str = "1.0.0",
    config: dict[str, Any] | None = None,
    component: Any = None,
    assets: WidgetAssets | None = None,
    compatibility: WidgetCompatibility | None = None,
    **metadata_fields: Any,
) -> WidgetBundle:
    async def default_component() -> dict[str, str]:
        return {"widget": widget_id}

    metadata = WidgetMetadata(
        id=widget_id,
        name=metadata_fields.pop("name", widget_id.replace("-", " ").title()),
        version=version,
        compatibility=compatibility or WidgetCompatibility(),
        **metadata_fields,
    )
    return WidgetBundle(
        metadata=metadata,
        config=config if config is not None else {"type": "kpi", "title": widget_id},
        component=component or default_component,
        assets=assets,
    )


class FakeLoader(IWidgetLoader):
    """Scriptable loader: source -> bundle or exception."""

    def __init__(self, prefix: str = "fake:") -> None:
        self.prefix = prefix
        self.results: dict[str, WidgetBundle | Exception] = {}
        self.load_calls: list[str] = []
        self.load_options: list[LoadOptions | None] = []
        self.unloaded: list[str] = []
        self.preloaded: list[str] = []
        self.cache_clears = 0
        self.closed = False
        # Set to an Event to hold every load() until it's set
        self.gate: asyncio.Event | None = None

    @property
    def name(self) -> str:
        return "fake"

    def can_load(self, source: str) -> bool:
        return source.startswith(self.prefix)

    async def load(self, source: str, options: LoadOptions | None = None) -> WidgetBundle:
        self.load_calls.append(source)
        self.load_options.append(options)
        if self.gate is not None:
            await self.gate.wait()
        result = self.results[source]
        if isinstance(result, Exception):
            raise result
        return result

    async def unload(self, widget_id: str) -> None:
        self.unloaded.append(widget_id)

    async def preload(self, source: str) -> None:
        self.preloaded.append(source)

    def clear_cache(self) -> None:
        self.cache_clears += 1

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_bundle() -> BundleFactory:
    """Factory for complete, valid bundles (metadata kwargs pass through)."""
    return _make_bundle


@pytest.fixture
def settings() -> Settings:
    """Settings independent of the environment, platform 2.0.0."""
    return Settings(
        _env_file=None,
        platform=PlatformSettings(version="2.0.0", features=["charts", "theming"]),
    )


@pytest.fixture
def fake_loader() -> FakeLoader:
    return FakeLoader()


@pytest.fixture
async def registry(settings: Settings, fake_loader: FakeLoader) -> Any:
    """Registry whose only loader is fake_loader (closed after the test)."""
    registry = WidgetRegistry(settings, loaders=[fake_loader])
    yield registry
    await registry.aclose()
