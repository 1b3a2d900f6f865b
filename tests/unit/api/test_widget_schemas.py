"""Tests for widget API schemas and event serialization."""

from typing import Any

import pytest
from pydantic import ValidationError

from widgetry.api.schemas import (
    PluginResponse,
    RegisterWidgetRequest,
    WidgetResponse,
    serialize_event_data,
)
from widgetry.domain.entities import WidgetAssets, WidgetPlugin, WidgetSize
from widgetry.domain.exceptions import WidgetNotFoundError


class TestRegisterWidgetRequest:
    """Test request validation."""

    def test_defaults(self) -> None:
        request = RegisterWidgetRequest(source="widget-a")

        assert (request.preload, request.cache, request.force) == (False, True, False)

    def test_empty_source_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RegisterWidgetRequest(source="")


class TestWidgetResponse:
    """Test entity -> response conversion."""

    def test_from_entity(self, make_bundle: Any) -> None:
        """Test metadata, assets and locales are flattened."""
        bundle = make_bundle(
            "widget-b",
            version="1.2.0-beta",
            category="finance",
            dependencies={"widget-a": "^1.0.0"},
            size=WidgetSize(bundled=2048),
            assets=WidgetAssets(styles=["b.css"]),
        )
        bundle.locales = {"en": {}, "de": {}}

        response = WidgetResponse.from_entity(bundle, dependents=["widget-c"])

        assert response.version == "1.2.0-beta"
        assert response.dependencies == {"widget-a": "^1.0.0"}
        assert response.dependents == ["widget-c"]
        assert response.assets == {"styles": ["b.css"], "scripts": [], "images": []}
        assert response.locales == ["de", "en"]
        assert response.bundled_size == 2048

    def test_plugin_response(self) -> None:
        plugin = WidgetPlugin(id="theme", version="2.0.0", name="Theme")

        assert PluginResponse.from_entity(plugin).model_dump() == {
            "id": "theme",
            "name": "Theme",
            "version": "2.0.0",
            "description": "",
        }


class TestSerializeEventData:
    """Test event payload conversion for the SSE stream."""

    def test_bundle_payload_drops_config(self, make_bundle: Any) -> None:
        data = serialize_event_data({"bundle": make_bundle("widget-a"), "source": "widget-a"})

        assert data["source"] == "widget-a"
        assert data["bundle"]["id"] == "widget-a"
        assert "config" not in data["bundle"]

    def test_exception_payload(self) -> None:
        data = serialize_event_data({"error": WidgetNotFoundError("ghost"), "source": None})

        assert data == {
            "error": {"type": "WidgetNotFoundError", "message": "Widget with id ghost not found"},
            "source": None,
        }

    def test_nested_lists_and_unknown_objects(self) -> None:
        marker = object()

        data = serialize_event_data({"items": [1, "two", (3.0, True)], "other": marker})

        assert data == {"items": [1, "two", [3.0, True]], "other": repr(marker)}
