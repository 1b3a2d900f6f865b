"""Shared fixtures for integration tests: a fake CDN and a mixed local/remote catalog."""

from typing import Any

import httpx
import pytest

from widgetry.config import PlatformSettings, SecuritySettings, Settings
from widgetry.domain.entities import WidgetCompatibility, WidgetSize

CDN_BASE = "https://cdn.jsdelivr.net/npm/acme-widgets"
WIDGET_B_URL = f"{CDN_BASE}/widget-b.json"
WIDGET_B_COMPONENT_URL = f"{CDN_BASE}/components/widget-b.js"
WIDGET_B_STYLE_URL = f"{CDN_BASE}/widget-b.css"

WIDGET_B_DESCRIPTOR = {
    "metadata": {
        "id": "widget-b",
        "name": "Customer Acquisition Cost",
        "version": "1.2.0",
        "author": "acme",
        "category": "finance",
        "keywords": ["finance", "cac"],
        "dependencies": {"widget-a": "^1.0.0"},
        "size": {"bundled": 2048},
    },
    "config": {"type": "kpi", "title": "CAC"},
    "componentUrl": "components/widget-b.js",
    "assets": {"styles": ["widget-b.css"]},
    "locales": {"en": {"title": "CAC"}, "de": {"title": "Kundenakquisitionskosten"}},
}


class StaticCdn:
    """MockTransport handler serving fixed routes; everything else is a 404.

    The URLs are exposed as attributes so tests reach them through the fixture.
    """

    widget_b_url = WIDGET_B_URL
    component_url = WIDGET_B_COMPONENT_URL
    style_url = WIDGET_B_STYLE_URL

    def __init__(self) -> None:
        self.routes: dict[str, httpx.Response] = {
            WIDGET_B_URL: httpx.Response(200, json=WIDGET_B_DESCRIPTOR),
            WIDGET_B_COMPONENT_URL: httpx.Response(
                200, text="export default {}", headers={"content-type": "text/javascript"}
            ),
            WIDGET_B_STYLE_URL: httpx.Response(
                200, text=".cac { color: red }", headers={"content-type": "text/css"}
            ),
        }
        self.requests: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404)
        # Fresh response per request, a Response object is single-use once sent
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    def count(self, url: str) -> int:
        return self.requests.count(url)


@pytest.fixture
def cdn() -> StaticCdn:
    return StaticCdn()


@pytest.fixture
def integration_settings() -> Settings:
    return Settings(
        _env_file=None,
        platform=PlatformSettings(version="2.0.0", features=["charts", "theming"]),
        security=SecuritySettings(allowed_domains=["cdn.jsdelivr.net"]),
    )


@pytest.fixture
def local_widgets(make_bundle: Any) -> dict[str, Any]:
    """In-process table: one healthy widget, one that needs a newer platform."""
    return {
        "widget-a": make_bundle(
            "widget-a",
            author="acme",
            category="finance",
            keywords=["revenue", "mrr"],
            size=WidgetSize(bundled=1024),
        ),
        "future-widget": make_bundle(
            "future-widget",
            compatibility=WidgetCompatibility(min_platform_version="9.0.0"),
        ),
    }
