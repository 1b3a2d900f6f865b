"""Widget registry API endpoints."""

# Hey future me - this router is a THIN skin over WidgetRegistry. No business logic here:
# every error the registry raises is mapped to a status code by exception_handlers.py.
# Route order matters! /stats, /events and /cache/clear MUST be declared before
# /{widget_id}, otherwise "stats" gets treated as a widget id.

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from sse_starlette.sse import EventSourceResponse

from widgetry.api.dependencies import get_registry
from widgetry.api.schemas import (
    CacheClearResponse,
    RegisterWidgetRequest,
    RegistryStatsResponse,
    WidgetListResponse,
    WidgetResponse,
    serialize_event_data,
)
from widgetry.application.services import WidgetRegistry
from widgetry.domain.entities import RegistryEvent, WidgetQuery
from widgetry.domain.exceptions import WidgetNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/widgets", tags=["widgets"])

# How often the SSE loop wakes up to notice a disconnected client
EVENT_POLL_INTERVAL = 1.0


def _to_response(registry: WidgetRegistry, bundle: Any) -> WidgetResponse:
    return WidgetResponse.from_entity(bundle, registry.get_dependents(bundle.id))


@router.get("", response_model=WidgetListResponse)
async def list_widgets(
    category: str | None = Query(default=None, description="Exact category"),
    author: str | None = Query(default=None, description="Exact author"),
    version: str | None = Query(default=None, description="Substring of the version"),
    keyword: list[str] | None = Query(
        default=None, description="Keyword substring; repeat for AND"
    ),
    registry: WidgetRegistry = Depends(get_registry),
) -> WidgetListResponse:
    """List registered widgets, optionally filtered.

    Without filters this returns every widget; with filters it behaves like
    WidgetRegistry.search_widgets().
    """
    if category or author or version or keyword:
        bundles = registry.search_widgets(
            WidgetQuery(category=category, keywords=keyword, author=author, version=version)
        )
    else:
        bundles = registry.get_all_widgets()

    widgets = [_to_response(registry, bundle) for bundle in bundles]
    return WidgetListResponse(widgets=widgets, total=len(widgets))


@router.post("", response_model=WidgetResponse, status_code=status.HTTP_201_CREATED)
async def register_widget(
    body: RegisterWidgetRequest,
    registry: WidgetRegistry = Depends(get_registry),
) -> WidgetResponse:
    """Load and register a widget from a source string."""
    bundle = await registry.register_widget(
        body.source,
        preload=body.preload,
        cache=body.cache,
        force=body.force,
    )
    return _to_response(registry, bundle)


@router.get("/stats", response_model=RegistryStatsResponse)
async def get_stats(
    registry: WidgetRegistry = Depends(get_registry),
) -> RegistryStatsResponse:
    """Get registry statistics."""
    return RegistryStatsResponse.from_entity(registry.get_stats())


@router.post("/cache/clear", response_model=CacheClearResponse)
async def clear_cache(
    registry: WidgetRegistry = Depends(get_registry),
) -> CacheClearResponse:
    """Clear the remote loader's descriptor cache."""
    registry.clear_cache()
    logger.info("Widget loader caches cleared via API")
    return CacheClearResponse()


# Yo, the generator is a module-level function (not a closure) so tests can drive it
# with a fake request. Listeners only push into a queue - emit() stays sync and cheap,
# the generator does the JSON work on its own time.
async def registry_event_stream(
    registry: WidgetRegistry,
    request: Request,
    poll_interval: float = EVENT_POLL_INTERVAL,
) -> AsyncIterator[dict[str, str]]:
    """Yield SSE messages for every registry event until the client disconnects."""
    queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()

    def make_listener(name: str) -> Any:
        def listener(data: Any) -> None:
            queue.put_nowait((name, data))

        return listener

    unsubscribers = [
        registry.on(event, make_listener(event.value)) for event in RegistryEvent
    ]
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                name, data = await asyncio.wait_for(queue.get(), timeout=poll_interval)
            except TimeoutError:
                continue
            yield {"event": name, "data": json.dumps(serialize_event_data(data))}
    finally:
        for unsubscribe in unsubscribers:
            unsubscribe()
        logger.debug("Registry event stream closed")


@router.get("/events")
async def registry_events(
    request: Request,
    registry: WidgetRegistry = Depends(get_registry),
) -> EventSourceResponse:
    """Server-Sent Events stream of registry lifecycle events.

    Example JS client:
    ```javascript
    const evtSource = new EventSource('/api/widgets/events');
    evtSource.addEventListener('widget:loaded', (event) => {
        const widget = JSON.parse(event.data).bundle;
        addToCatalog(widget);
    });
    ```
    """
    return EventSourceResponse(registry_event_stream(registry, request))


@router.get("/{widget_id}", response_model=WidgetResponse)
async def get_widget(
    widget_id: str,
    registry: WidgetRegistry = Depends(get_registry),
) -> WidgetResponse:
    """Get one registered widget."""
    bundle = registry.get_widget(widget_id)
    if bundle is None:
        raise WidgetNotFoundError(widget_id)
    return _to_response(registry, bundle)


@router.delete("/{widget_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unregister_widget(
    widget_id: str,
    registry: WidgetRegistry = Depends(get_registry),
) -> None:
    """Unregister a widget (409 while other widgets depend on it)."""
    await registry.unregister_widget(widget_id)
