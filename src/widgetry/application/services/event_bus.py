"""Pub/sub fan-out of registry lifecycle events.

Hey future me - emit() must NEVER fail because of a listener. Each listener runs inside
its own try/except; a broken telemetry listener can't stop the next listener (or the
registry operation that emitted) from doing its thing.

Listeners are normally plain functions. If one returns an awaitable (an async def
listener) we schedule it as a task on the running loop and log its failure when it
finishes - emit() itself stays synchronous and never waits.
"""

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Callable
from typing import Any

from widgetry.domain.entities import RegistryEvent, RegistryEventRecord

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]
Unsubscribe = Callable[[], None]

DEFAULT_HISTORY_SIZE = 100


def _event_name(event: RegistryEvent | str) -> str:
    return event.value if isinstance(event, RegistryEvent) else event


class EventBus:
    """Synchronous event emitter with bounded history."""

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._history: deque[RegistryEventRecord] = deque(maxlen=history_size)
        # Strong refs to running async listener tasks (the loop only keeps weak ones)
        self._tasks: set[asyncio.Task[Any]] = set()

    def on(self, event: RegistryEvent | str, listener: Listener) -> Unsubscribe:
        """Subscribe to an event.

        Returns:
            Function that removes exactly this subscription (idempotent)
        """
        name = _event_name(event)
        self._listeners.setdefault(name, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(name)
            if listeners and listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def listener_count(self, event: RegistryEvent | str) -> int:
        return len(self._listeners.get(_event_name(event), []))

    def emit(self, event: RegistryEvent | str, data: Any = None) -> None:
        """Deliver data to every listener currently subscribed to event."""
        name = _event_name(event)
        self._history.append(RegistryEventRecord(event=name, data=data))

        # Copy: listeners may unsubscribe while we iterate
        for listener in list(self._listeners.get(name, [])):
            try:
                result = listener(data)
            except Exception as e:
                logger.error(
                    "Error in registry event listener for %s: %s", name, e, exc_info=True
                )
                continue

            if inspect.isawaitable(result):
                self._schedule(name, result)

    def _schedule(self, name: str, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop - close the coroutine so Python doesn't warn "never awaited"
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning("Async listener for %s dropped: no running event loop", name)
            return

        task = asyncio.ensure_future(awaitable, loop=loop)
        self._tasks.add(task)

        def done(finished: asyncio.Task[Any]) -> None:
            self._tasks.discard(finished)
            if not finished.cancelled() and finished.exception() is not None:
                logger.error(
                    "Error in async registry event listener for %s: %s",
                    name,
                    finished.exception(),
                    exc_info=finished.exception(),
                )

        task.add_done_callback(done)

    def get_history(self, event: RegistryEvent | str | None = None) -> list[RegistryEventRecord]:
        """Recently emitted events, oldest first, optionally filtered by event name."""
        if event is None:
            return list(self._history)
        name = _event_name(event)
        return [record for record in self._history if record.event == name]

    def clear_history(self) -> None:
        self._history.clear()

    def clear(self) -> None:
        """Drop all listeners and history (used on registry disposal)."""
        self._listeners.clear()
        self._history.clear()
