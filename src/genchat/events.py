"""Event bus the presentation layer subscribes to.

Usage:
    bus = EventBus()

    def on_turns(event):
        print(len(event.data["turns"]))

    bus.subscribe(CONVERSATION_CHANGED, on_turns)
    bus.publish(CONVERSATION_CHANGED, {"turns": [...]})
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
import inspect
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)

CONVERSATION_CHANGED = "conversation.changed"
CREDITS_CHANGED = "credits.changed"
ATTACHMENTS_CHANGED = "attachments.changed"
STATE_CHANGED = "orchestrator.state"


@dataclass
class Event:
    """Event data container."""

    name: str
    data: dict[str, Any]
    source: str | None = None


class EventBus:
    """Publish/subscribe channel between the core and its observers.

    Publishing is synchronous so that a state change and its notification
    happen in the same scheduling step. Coroutine handlers are scheduled
    on the running loop.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callable[[Event], Any]]] = {}
        self._pending: set[asyncio.Task[Any]] = set()

    def subscribe(self, event_name: str, handler: Callable[[Event], Any]) -> Callable[[], None]:
        """Subscribe to an event and return a callable that unsubscribes."""
        self._subscribers.setdefault(event_name, []).append(handler)
        LOGGER.debug(f"Subscribed to event: {event_name}")

        def _unsubscribe() -> None:
            self.unsubscribe(event_name, handler)

        return _unsubscribe

    def unsubscribe(self, event_name: str, handler: Callable[[Event], Any]) -> None:
        if event_name in self._subscribers:
            try:
                self._subscribers[event_name].remove(handler)
                LOGGER.debug(f"Unsubscribed from event: {event_name}")
            except ValueError:
                pass

    def publish(
        self, event_name: str, data: dict[str, Any], source: str | None = None
    ) -> None:
        """Deliver an event to all subscribers; handler failures are logged."""
        event = Event(name=event_name, data=data, source=source)
        for handler in list(self._subscribers.get(event_name, [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    self._schedule(result)
            except Exception as e:
                LOGGER.error(f"Event handler failed for {event_name}: {e}")

    def _schedule(self, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(self._log_handler_exception)

    @staticmethod
    def _log_handler_exception(task: asyncio.Future[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error(f"Async event handler failed: {exc}")

    def clear(self, event_name: str | None = None) -> None:
        if event_name:
            self._subscribers.pop(event_name, None)
        else:
            self._subscribers.clear()
