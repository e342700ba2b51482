"""Push notifications from the conversation core to the rendering layer.

A view subscribes by event name and receives an ``Event`` whose ``data``
carries immutable ``Message`` records:

    bus.subscribe(MESSAGE_APPENDED, lambda event: render(event.data["message"]))
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import inspect
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)

MESSAGE_APPENDED = "message.appended"
MESSAGE_UPDATED = "message.updated"
COMPOSING_CHANGED = "composing.changed"
INPUT_REJECTED = "input.rejected"
SESSION_DISPOSED = "session.disposed"


@dataclass
class Event:
    """One notification: its name, payload and the component that sent it."""

    name: str
    data: dict[str, Any]
    source: str | None = None


class EventBus:
    """Publish/subscribe channel for read-only transcript notifications.

    Handlers may be plain functions or coroutine functions. They are called
    in subscription order, and one failing handler does not stop the rest.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable]] = {}

    def subscribe(self, event_name: str, handler: Callable) -> None:
        self._handlers.setdefault(event_name, []).append(handler)
        LOGGER.debug(
            "events.subscribed",
            extra={"event": "events.subscribed", "event_name": event_name},
        )

    def unsubscribe(self, event_name: str, handler: Callable) -> None:
        """Remove ``handler``; a handler that was never registered is ignored."""
        handlers = self._handlers.get(event_name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    async def publish(
        self, event_name: str, data: dict[str, Any], source: str | None = None
    ) -> None:
        """Deliver ``data`` to every handler subscribed to ``event_name``."""
        handlers = tuple(self._handlers.get(event_name, ()))
        if not handlers:
            return

        event = Event(name=event_name, data=data, source=source)
        for handler in handlers:
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(event)
                else:
                    handler(event)
            except Exception as exc:  # noqa: BLE001 - a broken view must not break the core.
                LOGGER.error(
                    "events.handler_failed",
                    extra={
                        "event": "events.handler_failed",
                        "event_name": event_name,
                        "reason": str(exc),
                    },
                )

    def clear(self, event_name: str | None = None) -> None:
        """Drop the handlers for ``event_name``, or every handler when omitted."""
        if event_name is None:
            self._handlers.clear()
        else:
            self._handlers.pop(event_name, None)
