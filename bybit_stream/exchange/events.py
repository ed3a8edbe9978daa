"""
Event surface of the websocket client.

Application code registers any number of callbacks per event kind.
Emitting never waits for listeners: sync callbacks run inline, async
callbacks are scheduled as tasks, and listener errors are logged.
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Callable, Dict, List, Set

import structlog

logger = structlog.get_logger(__name__)


class WsEvent(str, Enum):
    """Notifications emitted by the websocket client."""
    OPEN = "open"                  # first successful connection of a key
    RECONNECTED = "reconnected"    # connection restored after a drop
    RECONNECT = "reconnect"        # connection dropped, reconnect scheduled
    CLOSE = "close"                # explicit close completed
    ERROR = "error"                # abnormal transport failure while connected
    RESPONSE = "response"          # control response (subscribe acks, auth errors)
    UPDATE = "update"              # topic data frame


class EventRegistry:
    """Callback registry keyed by event kind."""

    def __init__(self):
        self._listeners: Dict[WsEvent, List[Callable[[Any], Any]]] = {event: [] for event in WsEvent}
        self._pending: Set[asyncio.Task] = set()

    def on(self, event: WsEvent, callback: Callable[[Any], Any]) -> Callable[[Any], Any]:
        """
        Register callback for an event.

        Args:
            event: Event kind (enum member or its string value)
            callback: Sync or async function taking one argument

        Returns:
            The callback, so this can be used as a decorator
        """
        self._listeners[WsEvent(event)].append(callback)
        return callback

    def off(self, event: WsEvent, callback: Callable[[Any], Any]) -> None:
        listeners = self._listeners[WsEvent(event)]
        if callback in listeners:
            listeners.remove(callback)

    def listener_count(self, event: WsEvent) -> int:
        return len(self._listeners[WsEvent(event)])

    def emit(self, event: WsEvent, payload: Any = None) -> None:
        """
        Notify every listener of an event.

        Args:
            event: Event kind
            payload: Single argument passed to each listener
        """
        for callback in list(self._listeners[WsEvent(event)]):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(self._on_listener_done)
            except Exception as e:
                logger.error(
                    "Error in event listener",
                    ws_event=WsEvent(event).value,
                    error=str(e),
                    exc_info=True
                )

    def _on_listener_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Error in async event listener", error=str(error))
