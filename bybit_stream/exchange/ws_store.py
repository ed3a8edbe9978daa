"""
Subscription and connection registry for websocket channels.

Tracks, per connection key, the desired topic set and the live
connection state. Performs no I/O.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import structlog
from websockets.protocol import State

from .ws_state import WsConnectionState

logger = structlog.get_logger(__name__)


@dataclass
class WsConnectionRecord:
    """State owned by one connection key."""
    state: WsConnectionState = WsConnectionState.INITIAL
    ws: Optional[Any] = None                                  # live websocket connection
    topics: Set[str] = field(default_factory=set)             # desired subscriptions

    # Scheduled work, cancelled on state transitions
    heartbeat_timer: Optional[asyncio.Task] = None            # next ping
    timeout_timer: Optional[asyncio.Task] = None              # pending pong deadline
    reconnect_timer: Optional[asyncio.Task] = None            # delayed reconnect
    reader_task: Optional[asyncio.Task] = None                # inbound frame loop

    # Set when the current attempt started from RECONNECTING
    is_reconnect: bool = False


class WsStore:
    """
    Registry of connection records keyed by connection key.

    Records are created on first use and kept for the lifetime of
    the owning client.
    """

    def __init__(self):
        self._records: Dict[str, WsConnectionRecord] = {}

    def get(self, ws_key: str, create_if_missing: bool = False) -> Optional[WsConnectionRecord]:
        """
        Get the record of a connection key.

        Args:
            ws_key: Connection key
            create_if_missing: Create an empty record for unknown keys

        Returns:
            Connection record or None if unknown and not created
        """
        record = self._records.get(ws_key)
        if record is None and create_if_missing:
            record = WsConnectionRecord()
            self._records[ws_key] = record
            logger.debug("Created connection record", ws_key=ws_key)
        return record

    def get_keys(self) -> List[str]:
        return list(self._records.keys())

    def delete(self, ws_key: str) -> None:
        self._records.pop(ws_key, None)

    # Topics

    def add_topic(self, ws_key: str, topic: str) -> None:
        self.get(ws_key, create_if_missing=True).topics.add(topic)

    def delete_topic(self, ws_key: str, topic: str) -> None:
        record = self.get(ws_key)
        if record is not None:
            record.topics.discard(topic)

    def get_topics(self, ws_key: str) -> List[str]:
        """Snapshot of the desired topics of a key (order irrelevant)."""
        record = self.get(ws_key)
        if record is None:
            return []
        return list(record.topics)

    # Connection state

    def get_connection_state(self, ws_key: str) -> WsConnectionState:
        record = self.get(ws_key)
        if record is None:
            return WsConnectionState.INITIAL
        return record.state

    def set_connection_state(self, ws_key: str, state: WsConnectionState) -> None:
        self.get(ws_key, create_if_missing=True).state = state

    def is_connection_state(self, ws_key: str, state: WsConnectionState) -> bool:
        return self.get_connection_state(ws_key) == state

    # Socket

    def get_ws(self, ws_key: str) -> Optional[Any]:
        record = self.get(ws_key)
        return record.ws if record else None

    def set_ws(self, ws_key: str, ws: Optional[Any]) -> Optional[Any]:
        """
        Store the socket of a key.

        A previously stored socket is not closed; that is the caller's job.
        """
        self.get(ws_key, create_if_missing=True).ws = ws
        return ws

    def is_ws_open(self, ws_key: str) -> bool:
        ws = self.get_ws(ws_key)
        return ws is not None and getattr(ws, "state", None) is State.OPEN
