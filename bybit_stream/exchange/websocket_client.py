"""
Websocket client for Bybit realtime streams.

Handles market data and account streams with:
- One connection per channel key (inverse, linear public, linear private)
- Signed handshake for private channels
- Subscription tracking with full replay after every reconnect
- Ping/pong heartbeat monitoring
- Fixed-delay reconnection that never gives up until closed
- Event-driven callback system
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from .auth import WsAuthProvider
from .events import EventRegistry, WsEvent
from .exceptions import ConfigurationError, ConnectionError as WsConnectionError
from .ws_config import (
    AUTHENTICATED_WS_KEYS,
    WebsocketClientOptions,
    WsKey,
    get_linear_ws_key_for_topic,
    get_ws_url_for_key,
)
from .ws_messages import FrameKind, classify_frame, ping_frame, subscribe_frame, unsubscribe_frame
from .ws_state import ConnectionStateMachine, WsConnectionState
from .ws_store import WsStore
from ..utils.logger import EventType, get_logger, log_connection_event


logger = get_logger(__name__)


def _status_code_of(error: Exception) -> Optional[int]:
    """HTTP status of a rejected handshake, if the error carries one."""
    response = getattr(error, "response", None)
    if response is not None:
        return getattr(response, "status_code", None)
    return getattr(error, "status_code", None)


class WebsocketClient:
    """
    Manages websocket connections for Bybit realtime channels.

    Features:
    - Subscriptions persist across disconnects and are replayed on reconnect
    - Ping/pong heartbeat with forced reconnect on pong timeout. The next
      ping is scheduled when the pong arrives, so the effective ping period
      is ping_interval plus the round trip rather than a fixed repeating timer
    - Idempotent connect per channel key
    - Listener callbacks for open, reconnected, reconnect, close, error,
      response and update events

    Note: This implementation is designed for single-threaded async use.
    All records are only touched from the event loop.
    """

    def __init__(
        self,
        options: Optional[WebsocketClientOptions] = None,
        time_offset_provider: Optional[Callable[[], Awaitable[int]]] = None,
        **kwargs
    ):
        """
        Initialize websocket client.

        Args:
            options: Client options
            time_offset_provider: Async callable returning the server clock
                offset in ms, used when signing the handshake
            **kwargs: Option values when ``options`` is not given
                (snake_case or camelCase names)

        Raises:
            ConfigurationError: If options are invalid
        """
        if options is not None and kwargs:
            raise ConfigurationError("Pass either an options object or keyword options, not both")

        self.options = options if options is not None else WebsocketClientOptions.from_dict(kwargs)

        self._store = WsStore()
        self._events = EventRegistry()
        self._auth = WsAuthProvider(
            key=self.options.key,
            secret=self.options.secret,
            expires_skew=self.options.expires_skew,
            time_offset_provider=time_offset_provider
        )

        # Statistics
        self._stats = {
            'messages_received': 0,
            'reconnections': 0,
            'last_message_time': None,
            'connected_at': None
        }

        for ws_key in self.options.ws_keys:
            self._store.get(ws_key, create_if_missing=True)

        logger.info(
            "Websocket client initialized",
            livenet=self.options.livenet,
            linear=self.options.linear,
            authenticated=self.options.has_credentials
        )

    # ========================================================================
    # Properties
    # ========================================================================

    def is_livenet(self) -> bool:
        return self.options.livenet is True

    def is_inverse(self) -> bool:
        return not self.options.linear

    def is_linear(self) -> bool:
        return self.options.linear is True

    @property
    def default_ws_key(self) -> str:
        return self.options.ws_keys[0]

    @property
    def stats(self) -> Dict[str, Any]:
        """Get connection statistics."""
        return self._stats.copy()

    def get_ws_state(self, ws_key: Optional[str] = None) -> WsConnectionState:
        return self._store.get_connection_state(ws_key or self.default_ws_key)

    def get_topics(self, ws_key: Optional[str] = None) -> List[str]:
        return self._store.get_topics(ws_key or self.default_ws_key)

    def get_ws_key_for_topic(self, topic: str) -> str:
        """
        Resolve the connection key serving a topic.

        Args:
            topic: Topic name (e.g., "orderBookL2_25.BTCUSD")

        Returns:
            Connection key
        """
        if self.is_inverse():
            return WsKey.INVERSE
        return get_linear_ws_key_for_topic(topic)

    # ========================================================================
    # Events
    # ========================================================================

    def on(self, event: Union[WsEvent, str], callback: Callable[[Any], Any]) -> Callable[[Any], Any]:
        """
        Register a listener.

        Args:
            event: Event kind (e.g., WsEvent.UPDATE or "update")
            callback: Sync or async function called with the event payload

        Returns:
            The callback
        """
        return self._events.on(event, callback)

    def off(self, event: Union[WsEvent, str], callback: Callable[[Any], Any]) -> None:
        self._events.off(event, callback)

    # ========================================================================
    # Subscriptions
    # ========================================================================

    async def subscribe(self, ws_topics: Union[str, Iterable[str]]):
        """
        Add topics to the subscription list.

        Topics are recorded even while disconnected and sent when the
        channel opens.

        Args:
            ws_topics: Topic or list of topics
        """
        topics = [ws_topics] if isinstance(ws_topics, str) else list(ws_topics)

        ws_keys = []
        for topic in topics:
            ws_key = self.get_ws_key_for_topic(topic)
            self._store.add_topic(ws_key, topic)
            if ws_key not in ws_keys:
                ws_keys.append(ws_key)

        logger.info("Subscribed to topics", topics=topics, ws_keys=ws_keys)

        # Disconnected channels subscribe automatically on open
        for ws_key in ws_keys:
            if self._store.is_connection_state(ws_key, WsConnectionState.CONNECTED):
                await self._request_subscribe_topics(ws_key, self._store.get_topics(ws_key))

    async def unsubscribe(self, ws_topics: Union[str, Iterable[str]]):
        """
        Remove topics from the subscription list.

        Args:
            ws_topics: Topic or list of topics
        """
        topics = [ws_topics] if isinstance(ws_topics, str) else list(ws_topics)

        ws_keys = []
        for topic in topics:
            ws_key = self.get_ws_key_for_topic(topic)
            self._store.delete_topic(ws_key, topic)
            if ws_key not in ws_keys:
                ws_keys.append(ws_key)

        logger.info("Unsubscribed from topics", topics=topics, ws_keys=ws_keys)

        for ws_key in ws_keys:
            if self._store.is_connection_state(ws_key, WsConnectionState.CONNECTED):
                await self._request_unsubscribe_topics(ws_key, self._store.get_topics(ws_key))

    # ========================================================================
    # Connection lifecycle
    # ========================================================================

    async def connect(self, ws_key: Optional[str] = None):
        """
        Open the websocket of a channel key.

        Connection failures are logged and retried after the reconnect
        delay; they are never raised.

        Args:
            ws_key: Connection key (default key of the configured market if None)

        Returns:
            The open websocket, or None if no connection was established
        """
        ws_key = ws_key or self.default_ws_key

        if self._store.is_ws_open(ws_key):
            logger.error("Refused to connect to ws with existing active connection", ws_key=ws_key)
            return self._store.get_ws(ws_key)

        if self._store.is_connection_state(ws_key, WsConnectionState.CONNECTING):
            logger.error("Refused to connect to ws, connection attempt already active", ws_key=ws_key)
            return None

        if self._store.is_connection_state(ws_key, WsConnectionState.CLOSING):
            logger.error("Refused to connect to ws, close in progress", ws_key=ws_key)
            return None

        base_url = self._get_ws_url(ws_key)

        self._cancel_reconnect_timer(ws_key)
        self._set_ws_state(ws_key, WsConnectionState.CONNECTING)
        log_connection_event(logger, EventType.WEBSOCKET_CONNECTING, ws_key, url=base_url)

        try:
            auth_params = await self._auth.get_auth_params() if self._needs_auth(ws_key) else ""
            ws = await self._connect_to_ws_url(base_url + auth_params, ws_key)
        except Exception as e:
            self._parse_ws_error("Connection failed", e, ws_key)

            if self._store.is_connection_state(ws_key, WsConnectionState.CLOSING):
                self._finish_close(ws_key)
            else:
                self._reconnect_with_delay(ws_key)
            return None

        if self._store.is_connection_state(ws_key, WsConnectionState.CLOSING):
            logger.info("Connection closed while connecting, discarding socket", ws_key=ws_key)
            await self._close_socket(ws, ws_key)
            self._finish_close(ws_key)
            return None

        self._store.set_ws(ws_key, ws)
        await self._on_ws_open(ws_key, ws)

        return ws

    async def connect_public(self):
        """Connect the public channel (the inverse channel in inverse mode)."""
        if self.is_linear():
            return await self.connect(WsKey.LINEAR_PUBLIC)
        return await self.connect(WsKey.INVERSE)

    async def connect_private(self):
        """Connect the private channel (the inverse channel in inverse mode)."""
        if self.is_linear():
            return await self.connect(WsKey.LINEAR_PRIVATE)
        return await self.connect(WsKey.INVERSE)

    async def connect_all(self):
        """Connect every channel of the configured market."""
        await self.connect_public()

        if not self.is_linear():
            return

        if self.options.has_credentials:
            await self.connect_private()
        else:
            logger.info("Skipping private channel, no credentials configured")

    async def close(self, ws_key: Optional[str] = None):
        """
        Close the websocket of a channel key without reconnecting.

        Args:
            ws_key: Connection key (default key of the configured market if None)
        """
        ws_key = ws_key or self.default_ws_key
        record = self._store.get(ws_key)

        if record is None:
            logger.warning("Close requested for unknown connection", ws_key=ws_key)
            return

        logger.info("Closing connection", ws_key=ws_key)

        if record.state is WsConnectionState.RECONNECTING:
            self._cancel_reconnect_timer(ws_key)
            self._clear_timers(ws_key)
            self._finish_close(ws_key)
            return

        if not ConnectionStateMachine.is_active_state(record.state):
            logger.debug("Connection already closed", ws_key=ws_key, state=record.state.value)
            return

        self._set_ws_state(ws_key, WsConnectionState.CLOSING)
        self._clear_timers(ws_key)

        ws = record.ws
        if ws is None:
            # Handshake still running; connect() finishes the close
            return

        await self._close_socket(ws, ws_key)

        reader_task = record.reader_task
        if reader_task is not None and reader_task is not asyncio.current_task():
            await asyncio.wait({reader_task})

    async def close_all(self):
        """Close every known connection."""
        for ws_key in self._store.get_keys():
            await self.close(ws_key)

    async def __aenter__(self) -> "WebsocketClient":
        await self.connect_all()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close_all()

    # ========================================================================
    # Transport
    # ========================================================================

    def _needs_auth(self, ws_key: str) -> bool:
        return ws_key in AUTHENTICATED_WS_KEYS

    def _get_ws_url(self, ws_key: str) -> str:
        """
        Get websocket URL of a key.

        An explicit ``ws_url`` option takes precedence over the market
        specific endpoint.
        """
        if self.options.ws_url:
            return self.options.ws_url
        return get_ws_url_for_key(ws_key, self.options.livenet)

    async def _connect_to_ws_url(self, url: str, ws_key: str):
        """
        Open a websocket.

        Library-level pings are disabled; liveness is checked by the
        application-level heartbeat.

        Raises:
            ConnectionError: If the handshake fails
        """
        logger.info("Connecting to websocket", ws_key=ws_key, url=url.split("?")[0])

        try:
            return await websockets.connect(
                url,
                ping_interval=None,
                close_timeout=self.options.pong_timeout / 1000
            )
        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            raise WsConnectionError(
                f"Websocket handshake failed: {e}",
                status_code=_status_code_of(e),
                url=url.split("?")[0]
            ) from e

    async def _close_socket(self, ws, ws_key: str):
        try:
            await ws.close()
        except Exception as e:
            logger.error("Failed to close websocket", ws_key=ws_key, error=str(e))

    async def _read_loop(self, ws_key: str, ws):
        """Drain inbound frames until the socket closes."""
        error = None

        try:
            async for message in ws:
                try:
                    self._on_ws_message(message, ws_key)
                except Exception as e:
                    logger.warning(
                        "Got unhandled ws message",
                        ws_key=ws_key,
                        error=str(e),
                        error_type=type(e).__name__
                    )
        except ConnectionClosedOK:
            pass
        except Exception as e:
            error = e

        if error is not None:
            self._on_ws_error(error, ws_key)

            # Socket may still be open after a non-transport failure
            if not isinstance(error, ConnectionClosed):
                await self._close_socket(ws, ws_key)

        self._on_ws_close(ws_key, ws)

    async def _try_send(self, ws_key: str, ws_message: str) -> bool:
        """
        Send a frame, logging instead of raising on failure.

        Returns:
            True if the frame was written
        """
        ws = self._store.get_ws(ws_key)
        if ws is None:
            logger.error("Failed to send WS message, no active connection", ws_key=ws_key, ws_message=ws_message)
            return False

        try:
            await ws.send(ws_message)
            return True
        except Exception as e:
            logger.error(
                "Failed to send WS message",
                ws_key=ws_key,
                ws_message=ws_message,
                error=str(e),
                error_type=type(e).__name__
            )
            return False

    async def _request_subscribe_topics(self, ws_key: str, topics: List[str]):
        await self._try_send(ws_key, subscribe_frame(topics))

    async def _request_unsubscribe_topics(self, ws_key: str, topics: List[str]):
        await self._try_send(ws_key, unsubscribe_frame(topics))

    # ========================================================================
    # Transport events
    # ========================================================================

    async def _on_ws_open(self, ws_key: str, ws):
        record = self._store.get(ws_key)
        is_reconnect = record.is_reconnect
        record.is_reconnect = False

        self._set_ws_state(ws_key, WsConnectionState.CONNECTED)
        self._stats['connected_at'] = datetime.now(timezone.utc)

        record.reader_task = asyncio.create_task(self._read_loop(ws_key, ws))
        self._schedule_ping(ws_key)

        if is_reconnect:
            log_connection_event(logger, EventType.WEBSOCKET_RECONNECTED, ws_key)
            self._events.emit(WsEvent.RECONNECTED, {"ws_key": ws_key})
        else:
            log_connection_event(
                logger,
                EventType.WEBSOCKET_CONNECTED,
                ws_key,
                livenet=self.options.livenet,
                linear=self.options.linear
            )
            self._events.emit(WsEvent.OPEN, {"ws_key": ws_key})

        # Replay desired topics on every open channel
        for key in self._store.get_keys():
            if self._store.is_ws_open(key):
                await self._request_subscribe_topics(key, self._store.get_topics(key))

    def _on_ws_message(self, message: Any, ws_key: str):
        self._stats['messages_received'] += 1
        self._stats['last_message_time'] = datetime.now(timezone.utc)

        kind, frame = classify_frame(message)

        if kind is FrameKind.PONG:
            logger.debug("Received pong", ws_key=ws_key)
            self._clear_pong_timer(ws_key)
            self._schedule_ping(ws_key)
        elif kind is FrameKind.RESPONSE:
            self._events.emit(WsEvent.RESPONSE, frame)
        elif kind is FrameKind.UPDATE:
            self._events.emit(WsEvent.UPDATE, frame)
        else:
            logger.warning("Got unhandled ws message", ws_key=ws_key, ws_message=frame if frame is not None else message)

    def _on_ws_error(self, error: Exception, ws_key: str):
        self._parse_ws_error("Websocket error", error, ws_key)

        if self._store.is_connection_state(ws_key, WsConnectionState.CONNECTED):
            self._events.emit(WsEvent.ERROR, {"ws_key": ws_key, "error": error})

    def _on_ws_close(self, ws_key: str, ws):
        record = self._store.get(ws_key)
        if record is None or record.ws is not ws:
            logger.debug("Ignoring close of superseded socket", ws_key=ws_key)
            return

        log_connection_event(logger, EventType.WEBSOCKET_DISCONNECTED, ws_key)

        self._clear_timers(ws_key)
        self._store.set_ws(ws_key, None)
        record.reader_task = None

        if record.state is not WsConnectionState.CLOSING:
            record.is_reconnect = True
            self._reconnect_with_delay(ws_key)
            self._events.emit(WsEvent.RECONNECT, {"ws_key": ws_key})
        else:
            self._finish_close(ws_key)

    def _finish_close(self, ws_key: str):
        record = self._store.get(ws_key)
        record.is_reconnect = False
        self._set_ws_state(ws_key, WsConnectionState.INITIAL)

        log_connection_event(logger, EventType.WEBSOCKET_CLOSED, ws_key)
        self._events.emit(WsEvent.CLOSE, {"ws_key": ws_key})

    def _parse_ws_error(self, context: str, error: Exception, ws_key: str):
        if isinstance(error, WsConnectionError) and error.is_unauthorized:
            log_connection_event(logger, EventType.AUTH_FAILURE, ws_key)
            logger.error(f"{context} due to 401 authorization failure.", ws_key=ws_key)
            return

        logger.error(
            f"{context} due to unexpected error",
            ws_key=ws_key,
            error=str(error),
            error_type=type(error).__name__
        )

    # ========================================================================
    # Reconnection
    # ========================================================================

    def _reconnect_with_delay(self, ws_key: str):
        self._clear_timers(ws_key)
        self._cancel_reconnect_timer(ws_key)
        self._set_ws_state(ws_key, WsConnectionState.RECONNECTING)
        self._stats['reconnections'] += 1

        delay = self.options.reconnect_timeout
        log_connection_event(logger, EventType.WEBSOCKET_RECONNECTING, ws_key, delay_ms=delay)

        record = self._store.get(ws_key)
        record.reconnect_timer = asyncio.create_task(self._reconnect_after_delay(ws_key, delay))

    async def _reconnect_after_delay(self, ws_key: str, delay_ms: int):
        await asyncio.sleep(delay_ms / 1000)

        self._store.get(ws_key).reconnect_timer = None
        logger.info("Reconnecting to server", ws_key=ws_key)
        await self.connect(ws_key)

    def _cancel_reconnect_timer(self, ws_key: str):
        record = self._store.get(ws_key)
        if record is not None:
            self._cancel_task(record.reconnect_timer)
            record.reconnect_timer = None

    # ========================================================================
    # Heartbeat
    # ========================================================================

    def _schedule_ping(self, ws_key: str):
        """Schedule the next ping unless one is pending or awaiting a pong."""
        record = self._store.get(ws_key)
        if record is None or record.heartbeat_timer is not None or record.timeout_timer is not None:
            return
        if record.state is not WsConnectionState.CONNECTED:
            return

        record.heartbeat_timer = asyncio.create_task(self._ping_after_interval(ws_key))

    async def _ping_after_interval(self, ws_key: str):
        await asyncio.sleep(self.options.ping_interval / 1000)
        await self._ping(ws_key)

    async def _ping(self, ws_key: str):
        record = self._store.get(ws_key)
        record.heartbeat_timer = None
        self._clear_pong_timer(ws_key)

        record.timeout_timer = asyncio.create_task(self._pong_timeout(ws_key, record.ws))

        logger.debug("Sending ping", ws_key=ws_key)
        await self._try_send(ws_key, ping_frame())

    async def _pong_timeout(self, ws_key: str, ws):
        await asyncio.sleep(self.options.pong_timeout / 1000)

        # Cleared first so the resulting close does not cancel this task
        self._store.get(ws_key).timeout_timer = None

        log_connection_event(logger, EventType.PONG_TIMEOUT, ws_key, timeout_ms=self.options.pong_timeout)
        logger.info("Pong timeout - closing socket to reconnect", ws_key=ws_key)

        if ws is not None:
            await self._close_socket(ws, ws_key)

    def _clear_timers(self, ws_key: str):
        self._clear_ping_timer(ws_key)
        self._clear_pong_timer(ws_key)

    def _clear_ping_timer(self, ws_key: str):
        record = self._store.get(ws_key)
        if record is not None:
            self._cancel_task(record.heartbeat_timer)
            record.heartbeat_timer = None

    def _clear_pong_timer(self, ws_key: str):
        record = self._store.get(ws_key)
        if record is not None:
            self._cancel_task(record.timeout_timer)
            record.timeout_timer = None

    @staticmethod
    def _cancel_task(task: Optional[asyncio.Task]):
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    # ========================================================================
    # State
    # ========================================================================

    def _set_ws_state(self, ws_key: str, state: WsConnectionState):
        current = self._store.get_connection_state(ws_key)

        if current != state and not ConnectionStateMachine.can_transition(current, state):
            logger.warning(
                "Unexpected connection state transition",
                ws_key=ws_key,
                old_state=current.value,
                new_state=state.value
            )

        self._store.set_connection_state(ws_key, state)
