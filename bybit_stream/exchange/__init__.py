"""
Websocket streaming module for exchange connectivity.
"""

from .exceptions import (
    BybitStreamError,
    ConfigurationError,
    SigningError,
    WebSocketError,
    ConnectionError
)
from .ws_config import (
    WsKey,
    WS_KEY_MAP,
    DEFAULT_WS_KEY,
    WebsocketClientOptions,
    get_ws_url_for_key,
    get_linear_ws_key_for_topic
)
from .ws_state import WsConnectionState, ConnectionStateMachine
from .ws_store import WsStore, WsConnectionRecord
from .auth import WsAuthProvider, sign_message, serialize_params
from .ws_messages import FrameKind, classify_frame, is_ws_pong
from .events import WsEvent, EventRegistry
from .websocket_client import WebsocketClient

__all__ = [
    # Client
    "WebsocketClient",
    "WebsocketClientOptions",

    # Exceptions
    "BybitStreamError",
    "ConfigurationError",
    "SigningError",
    "WebSocketError",
    "ConnectionError",

    # Configuration
    "WsKey",
    "WS_KEY_MAP",
    "DEFAULT_WS_KEY",
    "get_ws_url_for_key",
    "get_linear_ws_key_for_topic",

    # Connection state
    "WsConnectionState",
    "ConnectionStateMachine",
    "WsStore",
    "WsConnectionRecord",

    # Authentication
    "WsAuthProvider",
    "sign_message",
    "serialize_params",

    # Frames and events
    "FrameKind",
    "classify_frame",
    "is_ws_pong",
    "WsEvent",
    "EventRegistry"
]
