"""
Bybit Stream

Websocket streaming client for Bybit inverse and linear markets featuring
per-channel connection management, heartbeat monitoring and transparent
resubscription after reconnects.
"""

from .exchange import WebsocketClient, WebsocketClientOptions, WsEvent, WS_KEY_MAP

__version__ = "0.1.0"
__author__ = "Bybit Stream Team"

__all__ = [
    "WebsocketClient",
    "WebsocketClientOptions",
    "WsEvent",
    "WS_KEY_MAP",
]
