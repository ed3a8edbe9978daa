"""
Websocket endpoint and client configuration.

This module contains stream-specific settings such as:
- Websocket endpoints per market segment
- Connection keys and topic routing
- Client options (credentials, heartbeat and reconnect timings)
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional

from .exceptions import ConfigurationError


class WsKey:
    """Connection keys, one per independent websocket channel."""
    INVERSE = "inverse"
    LINEAR_PUBLIC = "linearPublic"
    LINEAR_PRIVATE = "linearPrivate"


WS_KEY_MAP: Dict[str, str] = {
    "inverse": WsKey.INVERSE,
    "linearPublic": WsKey.LINEAR_PUBLIC,
    "linearPrivate": WsKey.LINEAR_PRIVATE,
}

DEFAULT_WS_KEY = WsKey.INVERSE

# Account topics served by the linear private channel
PRIVATE_LINEAR_TOPICS = frozenset({
    "position",
    "execution",
    "order",
    "stop_order",
    "wallet",
})

# Keys whose channel carries account data and needs a signed handshake
AUTHENTICATED_WS_KEYS = frozenset({WsKey.INVERSE, WsKey.LINEAR_PRIVATE})


@dataclass(frozen=True)
class EndpointConfig:
    """Livenet and testnet URLs for one channel."""
    livenet: str
    testnet: str

    def url(self, livenet: bool) -> str:
        return self.livenet if livenet else self.testnet


# ============================================================================
# ENDPOINTS
# ============================================================================

INVERSE_ENDPOINTS = EndpointConfig(
    livenet="wss://stream.bybit.com/realtime",
    testnet="wss://stream-testnet.bybit.com/realtime"
)

LINEAR_PUBLIC_ENDPOINTS = EndpointConfig(
    livenet="wss://stream.bybit.com/realtime_public",
    testnet="wss://stream-testnet.bybit.com/realtime_public"
)

LINEAR_PRIVATE_ENDPOINTS = EndpointConfig(
    livenet="wss://stream.bybit.com/realtime_private",
    testnet="wss://stream-testnet.bybit.com/realtime_private"
)

ENDPOINTS: Dict[str, EndpointConfig] = {
    WsKey.INVERSE: INVERSE_ENDPOINTS,
    WsKey.LINEAR_PUBLIC: LINEAR_PUBLIC_ENDPOINTS,
    WsKey.LINEAR_PRIVATE: LINEAR_PRIVATE_ENDPOINTS,
}


def get_ws_url_for_key(ws_key: str, livenet: bool) -> str:
    """
    Get the default websocket URL of a connection key.

    Args:
        ws_key: Connection key
        livenet: Production endpoint if True, testnet otherwise

    Returns:
        Websocket URL

    Raises:
        ConfigurationError: If the key has no known endpoint
    """
    if ws_key not in ENDPOINTS:
        raise ConfigurationError(f"No websocket endpoint for key: {ws_key}")
    return ENDPOINTS[ws_key].url(livenet)


def get_linear_ws_key_for_topic(topic: str) -> str:
    """
    Route a linear market topic to its public or private channel.

    Only the account topics go private; unknown topics default to public.
    """
    if topic in PRIVATE_LINEAR_TOPICS:
        return WsKey.LINEAR_PRIVATE
    return WsKey.LINEAR_PUBLIC


# ============================================================================
# CLIENT OPTIONS
# ============================================================================

# camelCase option names accepted by from_dict
_CAMEL_CASE_ALIASES = {
    "pongTimeout": "pong_timeout",
    "pingInterval": "ping_interval",
    "reconnectTimeout": "reconnect_timeout",
    "wsUrl": "ws_url",
    "expiresSkew": "expires_skew",
}


@dataclass
class WebsocketClientOptions:
    """
    Options recognized by the websocket client.

    All durations are in milliseconds.
    """
    key: Optional[str] = None
    secret: Optional[str] = None

    livenet: bool = False            # production endpoints if True
    linear: bool = False             # linear market channels instead of inverse

    pong_timeout: int = 1000         # wait for pong after each ping
    ping_interval: int = 10000       # delay between pings
    reconnect_timeout: int = 500     # fixed delay before each reconnect attempt

    ws_url: Optional[str] = None     # overrides every computed endpoint
    expires_skew: int = 5000         # added to the signed expiry timestamp

    def __post_init__(self):
        for name in ("pong_timeout", "ping_interval", "reconnect_timeout"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive duration, got {value!r}")
        if self.expires_skew < 0:
            raise ConfigurationError(f"expires_skew must not be negative, got {self.expires_skew!r}")

    @property
    def has_credentials(self) -> bool:
        return bool(self.key and self.secret)

    @property
    def ws_keys(self) -> List[str]:
        """Connection keys used by the configured market."""
        if self.linear:
            return [WsKey.LINEAR_PUBLIC, WsKey.LINEAR_PRIVATE]
        return [WsKey.INVERSE]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WebsocketClientOptions":
        """
        Build options from a configuration mapping.

        Accepts snake_case names as well as the camelCase names used by
        the exchange SDK (``pongTimeout``, ``wsUrl``, ...).

        Raises:
            ConfigurationError: If an option name is not recognized
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}

        for name, value in data.items():
            name = _CAMEL_CASE_ALIASES.get(name, name)
            if name not in known:
                raise ConfigurationError(f"Unknown websocket client option: {name}")
            kwargs[name] = value

        return cls(**kwargs)
