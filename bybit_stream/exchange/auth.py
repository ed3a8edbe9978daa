"""
Websocket handshake authentication.

Signs the realtime handshake and builds the query string appended to
the connection URL of private channels.
"""

import hashlib
import hmac
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from .exceptions import SigningError
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Signed payload prefix; the expiry timestamp is appended
REALTIME_AUTH_PREFIX = "GET/realtime"


def sign_message(message: str, secret: str) -> str:
    """
    Sign a message with HMAC-SHA256.

    Args:
        message: Payload to sign
        secret: API secret

    Returns:
        Hex digest signature
    """
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


def serialize_params(params: Dict[str, Any], strict_validation: bool = False) -> str:
    """
    Serialize parameters into a query string with sorted keys.

    Args:
        params: Parameters to serialize
        strict_validation: Raise on missing (None) values

    Returns:
        Query string without leading "?"

    Raises:
        SigningError: If strict validation is on and a value is None
    """
    parts = []
    for key in sorted(params):
        value = params[key]
        if strict_validation and value is None:
            raise SigningError(f"Failed to sign request due to undefined parameter: {key}")
        parts.append(f"{key}={value}")
    return "&".join(parts)


class WsAuthProvider:
    """
    Produces signed handshake parameters for private channels.

    The clock offset against the exchange server is supplied by an
    optional async callable (typically the REST client's time sync);
    without one the local clock is trusted.
    """

    def __init__(
        self,
        key: Optional[str] = None,
        secret: Optional[str] = None,
        expires_skew: int = 5000,
        time_offset_provider: Optional[Callable[[], Awaitable[int]]] = None
    ):
        """
        Initialize auth provider.

        Args:
            key: API key
            secret: API secret
            expires_skew: Milliseconds added to the expiry timestamp
            time_offset_provider: Async callable returning server minus local time in ms
        """
        self.key = key
        self.secret = secret
        self.expires_skew = expires_skew
        self._time_offset_provider = time_offset_provider

    @property
    def has_credentials(self) -> bool:
        return bool(self.key and self.secret)

    async def get_time_offset(self) -> int:
        if self._time_offset_provider is None:
            return 0
        return int(await self._time_offset_provider())

    async def get_auth_params(self) -> str:
        """
        Return the query string required for an authenticated connection.

        Returns:
            "?api_key=...&expires=...&signature=..." or "" without credentials
        """
        if not self.has_credentials:
            logger.warning(
                "Cannot authenticate websocket, either api key or secret missing. "
                "Continuing with public only connection."
            )
            return ""

        logger.debug("Getting auth'd request params")

        time_offset = await self.get_time_offset()
        params = {
            "api_key": self.key,
            "expires": int(time.time() * 1000) + time_offset + self.expires_skew,
        }
        params["signature"] = sign_message(f"{REALTIME_AUTH_PREFIX}{params['expires']}", self.secret)

        return "?" + serialize_params(params, strict_validation=True)
