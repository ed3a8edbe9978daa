"""
Streaming client exception classes.
"""


class BybitStreamError(Exception):
    """Base exception for all streaming client errors."""
    pass


class ConfigurationError(BybitStreamError):
    """Exception raised for invalid client options."""
    pass


class SigningError(BybitStreamError):
    """Exception raised when request parameters cannot be signed."""
    pass


class WebSocketError(BybitStreamError):
    """Exception raised for WebSocket-related errors."""
    pass


class ConnectionError(WebSocketError):
    """Exception raised when the websocket handshake fails."""

    def __init__(self, message: str, status_code: int = None, url: str = None):
        self.message = message
        self.status_code = status_code
        self.url = url
        super().__init__(self.message)

    @property
    def is_unauthorized(self) -> bool:
        """Whether the server rejected the handshake credentials."""
        return self.status_code == 401
