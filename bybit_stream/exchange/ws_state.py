"""
Websocket connection state machine.
"""

from enum import Enum


class WsConnectionState(Enum):
    """Lifecycle state of one websocket connection key."""
    INITIAL = "INITIAL"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    CLOSING = "CLOSING"
    RECONNECTING = "RECONNECTING"


class ConnectionStateMachine:
    """
    Connection state machine for websocket channels.

    Valid transitions:
    - INITIAL → CONNECTING (connect requested)
    - CONNECTING → CONNECTED (transport opened)
    - CONNECTING → RECONNECTING (handshake failed)
    - CONNECTING → CLOSING (close requested mid-handshake)
    - CONNECTED → RECONNECTING (transport lost)
    - CONNECTED → CLOSING (close requested)
    - CLOSING → INITIAL (transport closed)
    - RECONNECTING → CONNECTING (reconnect delay elapsed)
    - RECONNECTING → INITIAL (close requested while waiting to reconnect)
    """

    VALID_TRANSITIONS = {
        WsConnectionState.INITIAL: [
            WsConnectionState.CONNECTING
        ],
        WsConnectionState.CONNECTING: [
            WsConnectionState.CONNECTED,
            WsConnectionState.RECONNECTING,
            WsConnectionState.CLOSING
        ],
        WsConnectionState.CONNECTED: [
            WsConnectionState.RECONNECTING,
            WsConnectionState.CLOSING
        ],
        WsConnectionState.CLOSING: [
            WsConnectionState.INITIAL
        ],
        WsConnectionState.RECONNECTING: [
            WsConnectionState.CONNECTING,
            WsConnectionState.INITIAL
        ]
    }

    @classmethod
    def can_transition(cls, from_state: WsConnectionState, to_state: WsConnectionState) -> bool:
        """
        Check if transition is valid.

        Args:
            from_state: Current connection state
            to_state: Target connection state

        Returns:
            True if transition is valid
        """
        return to_state in cls.VALID_TRANSITIONS.get(from_state, [])

    @classmethod
    def is_active_state(cls, state: WsConnectionState) -> bool:
        """Whether a socket is open or being opened in this state."""
        return state in [
            WsConnectionState.CONNECTING,
            WsConnectionState.CONNECTED
        ]
