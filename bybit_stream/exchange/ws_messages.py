"""
Websocket frame builders and inbound frame classification.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)


class FrameKind(Enum):
    """Classification of an inbound frame."""
    PONG = "pong"
    RESPONSE = "response"
    UPDATE = "update"
    UNHANDLED = "unhandled"


def ping_frame() -> str:
    return json.dumps({"op": "ping"})


def subscribe_frame(topics: List[str]) -> str:
    return json.dumps({"op": "subscribe", "args": topics})


def unsubscribe_frame(topics: List[str]) -> str:
    return json.dumps({"op": "unsubscribe", "args": topics})


def is_ws_pong(response: Dict[str, Any]) -> bool:
    """
    Check whether a control response is a heartbeat reply.

    Accepts an echoed ping request with ``ret_msg == "pong"`` and
    ``success is True``, or any frame carrying a truthy bare
    ``ping``/``pong`` field.
    """
    if response.get("pong") or response.get("ping"):
        return True

    request = response.get("request")
    return (
        isinstance(request, dict)
        and request.get("op") == "ping"
        and response.get("ret_msg") == "pong"
        and response.get("success") is True
    )


def parse_frame(message: Any) -> Optional[Dict[str, Any]]:
    """
    Decode a raw websocket message.

    Args:
        message: Text or bytes frame

    Returns:
        Decoded JSON object, or None if the frame is not a JSON object
    """
    try:
        data = json.loads(message)
    except (ValueError, TypeError, RecursionError) as e:
        logger.warning("Failed to decode websocket frame", error=str(e))
        return None

    if not isinstance(data, dict):
        return None
    return data


def classify_frame(message: Any) -> Tuple[FrameKind, Optional[Dict[str, Any]]]:
    """
    Decode and classify an inbound frame.

    Control responses (frames with a ``success`` field) are either
    heartbeat replies or forwarded responses; frames with a ``topic``
    are data updates; everything else is unhandled.

    Returns:
        (kind, decoded frame or None when undecodable)
    """
    data = parse_frame(message)
    if data is None:
        return FrameKind.UNHANDLED, None

    if "success" in data:
        if is_ws_pong(data):
            return FrameKind.PONG, data
        return FrameKind.RESPONSE, data

    if data.get("topic"):
        return FrameKind.UPDATE, data

    return FrameKind.UNHANDLED, data
