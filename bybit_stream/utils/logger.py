"""
Structured logging utilities using structlog.

Provides JSON-formatted logging for production and
human-readable logging for development.
"""

import logging
import sys
import structlog
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional


def setup_logger(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    log_format: str = "json",
    service_name: str = "bybit-stream"
) -> structlog.BoundLogger:
    """
    Configure and return a structured logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files (stdout when None)
        log_format: "json" for production, "console" for development
        service_name: Name of the service for log context

    Returns:
        Configured structlog logger instance
    """
    if log_format == "json":
        processors = [
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ]
    else:  # console format for development
        processors = [
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(colors=log_dir is None)
        ]

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        log_filename = f"stream_{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.log"
        logger_factory = structlog.PrintLoggerFactory(file=open(log_path / log_filename, "a"))
    else:
        logger_factory = structlog.PrintLoggerFactory(file=sys.stdout)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(service=service_name)


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """
    Get a logger instance with optional name context.

    Args:
        name: Optional logger name (typically __name__)

    Returns:
        Logger instance
    """
    if name:
        return structlog.get_logger(logger_name=name)
    return structlog.get_logger()


# Event type constants for structured logging
class EventType:
    """Standard event types for stream logging."""

    WEBSOCKET_CONNECTING = "WEBSOCKET_CONNECTING"
    WEBSOCKET_CONNECTED = "WEBSOCKET_CONNECTED"
    WEBSOCKET_RECONNECTED = "WEBSOCKET_RECONNECTED"
    WEBSOCKET_DISCONNECTED = "WEBSOCKET_DISCONNECTED"
    WEBSOCKET_RECONNECTING = "WEBSOCKET_RECONNECTING"
    WEBSOCKET_CLOSED = "WEBSOCKET_CLOSED"
    PONG_TIMEOUT = "PONG_TIMEOUT"
    AUTH_FAILURE = "AUTH_FAILURE"


def log_connection_event(
    logger: structlog.BoundLogger,
    event_type: str,
    ws_key: str,
    **kwargs
) -> None:
    """
    Log a connection lifecycle event with standard fields.

    Args:
        logger: Logger instance
        event_type: Event type from EventType class
        ws_key: Connection key the event belongs to
        **kwargs: Additional event-specific fields
    """
    logger.info(
        event_type,
        event_type=event_type,
        ws_key=ws_key,
        timestamp=datetime.now(timezone.utc).isoformat(),
        **kwargs
    )
