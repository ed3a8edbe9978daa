"""
Unit tests for logging and exception helpers.
"""

import json
import pytest
import structlog
from structlog.testing import capture_logs

from bybit_stream.exchange.exceptions import BybitStreamError, ConnectionError, WebSocketError
from bybit_stream.exchange.websocket_client import WebsocketClient
from bybit_stream.utils.logger import EventType, get_logger, log_connection_event, setup_logger


@pytest.fixture(autouse=True)
def reset_structlog():
    """Restore default structlog configuration after each test."""
    yield
    structlog.reset_defaults()


@pytest.mark.unit
def test_setup_logger_json_to_file(tmp_path):
    """Test JSON log lines are written to the log directory."""
    logger = setup_logger(log_level="DEBUG", log_dir=str(tmp_path), log_format="json")

    log_connection_event(logger, EventType.WEBSOCKET_CONNECTED, "inverse", livenet=False)

    log_files = list(tmp_path.glob("stream_*.log"))
    assert len(log_files) == 1

    entry = json.loads(log_files[0].read_text().strip().splitlines()[-1])
    assert entry["event"] == EventType.WEBSOCKET_CONNECTED
    assert entry["ws_key"] == "inverse"
    assert entry["service"] == "bybit-stream"
    assert entry["level"] == "info"
    assert entry["livenet"] is False


@pytest.mark.unit
def test_setup_logger_filters_level(tmp_path):
    """Test records below the configured level are dropped."""
    logger = setup_logger(log_level="WARNING", log_dir=str(tmp_path))

    logger.info("ignored")
    logger.warning("kept")

    lines = list(tmp_path.glob("stream_*.log"))[0].read_text().strip().splitlines()
    assert [json.loads(line)["event"] for line in lines] == ["kept"]


@pytest.mark.unit
def test_setup_logger_console(capsys):
    """Test console rendering to stdout."""
    logger = setup_logger(log_format="console")

    logger.info("console message", ws_key="inverse")

    assert "console message" in capsys.readouterr().out


@pytest.mark.unit
def test_get_logger():
    """Test named and anonymous loggers."""
    assert get_logger("bybit_stream.test") is not None
    assert get_logger() is not None


@pytest.mark.unit
def test_connection_error():
    """Test handshake error details."""
    error = ConnectionError("handshake failed", status_code=401, url="wss://stream.bybit.com/realtime")

    assert isinstance(error, WebSocketError)
    assert isinstance(error, BybitStreamError)
    assert error.is_unauthorized is True
    assert error.url == "wss://stream.bybit.com/realtime"
    assert str(error) == "handshake failed"
    assert ConnectionError("refused").is_unauthorized is False


@pytest.mark.unit
def test_client_logs_carry_module_name():
    """Test package loggers are bound to their module name."""
    with capture_logs() as logs:
        WebsocketClient()

    entry = next(log for log in logs if log["event"] == "Websocket client initialized")
    assert entry["logger_name"] == "bybit_stream.exchange.websocket_client"
