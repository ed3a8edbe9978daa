"""
Unit tests for handshake signing.
"""

import hashlib
import hmac
import pytest
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qsl

from bybit_stream.exchange.auth import WsAuthProvider, serialize_params, sign_message
from bybit_stream.exchange.exceptions import SigningError


@pytest.mark.unit
def test_sign_message():
    """Test HMAC-SHA256 hex signature."""
    expected = hmac.new(b"secret", b"GET/realtime1600000000000", hashlib.sha256).hexdigest()

    assert sign_message("GET/realtime1600000000000", "secret") == expected
    assert len(expected) == 64


@pytest.mark.unit
def test_serialize_params_sorts_keys():
    """Test parameters are serialized in key order."""
    params = {"signature": "abc", "api_key": "key", "expires": 123}

    assert serialize_params(params) == "api_key=key&expires=123&signature=abc"


@pytest.mark.unit
def test_serialize_params_strict_validation():
    """Test missing values are rejected only in strict mode."""
    assert serialize_params({"a": None}) == "a=None"

    with pytest.raises(SigningError):
        serialize_params({"a": None}, strict_validation=True)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_get_auth_params_without_credentials():
    """Test missing credentials yield an empty query string."""
    assert await WsAuthProvider().get_auth_params() == ""
    assert await WsAuthProvider(key="key").get_auth_params() == ""
    assert await WsAuthProvider(secret="secret").get_auth_params() == ""


@pytest.mark.asyncio
@pytest.mark.unit
async def test_get_auth_params():
    """Test signed query string with local clock, offset and skew."""
    time_offset = AsyncMock(return_value=-250)
    provider = WsAuthProvider(
        key="test-key",
        secret="test-secret",
        expires_skew=5000,
        time_offset_provider=time_offset
    )

    with patch("bybit_stream.exchange.auth.time.time", return_value=1600000000.0):
        query = await provider.get_auth_params()

    assert query.startswith("?api_key=test-key&expires=")
    params = dict(parse_qsl(query[1:]))

    assert list(params) == ["api_key", "expires", "signature"]
    assert params["expires"] == str(1600000000000 - 250 + 5000)
    assert params["signature"] == sign_message(f"GET/realtime{params['expires']}", "test-secret")
    time_offset.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_get_time_offset_default():
    """Test the local clock is trusted without an offset provider."""
    assert await WsAuthProvider(key="k", secret="s").get_time_offset() == 0
