"""
Unit tests for the identity provider and actuator clients.
"""

import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import AuthenticationError, ExternalServiceError
from shared.retry import RetryError
from service_gate_access.app.adapters import ActuatorClient, IdentityProviderClient
from service_gate_access.app.models import CallerIdentity, Gate


class TestIdentityProviderClient:
    """Test cases for IdentityProviderClient."""

    @pytest.fixture
    def client(self):
        client = IdentityProviderClient("http://auth:8010/")
        client.circuit_breaker.reset()
        return client

    @pytest.mark.asyncio
    async def test_valid_token(self, client):
        response = httpx.Response(200, json={
            "valid": True,
            "user_info": {"sub": "user-1", "email": "ada@example.com"}
        })

        with patch.object(client, "_post_verify", AsyncMock(return_value=response)):
            identity = await client.verify_token("token")

        assert identity == CallerIdentity(user_id="user-1")
        assert identity.claims["email"] == "ada@example.com"

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = httpx.Response(200, json={"valid": False, "error": "expired"})

        with patch.object(client, "_post_verify", AsyncMock(return_value=response)):
            assert await client.verify_token("token") is None

    @pytest.mark.asyncio
    async def test_token_without_user_id(self, client):
        response = httpx.Response(200, json={"valid": True, "user_info": {}})

        with patch.object(client, "_post_verify", AsyncMock(return_value=response)):
            assert await client.verify_token("token") is None

    @pytest.mark.asyncio
    async def test_user_id_with_path_separator_rejected(self, client):
        response = httpx.Response(200, json={"valid": True, "user_info": {"user_id": "a/b"}})

        with patch.object(client, "_post_verify", AsyncMock(return_value=response)):
            assert await client.verify_token("token") is None

    @pytest.mark.asyncio
    async def test_auth_service_error_status(self, client):
        with patch.object(client, "_post_verify", AsyncMock(return_value=httpx.Response(503))):
            with pytest.raises(AuthenticationError):
                await client.verify_token("token")

    @pytest.mark.asyncio
    async def test_auth_service_unreachable(self, client):
        error = RetryError("exhausted", last_exception=httpx.ConnectError("refused"), attempts=3)

        with patch.object(client, "_post_verify", AsyncMock(side_effect=error)):
            with pytest.raises(AuthenticationError):
                await client.verify_token("token")

    def test_base_url_normalized(self, client):
        assert client.auth_service_url == "http://auth:8010"


class TestActuatorClient:
    """Test cases for ActuatorClient."""

    @pytest.fixture
    def observability(self):
        return MagicMock()

    @pytest.fixture
    def client(self, observability):
        client = ActuatorClient("http://actuator:8090", timeout=1.0, observability=observability)
        client.circuit_breaker.reset()
        return client

    @pytest.fixture
    def gate(self):
        return Gate("north", "gg1", key="key-north")

    @pytest.mark.asyncio
    async def test_dispatch_open_sends_key(self, client, gate, observability):
        with patch.object(client, "_post", AsyncMock()) as mock_post:
            sent = await client.dispatch_open(gate)

        assert sent is True
        mock_post.assert_awaited_once_with("/open", {"key": "key-north"})
        observability.metrics.increment_counter.assert_called_with(
            "actuator_dispatch_total", command="open", status="sent"
        )

    @pytest.mark.asyncio
    async def test_dispatch_pulse(self, client):
        with patch.object(client, "_post", AsyncMock()) as mock_post:
            assert await client.dispatch_pulse("diagnostic", "green") is True

        mock_post.assert_awaited_once_with("/pulse", {"label": "diagnostic", "color": "green"})

    @pytest.mark.asyncio
    async def test_transport_failure_is_logged(self, client, gate, observability):
        with patch.object(client, "_post", AsyncMock(side_effect=httpx.ConnectError("refused"))):
            sent = await client.dispatch_open(gate)

        assert sent is False
        observability.log_error.assert_called_once()
        args, kwargs = observability.log_error.call_args
        assert args[0] == "actuator_dispatch_failed"
        assert kwargs["command"] == "open"
        assert kwargs["gate_id"] == "north"

    @pytest.mark.asyncio
    async def test_error_status_is_logged(self, client, gate, observability):
        error = ExternalServiceError("actuator", "status 500")

        with patch.object(client, "_post", AsyncMock(side_effect=error)):
            assert await client.dispatch_open(gate) is False

        assert observability.log_error.call_args[0][0] == "actuator_dispatch_failed"

    @pytest.mark.asyncio
    async def test_drain_waits_for_pending(self, client, gate):
        with patch.object(client, "_post", AsyncMock()) as mock_post:
            client.dispatch_open(gate)
            await client.drain()

        mock_post.assert_awaited_once()
        assert not client._pending
