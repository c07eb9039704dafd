"""
Identity provider client for the Gate Access service.
"""

from typing import Optional

import httpx

from shared.logging import get_logger
from shared.errors import AuthenticationError
from shared.circuit_breaker import CircuitBreakerOpenException, get_circuit_breaker
from shared.retry import RetryConfig, RetryError, retry_on_exception
from ..models import CallerIdentity


class IdentityProviderClient:
    """Resolves bearer tokens to caller identities via the auth service."""

    def __init__(self, auth_service_url: str, timeout: float = 10.0):
        self.auth_service_url = auth_service_url.rstrip("/")
        self.timeout = timeout
        self.logger = get_logger("gate_access.auth_client")
        self.circuit_breaker = get_circuit_breaker(
            "auth_service",
            failure_threshold=3,
            recovery_timeout=30.0
        )

    @retry_on_exception((httpx.TransportError,), config=RetryConfig(max_attempts=3, base_delay=0.5, max_delay=2.0))
    async def _post_verify(self, token: str) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(
                f"{self.auth_service_url}/auth/verify",
                json={"token": token}
            )

    async def verify_token(self, token: str) -> Optional[CallerIdentity]:
        """Return the caller for a valid token, None for an invalid one.

        Raises AuthenticationError when the identity provider cannot answer.
        """
        try:
            response = await self.circuit_breaker.call(self._post_verify, token)
        except (RetryError, CircuitBreakerOpenException) as e:
            self.logger.error("Auth service unavailable", error=str(e))
            raise AuthenticationError(
                "Auth service unavailable",
                details={"error": str(e)}
            ) from e

        if response.status_code != 200:
            self.logger.error("Auth service error", status_code=response.status_code)
            raise AuthenticationError(
                f"Auth service error: {response.status_code}",
                details={"status_code": response.status_code}
            )

        result = response.json()
        if not result.get("valid"):
            self.logger.warning("Token validation failed", error=result.get("error"))
            return None

        user_info = result.get("user_info") or {}
        user_id = user_info.get("user_id") or user_info.get("sub")
        if not user_id:
            self.logger.warning("Token accepted without a user id")
            return None

        # User ids become a record path segment
        if "/" in str(user_id):
            self.logger.warning("Token accepted with an unusable user id", user_id=str(user_id))
            return None

        return CallerIdentity(user_id=str(user_id), claims=user_info)

    async def health_check(self) -> bool:
        return not self.circuit_breaker.is_open()
