"""
Caller identity resolution for the Gate Access service.
"""

import secrets
from typing import Optional

from fastapi import Request

from shared.logging import get_logger
from shared.errors import AuthorizationError
from .adapters.auth_client import IdentityProviderClient
from .models import CallerIdentity


class IdentityResolver:
    """Turns request headers into an optional caller identity.

    Missing or invalid credentials resolve to None; the workflows decide how
    to reject an anonymous caller.
    """

    def __init__(self, client: IdentityProviderClient, operator_api_key: Optional[str] = None):
        self.client = client
        self.operator_api_key = operator_api_key
        self.logger = get_logger("gate_access.identity")

    async def resolve(self, request: Request) -> Optional[CallerIdentity]:
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return None

        token = auth_header[7:].strip()
        if not token:
            return None

        identity = await self.client.verify_token(token)
        if identity:
            self.logger.debug("Request authenticated", user_id=identity.user_id)
        return identity

    def require_operator(self, request: Request) -> None:
        """Operator endpoints require the configured X-API-Key."""
        api_key = request.headers.get("X-API-Key")
        if not self.operator_api_key or not api_key:
            raise AuthorizationError("Operator API key required")

        if not secrets.compare_digest(api_key, self.operator_api_key):
            self.logger.warning("Invalid operator API key", api_key=api_key[:4] + "...")
            raise AuthorizationError("Invalid operator API key")
