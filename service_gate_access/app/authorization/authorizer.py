"""
Gate actuation authorization.
"""

from typing import Optional

from shared.errors import AuthenticationError, ServiceError
from shared.logging import get_logger
from shared.observability import ObservabilityManager, get_observability_manager
from ..models import AuthorizationDecision, AuthorizationResult, CallerIdentity, Gate, PermissionEntry
from ..store import StoreError, TransactionalStore
from ..store.paths import leaf_id, parent_of, user_path


class GateAuthorizer:
    """Checks a caller's verified permission for one gate."""

    def __init__(self, store: TransactionalStore, observability: Optional[ObservabilityManager] = None):
        self.store = store
        self.observability = observability or get_observability_manager("gate_access")
        self.logger = get_logger("gate_access.authorizer")

    async def authorize(self, caller: Optional[CallerIdentity], gate_id: str) -> AuthorizationResult:
        """Authorized only for a verified entry whose gate has a credential.

        A gate missing from the caller's map is Unauthorized, whether or not
        the gate exists.
        """
        if caller is None:
            raise AuthenticationError("User must be authenticated to open a gate")

        try:
            user_doc = await self.store.get(user_path(caller.user_id))
        except StoreError as e:
            raise ServiceError("Failed to load permissions") from e

        permissions = user_doc.data.get("permissible_gates", {}) if user_doc else {}
        raw_entry = permissions.get(gate_id)

        if raw_entry is None:
            return self._decide(caller, gate_id, AuthorizationDecision.UNAUTHORIZED, "No permission for gate")

        entry = PermissionEntry.from_dict(raw_entry)
        if not entry.verified:
            return self._decide(caller, gate_id, AuthorizationDecision.UNAUTHORIZED, "Address not verified")

        try:
            gate_doc = await self.store.get(entry.gate_reference)
        except StoreError as e:
            raise ServiceError("Failed to load gate") from e

        if gate_doc is None or not gate_doc.data.get("key"):
            self.observability.log_error(
                "gate_credential_missing",
                "Gate record or actuator credential missing",
                user_id=caller.user_id,
                path=entry.gate_reference,
                operation="open_gate"
            )
            return self._decide(caller, gate_id, AuthorizationDecision.NOT_FOUND, "Gate not found")

        # gate-groups/{group}/gates/{gate}
        gate = Gate.from_dict(gate_id, leaf_id(parent_of(parent_of(gate_doc.path))), gate_doc.data)
        return self._decide(caller, gate_id, AuthorizationDecision.AUTHORIZED, gate=gate)

    def _decide(self, caller: CallerIdentity, gate_id: str, decision: AuthorizationDecision,
                reason: Optional[str] = None, gate: Optional[Gate] = None) -> AuthorizationResult:
        self.observability.metrics.increment_counter("gate_authorizations_total", decision=decision.value)
        self.logger.info(
            "Gate authorization decision",
            user_id=caller.user_id,
            gate_id=gate_id,
            decision=decision.value,
            reason=reason
        )
        return AuthorizationResult(decision=decision, gate=gate, reason=reason)
