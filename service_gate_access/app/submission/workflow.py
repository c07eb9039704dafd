"""
AddAddress orchestration.
"""

import uuid
from dataclasses import dataclass
from typing import Optional, List

from shared.errors import AuthenticationError, CommitFailureError, NoServiceAreaError, ServiceError
from shared.logging import get_logger
from shared.observability import ObservabilityManager, get_observability_manager
from shared.tracing import trace_operation
from ..matching import AddressMatcher, GateGroupCatalog
from ..models import Address, CallerIdentity, GateGroup
from ..permissions import PermissionGrantEngine
from ..store import StoreError, TransactionalStore
from ..store.paths import address_path, gate_group_path, user_path, verification_path
from ..verification import VerificationWorkflow


@dataclass
class SubmissionResult:
    """Outcome of a committed address submission."""
    address_id: str
    address_ref: str
    verification_ref: str
    gate_group_ids: List[str]
    granted_gate_ids: List[str]


class AddressSubmissionWorkflow:
    """Grants provisional gate permissions for a submitted address."""

    def __init__(
        self,
        store: TransactionalStore,
        verification: VerificationWorkflow,
        matcher: Optional[AddressMatcher] = None,
        grant_engine: Optional[PermissionGrantEngine] = None,
        observability: Optional[ObservabilityManager] = None,
    ):
        self.store = store
        self.verification = verification
        self.catalog = GateGroupCatalog(store)
        self.matcher = matcher or AddressMatcher()
        self.grant_engine = grant_engine or PermissionGrantEngine()
        self.observability = observability or get_observability_manager("gate_access")
        self.logger = get_logger("gate_access.submission")

    async def submit(self, caller: Optional[CallerIdentity], address: Address) -> SubmissionResult:
        """Match, fan out and commit atomically.

        Raises AuthenticationError, NoServiceAreaError or CommitFailureError;
        nothing is written unless the whole commit succeeds.
        """
        if caller is None:
            raise AuthenticationError("User must be authenticated to add address")

        matched = await self._match(address)
        if not matched:
            self.observability.metrics.increment_counter("address_submissions_total", outcome="no_service_area")
            self.observability.log_business_event(
                "address_rejected",
                user_id=caller.user_id,
                postal_code=address.postal_code,
                country=address.country
            )
            raise NoServiceAreaError(
                "Address not within any gate group's service area",
                details={"postal_code": address.postal_code}
            )

        address_id = uuid.uuid4().hex
        address_ref = address_path(caller.user_id, address_id)
        verification_ref = verification_path(address_ref, uuid.uuid4().hex)

        delta = self.grant_engine.grant(matched, address_ref)
        record = self.verification.new_record()

        address_data = address.to_dict()
        address_data["associated_gate_groups"] = [
            gate_group_path(group.gate_group_id) for group in matched
        ]

        try:
            with self.observability.metrics.time_operation("store_commit_duration_seconds", workflow="add_address"), \
                    trace_operation("store.commit", workflow="add_address", user_id=caller.user_id):
                async with self.store.transaction() as txn:
                    user_doc = await txn.get(user_path(caller.user_id))
                    existing = user_doc.data.get("permissible_gates", {}) if user_doc else {}
                    permissions, written = self.grant_engine.merge(existing, delta)

                    txn.set(user_path(caller.user_id), {"permissible_gates": permissions}, merge=True)
                    txn.create(address_ref, address_data)
                    txn.create(verification_ref, record.to_dict())
        except StoreError as e:
            self.observability.metrics.increment_counter("address_submissions_total", outcome="commit_failure")
            self.observability.log_error(
                "submission_commit_failed",
                str(e),
                user_id=caller.user_id,
                path=address_ref,
                operation="add_address"
            )
            raise CommitFailureError("Failed to commit address submission") from e

        self.observability.metrics.increment_counter("address_submissions_total", outcome="accepted")
        self.observability.log_business_event(
            "address_submitted",
            user_id=caller.user_id,
            address_ref=address_ref,
            gate_groups=len(matched),
            permissions_granted=written
        )

        return SubmissionResult(
            address_id=address_id,
            address_ref=address_ref,
            verification_ref=verification_ref,
            gate_group_ids=[group.gate_group_id for group in matched],
            granted_gate_ids=sorted(delta),
        )

    async def _match(self, address: Address) -> List[GateGroup]:
        try:
            gate_groups = await self.catalog.load_gate_groups()
            matched = self.matcher.match(address, gate_groups)
            return await self.catalog.attach_gates(matched)
        except StoreError as e:
            self.observability.log_error(
                "gate_group_scan_failed",
                str(e),
                operation="add_address"
            )
            raise ServiceError("Failed to load gate groups") from e
