"""
Verification code validation and commit.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, List

from shared.errors import (
    AuthenticationError, CommitFailureError, RateLimitError, RecordNotFoundError
)
from shared.logging import get_logger
from shared.observability import ObservabilityManager, get_observability_manager
from shared.tracing import trace_operation
from ..models import CallerIdentity, VerificationRecord
from ..permissions import PermissionGrantEngine
from ..store import Document, StoreError, Transaction, TransactionalStore
from ..store.paths import address_path, user_path, verifications_path
from .codes import VerificationCodeGenerator
from .limiter import RedisAttemptLimiter


class VerificationOutcome(str, Enum):
    VERIFIED = "verified"
    ALREADY_VERIFIED = "already_verified"
    INVALID_CODE = "invalid_code"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VerificationWorkflow:
    """Issues verification records and validates submitted codes."""

    def __init__(
        self,
        store: TransactionalStore,
        code_generator: Optional[VerificationCodeGenerator] = None,
        limiter: Optional[RedisAttemptLimiter] = None,
        grant_engine: Optional[PermissionGrantEngine] = None,
        observability: Optional[ObservabilityManager] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.code_generator = code_generator or VerificationCodeGenerator()
        self.limiter = limiter
        self.grant_engine = grant_engine or PermissionGrantEngine()
        self.observability = observability or get_observability_manager("gate_access")
        self.clock = clock
        self.logger = get_logger("gate_access.verification")

    def new_record(self) -> VerificationRecord:
        """A fresh Pending record with a newly drawn code."""
        return VerificationRecord(
            verification_code=self.code_generator.generate(),
            created_at=self.clock(),
        )

    async def verify(
        self,
        caller: Optional[CallerIdentity],
        address_id: str,
        submitted_code: str,
    ) -> VerificationOutcome:
        """Validate ``submitted_code`` for one of the caller's addresses.

        Raises AuthenticationError, RateLimitError, RecordNotFoundError or
        CommitFailureError. An invalid code is returned, not raised.
        """
        if caller is None:
            raise AuthenticationError("User must be authenticated to verify an address")

        address_ref = address_path(caller.user_id, address_id)

        if self.limiter and await self.limiter.is_blocked(address_ref):
            self.observability.metrics.increment_counter("verification_attempts_total", outcome="blocked")
            raise RateLimitError(
                "Too many invalid verification attempts",
                details={"address_ref": address_ref}
            )

        try:
            with self.observability.metrics.time_operation("store_commit_duration_seconds", workflow="verify_address"), \
                    trace_operation("store.commit", workflow="verify_address", user_id=caller.user_id):
                async with self.store.transaction() as txn:
                    record_doc = await self._load_record(txn, address_ref)
                    record = VerificationRecord.from_dict(record_doc.data)

                    if record.is_verified:
                        outcome = VerificationOutcome.ALREADY_VERIFIED
                    elif submitted_code.strip() != record.verification_code:
                        outcome = VerificationOutcome.INVALID_CODE
                    else:
                        await self._stage_verification(txn, caller, address_ref, record_doc)
                        outcome = VerificationOutcome.VERIFIED
        except StoreError as e:
            self.observability.log_error(
                "verification_commit_failed",
                str(e),
                user_id=caller.user_id,
                path=address_ref,
                operation="verify_address"
            )
            raise CommitFailureError("Failed to commit verification") from e

        await self._after_verify(caller, address_ref, outcome)
        return outcome

    async def _load_record(self, txn: Transaction, address_ref: str) -> Document:
        records: List[Document] = await txn.list_collection(verifications_path(address_ref))
        if not records:
            raise RecordNotFoundError(
                verifications_path(address_ref),
                "Verification record not found"
            )
        # One record per address; prefer the newest if an operator re-issued one
        return max(records, key=lambda doc: doc.data.get("created_at", ""))

    async def _stage_verification(
        self,
        txn: Transaction,
        caller: CallerIdentity,
        address_ref: str,
        record_doc: Document,
    ) -> None:
        user_doc = await txn.get(user_path(caller.user_id))
        if user_doc is None:
            raise RecordNotFoundError(user_path(caller.user_id), "User record not found")

        permissions, flipped = self.grant_engine.verify_for_address(
            user_doc.data.get("permissible_gates", {}),
            address_ref
        )

        txn.update(user_doc.path, {"permissible_gates": permissions})
        txn.update(record_doc.path, {"verified_at": self.clock().isoformat()})

        self.logger.debug(
            "Verification staged",
            address_ref=address_ref,
            permissions_verified=flipped
        )

    async def _after_verify(self, caller: CallerIdentity, address_ref: str,
                            outcome: VerificationOutcome) -> None:
        self.observability.metrics.increment_counter(
            "verification_attempts_total", outcome=outcome.value
        )

        if outcome == VerificationOutcome.INVALID_CODE:
            attempts = 0
            if self.limiter:
                attempts = await self.limiter.record_failure(address_ref)
            self.observability.log_business_event(
                "verification_rejected",
                user_id=caller.user_id,
                address_ref=address_ref,
                attempts=attempts
            )
            return

        if self.limiter:
            await self.limiter.reset(address_ref)

        if outcome == VerificationOutcome.VERIFIED:
            self.observability.log_business_event(
                "address_verified",
                user_id=caller.user_id,
                address_ref=address_ref
            )

    async def mark_mailed(self, user_id: str, address_id: str) -> bool:
        """Stamp ``mailed_at`` once on the address's verification record.

        Returns False when the record was already stamped.
        """
        address_ref = address_path(user_id, address_id)
        try:
            async with self.store.transaction() as txn:
                record_doc = await self._load_record(txn, address_ref)
                if record_doc.data.get("mailed_at"):
                    return False
                txn.update(record_doc.path, {"mailed_at": self.clock().isoformat()})
        except StoreError as e:
            self.observability.log_error(
                "mailed_commit_failed",
                str(e),
                user_id=user_id,
                path=address_ref,
                operation="mark_mailed"
            )
            raise CommitFailureError("Failed to record mailing") from e

        self.observability.log_business_event(
            "verification_mailed",
            user_id=user_id,
            address_ref=address_ref
        )
        return True

