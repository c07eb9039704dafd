"""
Unit tests for the address submission and verification workflows.
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from redis.exceptions import RedisError

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import (
    AuthenticationError, CommitFailureError, NoServiceAreaError, RateLimitError, RecordNotFoundError,
    ServiceError
)
from service_gate_access.app.models import Address, CallerIdentity
from service_gate_access.app.store import InMemoryDocumentStore, StoreError
from service_gate_access.app.submission import AddressSubmissionWorkflow
from service_gate_access.app.verification import (
    RedisAttemptLimiter, VerificationCodeGenerator, VerificationOutcome, VerificationWorkflow
)

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def seed_gate_groups(store):
    store.seed("gate-groups/gg1", {
        "name": "Elm Court",
        "permissible_address_ranges": [{
            "country": "US",
            "postal_code": "90210",
            "thoroughfare": "Elm",
            "premise_range_start": "100",
            "premise_range_stop": "200",
        }],
    })
    store.seed("gate-groups/gg1/gates/north", {"key": "key-north"})
    store.seed("gate-groups/gg1/gates/south", {"key": "key-south"})
    store.seed("gate-groups/gg2", {
        "permissible_address_ranges": [{
            "country": "US",
            "postal_code": "10001",
            "thoroughfare": "Broadway",
            "premise_range_start": "1",
            "premise_range_stop": "999",
        }],
    })
    store.seed("gate-groups/gg2/gates/lobby", {"key": "key-lobby"})


@pytest.fixture
def store():
    store = InMemoryDocumentStore()
    seed_gate_groups(store)
    return store


@pytest.fixture
def observability():
    return MagicMock()


@pytest.fixture
def verification(store, observability):
    return VerificationWorkflow(
        store,
        code_generator=VerificationCodeGenerator(4),
        observability=observability,
        clock=lambda: FIXED_NOW
    )


@pytest.fixture
def submission(store, verification, observability):
    return AddressSubmissionWorkflow(store, verification, observability=observability)


@pytest.fixture
def caller():
    return CallerIdentity(user_id="user-1")


@pytest.fixture
def elm_address():
    return Address(
        country="US",
        administrative_area="CA",
        locality="Beverly Hills",
        postal_code="90210",
        thoroughfare="Elm St",
        premise="120",
        unit="2B"
    )


class TestAddressSubmissionWorkflow:
    """Test cases for AddressSubmissionWorkflow."""

    @pytest.mark.asyncio
    async def test_submit_requires_caller(self, submission, store, elm_address):
        before = store.snapshot()
        with pytest.raises(AuthenticationError):
            await submission.submit(None, elm_address)
        assert store.snapshot() == before

    @pytest.mark.asyncio
    async def test_submit_outside_service_area(self, submission, store, caller, observability):
        before = store.snapshot()
        address = Address("US", "TX", "Austin", "73301", "Elm St", "120")

        with pytest.raises(NoServiceAreaError):
            await submission.submit(caller, address)

        assert store.snapshot() == before
        observability.log_business_event.assert_called_once()
        assert observability.log_business_event.call_args[0][0] == "address_rejected"

    @pytest.mark.asyncio
    async def test_submit_commits_all_records(self, submission, store, caller, elm_address):
        result = await submission.submit(caller, elm_address)
        snapshot = store.snapshot()

        assert result.address_ref == f"users/user-1/addresses/{result.address_id}"
        assert result.gate_group_ids == ["gg1"]
        assert result.granted_gate_ids == ["north", "south"]

        permissions = snapshot["users/user-1"]["permissible_gates"]
        assert permissions == {
            "north": {
                "address_reference": result.address_ref,
                "gate_reference": "gate-groups/gg1/gates/north",
                "verified": False,
            },
            "south": {
                "address_reference": result.address_ref,
                "gate_reference": "gate-groups/gg1/gates/south",
                "verified": False,
            },
        }

        address_doc = snapshot[result.address_ref]
        assert address_doc["premise"] == "120"
        assert address_doc["unit"] == "2B"
        assert address_doc["associated_gate_groups"] == ["gate-groups/gg1"]

        record = snapshot[result.verification_ref]
        assert len(record["verification_code"]) == 4
        assert record["verification_code"].isdigit()
        assert record["created_at"] == FIXED_NOW.isoformat()
        assert record["verified_at"] is None

        assert store.commit_count == 1

    @pytest.mark.asyncio
    async def test_submit_preserves_other_user_fields(self, submission, store, caller, elm_address):
        store.seed("users/user-1", {"display_name": "Ada", "permissible_gates": {}})
        await submission.submit(caller, elm_address)
        assert store.snapshot()["users/user-1"]["display_name"] == "Ada"

    @pytest.mark.asyncio
    async def test_group_without_gates_still_succeeds(self, submission, store, caller):
        store.seed("gate-groups/gg3", {
            "permissible_address_ranges": [{
                "country": "US",
                "postal_code": "60601",
                "thoroughfare": "Lake",
                "premise_range_start": "0",
                "premise_range_stop": "50",
            }],
        })
        result = await submission.submit(caller, Address("US", "IL", "Chicago", "60601", "Lake Shore Dr", "10"))

        assert result.granted_gate_ids == []
        assert store.snapshot()["users/user-1"]["permissible_gates"] == {}
        assert result.verification_ref in store.snapshot()

    @pytest.mark.asyncio
    async def test_failed_commit_writes_nothing(self, submission, store, caller, elm_address, observability):
        before = store.snapshot()

        with patch.object(InMemoryDocumentStore, "_apply", side_effect=StoreError("write failed")):
            with pytest.raises(CommitFailureError):
                await submission.submit(caller, elm_address)

        assert store.snapshot() == before
        assert observability.log_error.call_args[0][0] == "submission_commit_failed"

    @pytest.mark.asyncio
    async def test_gate_group_scan_failure(self, submission, store, caller, elm_address):
        store.list_collection = AsyncMock(side_effect=StoreError("connection lost"))
        with pytest.raises(ServiceError):
            await submission.submit(caller, elm_address)

    @pytest.mark.asyncio
    async def test_verified_permission_survives_new_submission(
        self, submission, verification, store, caller, elm_address
    ):
        first = await submission.submit(caller, elm_address)
        code = store.snapshot()[first.verification_ref]["verification_code"]
        assert await verification.verify(caller, first.address_id, code) == VerificationOutcome.VERIFIED

        second = await submission.submit(caller, Address("US", "CA", "Beverly Hills", "90210", "Elm St", "130"))
        permissions = store.snapshot()["users/user-1"]["permissible_gates"]

        assert permissions["north"]["verified"] is True
        assert permissions["north"]["address_reference"] == first.address_ref
        assert second.address_ref in store.snapshot()


class TestVerificationWorkflow:
    """Test cases for VerificationWorkflow."""

    async def _submit(self, submission, caller, address):
        result = await submission.submit(caller, address)
        code = submission.store.snapshot()[result.verification_ref]["verification_code"]
        return result, code

    @pytest.mark.asyncio
    async def test_verify_requires_caller(self, verification):
        with pytest.raises(AuthenticationError):
            await verification.verify(None, "addr-1", "1234")

    @pytest.mark.asyncio
    async def test_correct_code_verifies(self, submission, verification, store, caller, elm_address, observability):
        result, code = await self._submit(submission, caller, elm_address)

        outcome = await verification.verify(caller, result.address_id, code)
        snapshot = store.snapshot()

        assert outcome == VerificationOutcome.VERIFIED
        assert snapshot[result.verification_ref]["verified_at"] == FIXED_NOW.isoformat()
        assert all(entry["verified"] for entry in snapshot["users/user-1"]["permissible_gates"].values())
        observability.log_business_event.assert_any_call(
            "address_verified", user_id="user-1", address_ref=result.address_ref
        )

    @pytest.mark.asyncio
    async def test_wrong_code_is_invalid(self, submission, verification, store, caller, elm_address):
        result, code = await self._submit(submission, caller, elm_address)
        before = store.snapshot()
        wrong = "0000" if code != "0000" else "1111"

        assert await verification.verify(caller, result.address_id, wrong) == VerificationOutcome.INVALID_CODE
        assert store.snapshot() == before

    @pytest.mark.asyncio
    async def test_already_verified_is_idempotent(self, submission, verification, store, caller, elm_address):
        result, code = await self._submit(submission, caller, elm_address)
        await verification.verify(caller, result.address_id, code)
        before = store.snapshot()
        commits = store.commit_count

        assert await verification.verify(caller, result.address_id, code) == VerificationOutcome.ALREADY_VERIFIED
        assert await verification.verify(caller, result.address_id, "wrong") == VerificationOutcome.ALREADY_VERIFIED
        assert store.snapshot() == before
        assert store.commit_count == commits

    @pytest.mark.asyncio
    async def test_verify_flips_only_that_address(self, submission, verification, store, caller, elm_address):
        elm, elm_code = await self._submit(submission, caller, elm_address)
        await self._submit(submission, caller, Address("US", "NY", "New York", "10001", "Broadway", "55"))

        await verification.verify(caller, elm.address_id, elm_code)
        permissions = store.snapshot()["users/user-1"]["permissible_gates"]

        assert permissions["north"]["verified"] is True
        assert permissions["south"]["verified"] is True
        assert permissions["lobby"]["verified"] is False

    @pytest.mark.asyncio
    async def test_missing_record(self, verification, caller):
        with pytest.raises(RecordNotFoundError) as exc_info:
            await verification.verify(caller, "does-not-exist", "1234")
        assert exc_info.value.path == "users/user-1/addresses/does-not-exist/verifications"

    @pytest.mark.asyncio
    async def test_missing_user_record(self, verification, store, caller):
        store.seed("users/user-1/addresses/a1/verifications/v1", {
            "verification_code": "1234",
            "created_at": FIXED_NOW.isoformat(),
        })
        before = store.snapshot()

        with pytest.raises(RecordNotFoundError):
            await verification.verify(caller, "a1", "1234")
        assert store.snapshot() == before

    @pytest.mark.asyncio
    async def test_newest_record_wins(self, verification, store, caller):
        store.seed("users/user-1", {"permissible_gates": {}})
        store.seed("users/user-1/addresses/a1/verifications/old", {
            "verification_code": "1111",
            "created_at": "2024-01-01T00:00:00+00:00",
        })
        store.seed("users/user-1/addresses/a1/verifications/new", {
            "verification_code": "2222",
            "created_at": "2024-03-01T00:00:00+00:00",
        })

        assert await verification.verify(caller, "a1", "1111") == VerificationOutcome.INVALID_CODE
        assert await verification.verify(caller, "a1", "2222") == VerificationOutcome.VERIFIED

    @pytest.mark.asyncio
    async def test_commit_failure(self, submission, verification, store, caller, elm_address):
        result, code = await self._submit(submission, caller, elm_address)
        before = store.snapshot()

        with patch.object(InMemoryDocumentStore, "_apply", side_effect=StoreError("write failed")):
            with pytest.raises(CommitFailureError):
                await verification.verify(caller, result.address_id, code)

        assert store.snapshot() == before

    @pytest.mark.asyncio
    async def test_mark_mailed_stamps_once(self, submission, verification, store, caller, elm_address):
        result, _ = await self._submit(submission, caller, elm_address)

        assert await verification.mark_mailed("user-1", result.address_id) is True
        assert store.snapshot()[result.verification_ref]["mailed_at"] == FIXED_NOW.isoformat()
        assert await verification.mark_mailed("user-1", result.address_id) is False


class TestAttemptLimiting:
    """Test cases for invalid attempt limiting."""

    @pytest.fixture
    def redis_client(self):
        client = AsyncMock()
        client.get.return_value = None
        client.incr.return_value = 1
        return client

    @pytest.fixture
    def limiter(self, redis_client):
        return RedisAttemptLimiter("redis://localhost:6379/0", max_attempts=3, window_seconds=600,
                                   client=redis_client)

    @pytest.fixture
    def limited_verification(self, store, limiter, observability):
        return VerificationWorkflow(store, limiter=limiter, observability=observability, clock=lambda: FIXED_NOW)

    @pytest.mark.asyncio
    async def test_blocked_address_is_rejected_before_lookup(self, limited_verification, redis_client, caller):
        redis_client.get.return_value = "3"

        with pytest.raises(RateLimitError):
            await limited_verification.verify(caller, "addr-1", "1234")

    @pytest.mark.asyncio
    async def test_invalid_code_counts_attempt(self, limited_verification, redis_client, store, caller):
        store.seed("users/user-1", {"permissible_gates": {}})
        store.seed("users/user-1/addresses/a1/verifications/v1", {
            "verification_code": "1234",
            "created_at": FIXED_NOW.isoformat(),
        })

        outcome = await limited_verification.verify(caller, "a1", "9999")

        assert outcome == VerificationOutcome.INVALID_CODE
        redis_client.incr.assert_awaited_once_with("verification_attempts:users/user-1/addresses/a1")
        redis_client.expire.assert_awaited_once_with("verification_attempts:users/user-1/addresses/a1", 600)

    @pytest.mark.asyncio
    async def test_success_resets_counter(self, limited_verification, redis_client, store, caller):
        store.seed("users/user-1", {"permissible_gates": {}})
        store.seed("users/user-1/addresses/a1/verifications/v1", {
            "verification_code": "1234",
            "created_at": FIXED_NOW.isoformat(),
        })

        assert await limited_verification.verify(caller, "a1", "1234") == VerificationOutcome.VERIFIED
        redis_client.delete.assert_awaited_once_with("verification_attempts:users/user-1/addresses/a1")

    @pytest.mark.asyncio
    async def test_redis_outage_fails_open(self, limiter, redis_client):
        redis_client.get.side_effect = RedisError("down")
        redis_client.incr.side_effect = RedisError("down")

        assert await limiter.is_blocked("users/user-1/addresses/a1") is False
        assert await limiter.record_failure("users/user-1/addresses/a1") == 0

    @pytest.mark.asyncio
    async def test_disabled_limiter(self, redis_client):
        limiter = RedisAttemptLimiter("redis://localhost:6379/0", max_attempts=0, client=redis_client)

        assert await limiter.is_blocked("users/user-1/addresses/a1") is False
        assert await limiter.health_check() is True
        redis_client.get.assert_not_awaited()


class TestVerificationCodeGenerator:
    """Test cases for VerificationCodeGenerator."""

    def test_codes_are_fixed_length_digits(self):
        generator = VerificationCodeGenerator(6)
        for _ in range(50):
            code = generator.generate()
            assert len(code) == 6
            assert code.isdigit()

    def test_invalid_length(self):
        with pytest.raises(ValueError):
            VerificationCodeGenerator(0)
