"""
Unit tests for permission fan-out and merge.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_gate_access.app.models import Gate, GateGroup, PermissionEntry
from service_gate_access.app.permissions import PermissionGrantEngine

ADDRESS_REF = "users/user-1/addresses/addr-1"


class TestPermissionGrantEngine:
    """Test cases for PermissionGrantEngine."""

    @pytest.fixture
    def engine(self):
        return PermissionGrantEngine()

    @pytest.fixture
    def matched_groups(self):
        return [
            GateGroup("gg1", gates=[Gate("north", "gg1", key="k1"), Gate("south", "gg1", key="k2")]),
            GateGroup("gg2", gates=[Gate("east", "gg2", key="k3")]),
        ]

    def test_grant_one_entry_per_gate(self, engine, matched_groups):
        delta = engine.grant(matched_groups, ADDRESS_REF)

        assert set(delta) == {"north", "south", "east"}
        assert delta["east"] == PermissionEntry(
            address_reference=ADDRESS_REF,
            gate_reference="gate-groups/gg2/gates/east",
            verified=False
        )
        assert all(not entry.verified for entry in delta.values())

    def test_grant_for_group_without_gates(self, engine):
        assert engine.grant([GateGroup("gg-empty")], ADDRESS_REF) == {}

    def test_merge_keeps_unrelated_entries(self, engine, matched_groups):
        existing = {
            "west": {
                "address_reference": "users/user-1/addresses/old",
                "gate_reference": "gate-groups/gg9/gates/west",
                "verified": True,
            }
        }
        merged, written = engine.merge(existing, engine.grant(matched_groups, ADDRESS_REF))

        assert written == 3
        assert merged["west"] == existing["west"]
        assert merged["north"]["address_reference"] == ADDRESS_REF
        assert merged["north"]["verified"] is False

    def test_merge_replaces_unverified_entry(self, engine, matched_groups):
        existing = {
            "north": {
                "address_reference": "users/user-1/addresses/old",
                "gate_reference": "gate-groups/gg1/gates/north",
                "verified": False,
            }
        }
        merged, _ = engine.merge(existing, engine.grant(matched_groups, ADDRESS_REF))
        assert merged["north"]["address_reference"] == ADDRESS_REF

    def test_merge_never_downgrades_verified_entry(self, engine, matched_groups):
        existing = {
            "north": {
                "address_reference": "users/user-1/addresses/old",
                "gate_reference": "gate-groups/gg1/gates/north",
                "verified": True,
            }
        }
        merged, written = engine.merge(existing, engine.grant(matched_groups, ADDRESS_REF))

        assert written == 2
        assert merged["north"] == existing["north"]

    def test_merge_does_not_mutate_input(self, engine, matched_groups):
        existing = {"west": {"address_reference": "a", "gate_reference": "g", "verified": False}}
        engine.merge(existing, engine.grant(matched_groups, ADDRESS_REF))
        assert list(existing) == ["west"]

    def test_verify_for_address_flips_only_matching_entries(self, engine):
        permissions = {
            "north": {"address_reference": ADDRESS_REF, "gate_reference": "g1", "verified": False},
            "south": {"address_reference": ADDRESS_REF, "gate_reference": "g2", "verified": False},
            "east": {"address_reference": "users/user-1/addresses/other", "gate_reference": "g3", "verified": False},
        }
        updated, flipped = engine.verify_for_address(permissions, ADDRESS_REF)

        assert flipped == 2
        assert updated["north"]["verified"] is True
        assert updated["south"]["verified"] is True
        assert updated["east"]["verified"] is False
        assert permissions["north"]["verified"] is False
