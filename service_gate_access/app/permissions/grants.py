"""
Permission fan-out and merge.
"""

from typing import Dict, Any, Iterable, Tuple

from shared.logging import get_logger
from ..models import GateGroup, PermissionEntry
from ..store.paths import gate_path

PermissionDelta = Dict[str, PermissionEntry]
PermissionMap = Dict[str, Dict[str, Any]]


class PermissionGrantEngine:
    """Builds unverified per-gate grants for matched gate groups."""

    def __init__(self):
        self.logger = get_logger("gate_access.permissions")

    def grant(self, matched_groups: Iterable[GateGroup], address_ref: str) -> PermissionDelta:
        """One unverified entry per gate of every matched group.

        A gate reachable through two groups collapses to one entry; the last
        group wins.
        """
        delta: PermissionDelta = {}
        for group in matched_groups:
            for gate in group.gates:
                delta[gate.gate_id] = PermissionEntry(
                    address_reference=address_ref,
                    gate_reference=gate_path(group.gate_group_id, gate.gate_id),
                    verified=False,
                )
        return delta

    def merge(self, existing: PermissionMap, delta: PermissionDelta) -> Tuple[PermissionMap, int]:
        """Merge ``delta`` into a copy of ``existing``.

        Entries for other gates are kept as-is, and a verified entry is never
        replaced by a fresh unverified grant. Returns the merged map and the
        number of entries written.
        """
        merged: PermissionMap = {gate_id: dict(entry) for gate_id, entry in existing.items()}
        written = 0

        for gate_id, entry in delta.items():
            current = merged.get(gate_id)
            if current and current.get("verified"):
                self.logger.debug(
                    "Keeping verified permission",
                    gate_id=gate_id,
                    address_reference=current.get("address_reference")
                )
                continue
            merged[gate_id] = entry.to_dict()
            written += 1

        return merged, written

    @staticmethod
    def verify_for_address(permissions: PermissionMap, address_ref: str) -> Tuple[PermissionMap, int]:
        """Flip every entry granted through ``address_ref`` to verified."""
        updated: PermissionMap = {}
        flipped = 0
        for gate_id, entry in permissions.items():
            entry = dict(entry)
            if entry.get("address_reference") == address_ref and not entry.get("verified"):
                entry["verified"] = True
                flipped += 1
            updated[gate_id] = entry
        return updated, flipped
