"""
Gate group catalog backed by the document store.

Reads here are not part of the final commit's snapshot; a gate group
created between the scan and the commit may be missed.
"""

from typing import List

from shared.logging import get_logger
from ..models import Gate, GateGroup
from ..store import TransactionalStore
from ..store.paths import GATE_GROUPS, gates_path


class GateGroupCatalog:
    """Loads gate groups, their rules and their gates."""

    def __init__(self, store: TransactionalStore):
        self.store = store
        self.logger = get_logger("gate_access.catalog")

    async def load_gate_groups(self) -> List[GateGroup]:
        """Every gate group with its service-area rules (gates not loaded)."""
        documents = await self.store.list_collection(GATE_GROUPS)
        groups = [GateGroup.from_dict(doc.id, doc.data) for doc in documents]
        self.logger.debug("Gate groups loaded", count=len(groups))
        return groups

    async def load_gates(self, gate_group: GateGroup) -> List[Gate]:
        """Gates belonging to one gate group."""
        documents = await self.store.list_collection(gates_path(gate_group.gate_group_id))
        return [
            Gate.from_dict(doc.id, gate_group.gate_group_id, doc.data)
            for doc in documents
        ]

    async def attach_gates(self, gate_groups: List[GateGroup]) -> List[GateGroup]:
        """Populate ``gates`` on each group in place."""
        for group in gate_groups:
            group.gates = await self.load_gates(group)
        return gate_groups
