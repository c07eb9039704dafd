"""
Record paths used by the gate access store layout.
"""

USERS = "users"
ADDRESSES = "addresses"
VERIFICATIONS = "verifications"
GATE_GROUPS = "gate-groups"
GATES = "gates"


def user_path(user_id: str) -> str:
    return f"{USERS}/{user_id}"


def addresses_path(user_id: str) -> str:
    return f"{user_path(user_id)}/{ADDRESSES}"


def address_path(user_id: str, address_id: str) -> str:
    return f"{addresses_path(user_id)}/{address_id}"


def verifications_path(address_ref: str) -> str:
    return f"{address_ref}/{VERIFICATIONS}"


def verification_path(address_ref: str, verification_id: str) -> str:
    return f"{verifications_path(address_ref)}/{verification_id}"


def gate_group_path(gate_group_id: str) -> str:
    return f"{GATE_GROUPS}/{gate_group_id}"


def gates_path(gate_group_id: str) -> str:
    return f"{gate_group_path(gate_group_id)}/{GATES}"


def gate_path(gate_group_id: str, gate_id: str) -> str:
    return f"{gates_path(gate_group_id)}/{gate_id}"


def parent_of(path: str) -> str:
    """Collection path a document lives in."""
    return path.rsplit("/", 1)[0] if "/" in path else ""


def leaf_id(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def validate_document_path(path: str) -> str:
    """Document paths alternate collection/id, so they have an even segment count."""
    segments = path.split("/")
    if not path or len(segments) % 2 != 0 or any(not s for s in segments):
        raise ValueError(f"Invalid document path: {path!r}")
    return path
