"""
Address-to-gate-group matching.
"""

from typing import Optional, List, Iterable

from shared.logging import get_logger
from ..models import Address, GateGroup, ServiceAreaRule

logger = get_logger("gate_access.matcher")


def parse_premise(value: str) -> Optional[int]:
    """Premises are numeric-as-string; anything else cannot be range-checked."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def rule_matches(address: Address, rule: ServiceAreaRule) -> bool:
    """True when the address falls inside the rule's permissible range."""
    if address.postal_code != rule.postal_code:
        return False

    if address.country != rule.country:
        return False

    if rule.thoroughfare not in address.thoroughfare:
        return False

    premise = parse_premise(address.premise)
    start = parse_premise(rule.premise_range_start)
    stop = parse_premise(rule.premise_range_stop)
    if premise is None or start is None or stop is None:
        logger.debug(
            "Non-numeric premise in range check",
            premise=address.premise,
            range_start=rule.premise_range_start,
            range_stop=rule.premise_range_stop
        )
        return False

    # Exclusive on both ends
    return start < premise < stop


class AddressMatcher:
    """Selects the gate groups whose service-area rules cover an address."""

    def match(self, address: Address, gate_groups: Iterable[GateGroup]) -> List[GateGroup]:
        """Return each serving gate group once, in input order.

        An empty list is a normal outcome, not an error.
        """
        matched: List[GateGroup] = []
        seen = set()

        for group in gate_groups:
            if group.gate_group_id in seen:
                continue
            # First matching rule is enough for the group
            if any(rule_matches(address, rule) for rule in group.rules):
                matched.append(group)
                seen.add(group.gate_group_id)

        logger.debug(
            "Address matched",
            postal_code=address.postal_code,
            matched_groups=[g.gate_group_id for g in matched]
        )
        return matched
