"""
Address matching package.

Decides which gate groups serve a submitted address.

Modules of interest:
- matcher: The pure matching rule over service-area rules.
- catalog: Loads gate groups and their gates from the document store.
"""

from .matcher import AddressMatcher, parse_premise, rule_matches
from .catalog import GateGroupCatalog
