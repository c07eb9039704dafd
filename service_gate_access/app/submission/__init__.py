"""
Address submission package.

Runs matching, permission fan-out and code issuance, then commits the
address record, the merged permission map and the verification record
in one transaction.
"""

from .workflow import AddressSubmissionWorkflow, SubmissionResult
