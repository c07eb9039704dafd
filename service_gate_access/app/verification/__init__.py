"""
Verification package.

Proof-of-residency state machine for submitted addresses:

- codes: Numeric verification code generation.
- limiter: Redis-backed limit on invalid code attempts.
- workflow: Code validation and the atomic verify commit.

A record moves Pending -> Verified exactly once. An invalid code is a
normal rejected outcome and leaves the record Pending.
"""

from .codes import VerificationCodeGenerator
from .limiter import RedisAttemptLimiter
from .workflow import VerificationWorkflow, VerificationOutcome
