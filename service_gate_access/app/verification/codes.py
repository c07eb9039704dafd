"""
Verification code generation.
"""

import secrets


class VerificationCodeGenerator:
    """Draws fixed-length numeric codes.

    Codes are independent per submission; two outstanding records may share
    a code.
    """

    def __init__(self, length: int = 4):
        if length < 1:
            raise ValueError("Verification code length must be positive")
        self.length = length

    def generate(self) -> str:
        return str(secrets.randbelow(10 ** self.length)).zfill(self.length)
