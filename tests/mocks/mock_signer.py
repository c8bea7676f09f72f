"""
Mock Signer
===========
Stands in for the passkey wallet at the Signer boundary.
"""

from typing import List, Optional, Tuple

from solders.signature import Signature


class MockSigner:
    """
    Usage:
        signer = MockSigner()                              # always succeeds
        signer = MockSigner(error=SignerError("cancel"))   # always rejects
    """

    def __init__(self, signature: Optional[str] = None, error: Optional[Exception] = None):
        self.signature = signature or str(Signature.new_unique())
        self.error = error
        self.calls: List[Tuple[list, object]] = []

    async def sign_and_submit(self, instructions, options) -> str:
        self.calls.append((list(instructions), options))
        if self.error is not None:
            raise self.error
        return self.signature
