"""
Error Taxonomy
==============
Exceptions raised by the transaction construction and ledger-access layer.

Categories:
- Validation errors: detected locally, before any network call. Never retried.
- Decode errors: the blob cannot be decomposed. Re-fetch a fresh quote.
- Ledger errors: transient transport failures. The caller decides on retry.
- Aggregator errors: the swap API was unreachable or refused the request.
- Signer errors: opaque pass-through from the external Signer.

Partial-execution outcomes (confirmation timeout) are not exceptions; they are
reported through ExecutionResult.
"""


class PassPayError(Exception):
    """Base class for all errors raised by this package."""


# ═══════════════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════════════

class ValidationError(PassPayError, ValueError):
    """Input rejected before any instruction was built."""


class InvalidAmount(ValidationError):
    pass


class InvalidAddress(ValidationError):
    pass


class InvalidSeed(ValidationError):
    pass


class MemoTooLong(ValidationError):
    def __init__(self, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(f"Memo is {length} bytes, limit is {limit}")


class EmptyMemo(ValidationError):
    pass


# ═══════════════════════════════════════════════════════════════════════════════
# DECODE / TRANSPORT / SIGNER
# ═══════════════════════════════════════════════════════════════════════════════

class MalformedTransaction(PassPayError):
    """Versioned transaction blob or aggregator response could not be decoded."""


class LedgerError(PassPayError):
    """A ledger RPC call failed."""

    def __init__(self, method: str, message: str):
        self.method = method
        super().__init__(f"{method} failed: {message}")


class SignerError(PassPayError):
    """Raised by Signer implementations (user cancellation, auth failure)."""


class PlanAlreadyConsumed(PassPayError):
    """A TransactionPlan was handed to the executor a second time."""


class AggregatorError(PassPayError):
    """The swap aggregator was unreachable or reported success=false."""
