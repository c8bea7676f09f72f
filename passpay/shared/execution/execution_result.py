"""
Unified Execution Result
========================
Standardized return type for TransactionExecutor.execute().

Outcome failures (signer rejection, timeout, on-ledger failure) are reported
here rather than raised, so callers handle every path the same way.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from enum import Enum
import time


class ExecutionStatus(Enum):
    """Status codes for execution results."""

    SUBMITTED = "SUBMITTED"    # Signer returned a signature; not yet confirmed
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"        # Signature known, outcome unknown


class ErrorCode(Enum):
    """Standardized error codes for execution failures."""

    # Rejected before the signer
    NO_INSTRUCTIONS = "NO_INSTRUCTIONS"
    INVALID_PLAN = "INVALID_PLAN"

    # Signer boundary (cancellation, auth failure)
    SIGNER_REJECTED = "SIGNER_REJECTED"

    # Partial execution: may still land
    CONFIRMATION_TIMEOUT = "CONFIRMATION_TIMEOUT"

    # Ledger reported an error for the signature
    TRANSACTION_FAILED = "TRANSACTION_FAILED"


@dataclass
class ExecutionResult:
    """
    Result of handing one TransactionPlan to the Signer.

    Usage:
        result = await executor.execute(plan, signer)
        if result.success:
            log(f"Sent {result.signature}")
        elif result.is_partial:
            recheck_ledger(result.signature)
        else:
            handle_error(result.error_code)
    """

    # Core status
    success: bool
    status: ExecutionStatus = ExecutionStatus.FAILED

    signature: Optional[str] = None
    explorer_url: Optional[str] = None

    # Error handling
    error_code: Optional[ErrorCode] = None
    error_message: Optional[str] = None

    # Context
    timestamp: float = field(default_factory=time.time)
    latency_ms: float = 0.0
    slot: Optional[int] = None

    @property
    def is_partial(self) -> bool:
        """
        The call failed but the transaction may have landed.

        Callers must re-query the ledger, never resubmit blindly.
        """
        return self.status == ExecutionStatus.TIMEOUT and self.signature is not None

    @property
    def is_confirmed(self) -> bool:
        return self.status == ExecutionStatus.CONFIRMED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/storage."""
        return {
            "success": self.success,
            "status": self.status.value,
            "signature": self.signature,
            "explorer_url": self.explorer_url,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": self.error_message,
            "latency_ms": self.latency_ms,
            "slot": self.slot,
        }

    def __repr__(self) -> str:
        if self.success:
            sig = self.signature[:12] if self.signature else "N/A"
            return f"ExecutionResult({self.status.value}: tx={sig}...)"
        return f"ExecutionResult({self.status.value}: {self.error_code}, {self.error_message})"


# ═══════════════════════════════════════════════════════════════════════════════
# FACTORY FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════════

def submitted_result(signature: str, **kwargs) -> ExecutionResult:
    """Signer accepted the plan; confirmation not awaited."""
    return ExecutionResult(
        success=True,
        status=ExecutionStatus.SUBMITTED,
        signature=signature,
        explorer_url=kwargs.get("explorer_url"),
        latency_ms=kwargs.get("latency_ms", 0.0),
    )


def confirmed_result(signature: str, **kwargs) -> ExecutionResult:
    """Ledger reported the signature as confirmed/finalized."""
    return ExecutionResult(
        success=True,
        status=ExecutionStatus.CONFIRMED,
        signature=signature,
        explorer_url=kwargs.get("explorer_url"),
        latency_ms=kwargs.get("latency_ms", 0.0),
        slot=kwargs.get("slot"),
    )


def failure_result(
    error_code: ErrorCode,
    error_message: str,
    signature: str = None,
    **kwargs
) -> ExecutionResult:
    """Create a failed execution result."""
    status = (
        ExecutionStatus.TIMEOUT
        if error_code == ErrorCode.CONFIRMATION_TIMEOUT
        else ExecutionStatus.FAILED
    )
    return ExecutionResult(
        success=False,
        status=status,
        signature=signature,
        explorer_url=kwargs.get("explorer_url"),
        error_code=error_code,
        error_message=error_message,
        latency_ms=kwargs.get("latency_ms", 0.0),
        slot=kwargs.get("slot"),
    )
