"""Result types shared by execution paths."""

from passpay.shared.execution.execution_result import (
    ErrorCode,
    ExecutionResult,
    ExecutionStatus,
)

__all__ = ["ErrorCode", "ExecutionResult", "ExecutionStatus"]
