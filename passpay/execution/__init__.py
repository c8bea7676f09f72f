"""
Execution Layer
===============
Intent -> instructions -> Signer.

Components:
- address_derivation.py: seed-derived account addresses
- instruction_factory.py: transfer / stake / memo builders
- versioned_decoder.py: aggregator blob -> instruction list
- transaction_executor.py: Signer hand-off and confirmation polling
- errors.py: exception taxonomy
"""

from passpay.execution.address_derivation import SeedSpec, derive_address, make_stake_seed
from passpay.execution.errors import (
    AggregatorError,
    EmptyMemo,
    InvalidAddress,
    InvalidAmount,
    InvalidSeed,
    LedgerError,
    MalformedTransaction,
    MemoTooLong,
    PassPayError,
    PlanAlreadyConsumed,
    SignerError,
    ValidationError,
)
from passpay.execution.instruction_factory import InstructionFactory, StakeSetup, sol_to_lamports
from passpay.execution.versioned_decoder import (
    EnvelopeVersion,
    LookupTableRef,
    VersionedTransactionDecomposer,
    decompose,
    recompile,
)
from passpay.execution.transaction_executor import (
    FeeAsset,
    NetworkMode,
    Signer,
    SignerOptions,
    TransactionExecutor,
    TransactionPlan,
    explorer_url,
    plan_swap,
)

__all__ = [
    "SeedSpec",
    "derive_address",
    "make_stake_seed",
    "InstructionFactory",
    "StakeSetup",
    "sol_to_lamports",
    "EnvelopeVersion",
    "LookupTableRef",
    "VersionedTransactionDecomposer",
    "decompose",
    "recompile",
    "FeeAsset",
    "NetworkMode",
    "Signer",
    "SignerOptions",
    "TransactionExecutor",
    "TransactionPlan",
    "explorer_url",
    "plan_swap",
    "PassPayError",
    "ValidationError",
    "InvalidAmount",
    "InvalidAddress",
    "InvalidSeed",
    "MemoTooLong",
    "EmptyMemo",
    "MalformedTransaction",
    "LedgerError",
    "SignerError",
    "AggregatorError",
    "PlanAlreadyConsumed",
]
