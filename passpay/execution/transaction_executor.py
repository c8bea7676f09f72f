"""
Transaction Executor
====================
Hands TransactionPlans to the external Signer and tracks confirmation.

The executor never signs. The Signer (passkey wallet, paymaster bridge, ...)
receives the instruction list plus fee/compute options and returns a
signature, or raises SignerError.

Flow:
1. Reject empty / oversize plans
2. Signer.sign_and_submit(instructions, options)
3. Bust cached ledger reads for every writable account in the plan
4. Return SUBMITTED immediately, or poll the ledger until
   CONFIRMED | FAILED | TIMEOUT when wait_for_confirmation is requested

A TIMEOUT is a partial outcome: the transaction may still land. Re-query the
ledger, never resubmit the same plan.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from config.settings import Settings
from passpay.execution.errors import LedgerError, PlanAlreadyConsumed, SignerError
from passpay.execution.instruction_factory import InstructionFactory
from passpay.shared.execution.execution_result import (
    ErrorCode,
    ExecutionResult,
    confirmed_result,
    failure_result,
    submitted_result,
)
from passpay.shared.system.logging import Logger


# ═══════════════════════════════════════════════════════════════════════════════
# PLAN + SIGNER BOUNDARY
# ═══════════════════════════════════════════════════════════════════════════════

class FeeAsset(Enum):
    NATIVE = "native"
    DELEGATED_TOKEN = "delegated_token"  # Paymaster fronts SOL, user pays in token


class NetworkMode(Enum):
    DEVNET = "devnet"
    MAINNET = "mainnet"

    @classmethod
    def from_cluster(cls, cluster: str) -> "NetworkMode":
        name = (cluster or "").strip().lower()
        if name in ("mainnet", "mainnet-beta"):
            return cls.MAINNET
        if name == "devnet":
            return cls.DEVNET
        raise ValueError(f"Unknown cluster {cluster!r}")


@dataclass(frozen=True)
class TransactionPlan:
    """
    Instructions for one user action. Immutable; executed at most once.

    Instruction order is preserved exactly as given.
    """
    instructions: Tuple[Instruction, ...]
    fee_asset: FeeAsset = FeeAsset.NATIVE
    compute_unit_limit: Optional[int] = None
    _consumed: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "instructions", tuple(self.instructions))
        if self.compute_unit_limit is not None and not 0 < self.compute_unit_limit < 2 ** 32:
            raise ValueError(f"compute_unit_limit must fit in u32, got {self.compute_unit_limit}")

    @property
    def consumed(self) -> bool:
        return self._consumed

    def consume(self) -> None:
        if self._consumed:
            raise PlanAlreadyConsumed("TransactionPlan has already been executed")
        object.__setattr__(self, "_consumed", True)

    def writable_accounts(self) -> List[Pubkey]:
        """Writable account addresses in first-seen order."""
        seen = []
        for ix in self.instructions:
            for meta in ix.accounts:
                if meta.is_writable and meta.pubkey not in seen:
                    seen.append(meta.pubkey)
        return seen


@dataclass(frozen=True)
class SignerOptions:
    fee_asset: FeeAsset
    compute_unit_limit: Optional[int]
    network_mode: NetworkMode


@runtime_checkable
class Signer(Protocol):
    """
    External signing boundary.

    Implementations authenticate the user, sign, submit, and return the
    base58 signature. Failures (user cancel, auth error) raise SignerError;
    the message is reported to the caller verbatim.
    """

    async def sign_and_submit(
        self,
        instructions: Sequence[Instruction],
        options: SignerOptions,
    ) -> str:
        ...


def explorer_url(signature: str, mode: NetworkMode, base_url: Optional[str] = None) -> str:
    """``{base}/tx/{signature}?cluster={mode}``. Pure formatting."""
    base = (base_url or Settings.EXPLORER_BASE_URL).rstrip("/")
    return f"{base}/tx/{signature}?cluster={mode.value}"


# ═══════════════════════════════════════════════════════════════════════════════
# EXECUTOR
# ═══════════════════════════════════════════════════════════════════════════════

class TransactionExecutor:
    """
    Usage:
        executor = TransactionExecutor(ledger)
        result = await executor.execute(plan, signer, wait_for_confirmation=True)
        if result.is_partial:
            ...  # re-query ledger state
    """

    def __init__(
        self,
        ledger,
        network_mode: Optional[NetworkMode] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        explorer_base_url: Optional[str] = None,
    ):
        """
        Args:
            ledger: LedgerAccessFacade used for balance checks and polling
            network_mode: Passed to the Signer (default from Settings.CLUSTER)
            timeout: Confirmation deadline in seconds (default 60)
            poll_interval: Seconds between status polls (default 2)
        """
        self.ledger = ledger
        self.network_mode = network_mode or NetworkMode.from_cluster(Settings.CLUSTER)
        self.timeout = Settings.CONFIRMATION_TIMEOUT_S if timeout is None else timeout
        self.poll_interval = (
            Settings.CONFIRMATION_POLL_INTERVAL_S if poll_interval is None else poll_interval
        )
        self.explorer_base_url = explorer_base_url or Settings.EXPLORER_BASE_URL
        self._clock = clock
        self._sleep = sleep

        # Stats
        self.submitted = 0
        self.confirmed = 0
        self.failed = 0

    # ─────────────────────────────────────────────────────────────────────────
    # Execute
    # ─────────────────────────────────────────────────────────────────────────

    async def execute(
        self,
        plan: TransactionPlan,
        signer: Signer,
        wait_for_confirmation: bool = False,
    ) -> ExecutionResult:
        """
        Submit a plan through the Signer.

        Raises:
            PlanAlreadyConsumed: the plan was executed before
        """
        plan.consume()

        ok, errors = InstructionFactory.validate_instructions(plan.instructions)
        if not plan.instructions:
            return failure_result(ErrorCode.NO_INSTRUCTIONS, errors[0])
        if not ok:
            return failure_result(ErrorCode.INVALID_PLAN, "; ".join(errors))

        options = SignerOptions(
            fee_asset=plan.fee_asset,
            compute_unit_limit=plan.compute_unit_limit,
            network_mode=self.network_mode,
        )

        started = self._clock()
        Logger.info(
            f"[EXECUTOR] Submitting {len(plan.instructions)} instruction(s) "
            f"(fee={plan.fee_asset.value}, network={self.network_mode.value})"
        )

        try:
            signature = await signer.sign_and_submit(list(plan.instructions), options)
        except SignerError as e:
            self.failed += 1
            Logger.warning(f"[EXECUTOR] Signer rejected plan: {e}")
            return failure_result(
                ErrorCode.SIGNER_REJECTED,
                str(e),
                latency_ms=(self._clock() - started) * 1000,
            )

        self.submitted += 1
        await self._invalidate_touched(plan)

        if not wait_for_confirmation:
            Logger.info(f"[EXECUTOR] Submitted {signature}")
            return submitted_result(
                signature,
                explorer_url=self.explorer_url(signature),
                latency_ms=(self._clock() - started) * 1000,
            )

        return await self.wait_for_confirmation(signature, started_at=started)

    async def _invalidate_touched(self, plan: TransactionPlan) -> None:
        for address in plan.writable_accounts():
            await self.ledger.invalidate(address)

    # ─────────────────────────────────────────────────────────────────────────
    # Confirmation polling
    # ─────────────────────────────────────────────────────────────────────────

    async def wait_for_confirmation(
        self,
        signature: str,
        started_at: Optional[float] = None,
    ) -> ExecutionResult:
        """
        Poll signature status until confirmed, failed, or the deadline passes.

        The deadline is checked every iteration; the final sleep is clipped
        so the TIMEOUT lands on the deadline, not a poll interval past it.
        """
        started = self._clock() if started_at is None else started_at
        deadline = self._clock() + self.timeout
        url = self.explorer_url(signature)
        polls = 0

        while True:
            polls += 1
            try:
                status = await self.ledger.get_signature_status(signature)
            except LedgerError as e:
                Logger.warning(f"[EXECUTOR] Status poll {polls} failed: {e}")
                status = None

            if status is not None and status.failed:
                self.failed += 1
                Logger.error(f"[EXECUTOR] Transaction failed on-ledger: {status.err}")
                return failure_result(
                    ErrorCode.TRANSACTION_FAILED,
                    status.err,
                    signature=signature,
                    explorer_url=url,
                    latency_ms=(self._clock() - started) * 1000,
                    slot=status.slot,
                )

            if status is not None and status.is_confirmed:
                self.confirmed += 1
                Logger.success(f"[EXECUTOR] Confirmed {signature} ({status.confirmation_status})")
                return confirmed_result(
                    signature,
                    explorer_url=url,
                    latency_ms=(self._clock() - started) * 1000,
                    slot=status.slot,
                )

            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            await self._sleep(min(self.poll_interval, remaining))

        Logger.warning(
            f"[EXECUTOR] No confirmation for {signature} after {self.timeout:.0f}s "
            f"({polls} polls); it may still land"
        )
        return failure_result(
            ErrorCode.CONFIRMATION_TIMEOUT,
            f"Not confirmed within {self.timeout:.0f}s",
            signature=signature,
            explorer_url=url,
            latency_ms=(self._clock() - started) * 1000,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    async def choose_fee_asset(self, owner, prefer_delegated: bool = False) -> FeeAsset:
        """
        Pick who pays the network fee.

        Delegated when the caller asks for it, or when the owner's native
        balance cannot cover the fee reserve.
        """
        if prefer_delegated:
            return FeeAsset.DELEGATED_TOKEN

        balance = await self.ledger.get_balance(owner)
        if balance < Settings.MIN_NATIVE_FEE_RESERVE_LAMPORTS:
            Logger.info(
                f"[EXECUTOR] Native balance {balance} below reserve, "
                f"fees paid in {Settings.FEE_TOKEN_SYMBOL}"
            )
            return FeeAsset.DELEGATED_TOKEN
        return FeeAsset.NATIVE

    def explorer_url(self, signature: str) -> str:
        return explorer_url(signature, self.network_mode, self.explorer_base_url)

    def get_stats(self) -> dict:
        return {
            "submitted": self.submitted,
            "confirmed": self.confirmed,
            "failed": self.failed,
            "network": self.network_mode.value,
        }


async def plan_swap(
    swaps,
    decomposer,
    quote,
    wallet,
    fee_asset: FeeAsset = FeeAsset.NATIVE,
    compute_unit_limit: Optional[int] = None,
) -> List[TransactionPlan]:
    """
    Fetch the aggregator's transactions for ``quote`` and decompose each into
    its own TransactionPlan, in submission order.

    Args:
        swaps: SwapAggregatorClient
        decomposer: VersionedTransactionDecomposer
    """
    blobs = await swaps.get_swap_transactions(quote, wallet)
    plans = []
    for blob in blobs:
        instructions = await decomposer.decompose(blob)
        plans.append(TransactionPlan(tuple(instructions), fee_asset, compute_unit_limit))
    Logger.debug(f"[EXECUTOR] Swap planned as {len(plans)} transaction(s)")
    return plans
