"""
Instruction Factory
===================
Pure, deterministic Solana instruction building.

100% testable without RPC or signer connections.

Responsibilities:
- Native SOL transfers
- Stake account setup (create-with-seed + delegate) for single-signer wallets
- Stake deactivation and withdrawal
- Memo instructions
- ComputeBudget limits
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import List, Optional, Sequence, Tuple, Union

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import (
    CreateAccountWithSeedParams,
    TransferParams,
    create_account_with_seed,
    transfer,
)

from config.settings import Settings
from passpay.execution.address_derivation import SeedSpec, derive_address, to_pubkey
from passpay.execution.errors import EmptyMemo, InvalidAddress, InvalidAmount, MemoTooLong
from passpay.shared.system.logging import Logger


# ═══════════════════════════════════════════════════════════════════════════════
# PROGRAM CONSTANTS
# ═══════════════════════════════════════════════════════════════════════════════

LAMPORTS_PER_SOL = 1_000_000_000
NATIVE_DECIMALS = 9

MEMO_PROGRAM_ID = Pubkey.from_string("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr")
STAKE_PROGRAM_ID = Pubkey.from_string("Stake11111111111111111111111111111111111111")
STAKE_CONFIG_ID = Pubkey.from_string("StakeConfig11111111111111111111111111111111")
SYSVAR_CLOCK_ID = Pubkey.from_string("SysvarC1ock11111111111111111111111111111111")
SYSVAR_STAKE_HISTORY_ID = Pubkey.from_string("SysvarStakeHistory1111111111111111111111111")

# Single-instruction memo payload ceiling on the reference ledger
MEMO_MAX_BYTES = 566

STAKE_ACCOUNT_SPACE = 200

# Stake program instruction tags (bincode u32)
STAKE_IX_WITHDRAW = 4
STAKE_IX_DELEGATE = 2
STAKE_IX_DEACTIVATE = 5

MAX_INSTRUCTIONS_PER_PLAN = 20

AddressLike = Union[str, bytes, Pubkey]
AmountLike = Union[str, int, float, Decimal]


def parse_address(value: AddressLike) -> Pubkey:
    """Parse an address under the canonical base58 encoding (raises InvalidAddress)."""
    return to_pubkey(value)


def sol_to_lamports(amount: AmountLike) -> int:
    """
    Convert a SOL-denominated amount to lamports, rounding down.

    Raises:
        InvalidAmount: unparseable, non-positive, or below one lamport
    """
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmount(f"Invalid amount {amount!r}") from e

    if not value.is_finite() or value <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount!r}")

    lamports = int((value * LAMPORTS_PER_SOL).to_integral_value(rounding=ROUND_DOWN))
    if lamports <= 0:
        raise InvalidAmount(f"Amount {amount!r} is below one lamport")
    return lamports


@dataclass(frozen=True)
class StakeSetup:
    """Result of build_stake_setup: submit both instructions in one plan."""

    instructions: Tuple[Instruction, Instruction]
    stake_address: Pubkey
    seed: str
    lamports: int


# ═══════════════════════════════════════════════════════════════════════════════
# INSTRUCTION FACTORY
# ═══════════════════════════════════════════════════════════════════════════════

class InstructionFactory:
    """
    Pure instruction builder for one wallet owner.

    This class contains NO side effects - it only constructs
    Solana instructions from validated inputs.

    Usage:
        factory = InstructionFactory(owner_pubkey)
        ix = factory.build_transfer(recipient, "1.5")
    """

    def __init__(self, owner: AddressLike, min_stake_lamports: Optional[int] = None):
        """
        Args:
            owner: The wallet that authorizes (and usually pays for) the plan
            min_stake_lamports: Smallest stake accepted (default Settings.MIN_STAKE_LAMPORTS)
        """
        self.owner = parse_address(owner)
        self.min_stake_lamports = Settings.MIN_STAKE_LAMPORTS if min_stake_lamports is None else min_stake_lamports

    # ─────────────────────────────────────────────────────────────────────────
    # Transfer
    # ─────────────────────────────────────────────────────────────────────────

    def build_transfer(self, to: AddressLike, amount: AmountLike) -> Instruction:
        """
        Build a native SOL transfer.

        Args:
            to: Recipient address
            amount: Amount in SOL (e.g. "1.5" -> 1_500_000_000 lamports)

        Raises:
            InvalidAmount: amount <= 0
            InvalidAddress: recipient does not parse to 32 bytes
        """
        lamports = sol_to_lamports(amount)
        recipient = parse_address(to)

        Logger.debug(f"[FACTORY] Transfer {lamports} lamports -> {recipient}")

        return transfer(
            TransferParams(
                from_pubkey=self.owner,
                to_pubkey=recipient,
                lamports=lamports,
            )
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Staking
    # ─────────────────────────────────────────────────────────────────────────

    def build_stake_setup(
        self,
        seed: str,
        amount_lamports: int,
        validator: AddressLike,
        rent_exempt_lamports: int = 0,
    ) -> StakeSetup:
        """
        Build the two stake-setup instructions, in order:
        1. create-account-with-seed (funds the derived stake address)
        2. delegate-stake (binds the derived account to the validator)

        Both must go into a single TransactionPlan. If a submission outcome is
        unknown, re-query the derived address; never rebuild with a new seed.

        No stake-program Initialize is emitted between the two. The stake
        program rejects DelegateStake on an uninitialized account on every
        cluster, so the plan only lands when the Signer inserts the
        Initialize (authorities = owner) ahead of the delegate.

        Args:
            seed: Derivation seed (<= 32 UTF-8 bytes)
            amount_lamports: Lamports to stake
            validator: Validator vote account
            rent_exempt_lamports: Added to the funded amount

        Raises:
            InvalidAmount, InvalidAddress, InvalidSeed
        """
        if isinstance(amount_lamports, bool) or not isinstance(amount_lamports, int):
            raise InvalidAmount(f"Stake amount must be integer lamports, got {amount_lamports!r}")
        if amount_lamports <= 0:
            raise InvalidAmount(f"Stake amount must be positive, got {amount_lamports}")
        if amount_lamports < self.min_stake_lamports:
            raise InvalidAmount(
                f"Minimum stake is {self.min_stake_lamports} lamports, got {amount_lamports}"
            )
        if rent_exempt_lamports < 0:
            raise InvalidAmount(f"Rent-exempt reserve cannot be negative, got {rent_exempt_lamports}")

        vote_account = parse_address(validator)
        stake_address = derive_address(SeedSpec(self.owner, seed, STAKE_PROGRAM_ID))
        funded = amount_lamports + rent_exempt_lamports

        create_ix = create_account_with_seed(
            CreateAccountWithSeedParams(
                from_pubkey=self.owner,
                to_pubkey=stake_address,
                base=self.owner,
                seed=seed,
                lamports=funded,
                space=STAKE_ACCOUNT_SPACE,
                owner=STAKE_PROGRAM_ID,
            )
        )
        delegate_ix = self.build_delegate_stake(stake_address, vote_account)

        Logger.debug(
            f"[FACTORY] Stake setup: {funded} lamports -> {stake_address} "
            f"(seed={seed}, validator={vote_account})"
        )

        return StakeSetup(
            instructions=(create_ix, delegate_ix),
            stake_address=stake_address,
            seed=seed,
            lamports=funded,
        )

    def build_delegate_stake(self, stake_address: AddressLike, vote_account: AddressLike) -> Instruction:
        return Instruction(
            STAKE_PROGRAM_ID,
            struct.pack("<I", STAKE_IX_DELEGATE),
            [
                AccountMeta(parse_address(stake_address), is_signer=False, is_writable=True),
                AccountMeta(parse_address(vote_account), is_signer=False, is_writable=False),
                AccountMeta(SYSVAR_CLOCK_ID, is_signer=False, is_writable=False),
                AccountMeta(SYSVAR_STAKE_HISTORY_ID, is_signer=False, is_writable=False),
                AccountMeta(STAKE_CONFIG_ID, is_signer=False, is_writable=False),
                AccountMeta(self.owner, is_signer=True, is_writable=False),
            ],
        )

    def build_deactivate_stake(self, stake_address: AddressLike) -> Instruction:
        """Deactivate a delegated stake account (owner is the stake authority)."""
        return Instruction(
            STAKE_PROGRAM_ID,
            struct.pack("<I", STAKE_IX_DEACTIVATE),
            [
                AccountMeta(parse_address(stake_address), is_signer=False, is_writable=True),
                AccountMeta(SYSVAR_CLOCK_ID, is_signer=False, is_writable=False),
                AccountMeta(self.owner, is_signer=True, is_writable=False),
            ],
        )

    def build_withdraw_stake(
        self,
        stake_address: AddressLike,
        to: AddressLike,
        lamports: int,
    ) -> Instruction:
        """Withdraw lamports from a deactivated stake account."""
        if isinstance(lamports, bool) or not isinstance(lamports, int) or lamports <= 0:
            raise InvalidAmount(f"Withdraw amount must be positive lamports, got {lamports!r}")

        return Instruction(
            STAKE_PROGRAM_ID,
            struct.pack("<IQ", STAKE_IX_WITHDRAW, lamports),
            [
                AccountMeta(parse_address(stake_address), is_signer=False, is_writable=True),
                AccountMeta(parse_address(to), is_signer=False, is_writable=True),
                AccountMeta(SYSVAR_CLOCK_ID, is_signer=False, is_writable=False),
                AccountMeta(SYSVAR_STAKE_HISTORY_ID, is_signer=False, is_writable=False),
                AccountMeta(self.owner, is_signer=True, is_writable=False),
            ],
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Memo
    # ─────────────────────────────────────────────────────────────────────────

    def build_memo(self, text: str, signed: bool = True) -> Instruction:
        """
        Build a memo instruction.

        Args:
            text: UTF-8 text, at most 566 bytes
            signed: Reference the owner as a signer (default) or emit no accounts

        Raises:
            EmptyMemo: blank text
            MemoTooLong: encoded text exceeds MEMO_MAX_BYTES
        """
        if text is None or not text.strip():
            raise EmptyMemo("Memo text is empty")

        data = text.encode("utf-8")
        if len(data) > MEMO_MAX_BYTES:
            raise MemoTooLong(len(data), MEMO_MAX_BYTES)

        accounts = [AccountMeta(self.owner, is_signer=True, is_writable=False)] if signed else []
        return Instruction(MEMO_PROGRAM_ID, data, accounts)

    # ─────────────────────────────────────────────────────────────────────────
    # Compute budget / validation
    # ─────────────────────────────────────────────────────────────────────────

    def build_compute_budget_instructions(
        self,
        units: int = 200_000,
        priority_fee: Optional[int] = None,
    ) -> List[Instruction]:
        """
        Build compute budget instructions.

        Args:
            units: Compute unit limit
            priority_fee: Priority fee in micro-lamports per CU (omitted if None)
        """
        instructions = [set_compute_unit_limit(units)]
        if priority_fee is not None:
            instructions.append(set_compute_unit_price(priority_fee))
        return instructions

    @staticmethod
    def validate_instructions(instructions: Sequence[Instruction]) -> Tuple[bool, List[str]]:
        """
        Validate instruction list for common errors.

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors = []

        if not instructions:
            errors.append("No instructions in plan")
            return False, errors

        if len(instructions) > MAX_INSTRUCTIONS_PER_PLAN:
            errors.append(
                f"Too many instructions: {len(instructions)} (max {MAX_INSTRUCTIONS_PER_PLAN})"
            )

        return len(errors) == 0, errors
