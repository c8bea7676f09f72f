"""
InstructionFactory Unit Tests
=============================
Tests for pure instruction building logic.

100% testable without RPC or signer connections.
"""

import struct

import pytest


class TestAmounts:
    """SOL -> lamports conversion."""

    def test_decimal_string(self):
        from passpay.execution.instruction_factory import sol_to_lamports

        assert sol_to_lamports("1.5") == 1_500_000_000
        assert sol_to_lamports(2) == 2_000_000_000

    def test_rounds_down_sub_lamport_precision(self):
        from passpay.execution.instruction_factory import sol_to_lamports

        assert sol_to_lamports("0.0000000019") == 1

    @pytest.mark.parametrize("amount", [0, "0", -1, "-0.5", "abc", "nan", "0.0000000001"])
    def test_rejects_invalid(self, amount):
        from passpay.execution.errors import InvalidAmount
        from passpay.execution.instruction_factory import sol_to_lamports

        with pytest.raises(InvalidAmount):
            sol_to_lamports(amount)


class TestTransfer:
    """build_transfer"""

    @pytest.fixture
    def factory(self, owner):
        from passpay.execution.instruction_factory import InstructionFactory
        return InstructionFactory(owner)

    def test_one_and_a_half_sol(self, factory, owner, recipient):
        """1.5 SOL encodes 1_500_000_000 lamports."""
        from solders.system_program import ID as SYSTEM_PROGRAM_ID, decode_transfer

        ix = factory.build_transfer(recipient, 1.5)

        assert ix.program_id == SYSTEM_PROGRAM_ID
        params = decode_transfer(ix)
        assert params["lamports"] == 1_500_000_000
        assert params["from_pubkey"] == owner
        assert params["to_pubkey"] == recipient
        assert struct.unpack_from("<Q", bytes(ix.data), 4)[0] == 1_500_000_000

    def test_zero_amount(self, factory, recipient):
        from passpay.execution.errors import InvalidAmount

        with pytest.raises(InvalidAmount):
            factory.build_transfer(recipient, 0)

    def test_invalid_recipient(self, factory):
        from passpay.execution.errors import InvalidAddress

        with pytest.raises(InvalidAddress):
            factory.build_transfer("not-a-base58-address!", 1)

    def test_validation_errors_are_value_errors(self, factory):
        """Callers can catch ValueError without importing our taxonomy."""
        with pytest.raises(ValueError):
            factory.build_transfer("short", 1)


class TestStakeSetup:
    """build_stake_setup: always [create-with-seed, delegate]."""

    @pytest.fixture
    def factory(self, owner):
        from passpay.execution.instruction_factory import InstructionFactory
        return InstructionFactory(owner)

    def test_exactly_two_in_order(self, factory, owner):
        from solders.pubkey import Pubkey
        from solders.system_program import ID as SYSTEM_PROGRAM_ID
        from passpay.execution.instruction_factory import STAKE_PROGRAM_ID

        validator = Pubkey.new_unique()
        setup = factory.build_stake_setup("stake:1700000000000", 50_000_000, validator)

        assert len(setup.instructions) == 2
        create_ix, delegate_ix = setup.instructions
        assert create_ix.program_id == SYSTEM_PROGRAM_ID
        assert delegate_ix.program_id == STAKE_PROGRAM_ID

    def test_create_funds_derived_address(self, factory, owner):
        from solders.pubkey import Pubkey
        from solders.system_program import decode_create_account_with_seed
        from passpay.execution.instruction_factory import STAKE_ACCOUNT_SPACE, STAKE_PROGRAM_ID

        seed = "stake:1700000000000"
        setup = factory.build_stake_setup(seed, 50_000_000, Pubkey.new_unique(), rent_exempt_lamports=2_282_880)

        params = decode_create_account_with_seed(setup.instructions[0])
        assert params["to_pubkey"] == setup.stake_address
        assert params["base"] == owner
        assert params["seed"] == seed
        assert params["lamports"] == 50_000_000 + 2_282_880
        assert params["space"] == STAKE_ACCOUNT_SPACE
        assert params["owner"] == STAKE_PROGRAM_ID
        assert setup.stake_address == Pubkey.create_with_seed(owner, seed, STAKE_PROGRAM_ID)

    def test_delegate_accounts(self, factory, owner):
        from solders.pubkey import Pubkey
        from passpay.execution.instruction_factory import (
            STAKE_CONFIG_ID,
            STAKE_IX_DELEGATE,
            SYSVAR_CLOCK_ID,
            SYSVAR_STAKE_HISTORY_ID,
        )

        validator = Pubkey.new_unique()
        setup = factory.build_stake_setup("s", 10_000_000, validator)
        delegate_ix = setup.instructions[1]

        assert bytes(delegate_ix.data) == struct.pack("<I", STAKE_IX_DELEGATE)
        keys = [m.pubkey for m in delegate_ix.accounts]
        assert keys == [
            setup.stake_address,
            validator,
            SYSVAR_CLOCK_ID,
            SYSVAR_STAKE_HISTORY_ID,
            STAKE_CONFIG_ID,
            owner,
        ]
        assert delegate_ix.accounts[0].is_writable
        assert delegate_ix.accounts[-1].is_signer

    def test_same_seed_same_address(self, factory):
        """Re-checking after an unknown outcome must hit the same account."""
        from solders.pubkey import Pubkey

        validator = Pubkey.new_unique()
        first = factory.build_stake_setup("stake:42", 10_000_000, validator)
        second = factory.build_stake_setup("stake:42", 10_000_000, validator)

        assert first.stake_address == second.stake_address

    @pytest.mark.parametrize("amount", [0, -5, 1.5, True])
    def test_rejects_bad_amount(self, factory, amount):
        from solders.pubkey import Pubkey
        from passpay.execution.errors import InvalidAmount

        with pytest.raises(InvalidAmount):
            factory.build_stake_setup("s", amount, Pubkey.new_unique())

    def test_rejects_long_seed(self, factory):
        from solders.pubkey import Pubkey
        from passpay.execution.errors import InvalidSeed

        with pytest.raises(InvalidSeed):
            factory.build_stake_setup("x" * 33, 10_000_000, Pubkey.new_unique())

    def test_minimum_stake(self, factory):
        """0.01 SOL is accepted, one lamport less is not."""
        from solders.pubkey import Pubkey
        from config.settings import Settings
        from passpay.execution.errors import InvalidAmount

        factory.build_stake_setup("s", Settings.MIN_STAKE_LAMPORTS, Pubkey.new_unique())
        with pytest.raises(InvalidAmount, match="Minimum stake"):
            factory.build_stake_setup("s", Settings.MIN_STAKE_LAMPORTS - 1, Pubkey.new_unique())

    def test_minimum_stake_override(self, owner):
        from solders.pubkey import Pubkey
        from passpay.execution.instruction_factory import InstructionFactory

        setup = InstructionFactory(owner, min_stake_lamports=1).build_stake_setup("s", 1, Pubkey.new_unique())
        assert setup.lamports == 1

    def test_no_initialize_instruction(self, factory):
        """Only the delegate touches the stake program; Initialize is left to the Signer."""
        from solders.pubkey import Pubkey
        from passpay.execution.instruction_factory import STAKE_IX_DELEGATE, STAKE_PROGRAM_ID

        setup = factory.build_stake_setup("s", 10_000_000, Pubkey.new_unique())
        tags = [bytes(ix.data)[:4] for ix in setup.instructions if ix.program_id == STAKE_PROGRAM_ID]
        assert tags == [struct.pack("<I", STAKE_IX_DELEGATE)]


class TestStakeLifecycle:
    """Deactivate / withdraw."""

    @pytest.fixture
    def factory(self, owner):
        from passpay.execution.instruction_factory import InstructionFactory
        return InstructionFactory(owner)

    def test_deactivate(self, factory, owner):
        from solders.pubkey import Pubkey
        from passpay.execution.instruction_factory import STAKE_IX_DEACTIVATE, SYSVAR_CLOCK_ID

        stake = Pubkey.new_unique()
        ix = factory.build_deactivate_stake(stake)

        assert bytes(ix.data) == struct.pack("<I", STAKE_IX_DEACTIVATE)
        assert [m.pubkey for m in ix.accounts] == [stake, SYSVAR_CLOCK_ID, owner]

    def test_withdraw(self, factory, owner, recipient):
        from solders.pubkey import Pubkey
        from passpay.execution.instruction_factory import STAKE_IX_WITHDRAW

        stake = Pubkey.new_unique()
        ix = factory.build_withdraw_stake(stake, recipient, 7_000)

        assert bytes(ix.data) == struct.pack("<IQ", STAKE_IX_WITHDRAW, 7_000)
        assert ix.accounts[1].pubkey == recipient
        assert ix.accounts[1].is_writable
        assert ix.accounts[-1].pubkey == owner

    def test_withdraw_zero(self, factory, recipient):
        from solders.pubkey import Pubkey
        from passpay.execution.errors import InvalidAmount

        with pytest.raises(InvalidAmount):
            factory.build_withdraw_stake(Pubkey.new_unique(), recipient, 0)


class TestMemo:
    """Memo boundary: 566 bytes ok, 567 rejected."""

    @pytest.fixture
    def factory(self, owner):
        from passpay.execution.instruction_factory import InstructionFactory
        return InstructionFactory(owner)

    def test_566_bytes_ok(self, factory):
        from passpay.execution.instruction_factory import MEMO_PROGRAM_ID

        ix = factory.build_memo("a" * 566)
        assert ix.program_id == MEMO_PROGRAM_ID
        assert len(bytes(ix.data)) == 566

    def test_567_bytes_rejected(self, factory):
        from passpay.execution.errors import MemoTooLong

        with pytest.raises(MemoTooLong) as exc:
            factory.build_memo("a" * 567)
        assert exc.value.length == 567

    def test_limit_counts_utf8_bytes(self, factory):
        """283 two-byte characters = 566 bytes; one more crosses the limit."""
        from passpay.execution.errors import MemoTooLong

        factory.build_memo("\u00e9" * 283)
        with pytest.raises(MemoTooLong):
            factory.build_memo("\u00e9" * 284)

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_blank(self, factory, text):
        from passpay.execution.errors import EmptyMemo

        with pytest.raises(EmptyMemo):
            factory.build_memo(text)

    def test_signed_and_unsigned(self, factory, owner):
        signed = factory.build_memo("hello")
        unsigned = factory.build_memo("hello", signed=False)

        assert [m.pubkey for m in signed.accounts] == [owner]
        assert signed.accounts[0].is_signer
        assert list(unsigned.accounts) == []


class TestValidation:

    def test_compute_budget(self, owner):
        from solders.compute_budget import ID as COMPUTE_BUDGET_ID
        from passpay.execution.instruction_factory import InstructionFactory

        ixs = InstructionFactory(owner).build_compute_budget_instructions(300_000, priority_fee=5_000)
        assert len(ixs) == 2
        assert all(ix.program_id == COMPUTE_BUDGET_ID for ix in ixs)

    def test_validate_instructions(self, owner, recipient):
        from passpay.execution.instruction_factory import InstructionFactory, MAX_INSTRUCTIONS_PER_PLAN

        factory = InstructionFactory(owner)
        ok, errors = factory.validate_instructions([])
        assert not ok
        assert errors == ["No instructions in plan"]

        ok, errors = factory.validate_instructions([factory.build_transfer(recipient, 1)])
        assert ok and errors == []

        too_many = [factory.build_memo("x")] * (MAX_INSTRUCTIONS_PER_PLAN + 1)
        ok, errors = factory.validate_instructions(too_many)
        assert not ok
        assert "Too many instructions" in errors[0]
