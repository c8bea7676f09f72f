"""
Address Derivation
==================
Seed-derived account addresses.

A seed-derived address is sha256(base || seed || owner). The receiving program
can verify it from the same three inputs, so the base key alone authorizes
account creation. This lets a single-signer wallet create the stake account
that would otherwise need a second keypair.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from solders.pubkey import Pubkey

from passpay.execution.errors import InvalidAddress, InvalidSeed


MAX_SEED_LENGTH = 32

# Owners ending with this marker are rejected by the runtime
PDA_MARKER = b"ProgramDerivedAddress"


def to_pubkey(value: Union[str, bytes, Pubkey]) -> Pubkey:
    """Coerce a base58 string, raw 32 bytes, or Pubkey into a Pubkey."""
    if isinstance(value, Pubkey):
        return value
    try:
        if isinstance(value, (bytes, bytearray)):
            if len(value) != 32:
                raise ValueError(f"expected 32 bytes, got {len(value)}")
            return Pubkey.from_bytes(bytes(value))
        return Pubkey.from_string(str(value).strip())
    except ValueError as e:
        raise InvalidAddress(f"Invalid address {value!r}: {e}") from e


@dataclass(frozen=True)
class SeedSpec:
    """Derivation input. Never persisted."""

    base_public_key: Pubkey
    seed: str
    owner_program_id: Pubkey

    @classmethod
    def of(cls, base, seed: str, owner) -> "SeedSpec":
        return cls(to_pubkey(base), seed, to_pubkey(owner))

    def validate(self) -> None:
        if not isinstance(self.seed, str):
            raise InvalidSeed(f"Seed must be a string, got {type(self.seed).__name__}")
        encoded = self.seed.encode("utf-8")
        if len(encoded) > MAX_SEED_LENGTH:
            raise InvalidSeed(
                f"Seed is {len(encoded)} bytes, max is {MAX_SEED_LENGTH}"
            )
        if bytes(self.owner_program_id).endswith(PDA_MARKER):
            raise InvalidSeed("Owner program id cannot end with the PDA marker")


def derive_address(spec: SeedSpec) -> Pubkey:
    """
    Derive the account address for a SeedSpec.

    Pure: identical inputs always yield the identical address.

    Raises:
        InvalidSeed: seed longer than 32 UTF-8 bytes
    """
    spec.validate()
    return Pubkey.create_with_seed(spec.base_public_key, spec.seed, spec.owner_program_id)


def make_stake_seed(now_ms: int) -> str:
    """Timestamp seed for a fresh stake account (``stake:<ms>``)."""
    return f"stake:{int(now_ms)}"
