"""
Versioned Transaction Decomposer
================================
Turns an opaque, pre-built transaction blob (e.g. from a swap aggregator)
back into an editable instruction list.

Pipeline:
1. Read the envelope version (Legacy | V0); anything else is a hard error
2. Deserialize the message: static account keys + address-table lookups
3. Resolve every compiled index against
   static keys ++ lookup writables (declaration order) ++ lookup readonlys
4. Rebuild AccountMeta with the header-derived signer/writable flags
5. Copy instruction data verbatim

``recompile`` is the inverse of step 3-5 and must reproduce the original
compiled instructions byte for byte.
"""

from __future__ import annotations

import base64
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from solders.errors import BincodeError
from solders.instruction import AccountMeta, CompiledInstruction, Instruction
from solders.message import Message, MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from passpay.execution.errors import MalformedTransaction
from passpay.shared.system.logging import Logger


# ═══════════════════════════════════════════════════════════════════════════════
# ENVELOPE
# ═══════════════════════════════════════════════════════════════════════════════

SIGNATURE_LENGTH = 64
VERSION_PREFIX_MASK = 0x80

ADDRESS_LOOKUP_TABLE_PROGRAM_ID = Pubkey.from_string("AddressLookupTab1e1111111111111111111111111")
LOOKUP_TABLE_META_SIZE = 56


class EnvelopeVersion(Enum):
    LEGACY = "legacy"
    V0 = "v0"


@dataclass(frozen=True)
class LookupTableRef:
    """Address lookup table contents, used only while decomposing."""
    table_address: Pubkey
    resolved_addresses: Tuple[Pubkey, ...]


@dataclass(frozen=True)
class DecodedEnvelope:
    """Deserialized message plus the account layout needed for resolution."""
    version: EnvelopeVersion
    message: Union[Message, MessageV0]
    static_keys: Tuple[Pubkey, ...]
    num_required_signatures: int
    num_readonly_signed: int
    num_readonly_unsigned: int

    @property
    def lookups(self) -> list:
        if self.version is EnvelopeVersion.V0:
            return list(self.message.address_table_lookups)
        return []

    @property
    def compiled_instructions(self) -> List[CompiledInstruction]:
        return list(self.message.instructions)


def _read_compact_u16(raw: bytes, offset: int) -> Tuple[int, int]:
    """Decode a shortvec length prefix. Returns (value, new_offset)."""
    value = 0
    for i in range(3):
        if offset >= len(raw):
            raise MalformedTransaction("Truncated length prefix")
        byte = raw[offset]
        offset += 1
        value |= (byte & 0x7F) << (7 * i)
        if not byte & 0x80:
            return value, offset
    raise MalformedTransaction("Length prefix exceeds 3 bytes")


def read_envelope_version(raw: bytes) -> EnvelopeVersion:
    """
    Inspect the first message byte after the signatures.

    High bit clear -> legacy message; high bit set -> versioned, where only
    version 0 is supported.
    """
    num_signatures, offset = _read_compact_u16(raw, 0)
    offset += num_signatures * SIGNATURE_LENGTH
    if offset >= len(raw):
        raise MalformedTransaction("Transaction ends before the message")

    prefix = raw[offset]
    if not prefix & VERSION_PREFIX_MASK:
        return EnvelopeVersion.LEGACY

    version = prefix & ~VERSION_PREFIX_MASK
    if version != 0:
        raise MalformedTransaction(f"Unsupported transaction version {version}")
    return EnvelopeVersion.V0


def decode_envelope(raw: Union[bytes, str]) -> DecodedEnvelope:
    """
    Deserialize a transaction blob (raw bytes or base64 text).

    Raises:
        MalformedTransaction: bad base64, unknown version, or undecodable bytes
    """
    if isinstance(raw, str):
        try:
            raw = base64.b64decode(raw, validate=True)
        except ValueError as e:
            raise MalformedTransaction(f"Transaction is not valid base64: {e}") from e

    version = read_envelope_version(raw)

    try:
        tx = VersionedTransaction.from_bytes(raw)
    except (BincodeError, ValueError) as e:
        raise MalformedTransaction(f"Undecodable transaction: {e}") from e

    message = tx.message
    header = message.header
    return DecodedEnvelope(
        version=version,
        message=message,
        static_keys=tuple(message.account_keys),
        num_required_signatures=header.num_required_signatures,
        num_readonly_signed=header.num_readonly_signed_accounts,
        num_readonly_unsigned=header.num_readonly_unsigned_accounts,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# ACCOUNT RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ResolvedAccount:
    address: Pubkey
    is_signer: bool
    is_writable: bool


def resolve_account_keys(
    envelope: DecodedEnvelope,
    lookup_tables: Mapping[Pubkey, Sequence[Pubkey]],
) -> List[ResolvedAccount]:
    """
    Build the full ordered account table with signer/writable flags.

    Order: static keys, then every lookup's writable entries in declaration
    order, then every lookup's readonly entries in declaration order.
    """
    static_len = len(envelope.static_keys)
    n_signed = envelope.num_required_signatures
    if n_signed > static_len or envelope.num_readonly_signed > n_signed:
        raise MalformedTransaction("Message header does not fit the static key table")
    if envelope.num_readonly_unsigned > static_len - n_signed:
        raise MalformedTransaction("Message header does not fit the static key table")

    accounts: List[ResolvedAccount] = []
    for i, key in enumerate(envelope.static_keys):
        is_signer = i < n_signed
        if is_signer:
            is_writable = i < n_signed - envelope.num_readonly_signed
        else:
            is_writable = i < static_len - envelope.num_readonly_unsigned
        accounts.append(ResolvedAccount(key, is_signer, is_writable))

    writable: List[ResolvedAccount] = []
    readonly: List[ResolvedAccount] = []
    for lookup in envelope.lookups:
        table = lookup_tables.get(lookup.account_key)
        if table is None:
            raise MalformedTransaction(f"Lookup table {lookup.account_key} was not resolved")
        for bucket, indexes, flag in (
            (writable, lookup.writable_indexes, True),
            (readonly, lookup.readonly_indexes, False),
        ):
            for idx in list(indexes):
                if idx >= len(table):
                    raise MalformedTransaction(
                        f"Lookup index {idx} out of range for table {lookup.account_key} "
                        f"({len(table)} entries)"
                    )
                bucket.append(ResolvedAccount(table[idx], False, flag))

    accounts.extend(writable)
    accounts.extend(readonly)

    seen: Dict[Pubkey, int] = {}
    for i, account in enumerate(accounts):
        if account.address in seen:
            raise MalformedTransaction(
                f"Account {account.address} appears at both index {seen[account.address]} and {i}"
            )
        seen[account.address] = i

    return accounts


def _resolve(accounts: Sequence[ResolvedAccount], index: int) -> ResolvedAccount:
    if index >= len(accounts):
        raise MalformedTransaction(
            f"Account index {index} out of range ({len(accounts)} accounts after lookups)"
        )
    return accounts[index]


def decompose_envelope(
    envelope: DecodedEnvelope,
    lookup_tables: Optional[Mapping[Pubkey, Sequence[Pubkey]]] = None,
) -> List[Instruction]:
    accounts = resolve_account_keys(envelope, lookup_tables or {})

    instructions = []
    for compiled in envelope.compiled_instructions:
        program = _resolve(accounts, compiled.program_id_index)
        metas = [
            AccountMeta(ref.address, is_signer=ref.is_signer, is_writable=ref.is_writable)
            for ref in (_resolve(accounts, idx) for idx in list(compiled.accounts))
        ]
        instructions.append(Instruction(program.address, bytes(compiled.data), metas))

    return instructions


def decompose(
    raw: Union[bytes, str],
    lookup_tables: Optional[Mapping[Pubkey, Sequence[Pubkey]]] = None,
) -> List[Instruction]:
    """
    Decompose a transaction blob into instructions.

    Args:
        raw: Serialized transaction (bytes or base64)
        lookup_tables: Contents of every table the message references

    Raises:
        MalformedTransaction
    """
    return decompose_envelope(decode_envelope(raw), lookup_tables)


def recompile(
    instructions: Sequence[Instruction],
    envelope: DecodedEnvelope,
    lookup_tables: Optional[Mapping[Pubkey, Sequence[Pubkey]]] = None,
) -> List[CompiledInstruction]:
    """Compile instructions back against the envelope's account table."""
    accounts = resolve_account_keys(envelope, lookup_tables or {})
    index_of = {ref.address: i for i, ref in enumerate(accounts)}

    def lookup(key: Pubkey) -> int:
        if key not in index_of:
            raise MalformedTransaction(f"Account {key} is not in the message account table")
        return index_of[key]

    return [
        CompiledInstruction(
            lookup(ix.program_id),
            bytes(ix.data),
            bytes(lookup(meta.pubkey) for meta in ix.accounts),
        )
        for ix in instructions
    ]


# ═══════════════════════════════════════════════════════════════════════════════
# LOOKUP TABLE ACCOUNTS
# ═══════════════════════════════════════════════════════════════════════════════

def parse_lookup_table_account(table_address: Pubkey, data: bytes) -> LookupTableRef:
    """
    Parse address lookup table account data.

    Layout: 56-byte metadata (u32 discriminator, deactivation slot, last
    extended slot, start index, optional authority, padding) followed by
    packed 32-byte addresses.
    """
    if len(data) < LOOKUP_TABLE_META_SIZE:
        raise MalformedTransaction(f"Lookup table {table_address} data too short")

    (discriminator,) = struct.unpack_from("<I", data, 0)
    if discriminator != 1:
        raise MalformedTransaction(f"Account {table_address} is not an initialized lookup table")

    body = data[LOOKUP_TABLE_META_SIZE:]
    if len(body) % 32:
        raise MalformedTransaction(f"Lookup table {table_address} has a partial address")

    addresses = tuple(Pubkey.from_bytes(body[i:i + 32]) for i in range(0, len(body), 32))
    return LookupTableRef(table_address=table_address, resolved_addresses=addresses)


class VersionedTransactionDecomposer:
    """
    Decomposes aggregator blobs, fetching lookup tables through the ledger.

    Usage:
        decomposer = VersionedTransactionDecomposer(ledger)
        instructions = await decomposer.decompose(blob)
    """

    def __init__(self, ledger):
        """
        Args:
            ledger: LedgerAccessFacade (anything with get_address_lookup_table)
        """
        self.ledger = ledger

    async def fetch_lookup_tables(self, envelope: DecodedEnvelope) -> Dict[Pubkey, Tuple[Pubkey, ...]]:
        tables: Dict[Pubkey, Tuple[Pubkey, ...]] = {}
        for lookup in envelope.lookups:
            address = lookup.account_key
            if address in tables:
                continue
            table = await self.ledger.get_address_lookup_table(address)
            if table is None:
                raise MalformedTransaction(f"Lookup table {address} does not exist")
            tables[address] = table.resolved_addresses
        return tables

    async def decompose(self, raw: Union[bytes, str]) -> List[Instruction]:
        envelope = decode_envelope(raw)
        tables = await self.fetch_lookup_tables(envelope)
        instructions = decompose_envelope(envelope, tables)
        Logger.debug(
            f"[DECODER] {envelope.version.value} tx -> {len(instructions)} instructions "
            f"({len(tables)} lookup tables)"
        )
        return instructions
