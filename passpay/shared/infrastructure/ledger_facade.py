"""
Ledger Access Facade
====================
One shared, rate-limited, cached read path over the Solana JSON-RPC endpoint.

Construct one instance at startup and pass it to every component that reads
ledger state. There is no module-level connection singleton.

Features:
- Per-key TTL caching (default 30s, per facade instance)
- Global throttle gate: minimum spacing between ANY two outbound calls
  (default 200ms), because the public endpoint rate-limits in aggregate
- Explicit invalidation (pull-to-refresh) by address or wholesale
- Expired entries swept on every cache miss, so the map stays bounded

Concurrent misses on the same key are not coalesced; each caller throttles
and calls through independently.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, TypeVar, Union

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.types import MemcmpOpts, TokenAccountOpts
from solders.pubkey import Pubkey
from solders.signature import Signature
from spl.token.instructions import get_associated_token_address

from config.settings import Settings
from passpay.execution.address_derivation import to_pubkey
from passpay.execution.errors import LedgerError, MalformedTransaction
from passpay.execution.instruction_factory import STAKE_PROGRAM_ID
from passpay.execution.versioned_decoder import (
    ADDRESS_LOOKUP_TABLE_PROGRAM_ID,
    LookupTableRef,
    parse_lookup_table_account,
)
from passpay.shared.infrastructure.cache_manager import MISSING, CacheManager
from passpay.shared.system.logging import Logger


T = TypeVar("T")

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")

# Staker authority offset inside a stake account
STAKER_AUTHORITY_OFFSET = 12

# u64::MAX epoch marks "never" for activation/deactivation
EPOCH_NEVER = 18446744073709551615

TRANSPORT_ERRORS = (SolanaRpcException, httpx.HTTPError, OSError, asyncio.TimeoutError)


# ═══════════════════════════════════════════════════════════════════════════════
# READ MODELS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TokenBalance:
    """SPL token balance in base units."""
    amount: int
    decimals: int

    @property
    def ui_amount(self) -> Decimal:
        return Decimal(self.amount) / (Decimal(10) ** self.decimals)


@dataclass(frozen=True)
class AccountSnapshot:
    """Raw account state at read time."""
    address: Pubkey
    lamports: int
    owner: Pubkey
    data: bytes
    executable: bool = False


@dataclass(frozen=True)
class SignatureStatus:
    signature: str
    slot: Optional[int]
    confirmation_status: Optional[str]  # processed | confirmed | finalized
    err: Optional[str] = None

    @property
    def is_confirmed(self) -> bool:
        return self.err is None and self.confirmation_status in ("confirmed", "finalized")

    @property
    def failed(self) -> bool:
        return self.err is not None


class StakeState(Enum):
    ACTIVATING = "activating"
    ACTIVE = "active"
    DEACTIVATING = "deactivating"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class StakeAccountSummary:
    """Read-only projection, built fresh on each query."""
    address: Pubkey
    lamports: int
    state: StakeState
    delegated_validator: Optional[Pubkey] = None


@dataclass(frozen=True)
class ValidatorSummary:
    vote_account: Pubkey
    node_pubkey: Pubkey
    activated_stake: int  # lamports

    @property
    def stake_sol(self) -> Decimal:
        return Decimal(self.activated_stake) / Decimal(1_000_000_000)


@dataclass(frozen=True)
class TokenAccountSummary:
    address: Pubkey
    mint: Pubkey
    balance: TokenBalance


def _status_name(value: Any) -> Optional[str]:
    """Normalize TransactionConfirmationStatus (or a plain string) to lowercase."""
    if value is None:
        return None
    return str(value).rsplit(".", 1)[-1].lower()


def classify_stake(parsed: Any) -> tuple:
    """
    Derive (state, validator) from a jsonParsed stake account payload.

    No delegation -> inactive; deactivation epoch set -> deactivating;
    activation epoch set -> active; otherwise activating.
    """
    info = (parsed or {}).get("info") or {}
    delegation = (info.get("stake") or {}).get("delegation")
    if not delegation:
        return StakeState.INACTIVE, None

    deactivation = int(delegation.get("deactivationEpoch", EPOCH_NEVER))
    activation = int(delegation.get("activationEpoch", EPOCH_NEVER))

    if deactivation != EPOCH_NEVER:
        state = StakeState.DEACTIVATING
    elif activation != EPOCH_NEVER:
        state = StakeState.ACTIVE
    else:
        state = StakeState.ACTIVATING

    voter = delegation.get("voter")
    return state, Pubkey.from_string(voter) if voter else None


# ═══════════════════════════════════════════════════════════════════════════════
# FACADE
# ═══════════════════════════════════════════════════════════════════════════════

class LedgerAccessFacade:
    """
    Cached + throttled ledger reads.

    Usage:
        ledger = LedgerAccessFacade()
        lamports = await ledger.get_balance(wallet)
        await ledger.invalidate(wallet)   # pull-to-refresh
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        ttl: Optional[float] = None,
        min_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            client: Async RPC client (solana-py AsyncClient surface)
            ttl: Cache TTL in seconds (default Settings.CACHE_TTL_S)
            min_interval: Minimum spacing between outbound calls in seconds
            clock: Monotonic clock in seconds
            sleep: Coroutine used to wait out the throttle window
        """
        self.client = client or AsyncClient(Settings.RPC_URL, commitment=Commitment(Settings.RPC_COMMITMENT))
        self.ttl = Settings.CACHE_TTL_S if ttl is None else ttl
        self.min_interval = Settings.MIN_REQUEST_INTERVAL_S if min_interval is None else min_interval
        self._clock = clock
        self._sleep = sleep
        self._cache = CacheManager(ttl=self.ttl, clock=clock)
        self._throttle_lock = asyncio.Lock()
        self._last_request_at: Optional[float] = None

        # Stats
        self.network_calls = 0
        self.cache_hits = 0

    # ─────────────────────────────────────────────────────────────────────────
    # Throttle gate
    # ─────────────────────────────────────────────────────────────────────────

    async def _throttle(self) -> None:
        async with self._throttle_lock:
            if self._last_request_at is not None:
                wait = self._last_request_at + self.min_interval - self._clock()
                if wait > 0:
                    Logger.debug(f"[LEDGER] Throttle wait {wait * 1000:.0f}ms")
                    await self._sleep(wait)
            self._last_request_at = self._clock()

    async def throttled_call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Pass one outbound call through the global throttle gate."""
        await self._throttle()
        self.network_calls += 1
        return await fn(*args, **kwargs)

    async def _rpc(self, method: str, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        try:
            return await self.throttled_call(fn, *args, **kwargs)
        except RPCException as e:
            raise LedgerError(method, str(e)) from e
        except TRANSPORT_ERRORS as e:
            Logger.warning(f"[LEDGER] {method} transport error: {e}")
            raise LedgerError(method, str(e)) from e

    async def _cached(self, key: str, fetch: Callable[[], Awaitable[T]]) -> T:
        cached = await self._cache.get(key, MISSING)
        if cached is not MISSING:
            self.cache_hits += 1
            return cached

        Logger.debug(f"[LEDGER] Cache miss: {key}")
        value = await fetch()
        await self._cache.set(key, value)

        # Keys that are never read again would otherwise outlive their TTL
        pruned = await self._cache.cleanup_expired()
        if pruned:
            Logger.debug(f"[LEDGER] Pruned {pruned} expired entries")
        return value

    # ─────────────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────────────

    async def get_balance(self, address: Union[str, Pubkey]) -> int:
        """Native balance in lamports."""
        pubkey = to_pubkey(address)

        async def fetch() -> int:
            resp = await self._rpc("getBalance", self.client.get_balance, pubkey)
            return int(resp.value)

        return await self._cached(f"balance:{pubkey}", fetch)

    async def get_token_balance(self, token_account: Union[str, Pubkey]) -> Optional[TokenBalance]:
        """Token account balance, or None when the account does not exist."""
        pubkey = to_pubkey(token_account)

        async def fetch() -> Optional[TokenBalance]:
            try:
                resp = await self.throttled_call(self.client.get_token_account_balance, pubkey)
            except RPCException:
                Logger.debug(f"[LEDGER] Token account {pubkey} not found")
                return None
            except TRANSPORT_ERRORS as e:
                raise LedgerError("getTokenAccountBalance", str(e)) from e
            value = resp.value
            return TokenBalance(amount=int(value.amount), decimals=int(value.decimals))

        return await self._cached(f"token:{pubkey}", fetch)

    async def get_associated_token_balance(
        self,
        owner: Union[str, Pubkey],
        mint: Optional[Union[str, Pubkey]] = None,
    ) -> Optional[TokenBalance]:
        """
        Balance of the owner's associated token account for ``mint``
        (default Settings.USDC_MINT), or None when that account does not exist.
        """
        mint_key = to_pubkey(mint or Settings.USDC_MINT)
        ata = get_associated_token_address(to_pubkey(owner), mint_key)
        return await self.get_token_balance(ata)

    async def get_account_info(self, address: Union[str, Pubkey]) -> Optional[AccountSnapshot]:
        pubkey = to_pubkey(address)

        async def fetch() -> Optional[AccountSnapshot]:
            resp = await self._rpc("getAccountInfo", self.client.get_account_info, pubkey)
            account = resp.value
            if account is None:
                return None
            return AccountSnapshot(
                address=pubkey,
                lamports=int(account.lamports),
                owner=to_pubkey(account.owner),
                data=bytes(account.data),
                executable=bool(account.executable),
            )

        return await self._cached(f"account:{pubkey}", fetch)

    async def get_address_lookup_table(self, address: Union[str, Pubkey]) -> Optional[LookupTableRef]:
        """Lookup table contents, or None when the table account does not exist."""
        account = await self.get_account_info(address)
        if account is None:
            return None
        if account.owner != ADDRESS_LOOKUP_TABLE_PROGRAM_ID:
            raise MalformedTransaction(f"Account {account.address} is not an address lookup table")
        return parse_lookup_table_account(account.address, account.data)

    async def get_signature_status(self, signature: Union[str, Signature]) -> Optional[SignatureStatus]:
        """Fresh (uncached) status lookup; None while the ledger has not seen it."""
        if isinstance(signature, Signature):
            sig = signature
        else:
            try:
                sig = Signature.from_string(str(signature))
            except ValueError as e:
                raise LedgerError("getSignatureStatuses", f"unparseable signature {signature!r}: {e}") from e

        resp = await self._rpc("getSignatureStatuses", self.client.get_signature_statuses, [sig])

        statuses = resp.value or []
        status = statuses[0] if statuses else None
        if status is None:
            return None

        return SignatureStatus(
            signature=str(sig),
            slot=getattr(status, "slot", None),
            confirmation_status=_status_name(getattr(status, "confirmation_status", None)),
            err=str(status.err) if getattr(status, "err", None) is not None else None,
        )

    async def get_token_accounts_by_owner(
        self,
        owner: Union[str, Pubkey],
        mint: Optional[Union[str, Pubkey]] = None,
    ) -> List[TokenAccountSummary]:
        owner_key = to_pubkey(owner)
        opts = TokenAccountOpts(mint=to_pubkey(mint)) if mint else TokenAccountOpts(program_id=TOKEN_PROGRAM_ID)

        async def fetch() -> List[TokenAccountSummary]:
            resp = await self._rpc(
                "getTokenAccountsByOwner",
                self.client.get_token_accounts_by_owner_json_parsed,
                owner_key,
                opts,
            )
            accounts = []
            for keyed in resp.value or []:
                info = (keyed.account.data.parsed or {}).get("info") or {}
                token_amount = info.get("tokenAmount") or {}
                accounts.append(
                    TokenAccountSummary(
                        address=to_pubkey(keyed.pubkey),
                        mint=Pubkey.from_string(info["mint"]),
                        balance=TokenBalance(
                            amount=int(token_amount.get("amount", 0)),
                            decimals=int(token_amount.get("decimals", 0)),
                        ),
                    )
                )
            return accounts

        return await self._cached(f"tokens:{owner_key}:{mint or '*'}", fetch)

    async def get_stake_accounts(self, owner: Union[str, Pubkey]) -> List[StakeAccountSummary]:
        """Stake accounts whose staker authority is ``owner``."""
        owner_key = to_pubkey(owner)

        async def fetch() -> List[StakeAccountSummary]:
            resp = await self._rpc(
                "getProgramAccounts",
                self.client.get_program_accounts_json_parsed,
                STAKE_PROGRAM_ID,
                filters=[MemcmpOpts(offset=STAKER_AUTHORITY_OFFSET, bytes=str(owner_key))],
            )
            summaries = []
            for keyed in resp.value or []:
                state, validator = classify_stake(keyed.account.data.parsed)
                summaries.append(
                    StakeAccountSummary(
                        address=to_pubkey(keyed.pubkey),
                        lamports=int(keyed.account.lamports),
                        state=state,
                        delegated_validator=validator,
                    )
                )
            return summaries

        return await self._cached(f"stakes:{owner_key}", fetch)

    async def get_minimum_balance_for_rent_exemption(self, space: int) -> int:
        async def fetch() -> int:
            resp = await self._rpc(
                "getMinimumBalanceForRentExemption",
                self.client.get_minimum_balance_for_rent_exemption,
                space,
            )
            return int(resp.value)

        return await self._cached(f"rent:{space}", fetch)

    async def get_validators(self, limit: int = 10) -> List[ValidatorSummary]:
        """Current (non-delinquent) vote accounts, largest activated stake first."""
        async def fetch() -> List[ValidatorSummary]:
            resp = await self._rpc("getVoteAccounts", self.client.get_vote_accounts)
            current = sorted(resp.value.current, key=lambda v: int(v.activated_stake), reverse=True)
            return [
                ValidatorSummary(
                    vote_account=to_pubkey(v.vote_pubkey),
                    node_pubkey=to_pubkey(v.node_pubkey),
                    activated_stake=int(v.activated_stake),
                )
                for v in current[:limit]
            ]

        return await self._cached(f"validators:{limit}", fetch)

    # ─────────────────────────────────────────────────────────────────────────
    # Invalidation
    # ─────────────────────────────────────────────────────────────────────────

    async def invalidate(self, address: Union[str, Pubkey]) -> int:
        """Drop every cached entry mentioning ``address``."""
        removed = await self._cache.invalidate(str(to_pubkey(address)))
        Logger.debug(f"[LEDGER] Invalidated {removed} entries for {address}")
        return removed

    async def invalidate_all(self) -> None:
        await self._cache.clear()
        Logger.debug("[LEDGER] Cache cleared")

    async def close(self) -> None:
        await self.client.close()

    def get_stats(self) -> dict:
        return {
            "network_calls": self.network_calls,
            "cache_hits": self.cache_hits,
            "cached_keys": self._cache.size(),
            "ttl_s": self.ttl,
            "min_interval_s": self.min_interval,
        }
