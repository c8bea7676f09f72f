"""
Swap Aggregator Client
======================
Async HTTP client (httpx) for the swap aggregator's trade API.

The aggregator returns pre-built versioned transactions; this client only
fetches them. VersionedTransactionDecomposer turns them into instructions.

Flow:
1. get_quote()               GET  {base}/compute/swap-base-in
2. get_priority_fee()        GET  {fee_url}  (fixed tiers on failure)
3. get_swap_transactions()   POST {base}/transaction/swap-base-in
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from config.settings import Settings
from passpay.execution.address_derivation import to_pubkey
from passpay.execution.errors import AggregatorError, MalformedTransaction
from passpay.shared.system.logging import Logger


WRAPPED_SOL_MINT = Pubkey.from_string("So11111111111111111111111111111111111111112")


@dataclass(frozen=True)
class SwapQuote:
    """Parsed quote. ``raw`` is echoed back verbatim when building transactions."""
    input_mint: str
    output_mint: str
    input_amount: int
    output_amount: int
    price_impact_pct: float
    route_plan: Tuple[Dict[str, Any], ...]
    slippage_bps: int
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def input_is_native(self) -> bool:
        return self.input_mint == str(WRAPPED_SOL_MINT)

    @property
    def output_is_native(self) -> bool:
        return self.output_mint == str(WRAPPED_SOL_MINT)


def parse_quote(payload: Any) -> SwapQuote:
    """
    Validate a quote response.

    Raises:
        AggregatorError: the API answered success=false
        MalformedTransaction: any required field is missing or mistyped
    """
    if not isinstance(payload, dict):
        raise MalformedTransaction(f"Quote response is not an object: {type(payload).__name__}")
    if payload.get("success") is False:
        raise AggregatorError(f"Aggregator refused quote: {payload.get('msg', 'unknown reason')}")

    data = payload.get("data")
    try:
        route_plan = data["routePlan"]
        if not isinstance(route_plan, list):
            raise TypeError("routePlan is not a list")
        return SwapQuote(
            input_mint=str(data["inputMint"]),
            output_mint=str(data["outputMint"]),
            input_amount=int(data["inputAmount"]),
            output_amount=int(data["outputAmount"]),
            price_impact_pct=float(data["priceImpactPct"]),
            route_plan=tuple(route_plan),
            slippage_bps=int(data.get("slippageBps", 0)),
            raw=payload,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedTransaction(f"Quote response schema mismatch: {e}") from e


def parse_swap_transactions(payload: Any) -> List[bytes]:
    """Extract the base64 transaction blobs from a swap-transaction response."""
    if not isinstance(payload, dict):
        raise MalformedTransaction(f"Swap response is not an object: {type(payload).__name__}")
    if payload.get("success") is False:
        raise AggregatorError(f"Aggregator refused swap: {payload.get('msg', 'unknown reason')}")

    entries = payload.get("data")
    if not isinstance(entries, list) or not entries:
        raise MalformedTransaction("Swap response carries no transactions")

    blobs = []
    for i, entry in enumerate(entries):
        encoded = entry.get("transaction") if isinstance(entry, dict) else None
        if not isinstance(encoded, str):
            raise MalformedTransaction(f"Swap response entry {i} has no transaction")
        try:
            blobs.append(base64.b64decode(encoded, validate=True))
        except (binascii.Error, ValueError) as e:
            raise MalformedTransaction(f"Swap response entry {i} is not base64: {e}") from e
    return blobs


class SwapAggregatorClient:
    """
    Quote + transaction fetcher.

    Usage:
        async with SwapAggregatorClient() as swaps:
            quote = await swaps.get_quote(SOL, USDC, 10_000_000)
            blobs = await swaps.get_swap_transactions(quote, wallet)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        priority_fee_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or Settings.SWAP_API_BASE_URL).rstrip("/")
        self.priority_fee_url = priority_fee_url or Settings.SWAP_PRIORITY_FEE_URL
        self.tx_version = Settings.SWAP_TX_VERSION
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else Settings.SWAP_TIMEOUT_S
        )

    async def __aenter__(self) -> "SwapAggregatorClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AggregatorError(f"{method} {url} failed: {e}") from e
        try:
            return response.json()
        except ValueError as e:
            raise MalformedTransaction(f"{url} returned non-JSON body") from e

    # ─────────────────────────────────────────────────────────────────────────
    # Quote
    # ─────────────────────────────────────────────────────────────────────────

    async def get_quote(
        self,
        input_mint: Union[str, Pubkey],
        output_mint: Union[str, Pubkey],
        amount: int,
        slippage_bps: Optional[int] = None,
    ) -> SwapQuote:
        """
        Quote an exact-input swap.

        Args:
            amount: Input amount in base units
            slippage_bps: Default Settings.DEFAULT_SLIPPAGE_BPS
        """
        params = {
            "inputMint": str(to_pubkey(input_mint)),
            "outputMint": str(to_pubkey(output_mint)),
            "amount": str(int(amount)),
            "slippageBps": slippage_bps if slippage_bps is not None else Settings.DEFAULT_SLIPPAGE_BPS,
            "txVersion": self.tx_version,
        }
        payload = await self._request("GET", f"{self.base_url}{Settings.SWAP_QUOTE_PATH}", params=params)
        quote = parse_quote(payload)

        Logger.info(
            f"[SWAP] Quote {quote.input_amount} -> {quote.output_amount} "
            f"(impact {quote.price_impact_pct:.2f}%, {len(quote.route_plan)} hops)"
        )
        return quote

    # ─────────────────────────────────────────────────────────────────────────
    # Priority fee
    # ─────────────────────────────────────────────────────────────────────────

    async def get_priority_fees(self) -> Dict[str, int]:
        """Fee tiers (vh/h/m) in micro-lamports per CU. Falls back to fixed tiers."""
        try:
            payload = await self._request("GET", self.priority_fee_url)
            tiers = payload["data"]["default"]
            return {name: int(tiers[name]) for name in ("vh", "h", "m")}
        except (AggregatorError, MalformedTransaction, KeyError, TypeError, ValueError) as e:
            Logger.warning(f"[SWAP] Priority fee lookup failed, using defaults: {e}")
            return dict(Settings.FALLBACK_PRIORITY_FEES)

    async def get_priority_fee(self, tier: str = "h") -> int:
        return (await self.get_priority_fees())[tier]

    # ─────────────────────────────────────────────────────────────────────────
    # Transactions
    # ─────────────────────────────────────────────────────────────────────────

    async def get_swap_transactions(
        self,
        quote: SwapQuote,
        wallet: Union[str, Pubkey],
        compute_unit_price: Optional[int] = None,
    ) -> List[bytes]:
        """
        Fetch the pre-built transactions for a quote.

        Native SOL legs are wrapped/unwrapped by the aggregator; token legs use
        the wallet's associated token accounts.

        Returns:
            Raw transaction bytes, in submission order
        """
        owner = to_pubkey(wallet)
        if compute_unit_price is None:
            compute_unit_price = await self.get_priority_fee("h")

        body = {
            "computeUnitPriceMicroLamports": str(compute_unit_price),
            "swapResponse": quote.raw,
            "txVersion": self.tx_version,
            "wallet": str(owner),
            "wrapSol": quote.input_is_native,
            "unwrapSol": quote.output_is_native,
        }
        if not quote.input_is_native:
            body["inputAccount"] = str(
                get_associated_token_address(owner, Pubkey.from_string(quote.input_mint))
            )
        if not quote.output_is_native:
            body["outputAccount"] = str(
                get_associated_token_address(owner, Pubkey.from_string(quote.output_mint))
            )

        payload = await self._request(
            "POST", f"{self.base_url}{Settings.SWAP_TRANSACTION_PATH}", json=body
        )
        blobs = parse_swap_transactions(payload)
        Logger.info(f"[SWAP] Prepared {len(blobs)} transaction(s) for {owner}")
        return blobs
