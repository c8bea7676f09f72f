"""
SwapAggregatorClient Unit Tests
===============================
HTTP is served by httpx.MockTransport; nothing leaves the process.
"""

import base64

import httpx
import pytest
from solders.pubkey import Pubkey


SOL = "So11111111111111111111111111111111111111112"
USDC = "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU"


def _quote_payload(**overrides):
    data = {
        "swapType": "BaseIn",
        "inputMint": SOL,
        "inputAmount": "10000000",
        "outputMint": USDC,
        "outputAmount": "1523000",
        "otherAmountThreshold": "1515385",
        "slippageBps": 50,
        "priceImpactPct": 0.12,
        "routePlan": [{"poolId": "pool1", "inputMint": SOL, "outputMint": USDC}],
    }
    data.update(overrides)
    return {"id": "q1", "success": True, "version": "V0", "data": data}


class Recorder:
    """MockTransport handler with canned responses per path."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes[request.url.path]
        if isinstance(body, Exception):
            raise body
        return httpx.Response(status, json=body)


def _client(recorder):
    from passpay.shared.infrastructure.swap_aggregator import SwapAggregatorClient

    http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return SwapAggregatorClient(
        base_url="https://swap.test",
        priority_fee_url="https://fees.test/main/auto-fee",
        http_client=http,
    )


class TestQuote:

    @pytest.mark.asyncio
    async def test_parses_quote(self):
        recorder = Recorder({"/compute/swap-base-in": (200, _quote_payload())})
        async with _client(recorder) as swaps:
            quote = await swaps.get_quote(SOL, USDC, 10_000_000, slippage_bps=75)

        assert quote.input_amount == 10_000_000
        assert quote.output_amount == 1_523_000
        assert quote.price_impact_pct == pytest.approx(0.12)
        assert len(quote.route_plan) == 1
        assert quote.input_is_native and not quote.output_is_native

        params = recorder.requests[0].url.params
        assert params["inputMint"] == SOL
        assert params["amount"] == "10000000"
        assert params["slippageBps"] == "75"
        assert params["txVersion"] == "V0"

    @pytest.mark.asyncio
    async def test_schema_mismatch(self):
        from passpay.execution.errors import MalformedTransaction

        payload = _quote_payload()
        del payload["data"]["outputAmount"]
        recorder = Recorder({"/compute/swap-base-in": (200, payload)})

        async with _client(recorder) as swaps:
            with pytest.raises(MalformedTransaction):
                await swaps.get_quote(SOL, USDC, 1)

    @pytest.mark.asyncio
    async def test_refused(self):
        from passpay.execution.errors import AggregatorError

        recorder = Recorder({"/compute/swap-base-in": (200, {"success": False, "msg": "ROUTE_NOT_FOUND"})})

        async with _client(recorder) as swaps:
            with pytest.raises(AggregatorError, match="ROUTE_NOT_FOUND"):
                await swaps.get_quote(SOL, USDC, 1)

    @pytest.mark.asyncio
    async def test_http_error(self):
        from passpay.execution.errors import AggregatorError

        recorder = Recorder({"/compute/swap-base-in": (503, {"error": "down"})})

        async with _client(recorder) as swaps:
            with pytest.raises(AggregatorError):
                await swaps.get_quote(SOL, USDC, 1)


class TestPriorityFee:

    @pytest.mark.asyncio
    async def test_reads_tiers(self):
        recorder = Recorder({
            "/main/auto-fee": (200, {"success": True, "data": {"default": {"vh": 9, "h": 7, "m": 5}}}),
        })
        async with _client(recorder) as swaps:
            assert await swaps.get_priority_fee("h") == 7
            assert await swaps.get_priority_fee("vh") == 9

    @pytest.mark.asyncio
    async def test_falls_back_on_failure(self):
        recorder = Recorder({"/main/auto-fee": (500, {})})
        async with _client(recorder) as swaps:
            assert await swaps.get_priority_fees() == {"vh": 100_000, "h": 50_000, "m": 25_000}

    @pytest.mark.asyncio
    async def test_falls_back_on_bad_shape(self):
        recorder = Recorder({"/main/auto-fee": (200, {"data": {}})})
        async with _client(recorder) as swaps:
            assert await swaps.get_priority_fee("m") == 25_000


class TestSwapTransactions:

    @pytest.mark.asyncio
    async def test_returns_raw_blobs(self, owner):
        import json
        from spl.token.instructions import get_associated_token_address

        blob_a, blob_b = b"\x01" * 80, b"\x02" * 90
        recorder = Recorder({
            "/compute/swap-base-in": (200, _quote_payload()),
            "/main/auto-fee": (200, {"data": {"default": {"vh": 9, "h": 7, "m": 5}}}),
            "/transaction/swap-base-in": (200, {
                "success": True,
                "data": [
                    {"transaction": base64.b64encode(blob_a).decode()},
                    {"transaction": base64.b64encode(blob_b).decode()},
                ],
            }),
        })

        async with _client(recorder) as swaps:
            quote = await swaps.get_quote(SOL, USDC, 10_000_000)
            blobs = await swaps.get_swap_transactions(quote, owner)

        assert blobs == [blob_a, blob_b]

        body = json.loads(recorder.requests[-1].content)
        assert body["wallet"] == str(owner)
        assert body["computeUnitPriceMicroLamports"] == "7"
        assert body["wrapSol"] is True
        assert body["unwrapSol"] is False
        assert "inputAccount" not in body
        assert body["outputAccount"] == str(get_associated_token_address(owner, Pubkey.from_string(USDC)))
        assert body["swapResponse"]["id"] == "q1"

    @pytest.mark.asyncio
    async def test_explicit_price_skips_fee_lookup(self, owner):
        recorder = Recorder({
            "/compute/swap-base-in": (200, _quote_payload()),
            "/transaction/swap-base-in": (200, {
                "success": True,
                "data": [{"transaction": base64.b64encode(b"\x00" * 10).decode()}],
            }),
        })

        async with _client(recorder) as swaps:
            quote = await swaps.get_quote(SOL, USDC, 1)
            await swaps.get_swap_transactions(quote, owner, compute_unit_price=1234)

        paths = [r.url.path for r in recorder.requests]
        assert "/main/auto-fee" not in paths

    @pytest.mark.parametrize("payload", [
        {"success": True, "data": []},
        {"success": True, "data": [{"tx": "abc"}]},
        {"success": True, "data": [{"transaction": "***"}]},
        ["not", "an", "object"],
    ])
    def test_malformed_responses(self, payload):
        from passpay.execution.errors import MalformedTransaction
        from passpay.shared.infrastructure.swap_aggregator import parse_swap_transactions

        with pytest.raises(MalformedTransaction):
            parse_swap_transactions(payload)
