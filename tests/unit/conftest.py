"""
Unit Test Configuration
=======================
Fixtures for pure logic tests - NO I/O ALLOWED.

All unit tests should be completely isolated from:
- Network (RPC, HTTP)
- File system (except tmp_path and the run log)

Ledger access goes through MockLedgerClient; time goes through FakeClock.
"""

import pytest


# ============================================================================
# AUTOUSE: ENFORCE I/O ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def isolate_unit_tests(monkeypatch):
    """
    Automatically disable real network I/O for unit tests.
    Any test that accidentally reaches a live endpoint will fail.
    """
    def block_network(*args, **kwargs):
        raise RuntimeError(
            "Network I/O detected in unit test! "
            "Unit tests must be pure logic with no external dependencies. "
            "Use MockLedgerClient or httpx.MockTransport instead."
        )

    monkeypatch.setattr("httpx.AsyncHTTPTransport.handle_async_request", block_network, raising=False)
    monkeypatch.setattr("solana.rpc.providers.async_http.AsyncHTTPProvider.make_request", block_network, raising=False)


# ============================================================================
# LEDGER FIXTURES
# ============================================================================


@pytest.fixture
def clock():
    from tests.mocks import FakeClock
    return FakeClock()


@pytest.fixture
def rpc(clock):
    from tests.mocks import MockLedgerClient
    return MockLedgerClient(clock=clock)


@pytest.fixture
def ledger(rpc, clock):
    """Facade over the mock client with the throttle disabled."""
    from passpay.shared.infrastructure.ledger_facade import LedgerAccessFacade
    return LedgerAccessFacade(client=rpc, ttl=30.0, min_interval=0.0, clock=clock, sleep=clock.sleep)
