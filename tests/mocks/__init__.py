"""Test doubles for the ledger RPC client, the Signer, and time."""

from tests.mocks.fake_clock import FakeClock
from tests.mocks.mock_rpc import MockLedgerClient, lookup_table_data
from tests.mocks.mock_signer import MockSigner

__all__ = ["FakeClock", "MockLedgerClient", "MockSigner", "lookup_table_data"]
