"""
PassPay Test Configuration
==========================
Shared fixtures and pytest markers for the test suite.
"""

import pytest


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )
    config.addinivalue_line(
        "markers", "integration: marks integration tests"
    )


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def quiet_console():
    """Keep Rich console output out of test runs (file log still written)."""
    from passpay.shared.system.logging import Logger

    Logger.set_silent(True)
    yield
    Logger.set_silent(False)


@pytest.fixture
def owner():
    from solders.pubkey import Pubkey
    return Pubkey.new_unique()


@pytest.fixture
def recipient():
    from solders.pubkey import Pubkey
    return Pubkey.new_unique()
