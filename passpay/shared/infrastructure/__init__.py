# Infrastructure Package
"""Network-facing adapters: ledger RPC and swap aggregator."""

from .cache_manager import CacheManager
from .ledger_facade import LedgerAccessFacade
from .swap_aggregator import SwapAggregatorClient, SwapQuote

__all__ = [
    "CacheManager",
    "LedgerAccessFacade",
    "SwapAggregatorClient",
    "SwapQuote",
]
