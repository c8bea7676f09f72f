"""
PassPay Core
============
Transaction construction and ledger access for a single-signer Solana wallet.

Packages:
- execution: address derivation, instruction building, blob decomposition,
  transaction execution
- shared.infrastructure: cached/throttled ledger reads, swap aggregator client
- shared.execution: ExecutionResult
- shared.system: logging
"""

__version__ = "0.1.0"
