import os
from dotenv import load_dotenv

# Load Environment Variables from project root .env
env_path = os.path.join(os.path.dirname(__file__), "../.env")
load_dotenv(env_path)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


class Settings:
    # ═══════════════════════════════════════════════════════════════════
    # NETWORK
    # ═══════════════════════════════════════════════════════════════════
    CLUSTER = os.getenv("PASSPAY_CLUSTER", "devnet")  # devnet | mainnet
    RPC_URL = os.getenv("PASSPAY_RPC_URL", "https://api.devnet.solana.com")
    RPC_COMMITMENT = os.getenv("PASSPAY_RPC_COMMITMENT", "confirmed")  # processed | confirmed | finalized

    # ═══════════════════════════════════════════════════════════════════
    # LEDGER READ PATH (cache + throttle)
    # ═══════════════════════════════════════════════════════════════════
    CACHE_TTL_S = _env_float("PASSPAY_CACHE_TTL_S", 30.0)
    # The public endpoint enforces an aggregate rate limit, not per-method
    MIN_REQUEST_INTERVAL_S = _env_float("PASSPAY_MIN_REQUEST_INTERVAL_S", 0.2)

    # ═══════════════════════════════════════════════════════════════════
    # EXECUTION
    # ═══════════════════════════════════════════════════════════════════
    CONFIRMATION_TIMEOUT_S = _env_float("PASSPAY_CONFIRMATION_TIMEOUT_S", 60.0)
    CONFIRMATION_POLL_INTERVAL_S = _env_float("PASSPAY_CONFIRMATION_POLL_INTERVAL_S", 2.0)

    # Below this native balance the fee is delegated to the paymaster
    MIN_NATIVE_FEE_RESERVE_LAMPORTS = _env_int("PASSPAY_MIN_NATIVE_FEE_RESERVE_LAMPORTS", 10_000)

    # Delegated fee token
    FEE_TOKEN_SYMBOL = "USDC"
    USDC_MINT = os.getenv("PASSPAY_USDC_MINT", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v")

    # ═══════════════════════════════════════════════════════════════════
    # STAKING
    # ═══════════════════════════════════════════════════════════════════
    MIN_STAKE_LAMPORTS = _env_int("PASSPAY_MIN_STAKE_LAMPORTS", 10_000_000)  # 0.01 SOL

    # ═══════════════════════════════════════════════════════════════════
    # SWAP AGGREGATOR
    # ═══════════════════════════════════════════════════════════════════
    SWAP_API_BASE_URL = os.getenv("PASSPAY_SWAP_API_BASE_URL", "https://transaction-v1.raydium.io")
    SWAP_QUOTE_PATH = "/compute/swap-base-in"
    SWAP_TRANSACTION_PATH = "/transaction/swap-base-in"
    SWAP_PRIORITY_FEE_URL = "https://api-v3.raydium.io/main/auto-fee"
    SWAP_TIMEOUT_S = 15.0
    SWAP_TX_VERSION = "V0"
    DEFAULT_SLIPPAGE_BPS = 50  # 0.5%

    # Fixed priority fee tiers (micro-lamports) when the fee endpoint is down
    FALLBACK_PRIORITY_FEES = {"vh": 100_000, "h": 50_000, "m": 25_000}

    # ═══════════════════════════════════════════════════════════════════
    # EXPLORER
    # ═══════════════════════════════════════════════════════════════════
    EXPLORER_BASE_URL = os.getenv("PASSPAY_EXPLORER_BASE_URL", "https://solscan.io")

    # ═══════════════════════════════════════════════════════════════════
    # LOGGING
    # ═══════════════════════════════════════════════════════════════════
    LOG_DIR = os.getenv(
        "PASSPAY_LOG_DIR",
        os.path.abspath(os.path.join(os.path.dirname(__file__), "../logs")),
    )
    SILENT_MODE = os.getenv("PASSPAY_SILENT_MODE", "false").lower() in ("1", "true", "yes")
