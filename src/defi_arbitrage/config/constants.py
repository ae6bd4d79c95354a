"""
Scanner, risk and execution constants.

This module contains all hardcoded values used throughout the engine.
Values are organized by category for easy maintenance and auditing.
"""

from typing import Final


# =============================================================================
# Price API Endpoints
# =============================================================================

COINGECKO_API_URL: Final[str] = "https://api.coingecko.com/api/v3"
COINGECKO_PRO_API_URL: Final[str] = "https://pro-api.coingecko.com/api/v3"
DEXSCREENER_API_URL: Final[str] = "https://api.dexscreener.com"

ENDPOINT_SIMPLE_PRICE: Final[str] = "/simple/price"
ENDPOINT_DEX_TOKENS: Final[str] = "/latest/dex/tokens"

COINGECKO_API_KEY_HEADER: Final[str] = "x-cg-pro-api-key"

# DexScreener pairs are filtered to this chain when picking a quote
DEXSCREENER_CHAIN_ID: Final[str] = "ethereum"

PRICE_REQUEST_TIMEOUT: Final[float] = 10.0  # seconds


# =============================================================================
# Rate Limiting
# =============================================================================

# CoinGecko public tier allows roughly 30 calls per minute
COINGECKO_REQUESTS_PER_MINUTE: Final[int] = 30
DEXSCREENER_REQUESTS_PER_MINUTE: Final[int] = 300


# =============================================================================
# Gas Model
# =============================================================================

# Estimated gas units for a single swap
GAS_ESTIMATE_UNITS: Final[int] = 75_000

# Gas price is quoted in micro-native units per gas unit
GAS_PRICE_DIVISOR: Final[float] = 1_000_000.0

DEFAULT_GAS_PRICE: Final[float] = 0.025
DEFAULT_NATIVE_PRICE_USD: Final[float] = 1.0


# =============================================================================
# Slippage Model
# =============================================================================

BASE_SLIPPAGE: Final[float] = 0.001  # 0.1%
SLIPPAGE_SIZE_DIVISOR: Final[float] = 100_000.0
MAX_SIZE_SLIPPAGE: Final[float] = 0.005  # 0.5%


# =============================================================================
# Risk Classification
# =============================================================================

HIGH_RISK_MARGIN: Final[float] = 0.01
HIGH_RISK_SLIPPAGE: Final[float] = 0.02
HIGH_RISK_PRICE_DIFFERENCE: Final[float] = 0.02
MEDIUM_RISK_MARGIN: Final[float] = 0.03
MEDIUM_RISK_SLIPPAGE: Final[float] = 0.01


# =============================================================================
# Trade Parameters
# =============================================================================

DEFAULT_TRADE_AMOUNT_USD: Final[float] = 1000.0
TRADE_DEADLINE_SECONDS: Final[int] = 1200  # 20 minutes
AMOUNT_DECIMALS: Final[int] = 18


# =============================================================================
# Execution
# =============================================================================

SIMULATED_TX_PREFIX: Final[str] = "SIM"
SIMULATED_LATENCY: Final[float] = 2.0  # seconds

# Realized profit is the expected profit scaled by a factor in this range
REALIZED_PROFIT_MIN_FACTOR: Final[float] = 0.95
REALIZED_PROFIT_MAX_FACTOR: Final[float] = 1.05

TRANSFER_MEMO: Final[str] = "arbitrage-execution"
RECEIPT_TIMEOUT: Final[float] = 120.0  # seconds


# =============================================================================
# Lifecycle Pacing
# =============================================================================

ASSESSMENT_DELAY: Final[float] = 2.0  # seconds
EXECUTION_DELAY: Final[float] = 3.0  # seconds


# =============================================================================
# Runtime Settings Bounds
# =============================================================================

DEFAULT_SCAN_INTERVAL: Final[int] = 30  # seconds
MIN_SCAN_INTERVAL: Final[int] = 5
MAX_SCAN_INTERVAL: Final[int] = 300

DEFAULT_MIN_PROFIT_PCT: Final[float] = 1.0
DEFAULT_MAX_SLIPPAGE_PCT: Final[float] = 1.0
MAX_SLIPPAGE_PCT: Final[float] = 10.0


# =============================================================================
# History Limits
# =============================================================================

OPPORTUNITY_LIST_LIMIT: Final[int] = 50
ACTIVITY_LOG_SIZE: Final[int] = 50


# =============================================================================
# Logging & Telemetry
# =============================================================================

LOG_FORMAT: Final[str] = "%(asctime)s.%(msecs)03d | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

# Maximum log queue size
MAX_LOG_QUEUE_SIZE: Final[int] = 10_000
