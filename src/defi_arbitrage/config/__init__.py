"""Configuration module for the arbitrage engine."""

from defi_arbitrage.config.constants import (
    COINGECKO_API_URL,
    DEXSCREENER_API_URL,
    GAS_ESTIMATE_UNITS,
    TRADE_DEADLINE_SECONDS,
)
from defi_arbitrage.config.settings import Settings, SystemSettings, get_settings


__all__ = [
    "Settings",
    "SystemSettings",
    "get_settings",
    "COINGECKO_API_URL",
    "DEXSCREENER_API_URL",
    "GAS_ESTIMATE_UNITS",
    "TRADE_DEADLINE_SECONDS",
]
