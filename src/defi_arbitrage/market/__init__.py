"""Market data module for token metadata and live price feeds."""

from defi_arbitrage.market.price_source import LivePriceSource
from defi_arbitrage.market.rate_limiter import RateLimiter, TokenBucket
from defi_arbitrage.market.tokens import TokenRegistry


__all__ = [
    "LivePriceSource",
    "RateLimiter",
    "TokenBucket",
    "TokenRegistry",
]
