"""
Token bucket rate limiter for price API requests.

Implements an async-compatible rate limiter to stay under the public
request quotas of CoinGecko and DexScreener.
"""

import asyncio
from dataclasses import dataclass, field

from defi_arbitrage.config.constants import (
    COINGECKO_REQUESTS_PER_MINUTE,
    DEXSCREENER_REQUESTS_PER_MINUTE,
)
from defi_arbitrage.utils.time import get_timestamp_ms


@dataclass
class TokenBucket:
    """
    Token bucket implementation for rate limiting.

    Tokens are added at a constant rate up to a maximum capacity.
    Each request consumes one or more tokens.
    """

    capacity: int
    refill_rate: float  # tokens per second
    tokens: float = field(init=False)
    last_refill: int = field(init=False)  # milliseconds
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        """Initialize with full bucket."""
        self.tokens = float(self.capacity)
        self.last_refill = get_timestamp_ms()

    def _refill(self) -> None:
        """Add tokens based on elapsed time."""
        now = get_timestamp_ms()
        elapsed_seconds = (now - self.last_refill) / 1000.0

        self.tokens = min(
            self.capacity,
            self.tokens + (elapsed_seconds * self.refill_rate),
        )
        self.last_refill = now

    async def acquire(self, tokens: int = 1) -> None:
        """
        Acquire tokens, waiting if necessary.

        Args:
            tokens: Number of tokens to acquire.
        """
        async with self._lock:
            self._refill()

            if self.tokens >= tokens:
                self.tokens -= tokens
                return

            # Wait for the deficit to refill
            wait_seconds = (tokens - self.tokens) / self.refill_rate
            await asyncio.sleep(wait_seconds)
            self._refill()
            self.tokens -= tokens

    async def try_acquire(self, tokens: int = 1) -> bool:
        """
        Try to acquire tokens without waiting.

        Returns:
            True if tokens were acquired, False if not enough available.
        """
        async with self._lock:
            self._refill()

            if self.tokens >= tokens:
                self.tokens -= tokens
                return True
            return False


def per_minute_bucket(requests_per_minute: int) -> TokenBucket:
    """Bucket allowing ``requests_per_minute`` with a burst of the same size."""
    return TokenBucket(
        capacity=requests_per_minute,
        refill_rate=requests_per_minute / 60.0,
    )


class RateLimiter:
    """
    Per-provider rate limiter for the price APIs.

    Keeps one bucket per provider so a CoinGecko backoff never
    throttles DexScreener fallbacks.
    """

    def __init__(
        self,
        coingecko_per_minute: int = COINGECKO_REQUESTS_PER_MINUTE,
        dexscreener_per_minute: int = DEXSCREENER_REQUESTS_PER_MINUTE,
    ) -> None:
        """
        Initialize rate limiter with specified limits.

        Args:
            coingecko_per_minute: Maximum CoinGecko requests per minute.
            dexscreener_per_minute: Maximum DexScreener requests per minute.
        """
        self._coingecko_bucket = per_minute_bucket(coingecko_per_minute)
        self._dexscreener_bucket = per_minute_bucket(dexscreener_per_minute)

    async def acquire_coingecko(self) -> None:
        """Acquire permission for one CoinGecko request."""
        await self._coingecko_bucket.acquire(1)

    async def acquire_dexscreener(self) -> None:
        """Acquire permission for one DexScreener request."""
        await self._dexscreener_bucket.acquire(1)

    @property
    def available_coingecko(self) -> float:
        """Approximate number of available CoinGecko tokens."""
        return self._coingecko_bucket.tokens

    @property
    def available_dexscreener(self) -> float:
        """Approximate number of available DexScreener tokens."""
        return self._dexscreener_bucket.tokens
