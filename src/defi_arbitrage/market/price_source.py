"""
Live token price source backed by CoinGecko with DexScreener fallback.

Optimized for periodic scanning with:
- Connection pooling and keep-alive
- Fast JSON parsing with orjson
- Per-provider rate limiting
- Fail-soft lookups: provider errors are logged and yield no quote
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any

import aiohttp
import orjson

from defi_arbitrage.config.constants import (
    COINGECKO_API_KEY_HEADER,
    COINGECKO_API_URL,
    COINGECKO_PRO_API_URL,
    DEXSCREENER_API_URL,
    DEXSCREENER_CHAIN_ID,
    ENDPOINT_DEX_TOKENS,
    ENDPOINT_SIMPLE_PRICE,
    PRICE_REQUEST_TIMEOUT,
)
from defi_arbitrage.core.errors import PriceSourceError
from defi_arbitrage.core.types import PriceObservation
from defi_arbitrage.market.rate_limiter import RateLimiter
from defi_arbitrage.market.tokens import ZERO_ADDRESS, TokenRegistry
from defi_arbitrage.utils.time import get_timestamp_ms


logger = logging.getLogger(__name__)


class LivePriceSource:
    """
    Fetches USD prices from public price APIs.

    CoinGecko is queried first for both tokens in a single request. When
    either quote is missing and the fallback is enabled, DexScreener is
    queried by contract address and the most liquid pair on the configured
    chain is used. ``exchange_rate`` is derived as ``price_a / price_b``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        use_dexscreener_fallback: bool = True,
        timeout: float = PRICE_REQUEST_TIMEOUT,
        registry: TokenRegistry | None = None,
        rate_limiter: RateLimiter | None = None,
        chain_id: str = DEXSCREENER_CHAIN_ID,
    ) -> None:
        """
        Initialize the price source.

        Args:
            api_key: Optional CoinGecko Pro API key.
            use_dexscreener_fallback: Query DexScreener when CoinGecko fails.
            timeout: Per-request timeout in seconds.
            registry: Token metadata lookup.
            rate_limiter: Optional rate limiter instance.
            chain_id: DexScreener chain used to filter pairs.
        """
        self._api_key = api_key
        self._coingecko_url = COINGECKO_PRO_API_URL if api_key else COINGECKO_API_URL
        self._use_fallback = use_dexscreener_fallback
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._registry = registry or TokenRegistry()
        self._rate_limiter = rate_limiter or RateLimiter()
        self._chain_id = chain_id
        self._session: aiohttp.ClientSession | None = None

        self._failures = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=20,
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=self._timeout,
                headers={"Accept": "application/json"},
                json_serialize=lambda x: orjson.dumps(x).decode(),
            )
        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    @asynccontextmanager
    async def _request_context(self) -> AsyncIterator[aiohttp.ClientSession]:
        """Context manager translating transport errors."""
        session = await self._get_session()
        try:
            yield session
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PriceSourceError(f"Network error: {e}") from e

    async def _get_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        GET a URL and parse the JSON body.

        Raises:
            PriceSourceError: On network, HTTP or decoding errors.
        """
        async with self._request_context() as session:
            async with session.get(url, params=params, headers=headers) as response:
                text = await response.text()
                if response.status >= 400:
                    raise PriceSourceError(
                        f"HTTP {response.status} from {url}: {text[:200]}",
                        code=str(response.status),
                    )
                try:
                    return orjson.loads(text)
                except orjson.JSONDecodeError as e:
                    raise PriceSourceError(f"Invalid JSON response: {e}") from e

    # =========================================================================
    # Providers
    # =========================================================================

    async def fetch_coingecko_prices(self, *names: str) -> dict[str, float]:
        """
        Fetch USD prices for several tokens from CoinGecko.

        Args:
            names: CoinGecko ids or known symbols.

        Returns:
            Mapping of the requested names to prices; missing quotes are omitted.
        """
        ids = {name: self._registry.coingecko_id(name) for name in names}
        headers = {COINGECKO_API_KEY_HEADER: self._api_key} if self._api_key else None

        await self._rate_limiter.acquire_coingecko()
        try:
            data = await self._get_json(
                f"{self._coingecko_url}{ENDPOINT_SIMPLE_PRICE}",
                params={"ids": ",".join(sorted(set(ids.values()))), "vs_currencies": "usd"},
                headers=headers,
            )
        except PriceSourceError as e:
            self._failures += 1
            logger.warning(f"CoinGecko fetch error for {', '.join(names)}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Unexpected CoinGecko payload for {', '.join(names)}")
            return {}

        prices: dict[str, float] = {}
        for name, cg_id in ids.items():
            price = _positive_float((data.get(cg_id) or {}).get("usd"))
            if price is not None:
                prices[name] = price
        return prices

    async def fetch_dexscreener_price(self, address: str) -> float | None:
        """
        Fetch a USD price from DexScreener by token address.

        Picks the pair with the highest USD liquidity on the configured chain.
        """
        if address == ZERO_ADDRESS:
            return None

        await self._rate_limiter.acquire_dexscreener()
        try:
            data = await self._get_json(f"{DEXSCREENER_API_URL}{ENDPOINT_DEX_TOKENS}/{address}")
        except PriceSourceError as e:
            self._failures += 1
            logger.warning(f"DexScreener fetch error for {address}: {e}")
            return None

        if not isinstance(data, dict):
            return None

        pairs = [
            p for p in (data.get("pairs") or []) if p.get("chainId") == self._chain_id
        ]
        if not pairs:
            return None

        best = max(pairs, key=lambda p: (p.get("liquidity") or {}).get("usd") or 0)
        return _positive_float(best.get("priceUsd"))

    # =========================================================================
    # PriceSource Interface
    # =========================================================================

    async def fetch_prices(self, token_a: str, token_b: str) -> PriceObservation | None:
        """
        Fetch USD prices for a token pair.

        Args:
            token_a: First token id or symbol.
            token_b: Second token id or symbol.

        Returns:
            Price observation, or None when neither provider quotes both tokens.
        """
        info_a = self._registry.resolve(token_a)
        info_b = self._registry.resolve(token_b)

        prices = await self.fetch_coingecko_prices(token_a, token_b)
        price_a = prices.get(token_a)
        price_b = prices.get(token_b)
        source = "coingecko"

        if (price_a is None or price_b is None) and self._use_fallback:
            logger.debug(f"CoinGecko incomplete for {token_a}/{token_b}, trying DexScreener")
            price_a, price_b = await asyncio.gather(
                self.fetch_dexscreener_price(info_a.address),
                self.fetch_dexscreener_price(info_b.address),
            )
            source = "dexscreener"

        if price_a is None or price_b is None:
            logger.warning(f"Failed to fetch prices for {token_a}/{token_b}")
            return None

        logger.debug(f"Fetched {token_a}=${price_a:.4f}, {token_b}=${price_b:.4f} via {source}")
        return PriceObservation(
            token_a=info_a,
            token_b=info_b,
            price_a=price_a,
            price_b=price_b,
            exchange_rate=price_a / price_b,
            timestamp=get_timestamp_ms(),
            source=source,
        )

    async def fetch_many(self, pairs: Iterable[tuple[str, str]]) -> list[PriceObservation]:
        """Fetch several pairs concurrently, dropping those without quotes."""
        results = await asyncio.gather(*(self.fetch_prices(a, b) for a, b in pairs))
        return [r for r in results if r is not None]

    @property
    def failure_count(self) -> int:
        """Number of failed provider requests."""
        return self._failures


def _positive_float(value: Any) -> float | None:
    """Parse a price, rejecting missing, malformed and non-positive values."""
    if value is None:
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if price > 0 else None
