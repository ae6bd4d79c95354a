"""
Simulated price source for demo mode.

Generates random-walk USD prices with occasional venue mispricings so
arbitrage opportunities appear without any network access.
"""

import asyncio
import random
from dataclasses import dataclass, field

from defi_arbitrage.core.types import PriceObservation
from defi_arbitrage.market.tokens import TokenRegistry
from defi_arbitrage.utils.time import get_timestamp_ms


@dataclass
class SimulatedToken:
    """Configuration for a simulated token price."""

    symbol: str
    base_price: float
    volatility: float = 0.002  # Price change per fetch (0.2%)
    current_price: float = field(init=False)

    def __post_init__(self) -> None:
        self.current_price = self.base_price


class MockPriceSource:
    """
    Simulates token prices for demo mode.

    Features:
    - Gaussian random-walk USD prices with mean reversion
    - Venue exchange rate that tracks the fair rate with small noise
    - Occasional mispricings of configurable size in either direction
    - Unknown tokens priced at $1 so any pair can be quoted
    """

    DEFAULT_TOKENS = [
        SimulatedToken("USDC", 1.0, 0.0001),
        SimulatedToken("USDT", 1.0, 0.0001),
        SimulatedToken("SEI", 0.45, 0.004),
        SimulatedToken("ATOM", 8.50, 0.003),
        SimulatedToken("OSMO", 0.55, 0.004),
        SimulatedToken("INJ", 22.0, 0.004),
        SimulatedToken("JUNO", 0.35, 0.005),
        SimulatedToken("WETH", 2000.0, 0.002),
        SimulatedToken("WBTC", 40000.0, 0.002),
        SimulatedToken("UNI", 5.0, 0.003),
        SimulatedToken("LINK", 15.0, 0.003),
        SimulatedToken("AAVE", 100.0, 0.003),
    ]

    def __init__(
        self,
        tokens: list[SimulatedToken] | None = None,
        opportunity_frequency: float = 0.3,
        opportunity_profit_range: tuple[float, float] = (0.005, 0.08),
        rate_noise: float = 0.002,
        latency: float = 0.0,
        registry: TokenRegistry | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize the simulated source.

        Args:
            tokens: Tokens to simulate (default: Cosmos and Ethereum majors).
            opportunity_frequency: Probability of a mispriced quote per fetch.
            opportunity_profit_range: Min/max relative size of a mispricing.
            rate_noise: Standard deviation of venue noise on the exchange rate.
            latency: Simulated network delay per fetch in seconds.
            registry: Token metadata lookup.
            rng: Random generator (seed it for reproducible runs).
        """
        source = tokens if tokens is not None else self.DEFAULT_TOKENS
        # Copy so instances never share walk state
        self._tokens = {
            t.symbol.upper(): SimulatedToken(t.symbol, t.base_price, t.volatility) for t in source
        }
        self._opportunity_frequency = opportunity_frequency
        self._opportunity_profit_range = opportunity_profit_range
        self._rate_noise = rate_noise
        self._latency = latency
        self._registry = registry or TokenRegistry()
        self._rng = rng or random.Random()

        self._fetch_count = 0
        self._opportunities_created = 0

    def _token(self, name: str) -> SimulatedToken:
        """Get the simulated token for an id or symbol, creating a $1 token if unknown."""
        symbol = self._registry.resolve(name).symbol
        if symbol not in self._tokens:
            self._tokens[symbol] = SimulatedToken(symbol, 1.0, 0.0)
        return self._tokens[symbol]

    def _step(self, token: SimulatedToken) -> float:
        """Advance a token's random walk and return the new price."""
        shock = self._rng.gauss(0, token.volatility)
        reversion = (token.base_price - token.current_price) / token.base_price * 0.05
        token.current_price = max(token.current_price * (1 + shock + reversion), 1e-9)
        return token.current_price

    def _venue_rate(self, fair_rate: float) -> float:
        """Quote an exchange rate, occasionally mispriced."""
        rate = fair_rate * (1 + self._rng.gauss(0, self._rate_noise))

        if self._rng.random() < self._opportunity_frequency:
            skew = self._rng.uniform(*self._opportunity_profit_range)
            if self._rng.random() < 0.5:
                skew = -skew
            rate *= 1 + skew
            self._opportunities_created += 1

        return rate

    async def fetch_prices(self, token_a: str, token_b: str) -> PriceObservation | None:
        """
        Quote a token pair.

        Args:
            token_a: First token id or symbol.
            token_b: Second token id or symbol.

        Returns:
            A simulated price observation (never None).
        """
        if self._latency > 0:
            await asyncio.sleep(self._latency)

        self._fetch_count += 1
        price_a = self._step(self._token(token_a))
        price_b = self._step(self._token(token_b))

        return PriceObservation(
            token_a=self._registry.resolve(token_a),
            token_b=self._registry.resolve(token_b),
            price_a=price_a,
            price_b=price_b,
            exchange_rate=self._venue_rate(price_a / price_b),
            timestamp=get_timestamp_ms(),
            source="mock",
        )

    async def close(self) -> None:
        """Nothing to release."""
        return None

    def get_current_prices(self) -> dict[str, float]:
        """Get current prices for all simulated tokens."""
        return {s: t.current_price for s, t in self._tokens.items()}

    @property
    def fetch_count(self) -> int:
        """Get number of pair quotes served."""
        return self._fetch_count

    @property
    def opportunities_created(self) -> int:
        """Get number of mispriced quotes served."""
        return self._opportunities_created
