"""
Opportunity detection.

Compares the buy side of a pair (token A's USD price) with the sell side
implied by the venue exchange rate and emits an opportunity whenever the
relative gap exceeds the profit threshold.
"""

import logging
import secrets
from collections.abc import Iterable
from dataclasses import dataclass, field

from defi_arbitrage.core.types import ArbitrageOpportunity, OpportunityStatus, PriceObservation
from defi_arbitrage.utils.math import relative_difference
from defi_arbitrage.utils.time import get_timestamp_ms


logger = logging.getLogger(__name__)


@dataclass
class DetectionStats:
    """Statistics for opportunity detection."""

    observations_seen: int = 0
    observations_skipped: int = 0
    opportunities_found: int = 0
    best_profit: float = 0.0
    worst_profit: float = 0.0
    _profit_sum: float = field(default=0.0, repr=False)

    @property
    def avg_abs_profit(self) -> float:
        """Mean |potential_profit| of emitted opportunities."""
        if self.opportunities_found == 0:
            return 0.0
        return self._profit_sum / self.opportunities_found

    def record_opportunity(self, potential_profit: float) -> None:
        """Record an emitted opportunity."""
        self.opportunities_found += 1
        self._profit_sum += abs(potential_profit)

        if potential_profit > self.best_profit:
            self.best_profit = potential_profit
        if potential_profit < self.worst_profit:
            self.worst_profit = potential_profit


def new_opportunity_id(timestamp_ms: int) -> str:
    """Unique opportunity id of the form ``opp-<ms>-<hex>``."""
    return f"opp-{timestamp_ms}-{secrets.token_hex(4)}"


class OpportunityDetector:
    """
    Detects arbitrage opportunities from price observations.

    For each observation:
    - ``buy_price = price_a``
    - ``sell_price = price_b * exchange_rate``
    - ``potential_profit = (sell_price - buy_price) / buy_price`` (signed)
    - ``price_difference = |sell_price - buy_price| / buy_price``

    An opportunity is emitted when ``|potential_profit|`` exceeds the
    threshold. Negative-profit opportunities are still emitted so the risk
    stage can reject them with a reason. Detection keeps no state beyond
    its statistics.
    """

    def __init__(self, min_profit_threshold: float = 0.01) -> None:
        """
        Initialize opportunity detector.

        Args:
            min_profit_threshold: Default relative threshold (0.01 = 1%).
        """
        self._min_profit_threshold = min_profit_threshold
        self._stats = DetectionStats()

    def evaluate(
        self,
        observation: PriceObservation,
        min_profit_threshold: float | None = None,
    ) -> ArbitrageOpportunity | None:
        """
        Evaluate a single observation.

        Args:
            observation: Prices for one pair.
            min_profit_threshold: Override for the default threshold.

        Returns:
            An opportunity in ``detected`` status, or None.
        """
        threshold = self._min_profit_threshold if min_profit_threshold is None else min_profit_threshold
        self._stats.observations_seen += 1

        buy_price = observation.price_a
        if buy_price <= 0:
            self._stats.observations_skipped += 1
            logger.debug(f"Skipping {observation.pair}: non-positive buy price {buy_price}")
            return None

        sell_price = observation.price_b * observation.exchange_rate
        potential_profit = relative_difference(buy_price, sell_price)

        if abs(potential_profit) <= threshold:
            return None

        timestamp = get_timestamp_ms()
        opportunity = ArbitrageOpportunity(
            id=new_opportunity_id(timestamp),
            token_a=observation.token_a,
            token_b=observation.token_b,
            buy_price=buy_price,
            sell_price=sell_price,
            exchange_rate=observation.exchange_rate,
            price_difference=abs(potential_profit),
            potential_profit=potential_profit,
            timestamp=timestamp,
            status=OpportunityStatus.DETECTED,
        )
        self._stats.record_opportunity(potential_profit)
        logger.debug(f"Opportunity {opportunity.id} on {observation.pair}: {potential_profit:+.4%}")
        return opportunity

    def detect(
        self,
        observations: Iterable[PriceObservation],
        min_profit_threshold: float | None = None,
    ) -> list[ArbitrageOpportunity]:
        """
        Scan observations for opportunities.

        Args:
            observations: Price observations for one scan.
            min_profit_threshold: Override for the default threshold.

        Returns:
            Opportunities sorted by |potential_profit| descending.
        """
        opportunities = []
        for observation in observations:
            opportunity = self.evaluate(observation, min_profit_threshold)
            if opportunity is not None:
                opportunities.append(opportunity)

        opportunities.sort(key=lambda x: abs(x.potential_profit), reverse=True)
        return opportunities

    @property
    def stats(self) -> DetectionStats:
        """Get detection statistics."""
        return self._stats

    @property
    def min_profit_threshold(self) -> float:
        return self._min_profit_threshold

    def set_min_profit_threshold(self, threshold: float) -> None:
        """Update minimum profit threshold."""
        self._min_profit_threshold = threshold

    def reset_stats(self) -> None:
        """Reset detection statistics."""
        self._stats = DetectionStats()
