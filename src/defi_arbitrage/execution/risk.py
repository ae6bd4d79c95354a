"""
Risk assessment for arbitrage opportunities.

Estimates gas and slippage costs for a candidate trade, derives net
profit and margin, classifies the risk level and decides approval.
Assessment is a pure function of its inputs plus the configured native
token price.
"""

import logging
from dataclasses import dataclass

from defi_arbitrage.config.constants import (
    BASE_SLIPPAGE,
    DEFAULT_NATIVE_PRICE_USD,
    GAS_ESTIMATE_UNITS,
    GAS_PRICE_DIVISOR,
    HIGH_RISK_MARGIN,
    HIGH_RISK_PRICE_DIFFERENCE,
    HIGH_RISK_SLIPPAGE,
    MAX_SIZE_SLIPPAGE,
    MEDIUM_RISK_MARGIN,
    MEDIUM_RISK_SLIPPAGE,
    SLIPPAGE_SIZE_DIVISOR,
)
from defi_arbitrage.core.errors import InvalidInputError
from defi_arbitrage.core.types import ArbitrageOpportunity, RiskAssessment, RiskLevel
from defi_arbitrage.utils.math import format_usd


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskThresholds:
    """Boundaries used to classify an assessment's risk level."""

    high_margin: float = HIGH_RISK_MARGIN  # margin below -> high
    high_slippage: float = HIGH_RISK_SLIPPAGE  # slippage above -> high
    high_price_difference: float = HIGH_RISK_PRICE_DIFFERENCE  # difference below -> high
    medium_margin: float = MEDIUM_RISK_MARGIN  # margin below -> medium
    medium_slippage: float = MEDIUM_RISK_SLIPPAGE  # slippage above -> medium


@dataclass(frozen=True)
class SlippageModel:
    """Size-dependent slippage estimate, capped."""

    base: float = BASE_SLIPPAGE
    size_divisor: float = SLIPPAGE_SIZE_DIVISOR
    max_size_component: float = MAX_SIZE_SLIPPAGE

    @property
    def ceiling(self) -> float:
        """Largest slippage the model can return."""
        return self.base + self.max_size_component


def validate_risk_inputs(
    trade_amount_usd: float,
    gas_price: float,
    max_slippage: float,
    min_profit_threshold: float,
) -> None:
    """
    Reject malformed assessment inputs.

    Raises:
        InvalidInputError: On the first invalid argument.
    """
    if not trade_amount_usd > 0:
        raise InvalidInputError("Trade amount must be positive")
    if not gas_price > 0:
        raise InvalidInputError("Gas price must be positive")
    if not 0 <= max_slippage <= 1:
        raise InvalidInputError("Max slippage must be between 0 and 1")
    if not min_profit_threshold >= 0:
        raise InvalidInputError("Min profit threshold must be non-negative")


class RiskEvaluator:
    """
    Evaluates the economics of an opportunity before execution.

    Steps:
    - Gas cost: gas units x gas price (micro-native) / 1e6 x native USD price
    - Slippage: base + min(trade / divisor, cap)
    - Early reject when slippage exceeds the caller's maximum
    - Net profit = gross - gas - slippage cost; margin = net / trade
    - Risk level from configurable thresholds
    - Approved iff margin >= threshold and net > 0
    """

    def __init__(
        self,
        native_price_usd: float = DEFAULT_NATIVE_PRICE_USD,
        thresholds: RiskThresholds | None = None,
        slippage_model: SlippageModel | None = None,
        gas_units: int = GAS_ESTIMATE_UNITS,
    ) -> None:
        """
        Initialize risk evaluator.

        Args:
            native_price_usd: USD price of the chain's native token.
            thresholds: Risk classification boundaries.
            slippage_model: Slippage estimate parameters.
            gas_units: Gas units assumed per trade.
        """
        if native_price_usd <= 0:
            raise InvalidInputError("Native token price must be positive")
        self._native_price_usd = native_price_usd
        self._thresholds = thresholds or RiskThresholds()
        self._slippage = slippage_model or SlippageModel()
        self._gas_units = gas_units

        self._assessments = 0
        self._approvals = 0

    def update_native_price(self, price_usd: float) -> None:
        """Update the native token USD price used for gas costs."""
        if price_usd <= 0:
            raise InvalidInputError("Native token price must be positive")
        self._native_price_usd = price_usd
        logger.info(f"Native token price updated to ${price_usd:.4f}")

    def estimate_gas_cost(self, gas_price: float) -> tuple[int, float]:
        """
        Estimate gas for one trade.

        Args:
            gas_price: Gas price in micro-native units per gas unit.

        Returns:
            Tuple of (gas units, cost in USD).
        """
        cost_native = self._gas_units * gas_price / GAS_PRICE_DIVISOR
        return self._gas_units, cost_native * self._native_price_usd

    def calculate_slippage(self, trade_amount_usd: float) -> float:
        """
        Estimate slippage for a trade size.

        Monotonically non-decreasing in trade size, capped at
        ``base + max_size_component``.
        """
        size_component = min(trade_amount_usd / self._slippage.size_divisor, self._slippage.max_size_component)
        return self._slippage.base + max(size_component, 0.0)

    def classify(self, profit_margin: float, slippage: float, price_difference: float) -> RiskLevel:
        """Classify risk; high takes precedence over medium."""
        t = self._thresholds
        if (
            profit_margin < t.high_margin
            or slippage > t.high_slippage
            or price_difference < t.high_price_difference
        ):
            return RiskLevel.HIGH
        if profit_margin < t.medium_margin or slippage > t.medium_slippage:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def assess(
        self,
        opportunity: ArbitrageOpportunity,
        trade_amount_usd: float,
        gas_price: float,
        max_slippage: float,
        min_profit_threshold: float,
    ) -> RiskAssessment:
        """
        Assess an opportunity.

        Args:
            opportunity: Detected opportunity (not modified).
            trade_amount_usd: Notional trade size in USD.
            gas_price: Gas price in micro-native units per gas unit.
            max_slippage: Maximum acceptable slippage as a fraction.
            min_profit_threshold: Minimum profit margin as a fraction.

        Returns:
            RiskAssessment with verdict and cost breakdown.

        Raises:
            InvalidInputError: If any input is malformed.
        """
        validate_risk_inputs(trade_amount_usd, gas_price, max_slippage, min_profit_threshold)
        self._assessments += 1

        estimated_gas, gas_cost_usd = self.estimate_gas_cost(gas_price)
        slippage = self.calculate_slippage(trade_amount_usd)

        if slippage > max_slippage:
            logger.debug(f"{opportunity.id}: slippage {slippage:.4f} over max {max_slippage:.4f}")
            return RiskAssessment(
                approved=False,
                estimated_gas=estimated_gas,
                gas_price=gas_price,
                gas_cost_usd=gas_cost_usd,
                slippage=slippage,
                net_profit=0.0,
                profit_margin=0.0,
                risk_level=RiskLevel.HIGH,
                reason=(
                    f"Slippage ({slippage * 100:.2f}%) exceeds maximum "
                    f"({max_slippage * 100:.2f}%)"
                ),
            )

        gross_profit = trade_amount_usd * opportunity.potential_profit
        slippage_cost = trade_amount_usd * slippage
        net_profit = gross_profit - gas_cost_usd - slippage_cost
        profit_margin = net_profit / trade_amount_usd

        risk_level = self.classify(profit_margin, slippage, opportunity.price_difference)
        approved = profit_margin >= min_profit_threshold and net_profit > 0

        if approved:
            self._approvals += 1
            reason = f"Profitable: Net profit {format_usd(net_profit)} ({profit_margin * 100:.2f}%)"
        elif net_profit > 0:
            reason = (
                f"Profit margin ({profit_margin * 100:.2f}%) below threshold "
                f"({min_profit_threshold * 100:.2f}%)"
            )
        else:
            reason = "Net profit is negative after costs"

        return RiskAssessment(
            approved=approved,
            estimated_gas=estimated_gas,
            gas_price=gas_price,
            gas_cost_usd=gas_cost_usd,
            slippage=slippage,
            net_profit=net_profit,
            profit_margin=profit_margin,
            risk_level=risk_level,
            reason=reason,
        )

    @property
    def native_price_usd(self) -> float:
        return self._native_price_usd

    @property
    def thresholds(self) -> RiskThresholds:
        return self._thresholds

    def to_dict(self) -> dict[str, float | int]:
        """Convert counters to dict for logging."""
        return {
            "assessments": self._assessments,
            "approvals": self._approvals,
            "native_price_usd": self._native_price_usd,
        }
