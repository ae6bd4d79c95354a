"""
Trade parameter construction.

Turns an approved opportunity into a concrete trade instruction with
fixed-point amounts, a slippage-protected minimum output and a deadline.
"""

from decimal import Decimal

from defi_arbitrage.config.constants import AMOUNT_DECIMALS, TRADE_DEADLINE_SECONDS
from defi_arbitrage.core.errors import InvalidInputError
from defi_arbitrage.core.types import ArbitrageOpportunity, RiskAssessment, TradeParams
from defi_arbitrage.utils.math import to_decimal, to_fixed
from defi_arbitrage.utils.time import get_timestamp_s


class TradeParameterBuilder:
    """
    Builds TradeParams from an approved opportunity.

    - ``amount_in = trade_amount_usd / buy_price`` (units of token A)
    - ``ideal_out = amount_in * exchange_rate`` (units of token B)
    - ``min_amount_out = ideal_out * (1 - max_slippage)``
    - ``deadline = now + 1200`` seconds

    Pure: the opportunity and assessment are never modified.
    """

    def __init__(
        self,
        deadline_seconds: int = TRADE_DEADLINE_SECONDS,
        decimals: int = AMOUNT_DECIMALS,
    ) -> None:
        self._deadline_seconds = deadline_seconds
        self._decimals = decimals

    def build(
        self,
        opportunity: ArbitrageOpportunity,
        assessment: RiskAssessment,
        trade_amount_usd: float,
        max_slippage: float,
        now: int | None = None,
    ) -> TradeParams:
        """
        Build trade parameters.

        Args:
            opportunity: Opportunity to trade.
            assessment: Its approved risk assessment.
            trade_amount_usd: Notional trade size in USD.
            max_slippage: Slippage tolerance as a fraction.
            now: Current Unix time in seconds (defaults to the clock).

        Returns:
            TradeParams with amounts rendered to ``decimals`` places.

        Raises:
            InvalidInputError: If the assessment is not approved or inputs are invalid.
        """
        if not assessment.approved:
            raise InvalidInputError(f"Opportunity {opportunity.id} is not approved for trading")
        if opportunity.buy_price <= 0:
            raise InvalidInputError("Buy price must be positive")
        if trade_amount_usd <= 0:
            raise InvalidInputError("Trade amount must be positive")
        if not 0 <= max_slippage <= 1:
            raise InvalidInputError("Max slippage must be between 0 and 1")

        amount_in = to_decimal(trade_amount_usd) / to_decimal(opportunity.buy_price)
        ideal_out = amount_in * to_decimal(opportunity.exchange_rate)
        min_out = ideal_out * (Decimal(1) - to_decimal(max_slippage))

        timestamp = get_timestamp_s() if now is None else now

        return TradeParams(
            from_token=opportunity.token_a,
            to_token=opportunity.token_b,
            amount_in=to_fixed(amount_in, self._decimals),
            min_amount_out=to_fixed(min_out, self._decimals),
            deadline=timestamp + self._deadline_seconds,
            slippage_tolerance=max_slippage,
            expected_amount_out=to_fixed(ideal_out, self._decimals),
        )
