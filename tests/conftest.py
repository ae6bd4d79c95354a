"""
Pytest configuration and shared fixtures.

Provides reusable test fixtures for all test modules.
"""

import random
from collections.abc import Callable
from typing import Any

import pytest

from defi_arbitrage.config.settings import SystemSettings
from defi_arbitrage.core.lifecycle import LifecycleConfig, LifecycleController
from defi_arbitrage.core.state import SystemState
from defi_arbitrage.core.types import (
    ArbitrageOpportunity,
    OpportunityStatus,
    PriceObservation,
    RiskAssessment,
    RiskLevel,
    TokenInfo,
)
from defi_arbitrage.execution.executor import ExecutionSimulator, ExecutorConfig
from defi_arbitrage.execution.risk import RiskEvaluator
from defi_arbitrage.strategy.opportunity import OpportunityDetector
from defi_arbitrage.utils.time import get_timestamp_ms
from tests.mocks.chain import MockChainClient
from tests.mocks.lifecycle import PROFITABLE_QUOTE
from tests.mocks.price_source import StaticPriceSource


# =============================================================================
# Token Fixtures
# =============================================================================


@pytest.fixture
def token_weth() -> TokenInfo:
    """WETH token info."""
    return TokenInfo("WETH", "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "Wrapped Ether", 18)


@pytest.fixture
def token_usdc() -> TokenInfo:
    """USDC token info."""
    return TokenInfo("USDC", "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "USD Coin", 6)


# =============================================================================
# Observation & Opportunity Fixtures
# =============================================================================


@pytest.fixture
def make_observation(
    token_weth: TokenInfo, token_usdc: TokenInfo
) -> Callable[..., PriceObservation]:
    """Factory for price observations on WETH/USDC."""

    def _make(price_a: float = 100.0, price_b: float = 1.0, exchange_rate: float = 100.0) -> PriceObservation:
        return PriceObservation(
            token_a=token_weth,
            token_b=token_usdc,
            price_a=price_a,
            price_b=price_b,
            exchange_rate=exchange_rate,
            timestamp=get_timestamp_ms(),
        )

    return _make


@pytest.fixture
def make_opportunity(
    token_weth: TokenInfo, token_usdc: TokenInfo
) -> Callable[..., ArbitrageOpportunity]:
    """Factory for opportunities buying at ``buy_price`` and selling at ``sell_price``."""

    def _make(
        buy_price: float = 100.0,
        sell_price: float = 106.0,
        status: OpportunityStatus = OpportunityStatus.DETECTED,
    ) -> ArbitrageOpportunity:
        profit = (sell_price - buy_price) / buy_price
        return ArbitrageOpportunity(
            id=f"opp-test-{random.getrandbits(32):08x}",
            token_a=token_weth,
            token_b=token_usdc,
            buy_price=buy_price,
            sell_price=sell_price,
            exchange_rate=sell_price,
            price_difference=abs(profit),
            potential_profit=profit,
            timestamp=get_timestamp_ms(),
            status=status,
        )

    return _make


@pytest.fixture
def approved_assessment() -> RiskAssessment:
    """Approved low-risk assessment."""
    return RiskAssessment(
        approved=True,
        estimated_gas=75_000,
        gas_price=0.025,
        gas_cost_usd=0.5,
        slippage=0.006,
        net_profit=53.5,
        profit_margin=0.0535,
        risk_level=RiskLevel.LOW,
        reason="Profitable: Net profit $53.50 (5.35%)",
    )


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def detector() -> OpportunityDetector:
    """Opportunity detector with a 1% threshold."""
    return OpportunityDetector(min_profit_threshold=0.01)


@pytest.fixture
def risk_evaluator() -> RiskEvaluator:
    """Risk evaluator whose gas cost is $0.50 at gas price 10."""
    return RiskEvaluator(native_price_usd=1.0, gas_units=50_000)


@pytest.fixture
def mock_chain_client() -> MockChainClient:
    """Funded mock chain client."""
    return MockChainClient(balance=1.0)


# =============================================================================
# Lifecycle Fixtures
# =============================================================================


@pytest.fixture
def make_controller() -> Callable[..., LifecycleController]:
    """
    Factory for lifecycle controllers with zero pacing delays.

    Keyword arguments not consumed here are passed to SystemSettings.
    """

    def _make(
        quotes: dict[tuple[str, str], Any] | None = None,
        chain_client: MockChainClient | None = None,
        approval_timeout: float | None = None,
        assessment_delay: float = 0.0,
        execution_delay: float = 0.0,
        simulated_latency: float = 0.0,
        native_token: str | None = None,
        **settings: Any,
    ) -> LifecycleController:
        quotes = {("WETH", "USDC"): PROFITABLE_QUOTE} if quotes is None else quotes
        settings.setdefault("require_approval", False)
        state = SystemState(settings=SystemSettings(**settings))
        return LifecycleController(
            price_source=StaticPriceSource(quotes),
            config=LifecycleConfig(
                token_pairs=list(quotes),
                trade_amount_usd=1000.0,
                gas_price=0.025,
                assessment_delay=assessment_delay,
                execution_delay=execution_delay,
                approval_timeout=approval_timeout,
                native_token=native_token,
            ),
            detector=OpportunityDetector(state.settings.min_profit_threshold),
            risk_evaluator=RiskEvaluator(native_price_usd=1.0),
            executor=ExecutionSimulator(
                chain_client=chain_client,
                config=ExecutorConfig(simulated_latency=simulated_latency),
                rng=random.Random(7),
            ),
            state=state,
        )

    return _make
