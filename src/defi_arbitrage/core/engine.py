"""
Main arbitrage engine orchestrator.

Builds every component from ``Settings`` and owns their lifetime: the
price source, the optional chain client, the pipeline stages and the
lifecycle controller that drives them.
"""

import logging
import random
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from defi_arbitrage.chain.client import Web3ChainClient
from defi_arbitrage.config.settings import Settings
from defi_arbitrage.core.event_bus import EventBus
from defi_arbitrage.core.lifecycle import LifecycleConfig, LifecycleController
from defi_arbitrage.core.state import SystemState
from defi_arbitrage.core.types import ChainClient, PriceSource
from defi_arbitrage.execution.executor import ExecutionSimulator, ExecutorConfig
from defi_arbitrage.execution.params import TradeParameterBuilder
from defi_arbitrage.execution.risk import RiskEvaluator, RiskThresholds
from defi_arbitrage.market.price_source import LivePriceSource
from defi_arbitrage.market.tokens import DEFAULT_LIVE_PAIRS, DEFAULT_MOCK_PAIRS
from defi_arbitrage.simulation.market import MockPriceSource
from defi_arbitrage.strategy.opportunity import OpportunityDetector
from defi_arbitrage.telemetry.metrics import MetricsCollector


logger = logging.getLogger(__name__)


class ArbitrageEngine:
    """
    Component container for one running system.

    Manages the complete lifecycle of:
    - Price source connectivity
    - Chain client (real executions)
    - Detection, risk and execution stages
    - The lifecycle controller and its event feed
    """

    def __init__(
        self,
        settings: Settings,
        price_source: PriceSource | None = None,
        chain_client: ChainClient | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            settings: Application settings.
            price_source: Override the source chosen by ``settings.price_source``.
            chain_client: Override the client built from the wallet key.
        """
        self._settings = settings
        self._price_source = price_source
        self._chain_client = chain_client
        self._controller: LifecycleController | None = None

        # Infrastructure
        self._event_bus = EventBus()
        self._metrics = MetricsCollector()

    async def setup(self) -> None:
        """Initialize all components."""
        if self._controller is not None:
            return

        logger.info("Initializing arbitrage engine...")
        settings = self._settings

        if self._price_source is None:
            self._price_source = self._build_price_source()
        logger.info(f"Price source: {type(self._price_source).__name__}")

        if self._chain_client is None and settings.wallet_private_key is not None:
            self._chain_client = Web3ChainClient(
                rpc_url=settings.rpc_url,
                private_key=settings.wallet_private_key.get_secret_value(),
                chain_id=settings.chain_id,
                receipt_timeout=settings.receipt_timeout,
            )
        if self._chain_client is not None:
            logger.info(f"Real execution enabled from {self._chain_client.address}")
        else:
            logger.info("No wallet key configured, executions are simulated")

        risk_evaluator = RiskEvaluator(
            native_price_usd=settings.native_price_usd,
            thresholds=RiskThresholds(
                high_margin=settings.risk_high_margin,
                high_slippage=settings.risk_high_slippage,
                high_price_difference=settings.risk_high_price_difference,
                medium_margin=settings.risk_medium_margin,
                medium_slippage=settings.risk_medium_slippage,
            ),
        )

        executor = ExecutionSimulator(
            chain_client=self._chain_client,
            config=ExecutorConfig(
                simulated_latency=settings.simulated_latency,
                transfer_amount=settings.transfer_amount,
            ),
        )

        state = SystemState(settings=settings.initial_system_settings())

        self._controller = LifecycleController(
            price_source=self._price_source,
            config=LifecycleConfig(
                token_pairs=self._token_pairs(),
                trade_amount_usd=settings.trade_amount_usd,
                gas_price=settings.gas_price,
                assessment_delay=settings.assessment_delay,
                execution_delay=settings.execution_delay,
                approval_timeout=settings.approval_timeout,
                native_token=settings.native_token,
            ),
            detector=OpportunityDetector(state.settings.min_profit_threshold),
            risk_evaluator=risk_evaluator,
            param_builder=TradeParameterBuilder(),
            executor=executor,
            state=state,
            event_bus=self._event_bus,
            metrics=self._metrics,
        )

        logger.info(f"Engine initialization complete ({len(self._token_pairs())} pairs)")

    def _build_price_source(self) -> PriceSource:
        settings = self._settings
        if settings.price_source == "live":
            api_key = settings.coingecko_api_key
            return LivePriceSource(
                api_key=api_key.get_secret_value() if api_key else None,
                use_dexscreener_fallback=settings.use_dexscreener_fallback,
                timeout=settings.price_request_timeout,
            )
        return MockPriceSource(rng=random.Random())

    def _token_pairs(self) -> list[tuple[str, str]]:
        configured = self._settings.parsed_token_pairs
        if configured is not None:
            return configured
        if self._settings.price_source == "live":
            return list(DEFAULT_LIVE_PAIRS)
        return list(DEFAULT_MOCK_PAIRS)

    async def shutdown(self) -> None:
        """Gracefully shut down the engine."""
        logger.info("Shutting down engine...")

        if self._controller is not None:
            await self._controller.shutdown(timeout=30.0)

        if self._price_source is not None:
            await self._price_source.close()

        if self._chain_client is not None:
            await self._chain_client.close()

        logger.info("Engine shutdown complete")

    @property
    def controller(self) -> LifecycleController:
        """Get the lifecycle controller (after ``setup``)."""
        if self._controller is None:
            raise RuntimeError("Engine not set up")
        return self._controller

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def metrics(self) -> MetricsCollector:
        """Get metrics collector."""
        return self._metrics


@asynccontextmanager
async def create_engine(
    settings: Settings,
    price_source: PriceSource | None = None,
    chain_client: ChainClient | None = None,
) -> AsyncIterator[ArbitrageEngine]:
    """
    Create and manage engine lifecycle.

    Usage:
        async with create_engine(settings) as engine:
            await engine.controller.start_system()
    """
    engine = ArbitrageEngine(settings, price_source=price_source, chain_client=chain_client)

    try:
        await engine.setup()
        yield engine
    finally:
        await engine.shutdown()
