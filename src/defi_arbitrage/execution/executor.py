"""
Opportunity execution engine.

Executes trade parameters either as a simulated transaction or, when a
chain client is configured, as a real signed transfer. Never retries;
every outcome is reported as an ExecutionResult.
"""

import asyncio
import logging
import random
import string
from dataclasses import dataclass

from defi_arbitrage.config.constants import (
    GAS_ESTIMATE_UNITS,
    REALIZED_PROFIT_MAX_FACTOR,
    REALIZED_PROFIT_MIN_FACTOR,
    SIMULATED_LATENCY,
    SIMULATED_TX_PREFIX,
    TRANSFER_MEMO,
)
from defi_arbitrage.core.types import ChainClient, ExecutionResult, TradeParams
from defi_arbitrage.utils.math import to_base36
from defi_arbitrage.utils.time import LatencyTimer, get_timestamp_ms


logger = logging.getLogger(__name__)


@dataclass
class ExecutorConfig:
    """Executor configuration."""

    simulated_latency: float = SIMULATED_LATENCY  # seconds
    transfer_amount: float = 0.0001  # native units per real execution
    memo: str = TRANSFER_MEMO
    profit_factor_range: tuple[float, float] = (
        REALIZED_PROFIT_MIN_FACTOR,
        REALIZED_PROFIT_MAX_FACTOR,
    )


class ExecutionSimulator:
    """
    Executes approved trades.

    Modes:
    - Simulated (no chain client): waits ``simulated_latency`` and always
      succeeds with a synthetic ``SIM...`` transaction hash.
    - Real (chain client present): checks the balance, fails fast when it
      cannot cover the transfer, otherwise submits and waits for a receipt.
      Chain errors become failed results with the message passed through.

    Realized profit is the expected profit scaled by a factor drawn from
    ``profit_factor_range`` on every successful path.
    """

    def __init__(
        self,
        chain_client: ChainClient | None = None,
        config: ExecutorConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize executor.

        Args:
            chain_client: Signing client; None forces simulation.
            config: Executor configuration.
            rng: Random generator for hashes and realized profit.
        """
        self._chain_client = chain_client
        self._config = config or ExecutorConfig()
        self._rng = rng or random.Random()

        # Statistics
        self._total_executions = 0
        self._successful_executions = 0
        self._failed_executions = 0

    @property
    def is_simulated(self) -> bool:
        """Check if executions are simulated."""
        return self._chain_client is None

    async def execute(self, params: TradeParams, expected_profit: float) -> ExecutionResult:
        """
        Execute a trade.

        Args:
            params: Trade parameters.
            expected_profit: Net profit estimated by the risk stage (USD).

        Returns:
            ExecutionResult with outcome.
        """
        self._total_executions += 1

        with LatencyTimer() as timer:
            if self._chain_client is None:
                result = await self._execute_simulated(params, expected_profit)
            else:
                result = await self._execute_real(self._chain_client, params, expected_profit)

        if result.success:
            self._successful_executions += 1
            logger.info(
                f"Executed {params.from_token.symbol}->{params.to_token.symbol} "
                f"tx={result.tx_hash} profit=${result.actual_profit:.2f} "
                f"in {timer.latency_ms:.0f}ms"
            )
        else:
            self._failed_executions += 1
            logger.warning(
                f"Execution failed for {params.from_token.symbol}->{params.to_token.symbol}: "
                f"{result.error}"
            )
        return result

    async def _execute_simulated(self, params: TradeParams, expected_profit: float) -> ExecutionResult:
        """Simulate confirmation without touching a chain."""
        await asyncio.sleep(self._config.simulated_latency)

        return ExecutionResult(
            success=True,
            tx_hash=self._simulated_tx_hash(),
            amount_in=params.amount_in,
            amount_out=params.expected_amount_out or None,
            gas_used=GAS_ESTIMATE_UNITS,
            actual_profit=self._realized_profit(expected_profit),
            timestamp=get_timestamp_ms(),
            simulated=True,
        )

    async def _execute_real(
        self,
        client: ChainClient,
        params: TradeParams,
        expected_profit: float,
    ) -> ExecutionResult:
        """Submit a real transfer through the chain client."""
        amount = self._config.transfer_amount

        try:
            balance = await client.get_balance()
            if balance < amount:
                return self._failed_result(
                    params, f"Insufficient balance (need {amount}, have {balance})"
                )

            receipt = await client.send_transfer(amount, memo=self._config.memo)

        except Exception as e:
            logger.error(f"Execution error: {e}")
            return self._failed_result(params, str(e))

        return ExecutionResult(
            success=True,
            tx_hash=receipt.tx_hash,
            amount_in=params.amount_in,
            amount_out=params.expected_amount_out or None,
            gas_used=receipt.gas_used,
            actual_profit=self._realized_profit(expected_profit),
            timestamp=get_timestamp_ms(),
            simulated=False,
        )

    def _failed_result(self, params: TradeParams, error: str) -> ExecutionResult:
        return ExecutionResult(
            success=False,
            amount_in=params.amount_in,
            error=error,
            timestamp=get_timestamp_ms(),
            simulated=self._chain_client is None,
        )

    def _realized_profit(self, expected_profit: float) -> float:
        low, high = self._config.profit_factor_range
        return expected_profit * self._rng.uniform(low, high)

    def _simulated_tx_hash(self) -> str:
        suffix = "".join(self._rng.choices(string.ascii_uppercase + string.digits, k=6))
        return f"{SIMULATED_TX_PREFIX}{to_base36(get_timestamp_ms()).upper()}{suffix}"

    @property
    def total_executions(self) -> int:
        return self._total_executions

    @property
    def successful_executions(self) -> int:
        return self._successful_executions

    @property
    def failed_executions(self) -> int:
        return self._failed_executions

    @property
    def success_rate(self) -> float:
        """Fraction of executions that succeeded."""
        if self._total_executions == 0:
            return 0.0
        return self._successful_executions / self._total_executions
