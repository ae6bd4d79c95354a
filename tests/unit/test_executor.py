"""
Unit tests for ExecutionSimulator.

Tests simulated executions and real executions through a mocked chain client.
"""

import random

import pytest

from defi_arbitrage.chain.client import Web3ChainClient
from defi_arbitrage.core.errors import ChainClientError
from defi_arbitrage.core.types import TokenInfo, TradeParams
from defi_arbitrage.execution.executor import ExecutionSimulator, ExecutorConfig
from tests.mocks.chain import TEST_KEY, FakeAsyncWeb3, MockChainClient


@pytest.fixture
def trade_params(token_weth: TokenInfo, token_usdc: TokenInfo) -> TradeParams:
    """Params for a 10 WETH -> USDC trade."""
    return TradeParams(
        from_token=token_weth,
        to_token=token_usdc,
        amount_in="10.000000000000000000",
        min_amount_out="1049.400000000000000000",
        deadline=1_704_068_400,
        slippage_tolerance=0.01,
        expected_amount_out="1060.000000000000000000",
    )


class TestSimulatedExecution:
    """Tests for executions without a chain client."""

    @pytest.fixture
    def executor(self) -> ExecutionSimulator:
        """Simulator with no confirmation delay."""
        return ExecutionSimulator(config=ExecutorConfig(simulated_latency=0.0), rng=random.Random(1))

    @pytest.mark.asyncio
    async def test_success(self, executor: ExecutionSimulator, trade_params: TradeParams) -> None:
        """Test a simulated execution result."""
        result = await executor.execute(trade_params, expected_profit=53.5)

        assert result.success is True
        assert result.simulated is True
        assert result.tx_hash.startswith("SIM")
        assert result.tx_hash == result.tx_hash.upper()
        assert result.amount_in == trade_params.amount_in
        assert result.amount_out == trade_params.expected_amount_out
        assert result.gas_used == 75_000
        assert result.error is None

    @pytest.mark.asyncio
    async def test_realized_profit_band(self, executor: ExecutionSimulator, trade_params: TradeParams) -> None:
        """Test realized profit stays within 95-105% of the estimate."""
        for _ in range(25):
            result = await executor.execute(trade_params, expected_profit=100.0)
            assert 95.0 <= result.actual_profit <= 105.0

    @pytest.mark.asyncio
    async def test_distinct_hashes(self, executor: ExecutionSimulator, trade_params: TradeParams) -> None:
        """Test that consecutive executions get different hashes."""
        hashes = {(await executor.execute(trade_params, 1.0)).tx_hash for _ in range(20)}

        assert len(hashes) == 20

    @pytest.mark.asyncio
    async def test_counters(self, executor: ExecutionSimulator, trade_params: TradeParams) -> None:
        """Test execution counters."""
        await executor.execute(trade_params, 1.0)
        await executor.execute(trade_params, 1.0)

        assert executor.is_simulated is True
        assert executor.total_executions == 2
        assert executor.successful_executions == 2
        assert executor.success_rate == 1.0


class TestRealExecution:
    """Tests for executions through a chain client."""

    @pytest.mark.asyncio
    async def test_success(self, mock_chain_client: MockChainClient, trade_params: TradeParams) -> None:
        """Test a confirmed transfer."""
        executor = ExecutionSimulator(
            chain_client=mock_chain_client,
            config=ExecutorConfig(transfer_amount=0.0001, memo="arb"),
        )

        result = await executor.execute(trade_params, expected_profit=10.0)

        assert result.success is True
        assert result.simulated is False
        assert result.tx_hash == f"0x{1:064x}"
        assert result.gas_used == 21_000
        assert mock_chain_client.transfers == [(0.0001, "arb")]
        assert executor.is_simulated is False

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, trade_params: TradeParams) -> None:
        """Test that a short balance fails without submitting anything."""
        client = MockChainClient(balance=0.00005)
        executor = ExecutionSimulator(chain_client=client, config=ExecutorConfig(transfer_amount=0.0001))

        result = await executor.execute(trade_params, expected_profit=10.0)

        assert result.success is False
        assert result.error.startswith("Insufficient balance")
        assert result.tx_hash is None
        assert client.transfers == []
        assert executor.failed_executions == 1

    @pytest.mark.asyncio
    async def test_transfer_error(self, trade_params: TradeParams) -> None:
        """Test that a client error becomes a failed result with its message."""
        client = MockChainClient(fail_with=ChainClientError("Transaction 0xabc reverted", code="reverted"))
        executor = ExecutionSimulator(chain_client=client)

        result = await executor.execute(trade_params, expected_profit=10.0)

        assert result.success is False
        assert result.error == "Transaction 0xabc reverted"
        assert result.actual_profit is None

    @pytest.mark.asyncio
    async def test_node_error_reported_verbatim(self, trade_params: TradeParams) -> None:
        """Test a node error reaches the result without added context."""
        web3 = FakeAsyncWeb3()
        web3.eth.send_error = ValueError("insufficient funds for gas * price + value")
        client = Web3ChainClient("http://localhost:8545", TEST_KEY, 1, web3=web3)  # type: ignore[arg-type]
        executor = ExecutionSimulator(chain_client=client)

        result = await executor.execute(trade_params, expected_profit=10.0)

        assert result.success is False
        assert result.error == "insufficient funds for gas * price + value"
