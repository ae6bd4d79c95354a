"""
Unit tests for Web3ChainClient.

Runs against an in-memory AsyncWeb3 stand-in so no node is needed.
"""

import pytest

from defi_arbitrage.chain.client import Web3ChainClient
from defi_arbitrage.core.errors import ChainClientError
from tests.mocks.chain import TEST_ADDRESS, TEST_KEY, FakeAsyncWeb3


def make_client(web3: FakeAsyncWeb3) -> Web3ChainClient:
    return Web3ChainClient(
        rpc_url="http://localhost:8545",
        private_key=TEST_KEY,
        chain_id=1,
        web3=web3,  # type: ignore[arg-type]
    )


class TestWeb3ChainClient:
    """Tests for Web3ChainClient."""

    def test_address_from_key(self) -> None:
        """Test the account is derived from the key."""
        client = make_client(FakeAsyncWeb3())

        assert client.address == TEST_ADDRESS

    def test_invalid_key(self) -> None:
        """Test malformed keys are rejected at construction."""
        with pytest.raises(ChainClientError) as exc_info:
            Web3ChainClient("http://localhost:8545", "not-a-key", 1, web3=FakeAsyncWeb3())  # type: ignore[arg-type]
        assert exc_info.value.code == "invalid_key"

    @pytest.mark.asyncio
    async def test_balance_in_ether(self) -> None:
        """Test wei balances are converted to whole units."""
        client = make_client(FakeAsyncWeb3(balance_wei=3 * 10**18 // 2))

        assert await client.get_balance() == 1.5

    @pytest.mark.asyncio
    async def test_balance_rpc_failure(self) -> None:
        """Test transport errors become ChainClientError with the node message."""
        web3 = FakeAsyncWeb3()
        web3.eth.rpc_error = ConnectionError("connection refused")
        client = make_client(web3)

        with pytest.raises(ChainClientError) as exc_info:
            await client.get_balance()
        assert str(exc_info.value) == "connection refused"

    @pytest.mark.asyncio
    async def test_submission_error_message_unchanged(self) -> None:
        """Test a rejected submission keeps the node message as is."""
        web3 = FakeAsyncWeb3()
        web3.eth.send_error = ValueError("nonce too low")
        client = make_client(web3)

        with pytest.raises(ChainClientError) as exc_info:
            await client.send_transfer(0.001)
        assert str(exc_info.value) == "nonce too low"
        assert web3.eth.sent == []

    @pytest.mark.asyncio
    async def test_send_transfer(self) -> None:
        """Test a confirmed transfer returns its receipt."""
        web3 = FakeAsyncWeb3()
        client = make_client(web3)

        receipt = await client.send_transfer(0.001, memo="Arbitrage: WETH/USDC")

        assert receipt.tx_hash == "0x" + "01" * 32
        assert receipt.gas_used == 21_000
        assert receipt.block_number == 42
        assert len(web3.eth.sent) == 1

        tx = web3.eth.estimated[0]
        assert tx["to"] == TEST_ADDRESS
        assert tx["value"] == 10**15
        assert tx["chainId"] == 1
        assert tx["data"].startswith("0x")

    @pytest.mark.asyncio
    async def test_sequential_nonces(self) -> None:
        """Test consecutive transfers use increasing nonces."""
        web3 = FakeAsyncWeb3()
        client = make_client(web3)

        await client.send_transfer(0.001)
        await client.send_transfer(0.001)

        assert [tx["nonce"] for tx in web3.eth.estimated] == [0, 1]
        assert "data" not in web3.eth.estimated[0]

    @pytest.mark.asyncio
    async def test_reverted_transfer(self) -> None:
        """Test a failed receipt raises with the reverted code."""
        client = make_client(FakeAsyncWeb3(receipt_status=0))

        with pytest.raises(ChainClientError) as exc_info:
            await client.send_transfer(0.001)
        assert exc_info.value.code == "reverted"

    @pytest.mark.asyncio
    async def test_close_disconnects_provider(self) -> None:
        web3 = FakeAsyncWeb3()
        client = make_client(web3)

        await client.close()

        assert web3.provider.disconnected is True
