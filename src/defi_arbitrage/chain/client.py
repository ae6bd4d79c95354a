"""
Async EVM chain client for real executions.

Signs transactions locally with eth_account and submits them over
JSON-RPC with web3.py's async provider. Only constructed when a private
key is configured; without one every execution is simulated.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted, Web3Exception

from defi_arbitrage.config.constants import RECEIPT_TIMEOUT
from defi_arbitrage.core.errors import ChainClientError
from defi_arbitrage.core.types import TransferReceipt


logger = logging.getLogger(__name__)


class Web3ChainClient:
    """
    Minimal signing client for transfer-class transactions.

    Features:
    - Single async HTTP provider per client
    - Local signing, the key never leaves the process
    - Pending-nonce serialization so concurrent executions don't collide
    - Reverted receipts surface as ChainClientError
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        chain_id: int,
        receipt_timeout: float = RECEIPT_TIMEOUT,
        web3: AsyncWeb3 | None = None,
    ) -> None:
        """
        Initialize the chain client.

        Args:
            rpc_url: JSON-RPC endpoint.
            private_key: Hex-encoded signing key.
            chain_id: EIP-155 chain id.
            receipt_timeout: Seconds to wait for a receipt.
            web3: Pre-built AsyncWeb3 instance (tests).
        """
        try:
            self._account: LocalAccount = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise ChainClientError(f"Invalid private key: {e}", code="invalid_key") from e

        self._w3 = web3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self._chain_id = chain_id
        self._receipt_timeout = receipt_timeout
        self._send_lock = asyncio.Lock()

    @property
    def address(self) -> str:
        """Checksum address of the signing account."""
        return self._account.address

    async def get_balance(self) -> float:
        """
        Get the native balance of the signing account.

        Returns:
            Balance in whole native units (ether, not wei).

        Raises:
            ChainClientError: On RPC failure.
        """
        try:
            balance_wei = await self._w3.eth.get_balance(self.address)
        except (Web3Exception, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Balance query failed: {e}")
            raise ChainClientError(str(e)) from e
        return float(Web3.from_wei(balance_wei, "ether"))

    async def _build_transfer(self, amount: float, memo: str) -> dict[str, Any]:
        """Build an unsigned self-transfer with gas fields filled in."""
        tx: dict[str, Any] = {
            "from": self.address,
            "to": self.address,
            "value": Web3.to_wei(Decimal(str(amount)), "ether"),
            "nonce": await self._w3.eth.get_transaction_count(self.address, "pending"),
            "chainId": self._chain_id,
            "gasPrice": await self._w3.eth.gas_price,
        }
        if memo:
            tx["data"] = Web3.to_hex(text=memo)
        tx["gas"] = await self._w3.eth.estimate_gas(tx)  # type: ignore[arg-type]
        return tx

    async def send_transfer(self, amount: float, memo: str = "") -> TransferReceipt:
        """
        Sign, submit and confirm a transfer.

        Args:
            amount: Native amount to send.
            memo: Optional UTF-8 memo carried in the data field.

        Returns:
            Receipt for the confirmed transaction.

        Raises:
            ChainClientError: On RPC failure, timeout or revert.
        """
        async with self._send_lock:
            try:
                tx = await self._build_transfer(amount, memo)
                signed = self._account.sign_transaction(tx)
                tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            except (Web3Exception, OSError, asyncio.TimeoutError, ValueError) as e:
                logger.warning(f"Transaction submission failed: {e}")
                raise ChainClientError(str(e)) from e

        hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Transaction submitted: {hash_hex}")

        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout
            )
        except TimeExhausted as e:
            raise ChainClientError(f"Transaction {hash_hex} not confirmed in time", code="timeout") from e
        except (Web3Exception, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Receipt query failed for {hash_hex}: {e}")
            raise ChainClientError(str(e)) from e

        if receipt["status"] != 1:
            raise ChainClientError(f"Transaction {hash_hex} reverted", code="reverted")

        logger.info(f"Transaction confirmed: {hash_hex} (block {receipt['blockNumber']})")
        return TransferReceipt(
            tx_hash=hash_hex,
            gas_used=int(receipt["gasUsed"]),
            block_number=int(receipt["blockNumber"]),
        )

    async def close(self) -> None:
        """Close the provider's HTTP session."""
        disconnect = getattr(self._w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
