"""Chain access for real executions."""

from defi_arbitrage.chain.client import Web3ChainClient


__all__ = ["Web3ChainClient"]
