"""Mock implementations for testing."""

from tests.mocks.chain import FakeAsyncWeb3, MockChainClient
from tests.mocks.lifecycle import EventRecorder, run_to_rest, wait_until
from tests.mocks.price_source import StaticPriceSource


__all__ = [
    "EventRecorder",
    "FakeAsyncWeb3",
    "MockChainClient",
    "StaticPriceSource",
    "run_to_rest",
    "wait_until",
]
