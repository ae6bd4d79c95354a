"""Simulation module for running without live price APIs."""

from defi_arbitrage.simulation.market import MockPriceSource, SimulatedToken


__all__ = [
    "MockPriceSource",
    "SimulatedToken",
]
