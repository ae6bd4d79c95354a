"""Strategy module for arbitrage detection."""

from defi_arbitrage.strategy.opportunity import OpportunityDetector


__all__ = [
    "OpportunityDetector",
]
