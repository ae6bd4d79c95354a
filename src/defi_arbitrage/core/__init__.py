"""Core module containing the event bus, errors, and type definitions."""

from defi_arbitrage.core.errors import (
    ArbitrageError,
    InvalidInputError,
    InvalidStateError,
    NotPendingApprovalError,
    OpportunityNotFoundError,
    SettingsError,
)
from defi_arbitrage.core.event_bus import Event, EventBus, EventType
from defi_arbitrage.core.types import (
    ArbitrageOpportunity,
    ExecutionResult,
    OpportunityStatus,
    PriceObservation,
    RiskAssessment,
    RiskLevel,
    TokenInfo,
    TradeParams,
)


__all__ = [
    "ArbitrageError",
    "ArbitrageOpportunity",
    "Event",
    "EventBus",
    "EventType",
    "ExecutionResult",
    "InvalidInputError",
    "InvalidStateError",
    "NotPendingApprovalError",
    "OpportunityNotFoundError",
    "OpportunityStatus",
    "PriceObservation",
    "RiskAssessment",
    "RiskLevel",
    "SettingsError",
    "TokenInfo",
    "TradeParams",
]
