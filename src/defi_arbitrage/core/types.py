"""
Type definitions for the arbitrage engine.

This module contains all dataclasses, enums and Protocol definitions used
throughout the application. Using slots=True for memory efficiency and
faster attribute access. Every record that crosses the control surface
has a ``to_dict`` producing its camelCase wire shape.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from defi_arbitrage.core.errors import InvalidStateError


# =============================================================================
# Enums
# =============================================================================


class OpportunityStatus(str, Enum):
    """Lifecycle status of an arbitrage opportunity."""

    DETECTED = "detected"
    ASSESSING = "assessing"
    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING_APPROVAL = "pending_approval"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition is possible."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[OpportunityStatus] = frozenset(
    {
        OpportunityStatus.REJECTED,
        OpportunityStatus.COMPLETED,
        OpportunityStatus.FAILED,
    }
)

# Forward-only lifecycle graph
ALLOWED_TRANSITIONS: dict[OpportunityStatus, frozenset[OpportunityStatus]] = {
    OpportunityStatus.DETECTED: frozenset({OpportunityStatus.ASSESSING}),
    OpportunityStatus.ASSESSING: frozenset(
        {OpportunityStatus.APPROVED, OpportunityStatus.REJECTED}
    ),
    OpportunityStatus.APPROVED: frozenset(
        {OpportunityStatus.PENDING_APPROVAL, OpportunityStatus.EXECUTING}
    ),
    OpportunityStatus.PENDING_APPROVAL: frozenset(
        {OpportunityStatus.EXECUTING, OpportunityStatus.REJECTED}
    ),
    OpportunityStatus.EXECUTING: frozenset(
        {OpportunityStatus.COMPLETED, OpportunityStatus.FAILED}
    ),
    OpportunityStatus.REJECTED: frozenset(),
    OpportunityStatus.COMPLETED: frozenset(),
    OpportunityStatus.FAILED: frozenset(),
}


class RiskLevel(str, Enum):
    """Risk classification of an assessed opportunity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AgentName(str, Enum):
    """Logical pipeline stages reported on the status surface."""

    SCANNER = "ScannerAgent"
    RISK = "RiskAgent"
    EXECUTOR = "ExecutorAgent"

    @property
    def short_name(self) -> str:
        """Key used in activity records (scanner, risk, executor)."""
        return _AGENT_SHORT_NAMES[self]


_AGENT_SHORT_NAMES: dict[AgentName, str] = {
    AgentName.SCANNER: "scanner",
    AgentName.RISK: "risk",
    AgentName.EXECUTOR: "executor",
}


class AgentState(str, Enum):
    """Activity state of a pipeline stage."""

    IDLE = "idle"
    ACTIVE = "active"
    ERROR = "error"


class ActivityStatus(str, Enum):
    """Severity of an activity log entry."""

    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# =============================================================================
# Market Data Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class TokenInfo:
    """Token reference data."""

    symbol: str
    address: str
    name: str = ""
    decimals: int = 18

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "address": self.address,
            "name": self.name or self.symbol,
            "decimals": self.decimals,
        }


@dataclass(slots=True, frozen=True)
class PriceObservation:
    """
    USD prices for a token pair at one instant.

    ``exchange_rate`` is the venue quote for token A in units of token B.
    For a live source it is derived as ``price_a / price_b``; simulated
    venues may quote it independently.
    """

    token_a: TokenInfo
    token_b: TokenInfo
    price_a: float
    price_b: float
    exchange_rate: float
    timestamp: int
    source: str = "mock"

    @property
    def pair(self) -> str:
        """Human-readable pair label."""
        return f"{self.token_a.symbol}/{self.token_b.symbol}"


# =============================================================================
# Risk & Trade Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class RiskAssessment:
    """Verdict and cost breakdown for a candidate opportunity."""

    approved: bool
    estimated_gas: int
    gas_price: float
    gas_cost_usd: float
    slippage: float
    net_profit: float
    profit_margin: float
    risk_level: RiskLevel
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "approved": self.approved,
            "estimatedGas": self.estimated_gas,
            "gasPrice": self.gas_price,
            "gasCostUSD": self.gas_cost_usd,
            "slippage": self.slippage,
            "netProfit": self.net_profit,
            "profitMargin": self.profit_margin,
            "riskLevel": self.risk_level.value,
            "reason": self.reason,
        }


@dataclass(slots=True, frozen=True)
class TradeParams:
    """Concrete trade instruction handed to the executor."""

    from_token: TokenInfo
    to_token: TokenInfo
    amount_in: str
    min_amount_out: str
    deadline: int
    slippage_tolerance: float
    expected_amount_out: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "fromToken": self.from_token.to_dict(),
            "toToken": self.to_token.to_dict(),
            "amountIn": self.amount_in,
            "minAmountOut": self.min_amount_out,
            "deadline": self.deadline,
            "slippageTolerance": self.slippage_tolerance,
        }


@dataclass(slots=True, frozen=True)
class ExecutionResult:
    """Outcome of executing one opportunity."""

    success: bool
    amount_in: str
    timestamp: int
    tx_hash: str | None = None
    amount_out: str | None = None
    gas_used: int | None = None
    actual_profit: float | None = None
    error: str | None = None
    simulated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "txHash": self.tx_hash,
            "amountIn": self.amount_in,
            "amountOut": self.amount_out,
            "gasUsed": self.gas_used,
            "actualProfit": self.actual_profit,
            "error": self.error,
            "timestamp": self.timestamp,
            "simulated": self.simulated,
        }


@dataclass(slots=True, frozen=True)
class TransferReceipt:
    """Confirmed on-chain transfer."""

    tx_hash: str
    gas_used: int
    block_number: int


# =============================================================================
# Opportunity Types
# =============================================================================


@dataclass(slots=True)
class ArbitrageOpportunity:
    """
    Detected arbitrage opportunity.

    Status only moves forward along ``ALLOWED_TRANSITIONS``; use
    ``advance`` rather than assigning ``status`` directly. The risk
    verdict and execution outcome are attached, not merged.
    """

    id: str
    token_a: TokenInfo
    token_b: TokenInfo
    buy_price: float
    sell_price: float
    exchange_rate: float
    price_difference: float
    potential_profit: float
    timestamp: int
    status: OpportunityStatus = OpportunityStatus.DETECTED
    assessment: RiskAssessment | None = None
    trade_params: TradeParams | None = None
    result: ExecutionResult | None = None
    history: list[tuple[OpportunityStatus, int]] = field(default_factory=list, repr=False)

    @property
    def pair(self) -> str:
        """Human-readable pair label."""
        return f"{self.token_a.symbol}/{self.token_b.symbol}"

    @property
    def is_terminal(self) -> bool:
        """Check if the opportunity reached a final status."""
        return self.status.is_terminal

    def can_advance(self, new_status: OpportunityStatus) -> bool:
        """Check if ``new_status`` is a legal next status."""
        return new_status in ALLOWED_TRANSITIONS[self.status]

    def advance(self, new_status: OpportunityStatus, timestamp: int) -> OpportunityStatus:
        """
        Move to ``new_status``.

        Args:
            new_status: Target status.
            timestamp: Transition time in milliseconds.

        Returns:
            The previous status.

        Raises:
            InvalidStateError: If the lifecycle graph forbids the move.
        """
        if not self.can_advance(new_status):
            raise InvalidStateError(
                f"Cannot move opportunity {self.id} from {self.status.value} to {new_status.value}"
            )
        previous = self.status
        self.status = new_status
        self.history.append((new_status, timestamp))
        return previous

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "tokenPair": {
                "tokenA": self.token_a.to_dict(),
                "tokenB": self.token_b.to_dict(),
            },
            "buyPrice": self.buy_price,
            "sellPrice": self.sell_price,
            "exchangeRate": self.exchange_rate,
            "priceDifference": self.price_difference,
            "potentialProfit": self.potential_profit,
            "timestamp": self.timestamp,
            "status": self.status.value,
        }
        if self.assessment is not None:
            data["assessment"] = self.assessment.to_dict()
            data["profitUSD"] = self.assessment.net_profit
        if self.result is not None:
            data["result"] = self.result.to_dict()
        return data


# =============================================================================
# System State Types
# =============================================================================


@dataclass(slots=True)
class SystemStats:
    """Process-wide counters since process start."""

    total_scans: int = 0
    opportunities_detected: int = 0
    opportunities_approved: int = 0
    executions_attempted: int = 0
    executions_successful: int = 0
    total_profit: float = 0.0

    @property
    def success_rate(self) -> float:
        """Successful executions / attempted, 0 when nothing was attempted."""
        if self.executions_attempted == 0:
            return 0.0
        return self.executions_successful / self.executions_attempted

    def to_dict(self, uptime: float = 0.0) -> dict[str, Any]:
        return {
            "totalScans": self.total_scans,
            "opportunitiesDetected": self.opportunities_detected,
            "opportunitiesApproved": self.opportunities_approved,
            "executionsAttempted": self.executions_attempted,
            "executionsSuccessful": self.executions_successful,
            "totalProfit": self.total_profit,
            "successRate": self.success_rate,
            "uptime": uptime,
        }


@dataclass(slots=True, frozen=True)
class ActivityRecord:
    """One entry in the bounded activity log."""

    id: str
    timestamp: int
    agent: str
    action: str
    details: str
    status: ActivityStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "agent": self.agent,
            "action": self.action,
            "details": self.details,
            "status": self.status.value,
        }


@dataclass(slots=True)
class AgentStatus:
    """Status of one logical pipeline stage."""

    name: AgentName
    status: AgentState = AgentState.IDLE
    last_activity: int = 0
    tasks_processed: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name.value,
            "status": self.status.value,
            "lastActivity": self.last_activity,
            "tasksProcessed": self.tasks_processed,
        }


# =============================================================================
# Protocols (Interfaces)
# =============================================================================


class PriceSource(Protocol):
    """Protocol for price providers."""

    async def fetch_prices(self, token_a: str, token_b: str) -> PriceObservation | None:
        """Fetch USD prices for a pair; None when no quote is available."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...


class ChainClient(Protocol):
    """Protocol for chain clients able to sign and submit transfers."""

    @property
    def address(self) -> str:
        """Address of the signing account."""
        ...

    async def get_balance(self) -> float:
        """Native balance of the signing account."""
        ...

    async def send_transfer(self, amount: float, memo: str = "") -> TransferReceipt:
        """Submit a transfer and wait for its receipt."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...
