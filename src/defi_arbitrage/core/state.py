"""
Process-wide system state.

One aggregate owned by the lifecycle controller: runtime settings,
statistics, the opportunity collection, the bounded activity log and
per-stage agent status. Nothing here is module-global, so tests and the
HTTP adapter can each hold their own instance.
"""

import secrets
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from defi_arbitrage.config.constants import ACTIVITY_LOG_SIZE, OPPORTUNITY_LIST_LIMIT
from defi_arbitrage.config.settings import SystemSettings
from defi_arbitrage.core.errors import OpportunityNotFoundError
from defi_arbitrage.core.types import (
    ActivityRecord,
    ActivityStatus,
    AgentName,
    AgentState,
    AgentStatus,
    ArbitrageOpportunity,
    SystemStats,
)
from defi_arbitrage.utils.time import get_timestamp_ms


# Terminal opportunities beyond this count are pruned oldest-first
DEFAULT_OPPORTUNITY_RETENTION = 1000


@dataclass
class SystemState:
    """Aggregate of everything the controller mutates."""

    settings: SystemSettings = field(default_factory=SystemSettings)
    stats: SystemStats = field(default_factory=SystemStats)
    opportunities: dict[str, ArbitrageOpportunity] = field(default_factory=dict)
    activities: deque[ActivityRecord] = field(
        default_factory=lambda: deque(maxlen=ACTIVITY_LOG_SIZE)
    )
    agents: dict[AgentName, AgentStatus] = field(
        default_factory=lambda: {name: AgentStatus(name) for name in AgentName}
    )
    running: bool = False
    opportunity_retention: int = DEFAULT_OPPORTUNITY_RETENTION
    started_at: float = field(default_factory=time.monotonic)

    # =========================================================================
    # Opportunities
    # =========================================================================

    def add_opportunity(self, opportunity: ArbitrageOpportunity) -> None:
        """Store a new opportunity, pruning old terminal ones past retention."""
        self.opportunities[opportunity.id] = opportunity
        self._prune()

    def get_opportunity(self, opportunity_id: str) -> ArbitrageOpportunity:
        """
        Look up an opportunity.

        Raises:
            OpportunityNotFoundError: If the id is unknown.
        """
        try:
            return self.opportunities[opportunity_id]
        except KeyError:
            raise OpportunityNotFoundError(opportunity_id) from None

    def recent_opportunities(self, limit: int = OPPORTUNITY_LIST_LIMIT) -> list[ArbitrageOpportunity]:
        """Most recent opportunities first."""
        ordered = sorted(self.opportunities.values(), key=lambda o: o.timestamp, reverse=True)
        return ordered[: max(limit, 0)]

    def _prune(self) -> None:
        excess = len(self.opportunities) - self.opportunity_retention
        if excess <= 0:
            return
        for opp_id in [o.id for o in self.opportunities.values() if o.is_terminal][:excess]:
            del self.opportunities[opp_id]

    # =========================================================================
    # Activity & Agents
    # =========================================================================

    def record_activity(
        self,
        agent: AgentName,
        action: str,
        details: str,
        status: ActivityStatus = ActivityStatus.INFO,
    ) -> ActivityRecord:
        """Prepend an activity record; the log keeps the newest entries."""
        timestamp = get_timestamp_ms()
        record = ActivityRecord(
            id=f"act_{timestamp}_{secrets.token_hex(4)}",
            timestamp=timestamp,
            agent=agent.short_name,
            action=action,
            details=details,
            status=status,
        )
        self.activities.appendleft(record)
        return record

    def set_agent_state(
        self,
        agent: AgentName,
        state: AgentState,
        task_done: bool = False,
    ) -> AgentStatus:
        """Update one agent's status."""
        status = self.agents[agent]
        status.status = state
        status.last_activity = get_timestamp_ms()
        if task_done:
            status.tasks_processed += 1
        return status

    # =========================================================================
    # Snapshots
    # =========================================================================

    @property
    def uptime(self) -> float:
        """Seconds since this state was created."""
        return time.monotonic() - self.started_at

    def stats_snapshot(self) -> dict[str, Any]:
        return self.stats.to_dict(uptime=round(self.uptime, 3))

    def status_snapshot(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "settings": self.settings.to_dict(),
            "stats": self.stats_snapshot(),
        }
