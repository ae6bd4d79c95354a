"""
Opportunity lifecycle controller.

Owns every state transition of every opportunity: periodic scanning,
delayed risk assessment, the manual approval gate, execution and the
statistics that summarize them. Each detected opportunity runs in its
own task; a per-opportunity lock serializes transitions so concurrent
approve/reject calls resolve to exactly one outcome.
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from defi_arbitrage.config.constants import (
    ASSESSMENT_DELAY,
    DEFAULT_GAS_PRICE,
    DEFAULT_TRADE_AMOUNT_USD,
    EXECUTION_DELAY,
    OPPORTUNITY_LIST_LIMIT,
)
from defi_arbitrage.config.settings import SystemSettings
from defi_arbitrage.core.errors import InvalidInputError, NotPendingApprovalError
from defi_arbitrage.core.event_bus import EventBus, EventType
from defi_arbitrage.core.state import SystemState
from defi_arbitrage.core.types import (
    ActivityRecord,
    ActivityStatus,
    AgentName,
    AgentState,
    AgentStatus,
    ArbitrageOpportunity,
    ExecutionResult,
    OpportunityStatus,
    PriceObservation,
    PriceSource,
)
from defi_arbitrage.execution.executor import ExecutionSimulator
from defi_arbitrage.execution.params import TradeParameterBuilder
from defi_arbitrage.execution.risk import RiskEvaluator
from defi_arbitrage.strategy.opportunity import OpportunityDetector
from defi_arbitrage.telemetry.metrics import MetricsCollector
from defi_arbitrage.utils.math import format_usd
from defi_arbitrage.utils.time import format_duration_us, get_timestamp_ms


logger = logging.getLogger(__name__)


@dataclass
class LifecycleConfig:
    """Static pipeline configuration (runtime knobs live in SystemSettings)."""

    token_pairs: Sequence[tuple[str, str]] = field(default_factory=list)
    trade_amount_usd: float = DEFAULT_TRADE_AMOUNT_USD
    gas_price: float = DEFAULT_GAS_PRICE
    assessment_delay: float = ASSESSMENT_DELAY  # seconds
    execution_delay: float = EXECUTION_DELAY  # seconds
    approval_timeout: float | None = None  # None waits for a decision forever
    native_token: str | None = None  # symbol whose observed price drives gas costs


class LifecycleController:
    """
    Drives opportunities from detection to a terminal status.

    Lifecycle:
        detected -> assessing -> approved | rejected
        approved -> pending_approval (manual) | executing (autonomous)
        pending_approval -> executing (approve) | rejected (reject, timeout)
        executing -> completed | failed

    Stopping the system cancels only the scan loop. Pipelines already in
    flight run to completion and their results are applied; parked
    opportunities can still be approved or rejected.
    """

    def __init__(
        self,
        price_source: PriceSource,
        config: LifecycleConfig | None = None,
        detector: OpportunityDetector | None = None,
        risk_evaluator: RiskEvaluator | None = None,
        param_builder: TradeParameterBuilder | None = None,
        executor: ExecutionSimulator | None = None,
        state: SystemState | None = None,
        event_bus: EventBus | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """
        Initialize the controller.

        Args:
            price_source: Provider of pair price observations.
            config: Pipeline configuration.
            detector: Opportunity detector.
            risk_evaluator: Risk evaluator.
            param_builder: Trade parameter builder.
            executor: Execution engine (simulated unless it holds a chain client).
            state: System state aggregate.
            event_bus: Event feed for observers.
            metrics: Operational metrics collector.
        """
        self._price_source = price_source
        self._config = config or LifecycleConfig()
        self._state = state or SystemState()
        self._detector = detector or OpportunityDetector(self._state.settings.min_profit_threshold)
        self._risk = risk_evaluator or RiskEvaluator()
        self._params = param_builder or TradeParameterBuilder()
        self._executor = executor or ExecutionSimulator()
        self._event_bus = event_bus or EventBus()
        self._metrics = metrics or MetricsCollector()

        self._scan_task: asyncio.Task[None] | None = None
        self._pipelines: set[asyncio.Task[Any]] = set()
        self._expiry_tasks: dict[str, asyncio.Task[None]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # =========================================================================
    # Control Surface
    # =========================================================================

    async def start_system(self, settings: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Start periodic scanning.

        Args:
            settings: Optional partial settings applied before starting.

        Returns:
            ``{"success": bool, "message": str}``; a second start reports failure.

        Raises:
            SettingsError: If ``settings`` is invalid (the system is not started).
        """
        if self._state.running:
            return {"success": False, "message": "System already running"}

        if settings:
            await self.update_settings(settings)

        self._state.running = True
        self._scan_task = asyncio.create_task(self._scan_loop(), name="scan-loop")

        logger.info(
            f"System started: interval={self._state.settings.scan_interval}s "
            f"approval={'manual' if self._state.settings.require_approval else 'auto'}"
        )
        await self._activity(AgentName.SCANNER, "System started", "Scanning for opportunities", ActivityStatus.SUCCESS)
        await self._event_bus.emit(EventType.SYSTEM_STATUS, self._state.status_snapshot())
        return {"success": True, "message": "System started", "settings": self._state.settings.to_dict()}

    async def stop_system(self) -> dict[str, Any]:
        """
        Stop periodic scanning.

        In-flight pipelines are left to finish.

        Returns:
            ``{"success": bool, "message": str}``; stopping twice reports failure.
        """
        if not self._state.running:
            return {"success": False, "message": "System not running"}

        self._state.running = False
        task, self._scan_task = self._scan_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._set_agent(AgentName.SCANNER, AgentState.IDLE)
        logger.info(f"System stopped ({self.in_flight} pipelines still in flight)")
        await self._activity(AgentName.SCANNER, "System stopped", "Scanning halted", ActivityStatus.INFO)
        await self._event_bus.emit(EventType.SYSTEM_STATUS, self._state.status_snapshot())
        return {"success": True, "message": "System stopped"}

    async def update_settings(self, partial: dict[str, Any]) -> SystemSettings:
        """
        Merge and validate a partial settings update.

        Accepts ``scanInterval``, ``minProfitUSD``, ``maxSlippage`` and
        ``requireApproval`` (or their snake_case names).

        Raises:
            SettingsError: If anything is invalid; nothing is applied.
        """
        try:
            new_settings = self._state.settings.merged(partial)
        except ValueError as e:
            logger.warning(f"Rejected settings update {partial!r}: {e}")
            raise

        self._state.settings = new_settings
        self._detector.set_min_profit_threshold(new_settings.min_profit_threshold)
        logger.info(f"Settings updated: {new_settings.to_dict()}")
        await self._event_bus.emit(EventType.SYSTEM_STATUS, self._state.status_snapshot())
        return new_settings

    def get_settings(self) -> SystemSettings:
        return self._state.settings

    def get_status(self) -> dict[str, Any]:
        """Running flag, settings and stats snapshot."""
        return self._state.status_snapshot()

    def get_stats(self) -> dict[str, Any]:
        return self._state.stats_snapshot()

    def list_opportunities(self, limit: int = OPPORTUNITY_LIST_LIMIT) -> list[ArbitrageOpportunity]:
        """Most recent opportunities first."""
        return self._state.recent_opportunities(limit)

    def get_opportunity(self, opportunity_id: str) -> ArbitrageOpportunity:
        """
        Look up one opportunity.

        Raises:
            OpportunityNotFoundError: If the id is unknown.
        """
        return self._state.get_opportunity(opportunity_id)

    def list_activities(self) -> list[ActivityRecord]:
        """Activity log, newest first."""
        return list(self._state.activities)

    def get_agent_statuses(self) -> list[AgentStatus]:
        return list(self._state.agents.values())

    async def approve_opportunity(self, opportunity_id: str) -> ExecutionResult:
        """
        Approve a parked opportunity and execute it.

        The execution runs as a controller task; cancelling the caller does
        not abort it and its outcome is still applied.

        Returns:
            The execution outcome.

        Raises:
            OpportunityNotFoundError: If the id is unknown.
            NotPendingApprovalError: If it is not awaiting approval.
        """
        opportunity = self._state.get_opportunity(opportunity_id)
        task = self._spawn(self._approve_and_execute(opportunity), name=f"approve-{opportunity_id}")
        return await asyncio.shield(task)

    async def reject_opportunity(self, opportunity_id: str) -> ArbitrageOpportunity:
        """
        Reject a parked opportunity.

        Raises:
            OpportunityNotFoundError: If the id is unknown.
            NotPendingApprovalError: If it is not awaiting approval.
        """
        opportunity = self._state.get_opportunity(opportunity_id)

        async with self._lock_for(opportunity_id):
            if opportunity.status != OpportunityStatus.PENDING_APPROVAL:
                raise NotPendingApprovalError(opportunity_id)
            self._cancel_expiry(opportunity_id)
            await self._transition(
                opportunity,
                OpportunityStatus.REJECTED,
                AgentName.RISK,
                "Opportunity rejected",
                f"{opportunity.pair} rejected by operator",
                ActivityStatus.WARNING,
            )

        return opportunity

    # =========================================================================
    # Scanning
    # =========================================================================

    async def _scan_loop(self) -> None:
        """Scan immediately, then every ``scan_interval`` seconds (re-read each cycle)."""
        while self._state.running:
            try:
                await self.run_scan()
            except Exception as e:
                logger.error(f"Scan failed: {e}", exc_info=True)
                await self._set_agent(AgentName.SCANNER, AgentState.ERROR)
                await self._activity(AgentName.SCANNER, "Scan failed", str(e), ActivityStatus.ERROR)

            interval = self._state.settings.scan_interval
            await self._event_bus.emit(
                EventType.SCAN_PROGRESS,
                {
                    "pairsScanned": len(self._config.token_pairs),
                    "totalPairs": len(self._config.token_pairs),
                    "currentPair": None,
                    "nextScanIn": interval,
                },
            )
            await asyncio.sleep(interval)

    async def run_scan(self) -> list[ArbitrageOpportunity]:
        """
        Run one scan cycle over all configured pairs.

        Pairs whose prices cannot be fetched are logged and skipped.

        Returns:
            Opportunities detected in this cycle.
        """
        pairs = list(self._config.token_pairs)
        self._state.stats.total_scans += 1
        await self._set_agent(AgentName.SCANNER, AgentState.ACTIVE)

        observations: list[PriceObservation] = []
        with self._metrics.time_stage("scan") as timer:
            for index, (token_a, token_b) in enumerate(pairs):
                await self._event_bus.emit(
                    EventType.SCAN_PROGRESS,
                    {
                        "pairsScanned": index,
                        "totalPairs": len(pairs),
                        "currentPair": f"{token_a}/{token_b}",
                        "nextScanIn": 0,
                    },
                )
                observation = await self._fetch(token_a, token_b)
                if observation is not None:
                    observations.append(observation)

            opportunities = self._detector.detect(
                observations, self._state.settings.min_profit_threshold
            )

        logger.debug(
            f"Fetched {len(observations)}/{len(pairs)} pairs in {format_duration_us(timer.latency_us)}"
        )
        self._metrics.increment_counter("pairs_fetched", len(observations))
        self._refresh_native_price(observations)

        for opportunity in opportunities:
            self._admit(opportunity)

        await self._set_agent(AgentName.SCANNER, AgentState.IDLE, task_done=True)
        await self._activity(
            AgentName.SCANNER,
            "Scan complete",
            f"Scanned {len(observations)}/{len(pairs)} pairs, found {len(opportunities)} opportunities",
            ActivityStatus.SUCCESS if observations or not pairs else ActivityStatus.WARNING,
        )
        await self._emit_stats()
        return opportunities

    async def _fetch(self, token_a: str, token_b: str) -> PriceObservation | None:
        """Fetch one pair, isolating source errors."""
        try:
            observation = await self._price_source.fetch_prices(token_a, token_b)
        except Exception as e:
            logger.warning(f"Price fetch failed for {token_a}/{token_b}: {e}")
            self._metrics.increment_counter("price_fetch_errors")
            await self._activity(
                AgentName.SCANNER, "Price fetch failed", f"{token_a}/{token_b}: {e}", ActivityStatus.WARNING
            )
            return None

        if observation is None:
            logger.info(f"No price available for {token_a}/{token_b}, skipping")
            self._metrics.increment_counter("price_fetch_misses")
        return observation

    def _admit(self, opportunity: ArbitrageOpportunity) -> None:
        """
        Register a detected opportunity and start its pipeline.

        Never awaits: once registered, an opportunity always has a pipeline,
        even if the scan task is cancelled right after.
        """
        self._state.add_opportunity(opportunity)
        self._state.stats.opportunities_detected += 1
        logger.info(
            f"Opportunity {opportunity.id}: {opportunity.pair} "
            f"profit={opportunity.potential_profit:+.4%}"
        )
        self._spawn(self._run_pipeline(opportunity), name=f"pipeline-{opportunity.id}")

    def _refresh_native_price(self, observations: list[PriceObservation]) -> None:
        """Feed an observed USD price of the native token to the gas model."""
        symbol = self._config.native_token
        if not symbol:
            return
        for observation in observations:
            for token, price in (
                (observation.token_a, observation.price_a),
                (observation.token_b, observation.price_b),
            ):
                if token.symbol.upper() == symbol.upper() and price > 0:
                    self._risk.update_native_price(price)
                    return

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _run_pipeline(self, opportunity: ArbitrageOpportunity) -> None:
        """Announce, assess, then park or execute one opportunity."""
        try:
            await self._event_bus.emit(EventType.OPPORTUNITY_DETECTED, opportunity.to_dict())
            await self._activity(
                AgentName.SCANNER,
                "Opportunity detected",
                f"{opportunity.pair}: {opportunity.potential_profit * 100:+.2f}% potential",
                ActivityStatus.SUCCESS,
            )
            async with self._lock_for(opportunity.id):
                await self._transition(
                    opportunity,
                    OpportunityStatus.ASSESSING,
                    AgentName.RISK,
                    "Assessing risk",
                    f"Evaluating {opportunity.pair}",
                    ActivityStatus.INFO,
                )

            await asyncio.sleep(self._config.assessment_delay)
            if not await self._assess(opportunity):
                return

            if self._state.settings.require_approval:
                await self._park(opportunity)
                return

            await asyncio.sleep(self._config.execution_delay)
            async with self._lock_for(opportunity.id):
                if opportunity.status != OpportunityStatus.APPROVED:
                    return
                await self._begin_execution(opportunity)
            await self._perform_execution(opportunity)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Pipeline error for {opportunity.id}: {e}", exc_info=True)
            await self._abort(opportunity, str(e))

    async def _assess(self, opportunity: ArbitrageOpportunity) -> bool:
        """Attach a risk verdict; returns True when approved."""
        await self._set_agent(AgentName.RISK, AgentState.ACTIVE)
        settings = self._state.settings

        async with self._lock_for(opportunity.id):
            assessment = self._risk.assess(
                opportunity,
                trade_amount_usd=self._config.trade_amount_usd,
                gas_price=self._config.gas_price,
                max_slippage=settings.max_slippage_fraction,
                min_profit_threshold=settings.min_profit_threshold,
            )
            opportunity.assessment = assessment

            if assessment.approved:
                self._state.stats.opportunities_approved += 1
                await self._transition(
                    opportunity,
                    OpportunityStatus.APPROVED,
                    AgentName.RISK,
                    "Risk approved",
                    f"{opportunity.pair}: {assessment.reason} [{assessment.risk_level.value}]",
                    ActivityStatus.SUCCESS,
                )
            else:
                await self._transition(
                    opportunity,
                    OpportunityStatus.REJECTED,
                    AgentName.RISK,
                    "Risk rejected",
                    f"{opportunity.pair}: {assessment.reason}",
                    ActivityStatus.WARNING,
                )

        await self._set_agent(AgentName.RISK, AgentState.IDLE, task_done=True)
        await self._emit_stats()
        return assessment.approved

    async def _park(self, opportunity: ArbitrageOpportunity) -> None:
        """Hold an approved opportunity for a manual decision."""
        async with self._lock_for(opportunity.id):
            if opportunity.status != OpportunityStatus.APPROVED:
                return
            await self._transition(
                opportunity,
                OpportunityStatus.PENDING_APPROVAL,
                AgentName.RISK,
                "Approval required",
                f"{opportunity.pair} awaiting manual approval",
                ActivityStatus.INFO,
            )

        expected = opportunity.assessment.net_profit if opportunity.assessment else 0.0
        await self._event_bus.emit(
            EventType.APPROVAL_REQUIRED,
            {"opportunity": opportunity.to_dict(), "expectedProfit": expected},
        )

        timeout = self._config.approval_timeout
        if timeout is not None:
            task = asyncio.create_task(
                self._expire_after(opportunity.id, timeout), name=f"expiry-{opportunity.id}"
            )
            self._expiry_tasks[opportunity.id] = task

    async def _expire_after(self, opportunity_id: str, timeout: float) -> None:
        """Reject a parked opportunity once its approval window closes."""
        await asyncio.sleep(timeout)
        opportunity = self._state.get_opportunity(opportunity_id)

        async with self._lock_for(opportunity_id):
            self._expiry_tasks.pop(opportunity_id, None)
            if opportunity.status != OpportunityStatus.PENDING_APPROVAL:
                return
            await self._transition(
                opportunity,
                OpportunityStatus.REJECTED,
                AgentName.RISK,
                "Approval timed out",
                f"{opportunity.pair} not approved within {timeout:g}s",
                ActivityStatus.WARNING,
            )

    def _cancel_expiry(self, opportunity_id: str) -> None:
        task = self._expiry_tasks.pop(opportunity_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _approve_and_execute(self, opportunity: ArbitrageOpportunity) -> ExecutionResult:
        """Apply an operator approval, then run the execution."""
        async with self._lock_for(opportunity.id):
            if opportunity.status != OpportunityStatus.PENDING_APPROVAL:
                raise NotPendingApprovalError(opportunity.id)
            self._cancel_expiry(opportunity.id)
            await self._activity(
                AgentName.EXECUTOR,
                "Opportunity approved",
                f"{opportunity.pair} approved for execution",
                ActivityStatus.SUCCESS,
            )
            await self._begin_execution(opportunity)

        return await self._perform_execution(opportunity)

    async def _begin_execution(self, opportunity: ArbitrageOpportunity) -> None:
        """Enter ``executing``; caller holds the opportunity lock."""
        self._state.stats.executions_attempted += 1
        await self._set_agent(AgentName.EXECUTOR, AgentState.ACTIVE)
        await self._transition(
            opportunity,
            OpportunityStatus.EXECUTING,
            AgentName.EXECUTOR,
            "Executing trade",
            f"Executing {opportunity.pair}",
            ActivityStatus.INFO,
        )

    async def _perform_execution(self, opportunity: ArbitrageOpportunity) -> ExecutionResult:
        """Build params, execute and apply the outcome."""
        assessment = opportunity.assessment
        settings = self._state.settings

        with self._metrics.time_stage("execution"):
            try:
                if assessment is None:
                    raise InvalidInputError(f"Opportunity {opportunity.id} has no risk assessment")
                params = self._params.build(
                    opportunity,
                    assessment,
                    trade_amount_usd=self._config.trade_amount_usd,
                    max_slippage=settings.max_slippage_fraction,
                )
                opportunity.trade_params = params
                result = await self._executor.execute(params, assessment.net_profit)
            except InvalidInputError as e:
                result = ExecutionResult(
                    success=False,
                    amount_in="0",
                    error=str(e),
                    timestamp=get_timestamp_ms(),
                    simulated=self._executor.is_simulated,
                )

        await self._finish_execution(opportunity, result)
        return result

    async def _finish_execution(self, opportunity: ArbitrageOpportunity, result: ExecutionResult) -> None:
        async with self._lock_for(opportunity.id):
            opportunity.result = result
            if result.success:
                profit = result.actual_profit or 0.0
                self._state.stats.executions_successful += 1
                self._state.stats.total_profit += profit
                await self._transition(
                    opportunity,
                    OpportunityStatus.COMPLETED,
                    AgentName.EXECUTOR,
                    "Trade executed",
                    f"{opportunity.pair}: profit {format_usd(profit)} tx {result.tx_hash}",
                    ActivityStatus.SUCCESS,
                )
            else:
                await self._transition(
                    opportunity,
                    OpportunityStatus.FAILED,
                    AgentName.EXECUTOR,
                    "Execution failed",
                    f"{opportunity.pair}: {result.error}",
                    ActivityStatus.ERROR,
                )

        await self._set_agent(AgentName.EXECUTOR, AgentState.IDLE, task_done=True)
        await self._emit_stats()

    async def _abort(self, opportunity: ArbitrageOpportunity, error: str) -> None:
        """Move an opportunity to a terminal status after an unexpected error."""
        async with self._lock_for(opportunity.id):
            if opportunity.status == OpportunityStatus.EXECUTING:
                target = OpportunityStatus.FAILED
            elif opportunity.can_advance(OpportunityStatus.REJECTED):
                target = OpportunityStatus.REJECTED
            else:
                return
            await self._transition(
                opportunity, target, AgentName.RISK, "Pipeline error", error, ActivityStatus.ERROR
            )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lock_for(self, opportunity_id: str) -> asyncio.Lock:
        lock = self._locks.get(opportunity_id)
        if lock is None:
            lock = self._locks[opportunity_id] = asyncio.Lock()
        return lock

    def _spawn(self, coro: Any, name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._pipelines.add(task)
        task.add_done_callback(self._pipelines.discard)
        return task

    async def _transition(
        self,
        opportunity: ArbitrageOpportunity,
        status: OpportunityStatus,
        agent: AgentName,
        action: str,
        details: str,
        activity_status: ActivityStatus,
    ) -> None:
        """Advance status, then record and publish it."""
        previous = opportunity.advance(status, get_timestamp_ms())
        logger.info(f"{opportunity.id}: {previous.value} -> {status.value}")
        await self._activity(agent, action, details, activity_status)
        await self._event_bus.emit(
            EventType.OPPORTUNITY_UPDATE, {"id": opportunity.id, "status": status.value}
        )
        if status.is_terminal:
            self._locks.pop(opportunity.id, None)

    async def _activity(
        self,
        agent: AgentName,
        action: str,
        details: str,
        status: ActivityStatus,
    ) -> None:
        record = self._state.record_activity(agent, action, details, status)
        await self._event_bus.emit(EventType.AGENT_ACTIVITY, record.to_dict())

    async def _set_agent(self, agent: AgentName, state: AgentState, task_done: bool = False) -> None:
        status = self._state.set_agent_state(agent, state, task_done)
        await self._event_bus.emit(EventType.AGENT_STATUS, status.to_dict())

    async def _emit_stats(self) -> None:
        await self._event_bus.emit(EventType.STATS_UPDATE, self._state.stats_snapshot())

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight pipelines and approved executions; parked approvals are not awaited."""
        pending = [t for t in self._pipelines if not t.done()]
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            logger.warning(f"{len(still_running)} pipelines still running after drain timeout")

    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop scanning, let pipelines finish and cancel approval timers."""
        await self.stop_system()
        await self.drain(timeout)
        for task in list(self._expiry_tasks.values()):
            task.cancel()
        self._expiry_tasks.clear()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._state.running

    @property
    def state(self) -> SystemState:
        return self._state

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def risk_evaluator(self) -> RiskEvaluator:
        return self._risk

    @property
    def in_flight(self) -> int:
        """Number of pipelines currently running."""
        return sum(1 for t in self._pipelines if not t.done())
