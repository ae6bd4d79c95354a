"""
Integration tests for the opportunity lifecycle.

Drives the controller end to end with static quotes: scan, assessment,
approval gate, execution and the statistics they update.
"""

import asyncio

import pytest

from defi_arbitrage.core.errors import (
    NotPendingApprovalError,
    OpportunityNotFoundError,
    PriceSourceError,
    SettingsError,
)
from defi_arbitrage.core.event_bus import EventType
from defi_arbitrage.core.types import ExecutionResult, OpportunityStatus
from tests.mocks import EventRecorder, MockChainClient, run_to_rest, wait_until
from tests.mocks.lifecycle import LOSING_QUOTE, PROFITABLE_QUOTE, THIN_QUOTE


class TestAutonomousMode:
    """Opportunities flow straight from approval to execution."""

    @pytest.mark.asyncio
    async def test_profitable_opportunity_completes(self, make_controller) -> None:
        """Test the full happy path and resulting statistics."""
        controller = make_controller()
        recorder = EventRecorder(controller.event_bus)

        found = await run_to_rest(controller)

        assert len(found) == 1
        opp = controller.get_opportunity(found[0].id)
        assert opp.status == OpportunityStatus.COMPLETED
        assert recorder.statuses_for(opp.id) == ["assessing", "approved", "executing", "completed"]

        assert opp.assessment is not None
        assert opp.assessment.approved
        assert opp.trade_params is not None
        assert opp.result is not None
        assert opp.result.simulated is True
        assert opp.result.tx_hash.startswith("SIM")

        net = opp.assessment.net_profit
        assert 0.95 * net <= opp.result.actual_profit <= 1.05 * net

        stats = controller.get_stats()
        assert stats["totalScans"] == 1
        assert stats["opportunitiesDetected"] == 1
        assert stats["opportunitiesApproved"] == 1
        assert stats["executionsAttempted"] == 1
        assert stats["executionsSuccessful"] == 1
        assert stats["successRate"] == 1.0
        assert stats["totalProfit"] == pytest.approx(opp.result.actual_profit)

    @pytest.mark.asyncio
    async def test_detection_event(self, make_controller) -> None:
        """Test observers see the detected opportunity before its updates."""
        controller = make_controller()
        recorder = EventRecorder(controller.event_bus)

        found = await run_to_rest(controller)

        detected = recorder.of_type(EventType.OPPORTUNITY_DETECTED)
        assert [d["id"] for d in detected] == [found[0].id]
        assert detected[0]["status"] == "detected"
        assert recorder.of_type(EventType.APPROVAL_REQUIRED) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quote", [THIN_QUOTE, LOSING_QUOTE])
    async def test_unprofitable_rejected(self, make_controller, quote) -> None:
        """Test the risk stage stops opportunities that do not clear costs."""
        controller = make_controller(quotes={("WETH", "USDC"): quote})
        recorder = EventRecorder(controller.event_bus)

        found = await run_to_rest(controller)

        assert len(found) == 1
        opp = controller.get_opportunity(found[0].id)
        assert opp.status == OpportunityStatus.REJECTED
        assert recorder.statuses_for(opp.id) == ["assessing", "rejected"]
        assert opp.result is None

        stats = controller.get_stats()
        assert stats["opportunitiesApproved"] == 0
        assert stats["executionsAttempted"] == 0

    @pytest.mark.asyncio
    async def test_real_execution(self, make_controller) -> None:
        """Test execution through a funded chain client."""
        chain = MockChainClient(balance=1.0)
        controller = make_controller(chain_client=chain)

        found = await run_to_rest(controller)

        opp = controller.get_opportunity(found[0].id)
        assert opp.status == OpportunityStatus.COMPLETED
        assert opp.result.simulated is False
        assert opp.result.tx_hash == f"0x{1:064x}"
        assert len(chain.transfers) == 1

    @pytest.mark.asyncio
    async def test_insufficient_balance_fails(self, make_controller) -> None:
        """Test an unfunded wallet fails the execution without sending."""
        chain = MockChainClient(balance=0.0)
        controller = make_controller(chain_client=chain)

        found = await run_to_rest(controller)

        opp = controller.get_opportunity(found[0].id)
        assert opp.status == OpportunityStatus.FAILED
        assert "Insufficient balance" in opp.result.error
        assert chain.transfers == []

        stats = controller.get_stats()
        assert stats["executionsAttempted"] == 1
        assert stats["executionsSuccessful"] == 0
        assert stats["totalProfit"] == 0.0

    @pytest.mark.asyncio
    async def test_statistics_over_mixed_outcomes(self, make_controller) -> None:
        """Test success rate and total profit across successes and failures."""
        chain = MockChainClient(balance=1.0)
        controller = make_controller(chain_client=chain)

        for balance in (1.0, 0.0, 1.0, 0.0, 1.0):
            chain.balance = balance
            await run_to_rest(controller)

        opportunities = controller.list_opportunities()
        completed = [o for o in opportunities if o.status == OpportunityStatus.COMPLETED]
        failed = [o for o in opportunities if o.status == OpportunityStatus.FAILED]
        assert len(completed) == 3
        assert len(failed) == 2

        stats = controller.get_stats()
        assert stats["executionsAttempted"] == 5
        assert stats["executionsSuccessful"] == 3
        assert stats["successRate"] == pytest.approx(3 / 5)
        assert stats["totalProfit"] == pytest.approx(sum(o.result.actual_profit for o in completed))

    @pytest.mark.asyncio
    async def test_native_price_follows_scans(self, make_controller) -> None:
        """Test a scanned native token price feeds the gas cost."""
        controller = make_controller(native_token="weth")

        found = await run_to_rest(controller)

        assert controller.risk_evaluator.native_price_usd == 100.0
        opp = controller.get_opportunity(found[0].id)
        assert opp.assessment.gas_cost_usd == pytest.approx(75_000 * 0.025 / 1_000_000 * 100.0)

    @pytest.mark.asyncio
    async def test_native_price_fixed_without_token(self, make_controller) -> None:
        controller = make_controller()

        await run_to_rest(controller)

        assert controller.risk_evaluator.native_price_usd == 1.0


class TestManualApproval:
    """Approved opportunities wait for an operator decision."""

    @pytest.mark.asyncio
    async def test_parks_pending_approval(self, make_controller) -> None:
        """Test the pipeline stops at pending_approval and announces it."""
        controller = make_controller(require_approval=True)
        recorder = EventRecorder(controller.event_bus)

        found = await run_to_rest(controller)

        opp = controller.get_opportunity(found[0].id)
        assert opp.status == OpportunityStatus.PENDING_APPROVAL
        assert "executing" not in recorder.statuses_for(opp.id)

        required = recorder.of_type(EventType.APPROVAL_REQUIRED)
        assert len(required) == 1
        assert required[0]["opportunity"]["id"] == opp.id
        assert required[0]["expectedProfit"] == pytest.approx(opp.assessment.net_profit)
        assert controller.get_stats()["executionsAttempted"] == 0

    @pytest.mark.asyncio
    async def test_approve_executes(self, make_controller) -> None:
        """Test approval runs the execution and a second approval is refused."""
        controller = make_controller(require_approval=True)
        recorder = EventRecorder(controller.event_bus)
        found = await run_to_rest(controller)
        opp_id = found[0].id

        result = await controller.approve_opportunity(opp_id)

        assert isinstance(result, ExecutionResult)
        assert result.success
        assert controller.get_opportunity(opp_id).status == OpportunityStatus.COMPLETED
        assert recorder.statuses_for(opp_id) == [
            "assessing",
            "approved",
            "pending_approval",
            "executing",
            "completed",
        ]
        assert controller.get_stats()["executionsSuccessful"] == 1

        with pytest.raises(NotPendingApprovalError):
            await controller.approve_opportunity(opp_id)

    @pytest.mark.asyncio
    async def test_reject(self, make_controller) -> None:
        """Test operator rejection is terminal."""
        controller = make_controller(require_approval=True)
        found = await run_to_rest(controller)
        opp_id = found[0].id

        opp = await controller.reject_opportunity(opp_id)

        assert opp.status == OpportunityStatus.REJECTED
        assert opp.result is None
        with pytest.raises(NotPendingApprovalError):
            await controller.reject_opportunity(opp_id)
        with pytest.raises(NotPendingApprovalError):
            await controller.approve_opportunity(opp_id)

    @pytest.mark.asyncio
    async def test_unknown_id(self, make_controller) -> None:
        controller = make_controller(require_approval=True)

        with pytest.raises(OpportunityNotFoundError):
            await controller.approve_opportunity("opp-missing")
        with pytest.raises(OpportunityNotFoundError):
            await controller.reject_opportunity("opp-missing")

    @pytest.mark.asyncio
    async def test_approve_on_completed_autonomous(self, make_controller) -> None:
        """Test approving an opportunity that never waited is refused."""
        controller = make_controller()
        found = await run_to_rest(controller)

        with pytest.raises(NotPendingApprovalError):
            await controller.approve_opportunity(found[0].id)

    @pytest.mark.asyncio
    async def test_concurrent_decisions(self, make_controller) -> None:
        """Test racing approve and reject resolve to exactly one outcome."""
        controller = make_controller(require_approval=True, simulated_latency=0.02)
        found = await run_to_rest(controller)
        opp_id = found[0].id

        outcomes = await asyncio.gather(
            controller.approve_opportunity(opp_id),
            controller.reject_opportunity(opp_id),
            controller.approve_opportunity(opp_id),
            return_exceptions=True,
        )

        refused = [o for o in outcomes if isinstance(o, NotPendingApprovalError)]
        assert len(refused) == 2
        assert controller.get_opportunity(opp_id).status in (
            OpportunityStatus.COMPLETED,
            OpportunityStatus.REJECTED,
        )
        assert controller.get_stats()["executionsAttempted"] <= 1

    @pytest.mark.asyncio
    async def test_approval_timeout(self, make_controller) -> None:
        """Test a parked opportunity is rejected when nobody decides."""
        controller = make_controller(require_approval=True, approval_timeout=0.05)
        found = await run_to_rest(controller)
        opp_id = found[0].id

        await wait_until(lambda: controller.get_opportunity(opp_id).is_terminal)

        assert controller.get_opportunity(opp_id).status == OpportunityStatus.REJECTED
        assert any(a.action == "Approval timed out" for a in controller.list_activities())

    @pytest.mark.asyncio
    async def test_approval_before_timeout(self, make_controller) -> None:
        """Test approving cancels the pending expiry."""
        controller = make_controller(require_approval=True, approval_timeout=0.05)
        found = await run_to_rest(controller)
        opp_id = found[0].id

        await controller.approve_opportunity(opp_id)
        await asyncio.sleep(0.1)

        assert controller.get_opportunity(opp_id).status == OpportunityStatus.COMPLETED
        assert not any(a.action == "Approval timed out" for a in controller.list_activities())

    @pytest.mark.asyncio
    async def test_cancelled_approval_still_completes(self, make_controller) -> None:
        """Test cancelling the approving caller does not abort the execution."""
        controller = make_controller(require_approval=True, simulated_latency=0.2)
        found = await run_to_rest(controller)
        opp_id = found[0].id

        caller = asyncio.create_task(controller.approve_opportunity(opp_id))
        await wait_until(lambda: controller.get_opportunity(opp_id).status == OpportunityStatus.EXECUTING)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        await controller.drain(timeout=2.0)

        assert controller.get_opportunity(opp_id).status == OpportunityStatus.COMPLETED
        stats = controller.get_stats()
        assert stats["executionsAttempted"] == 1
        assert stats["executionsSuccessful"] == 1
        assert stats["successRate"] == 1.0


class TestSystemControl:
    """Start, stop and settings behavior."""

    @pytest.mark.asyncio
    async def test_start_stop(self, make_controller) -> None:
        """Test start and stop report success once each."""
        controller = make_controller(quotes={})

        started = await controller.start_system()
        again = await controller.start_system()

        assert started["success"] is True
        assert started["settings"]["scanInterval"] == 30
        assert again == {"success": False, "message": "System already running"}
        assert controller.is_running

        await wait_until(lambda: controller.state.stats.total_scans >= 1)

        stopped = await controller.stop_system()
        assert stopped == {"success": True, "message": "System stopped"}
        assert await controller.stop_system() == {"success": False, "message": "System not running"}
        assert not controller.is_running

    @pytest.mark.asyncio
    async def test_start_with_settings(self, make_controller) -> None:
        """Test settings passed to start are applied."""
        controller = make_controller(quotes={})

        result = await controller.start_system({"scanInterval": 10, "requireApproval": True})

        assert result["settings"]["scanInterval"] == 10
        assert controller.get_settings().require_approval is True
        await controller.stop_system()

    @pytest.mark.asyncio
    async def test_start_with_invalid_settings(self, make_controller) -> None:
        """Test invalid settings leave the system stopped and unchanged."""
        controller = make_controller(quotes={})

        with pytest.raises(SettingsError):
            await controller.start_system({"scanInterval": 1})

        assert not controller.is_running
        assert controller.get_settings().scan_interval == 30

    @pytest.mark.asyncio
    async def test_inflight_pipeline_survives_stop(self, make_controller) -> None:
        """Test stopping does not abandon an opportunity mid-pipeline."""
        controller = make_controller(execution_delay=0.1)

        await controller.start_system()
        await wait_until(lambda: controller.state.stats.opportunities_detected == 1)
        await controller.stop_system()

        opp = controller.list_opportunities()[0]
        await wait_until(lambda: opp.is_terminal)

        assert opp.status == OpportunityStatus.COMPLETED
        assert controller.state.stats.total_scans == 1

    @pytest.mark.asyncio
    async def test_parked_opportunity_actionable_after_stop(self, make_controller) -> None:
        """Test approvals still work while scanning is stopped."""
        controller = make_controller(require_approval=True)

        await controller.start_system()
        await wait_until(lambda: controller.state.stats.opportunities_approved == 1)
        await controller.stop_system()

        opp = controller.list_opportunities()[0]
        await wait_until(lambda: opp.status == OpportunityStatus.PENDING_APPROVAL)
        result = await controller.approve_opportunity(opp.id)

        assert result.success

    @pytest.mark.asyncio
    async def test_stop_while_detection_is_observed(self, make_controller) -> None:
        """Test a stop during detection handling still lets the opportunity finish."""
        controller = make_controller()
        entered = asyncio.Event()
        release = asyncio.Event()

        async def slow_observer(event) -> None:
            entered.set()
            await release.wait()

        controller.event_bus.subscribe(EventType.OPPORTUNITY_DETECTED, slow_observer)

        await controller.start_system()
        await asyncio.wait_for(entered.wait(), timeout=2.0)
        await controller.stop_system()
        release.set()
        await controller.drain(timeout=2.0)

        [opp] = controller.list_opportunities()
        assert opp.status == OpportunityStatus.COMPLETED
        assert controller.get_stats()["executionsSuccessful"] == 1

    @pytest.mark.asyncio
    async def test_threshold_update_suppresses_detection(self, make_controller) -> None:
        """Test a higher minimum profit applies to the next scan."""
        controller = make_controller()

        await controller.update_settings({"minProfitUSD": 10})
        found = await run_to_rest(controller)

        assert found == []
        assert controller.get_stats()["opportunitiesDetected"] == 0
        assert controller.get_stats()["totalScans"] == 1

    @pytest.mark.asyncio
    async def test_invalid_update_keeps_settings(self, make_controller) -> None:
        controller = make_controller()

        with pytest.raises(SettingsError):
            await controller.update_settings({"maxSlippage": 50})

        assert controller.get_settings().max_slippage == 1.0

    @pytest.mark.asyncio
    async def test_slippage_ceiling_rejects(self, make_controller) -> None:
        """Test a slippage ceiling below the estimate rejects everything."""
        controller = make_controller(max_slippage=0.5)

        found = await run_to_rest(controller)

        opp = controller.get_opportunity(found[0].id)
        assert opp.status == OpportunityStatus.REJECTED
        assert opp.assessment.reason.startswith("Slippage")


class TestScanning:
    """Scan cycle behavior."""

    @pytest.mark.asyncio
    async def test_failing_pair_skipped(self, make_controller) -> None:
        """Test one failing pair does not stop the others."""
        controller = make_controller(
            quotes={
                ("LINK", "USDC"): PriceSourceError("upstream 503"),
                ("WETH", "USDC"): PROFITABLE_QUOTE,
                ("AAVE", "USDC"): None,
            }
        )

        found = await run_to_rest(controller)

        assert [o.pair for o in found] == ["WETH/USDC"]
        assert controller.metrics.get_counter("price_fetch_errors") == 1
        assert controller.metrics.get_counter("price_fetch_misses") == 1
        assert any(a.action == "Price fetch failed" for a in controller.list_activities())

    @pytest.mark.asyncio
    async def test_scan_progress_events(self, make_controller) -> None:
        """Test progress is reported per pair."""
        controller = make_controller(
            quotes={("WETH", "USDC"): PROFITABLE_QUOTE, ("LINK", "USDC"): THIN_QUOTE}
        )
        recorder = EventRecorder(controller.event_bus)

        await run_to_rest(controller)

        progress = recorder.of_type(EventType.SCAN_PROGRESS)
        assert [p["currentPair"] for p in progress] == ["WETH/USDC", "LINK/USDC"]
        assert all(p["totalPairs"] == 2 for p in progress)

    @pytest.mark.asyncio
    async def test_activity_log_newest_first(self, make_controller) -> None:
        """Test the activity log is ordered newest first."""
        controller = make_controller(quotes={})

        await controller.start_system()
        await wait_until(lambda: controller.state.stats.total_scans >= 1)
        await controller.stop_system()

        actions = [a.action for a in controller.list_activities()]
        assert actions[0] == "System stopped"
        assert actions[-1] == "System started"
        assert "Scan complete" in actions

    @pytest.mark.asyncio
    async def test_agent_statuses(self, make_controller) -> None:
        """Test each agent reports processed work."""
        controller = make_controller()

        await run_to_rest(controller)

        statuses = {s.name.value: s for s in controller.get_agent_statuses()}
        assert statuses["ScannerAgent"].tasks_processed == 1
        assert statuses["RiskAgent"].tasks_processed == 1
        assert statuses["ExecutorAgent"].tasks_processed == 1
