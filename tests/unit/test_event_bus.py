"""
Unit tests for EventBus.

Tests subscription, ordering, wildcard delivery and error isolation.
"""

from typing import Any

import pytest

from defi_arbitrage.core.event_bus import Event, EventBus, EventType


class TestEventBus:
    """Tests for EventBus."""

    @pytest.fixture
    def bus(self) -> EventBus:
        return EventBus()

    @pytest.mark.asyncio
    async def test_typed_subscription(self, bus: EventBus) -> None:
        """Test handlers only receive their event type."""
        received: list[Any] = []

        async def handler(event: Event[Any]) -> None:
            received.append(event.payload)

        bus.subscribe(EventType.STATS_UPDATE, handler)
        await bus.emit(EventType.STATS_UPDATE, {"totalScans": 1})
        await bus.emit(EventType.AGENT_STATUS, {"name": "ScannerAgent"})

        assert received == [{"totalScans": 1}]

    @pytest.mark.asyncio
    async def test_priority_order(self, bus: EventBus) -> None:
        """Test higher priority handlers run first."""
        order: list[str] = []

        async def low(event: Event[Any]) -> None:
            order.append("low")

        async def high(event: Event[Any]) -> None:
            order.append("high")

        bus.subscribe(EventType.SYSTEM_STATUS, low, priority=0)
        bus.subscribe(EventType.SYSTEM_STATUS, high, priority=10)
        await bus.emit(EventType.SYSTEM_STATUS, {})

        assert order == ["high", "low"]

    @pytest.mark.asyncio
    async def test_wildcard_and_unsubscribe(self, bus: EventBus) -> None:
        """Test wildcard handlers see every type until removed."""
        seen: list[EventType] = []

        async def everything(event: Event[Any]) -> None:
            seen.append(event.type)

        bus.subscribe_all(everything)
        await bus.emit(EventType.OPPORTUNITY_DETECTED, {})
        await bus.emit(EventType.APPROVAL_REQUIRED, {})
        assert bus.unsubscribe(None, everything) is True
        await bus.emit(EventType.STATS_UPDATE, {})

        assert seen == [EventType.OPPORTUNITY_DETECTED, EventType.APPROVAL_REQUIRED]
        assert bus.unsubscribe(None, everything) is False

    @pytest.mark.asyncio
    async def test_error_isolation(self, bus: EventBus) -> None:
        """Test a failing handler does not stop delivery to others."""
        received: list[Any] = []

        async def broken(event: Event[Any]) -> None:
            raise RuntimeError("boom")

        def sync_handler(event: Event[Any]) -> None:
            received.append("sync")

        async def working(event: Event[Any]) -> None:
            received.append("async")

        bus.subscribe(EventType.AGENT_ACTIVITY, broken, priority=5)
        bus.subscribe(EventType.AGENT_ACTIVITY, working)
        bus.subscribe_sync(EventType.AGENT_ACTIVITY, sync_handler)
        await bus.emit(EventType.AGENT_ACTIVITY, {})

        assert received == ["sync", "async"]

    @pytest.mark.asyncio
    async def test_pause(self, bus: EventBus) -> None:
        """Test paused buses drop events."""
        received: list[Any] = []

        async def handler(event: Event[Any]) -> None:
            received.append(event)

        bus.subscribe(EventType.SCAN_PROGRESS, handler)
        bus.pause()
        assert bus.is_paused
        await bus.emit(EventType.SCAN_PROGRESS, {})
        bus.resume()
        await bus.publish_concurrent(Event(EventType.SCAN_PROGRESS, {"pairsScanned": 1}))

        assert len(received) == 1
        assert bus.handler_count(EventType.SCAN_PROGRESS) == 1

    def test_wire_message(self) -> None:
        """Test the WebSocket message shape."""
        event = Event(EventType.OPPORTUNITY_UPDATE, {"id": "opp-1", "status": "approved"}, 123)

        assert event.to_message() == {
            "type": "opportunityUpdate",
            "data": {"id": "opp-1", "status": "approved"},
            "timestamp": 123,
        }
