"""
Internal event bus for decoupled communication.

Provides publish/subscribe messaging between the lifecycle controller
and observers (WebSocket broadcaster, tests) without tight coupling.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from defi_arbitrage.utils.time import get_timestamp_ms


logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Event types published on the feed, valued by their wire name."""

    AGENT_STATUS = "agentStatus"
    AGENT_ACTIVITY = "agentActivity"
    OPPORTUNITY_DETECTED = "opportunityDetected"
    OPPORTUNITY_UPDATE = "opportunityUpdate"
    APPROVAL_REQUIRED = "approvalRequired"
    STATS_UPDATE = "statsUpdate"
    SCAN_PROGRESS = "scanProgress"
    SYSTEM_STATUS = "systemStatus"


T = TypeVar("T")


@dataclass
class Event(Generic[T]):
    """Generic event with typed payload."""

    type: EventType
    payload: T
    timestamp_ms: int = 0
    source: str = ""

    def to_message(self) -> dict[str, Any]:
        """Wire representation pushed to WebSocket clients."""
        return {"type": self.type.value, "data": self.payload, "timestamp": self.timestamp_ms}


# Type alias for event handlers
EventHandler = Callable[[Event[Any]], Awaitable[None]]
SyncEventHandler = Callable[[Event[Any]], None]


class EventBus:
    """
    Async-safe event bus for internal messaging.

    Features:
    - Async and sync handler support
    - Priority-based handler ordering
    - Wildcard subscriptions for broadcasters
    - Error isolation per handler
    """

    def __init__(self) -> None:
        """Initialize event bus."""
        self._handlers: dict[EventType, list[tuple[int, EventHandler]]] = defaultdict(list)
        self._sync_handlers: dict[EventType, list[tuple[int, SyncEventHandler]]] = defaultdict(list)
        self._any_handlers: list[EventHandler] = []
        self._paused = False

    def subscribe(
        self,
        event_type: EventType,
        handler: EventHandler,
        priority: int = 0,
    ) -> None:
        """
        Subscribe an async handler to an event type.

        Args:
            event_type: Event type to handle.
            handler: Async handler function.
            priority: Handler priority (higher = earlier execution).
        """
        self._handlers[event_type].append((priority, handler))
        # Sort by priority (descending)
        self._handlers[event_type].sort(key=lambda x: x[0], reverse=True)

    def subscribe_sync(
        self,
        event_type: EventType,
        handler: SyncEventHandler,
        priority: int = 0,
    ) -> None:
        """
        Subscribe a sync handler to an event type.

        Args:
            event_type: Event type to handle.
            handler: Sync handler function.
            priority: Handler priority.
        """
        self._sync_handlers[event_type].append((priority, handler))
        self._sync_handlers[event_type].sort(key=lambda x: x[0], reverse=True)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe an async handler to every event type."""
        self._any_handlers.append(handler)

    def unsubscribe(
        self,
        event_type: EventType | None,
        handler: EventHandler | SyncEventHandler,
    ) -> bool:
        """
        Unsubscribe a handler.

        Args:
            event_type: Event type, or None for a wildcard subscription.
            handler: Handler to remove.

        Returns:
            True if handler was found and removed.
        """
        if event_type is None:
            if handler in self._any_handlers:
                self._any_handlers.remove(handler)  # type: ignore[arg-type]
                return True
            return False

        # Check async handlers
        for i, (_, ah) in enumerate(self._handlers[event_type]):
            if ah is handler:
                self._handlers[event_type].pop(i)
                return True

        # Check sync handlers
        for i, (_, sh) in enumerate(self._sync_handlers[event_type]):
            if sh is handler:
                self._sync_handlers[event_type].pop(i)
                return True

        return False

    async def emit(self, event_type: EventType, payload: Any, source: str = "") -> None:
        """Build and publish an event stamped with the current time."""
        await self.publish(Event(event_type, payload, get_timestamp_ms(), source))

    async def publish(self, event: Event[Any]) -> None:
        """
        Publish an event to all subscribers.

        Args:
            event: Event to publish.
        """
        if self._paused:
            return

        # Run sync handlers first (they're typically faster)
        for _, sync_handler in self._sync_handlers[event.type]:
            try:
                sync_handler(event)
            except Exception as e:
                logger.error(f"Sync handler error for {event.type.value}: {e}")

        # Run async handlers
        for _, async_handler in self._handlers[event.type]:
            try:
                await async_handler(event)
            except Exception as e:
                logger.error(f"Async handler error for {event.type.value}: {e}")

        for any_handler in list(self._any_handlers):
            try:
                await any_handler(event)
            except Exception as e:
                logger.error(f"Broadcast handler error for {event.type.value}: {e}")

    async def publish_concurrent(self, event: Event[Any]) -> None:
        """
        Publish event with concurrent async handler execution.

        Use when handler order doesn't matter and parallelism is preferred.
        """
        if self._paused:
            return

        for _, sync_handler in self._sync_handlers[event.type]:
            try:
                sync_handler(event)
            except Exception as e:
                logger.error(f"Sync handler error for {event.type.value}: {e}")

        tasks = [self._safe_call(h, event) for _, h in self._handlers[event.type]]
        tasks.extend(self._safe_call(h, event) for h in self._any_handlers)

        if tasks:
            await asyncio.gather(*tasks)

    async def _safe_call(self, handler: EventHandler, event: Event[Any]) -> None:
        """Safely call a handler with error isolation."""
        try:
            await handler(event)
        except Exception as e:
            logger.error(f"Handler error for {event.type.value}: {e}")

    def pause(self) -> None:
        """Pause event delivery."""
        self._paused = True

    def resume(self) -> None:
        """Resume event delivery."""
        self._paused = False

    def handler_count(self, event_type: EventType) -> int:
        """Get number of handlers receiving an event type."""
        return (
            len(self._handlers[event_type])
            + len(self._sync_handlers[event_type])
            + len(self._any_handlers)
        )

    @property
    def is_paused(self) -> bool:
        """Check if event bus is paused."""
        return self._paused
