"""
Event Bus - Centralized event coordination system

Services (update router, scheduler, release controller) emit events here;
subscribers such as the NotificationService react to them. Every event is
also logged.

Events flow: Service → EventBus → [log, Subscribers]
"""

import logging
from typing import Dict, Any, Optional, List, Callable, Awaitable
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Standard event types in the system"""
    # Container update events
    UPDATE_AVAILABLE = "update_available"
    UPDATE_NOTIFICATION = "update_notification"  # update-approach=notify containers
    UPDATE_STARTED = "update_started"
    UPDATE_COMPLETED = "update_completed"
    UPDATE_FAILED = "update_failed"
    CONTAINER_LOST = "container_lost"
    SELF_UPDATE_SCHEDULED = "self_update_scheduled"

    # Cycle events
    CYCLE_STARTED = "cycle_started"
    CYCLE_COMPLETED = "cycle_completed"

    # Release controller events
    RELEASE_HEALTHY = "release_healthy"
    RELEASE_ROLLED_BACK = "release_rolled_back"
    RELEASE_FAILED = "release_failed"

    # System events
    SYSTEM_STARTUP = "system_startup"
    SYSTEM_SHUTDOWN = "system_shutdown"


# Severity used when logging each event type
_EVENT_LOG_LEVELS = {
    EventType.UPDATE_FAILED: logging.ERROR,
    EventType.CONTAINER_LOST: logging.CRITICAL,
    EventType.RELEASE_FAILED: logging.CRITICAL,
    EventType.RELEASE_ROLLED_BACK: logging.WARNING,
    EventType.SELF_UPDATE_SCHEDULED: logging.WARNING,
}


class Event:
    """
    Standard event object passed through the event bus
    """
    def __init__(
        self,
        event_type: EventType,
        scope_type: str,  # 'container', 'release', 'system'
        scope_id: str,
        scope_name: str,
        data: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None
    ):
        self.event_type = event_type
        self.scope_type = scope_type
        self.scope_id = scope_id
        self.scope_name = scope_name
        self.data = data or {}
        self.timestamp = timestamp or datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for logging/processing"""
        return {
            'event_type': self.event_type.value if isinstance(self.event_type, EventType) else str(self.event_type),
            'scope_type': self.scope_type,
            'scope_id': self.scope_id,
            'scope_name': self.scope_name,
            'data': self.data,
            'timestamp': self.timestamp.isoformat(),
        }


class EventBus:
    """
    Centralized event bus

    Usage:
        bus = get_event_bus()
        await bus.emit(Event(
            event_type=EventType.UPDATE_AVAILABLE,
            scope_type='container',
            scope_id=container_id,
            scope_name=container_name,
            data={'current_image_id': '...', 'latest_image_id': '...'}
        ))
    """

    def __init__(self):
        self.subscribers: Dict[str, List[Callable[[Event], Awaitable[None]]]] = {}

    def subscribe(self, event_type: EventType, handler: Callable[[Event], Awaitable[None]]):
        """
        Subscribe to specific event type

        Args:
            event_type: Type of event to subscribe to
            handler: Async function that handles the event
        """
        event_type_str = event_type.value if isinstance(event_type, EventType) else str(event_type)
        self.subscribers.setdefault(event_type_str, []).append(handler)
        logger.debug(f"Subscribed handler to event type: {event_type_str}")

    def unsubscribe(self, event_type: EventType, handler: Callable[[Event], Awaitable[None]]):
        event_type_str = event_type.value if isinstance(event_type, EventType) else str(event_type)
        if event_type_str in self.subscribers:
            try:
                self.subscribers[event_type_str].remove(handler)
                if not self.subscribers[event_type_str]:
                    del self.subscribers[event_type_str]
            except ValueError:
                logger.warning(f"Handler not found in subscribers for event type: {event_type_str}")

    async def emit(self, event: Event):
        """
        Emit an event - logs it and notifies subscribers

        A failing subscriber never propagates to the emitter.
        """
        level = _EVENT_LOG_LEVELS.get(event.event_type, logging.INFO)
        logger.log(level, f"Event {event.event_type.value} for {event.scope_type}:{event.scope_name}")
        await self._notify_subscribers(event)

    async def _notify_subscribers(self, event: Event):
        event_type_str = event.event_type.value if isinstance(event.event_type, EventType) else str(event.event_type)
        for handler in list(self.subscribers.get(event_type_str, [])):
            try:
                await handler(event)
            except Exception as e:
                logger.error(f"EventBus: Subscriber error for {event_type_str}: {e}", exc_info=True)

    def clear(self):
        self.subscribers.clear()


# Global singleton
_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get or create the global event bus"""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
