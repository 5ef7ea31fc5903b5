"""Event system for sweep observability.

This package provides the event infrastructure that reports sweep and task
lifecycle to observers. The event system is based on an async pub/sub
pattern using asyncio.Queue.

Key Components:
    - EventType: Enum of all event types in the system
    - AgentEvent: Pydantic model for events flowing through the system
    - EventBus: Async pub/sub implementation for event distribution

Usage:
    >>> from events import EventType, AgentEvent, get_event_bus
    >>>
    >>> bus = get_event_bus()
    >>> queue = bus.subscribe("session_123")
    >>> await bus.publish(AgentEvent(
    ...     type=EventType.SWEEP_STARTED,
    ...     session_id="session_123",
    ...     data={"user_id": "user_1", "task_types": ["memory_retrieval"]},
    ... ))
    >>> event = await queue.get()
"""

from events.bus import (
    EventBus,
    get_event_bus,
    reset_event_bus,
)
from events.types import (
    AgentEvent,
    EventType,
)

__all__ = [
    # Event types
    "EventType",
    "AgentEvent",
    # Event bus
    "EventBus",
    "get_event_bus",
    "reset_event_bus",
]
