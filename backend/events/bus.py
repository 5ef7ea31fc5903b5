"""Async event bus for sweep lifecycle events.

This module provides an EventBus class that lets the orchestrator publish
task and phase events per conversation session, and lets observers either
subscribe to the live stream or read back a session's recent history.

The event bus supports:
- Multiple subscribers per session
- Async event delivery via asyncio.Queue
- Bounded per-session history for after-the-fact inspection
- Session lifecycle management (close session terminates all subscribers)
"""

import asyncio
import threading
from collections import defaultdict

import structlog

from events.types import AgentEvent, EventType

logger = structlog.get_logger(__name__)


class EventBus:
    """Async pub/sub event bus for sweep events.

    Publishing never blocks a sweep for long: delivery to each subscriber
    queue is bounded by a timeout, and a failing subscriber never affects
    the others.

    Thread Safety:
        All registry operations use a threading.Lock, so history can be read
        from threads other than the event loop (e.g. sync HTTP handlers).

    Usage:
        >>> bus = EventBus()
        >>> queue = bus.subscribe("session_123")
        >>> await bus.publish(AgentEvent(
        ...     type=EventType.TASK_STARTED,
        ...     session_id="session_123",
        ...     task_id="emo_1a2b3c4d",
        ...     data={"task_type": "emotion_classification"},
        ... ))
        >>> event = await queue.get()
        >>> bus.get_event_history("session_123")

    Attributes:
        _subscribers: Dict mapping session_id to list of subscriber queues
        _event_history: Dict mapping session_id to its recent events
        _lock: Threading lock for thread-safe access
    """

    # Maximum number of events to retain per session.
    MAX_HISTORY_PER_SESSION = 500
    # Maximum number of sessions whose history is retained.
    MAX_HISTORY_SESSIONS = 1000
    DELIVERY_TIMEOUT_SECONDS = 5.0

    def __init__(self) -> None:
        """Initialize an empty event bus."""
        self._subscribers: dict[str, list[asyncio.Queue[AgentEvent]]] = defaultdict(list)
        self._event_history: dict[str, list[AgentEvent]] = {}
        self._lock = threading.Lock()
        logger.info("event_bus_initialized")

    def subscribe(self, session_id: str) -> asyncio.Queue[AgentEvent]:
        """Subscribe to live events for a session.

        Args:
            session_id: The session to subscribe to

        Returns:
            An asyncio.Queue that will receive AgentEvent objects
            as they are published for this session
        """
        queue: asyncio.Queue[AgentEvent] = asyncio.Queue()

        with self._lock:
            self._subscribers[session_id].append(queue)
            subscriber_count = len(self._subscribers[session_id])

        logger.info(
            "subscriber_added",
            session_id=session_id,
            subscriber_count=subscriber_count,
        )
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue[AgentEvent]) -> None:
        """Unsubscribe a queue from session events.

        If the queue is not registered, this is a no-op.

        Args:
            session_id: The session to unsubscribe from
            queue: The queue to remove
        """
        with self._lock:
            queues = self._subscribers.get(session_id)
            if not queues or queue not in queues:
                logger.warning("unsubscribe_queue_not_found", session_id=session_id)
                return
            queues.remove(queue)
            if not queues:
                del self._subscribers[session_id]

        logger.info("subscriber_removed", session_id=session_id)

    def _record(self, event: AgentEvent) -> None:
        """Append to the session's history. Caller must hold the lock."""
        history = self._event_history.get(event.session_id)
        if history is None:
            if len(self._event_history) >= self.MAX_HISTORY_SESSIONS:
                # Drop the oldest session (dicts keep insertion order)
                oldest = next(iter(self._event_history))
                del self._event_history[oldest]
            history = self._event_history[event.session_id] = []
        history.append(event)
        if len(history) > self.MAX_HISTORY_PER_SESSION:
            del history[: len(history) - self.MAX_HISTORY_PER_SESSION]

    async def publish(self, event: AgentEvent) -> None:
        """Publish an event to all subscribers for its session.

        The event is stored in the session's history and delivered to every
        subscriber queue registered for ``event.session_id``.

        Args:
            event: The AgentEvent to publish
        """
        with self._lock:
            if event.type != EventType.SESSION_CLOSED:
                self._record(event)
            subscribers = list(self._subscribers.get(event.session_id, []))

        # Deliver with a timeout so a stalled consumer can't hold up a sweep
        for queue in subscribers:
            try:
                await asyncio.wait_for(queue.put(event), timeout=self.DELIVERY_TIMEOUT_SECONDS)
            except TimeoutError:
                logger.warning(
                    "event_delivery_timeout",
                    session_id=event.session_id,
                    event_type=event.type.value,
                )
            except Exception as e:
                logger.warning(
                    "event_delivery_failed",
                    session_id=event.session_id,
                    event_type=event.type.value,
                    error=str(e),
                )

        logger.debug(
            "event_published",
            session_id=event.session_id,
            event_type=event.type.value,
            subscriber_count=len(subscribers),
            task_id=event.task_id,
        )

    def get_event_history(self, session_id: str) -> list[AgentEvent]:
        """Get stored events for a session in chronological order."""
        with self._lock:
            return list(self._event_history.get(session_id, []))

    async def close_session(self, session_id: str) -> None:
        """Close a session and notify all subscribers.

        Puts a SESSION_CLOSED sentinel into each subscriber queue so that
        consumers can break out of their read loops, then removes the
        subscribers. Event history is preserved.

        Args:
            session_id: The session to close
        """
        with self._lock:
            queues_to_signal = self._subscribers.pop(session_id, [])

        sentinel = AgentEvent(
            type=EventType.SESSION_CLOSED,
            session_id=session_id,
            data={"reason": "session_closed"},
        )
        for queue in queues_to_signal:
            queue.put_nowait(sentinel)

        logger.info(
            "session_closed",
            session_id=session_id,
            subscribers_removed=len(queues_to_signal),
        )

    def get_subscriber_count(self, session_id: str) -> int:
        """Get the number of subscribers for a session."""
        with self._lock:
            return len(self._subscribers.get(session_id, []))

    def clear_event_history(self, session_id: str) -> None:
        """Clear stored event history for a session."""
        with self._lock:
            self._event_history.pop(session_id, None)


# Global event bus instance
_event_bus: EventBus | None = None
_bus_lock = threading.Lock()


def get_event_bus() -> EventBus:
    """Get the global EventBus instance.

    Creates the instance on first call (lazy initialization).
    This function is thread-safe.

    Returns:
        The global EventBus instance
    """
    global _event_bus
    if _event_bus is None:
        with _bus_lock:
            # Double-check locking pattern
            if _event_bus is None:
                _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Reset the global EventBus instance.

    This is primarily useful for testing to ensure a clean state
    between test runs.
    """
    global _event_bus
    with _bus_lock:
        _event_bus = None
    logger.info("event_bus_reset")
