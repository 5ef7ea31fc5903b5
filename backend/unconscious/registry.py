"""Registry of in-flight engine agents.

The registry only ever holds agents whose process is alive: an entry is
inserted right after spawn with status ``running`` and removed the moment
the agent reaches a terminal status. ``active_count`` is the size of the
map, so it cannot drift or go negative.

Thread Safety:
    Mutations and snapshots take a threading.Lock, so the registry can be
    read from other threads (e.g. an HTTP worker) while the event loop
    mutates it. No await happens while the lock is held.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import StrEnum

import structlog

logger = structlog.get_logger(__name__)


class AgentStatus(StrEnum):
    """Lifecycle status of a spawned agent."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class AgentHandle:
    """Live-process handle for one in-flight task."""

    id: str
    task_id: str
    task_type: str
    pid: int | None = None
    started_at: float = field(default_factory=time.time)
    status: AgentStatus = AgentStatus.RUNNING


@dataclass(frozen=True)
class RegistrySnapshot:
    """Read-only view of the registry at one instant."""

    active_count: int
    max_concurrent_configured: int
    agents: tuple[AgentHandle, ...] = ()


class AgentRegistry:
    """In-memory map of agent id to AgentHandle.

    Attributes:
        max_concurrent: Configured concurrency limit, recorded for
            observability (enforcement lives in TaskExecutor).
    """

    def __init__(self, max_concurrent: int = 4) -> None:
        self.max_concurrent = max_concurrent
        self._agents: dict[str, AgentHandle] = {}
        self._lock = threading.Lock()

    @staticmethod
    def generate_agent_id() -> str:
        """Generate a unique agent id in the format ``agent_{12 hex chars}``."""
        return f"agent_{uuid.uuid4().hex[:12]}"

    def register(
        self,
        agent_id: str,
        task_id: str,
        task_type: str,
        pid: int | None = None,
    ) -> AgentHandle:
        """Insert a running agent.

        Raises:
            ValueError: If the agent id is already registered.
        """
        handle = AgentHandle(id=agent_id, task_id=task_id, task_type=task_type, pid=pid)
        with self._lock:
            if agent_id in self._agents:
                raise ValueError(f"Agent {agent_id} is already registered")
            self._agents[agent_id] = handle
            active = len(self._agents)

        logger.debug(
            "agent_registered",
            agent_id=agent_id,
            task_id=task_id,
            active_count=active,
        )
        return handle

    def finish(self, agent_id: str, status: AgentStatus) -> bool:
        """Move an agent to a terminal status and drop it.

        Idempotent: finishing an agent that is already gone changes nothing.

        Args:
            agent_id: The agent to finish.
            status: COMPLETED or FAILED.

        Returns:
            True if this call removed the agent, False if it was already gone.
        """
        if status == AgentStatus.RUNNING:
            raise ValueError("finish() requires a terminal status")

        with self._lock:
            handle = self._agents.pop(agent_id, None)
            if handle is not None:
                handle.status = status
            active = len(self._agents)

        if handle is None:
            logger.debug("agent_already_finished", agent_id=agent_id)
            return False

        logger.debug(
            "agent_finished",
            agent_id=agent_id,
            task_id=handle.task_id,
            status=status.value,
            active_count=active,
        )
        return True

    def get(self, agent_id: str) -> AgentHandle | None:
        with self._lock:
            return self._agents.get(agent_id)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._agents)

    def snapshot(self) -> RegistrySnapshot:
        """Return a copy of the current registry state."""
        with self._lock:
            agents = tuple(replace(h) for h in self._agents.values())
        return RegistrySnapshot(
            active_count=len(agents),
            max_concurrent_configured=self.max_concurrent,
            agents=agents,
        )
