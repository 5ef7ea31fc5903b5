"""One spawned engine process: stdio piping, timeout, exit handling, cleanup.

A ProcessAgent runs exactly one engine invocation. Every path that ends the
process (natural exit, timeout-triggered termination, cancellation)
converges on ``_cleanup``, which runs at most once per agent and removes the
agent from the registry. A spawn failure never registers the agent.

On timeout the agent sends SIGTERM, cleans up and fails straight away; the
SIGKILL after the grace period happens in a background reaper task.
"""

import asyncio
import contextlib
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from config import DEFAULT_CORTEX_PATH, Settings
from unconscious.errors import NonZeroExitError, SpawnError, TaskTimeoutError
from unconscious.registry import AgentRegistry, AgentStatus
from unconscious.tasks import TaskDescriptor

logger = structlog.get_logger(__name__)

# Environment overrides for every engine process
CONFIG_DIR_ENV = "CLAUDE_CONFIG_DIR"
SKIP_HOOKS_ENV = "CLAUDE_SKIP_HOOKS"


class EngineProcess(Protocol):
    """The subset of asyncio.subprocess.Process a ProcessAgent uses."""

    pid: int
    returncode: int | None

    async def communicate(self, input: bytes | None = None) -> tuple[bytes, bytes]: ...

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


class ProcessLauncher(Protocol):
    """Starts an engine process; replaced by fakes in tests."""

    async def __call__(
        self, argv: Sequence[str], env: Mapping[str, str]
    ) -> EngineProcess: ...


async def spawn_subprocess(argv: Sequence[str], env: Mapping[str, str]) -> EngineProcess:
    """Start ``argv`` with all three stdio streams piped."""
    return await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=dict(env),
    )


@dataclass(frozen=True)
class EngineConfig:
    """How to invoke the reasoning engine."""

    command: str = "claude"
    model: str = "claude-sonnet-4-20250514"
    cortex_path: Path = DEFAULT_CORTEX_PATH
    timeout_seconds: float = 30.0
    terminate_grace_seconds: float = 2.0
    debug: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        return cls(
            command=settings.engine_command,
            model=settings.engine_model,
            cortex_path=settings.cortex_path,
            timeout_seconds=settings.task_timeout_seconds,
            terminate_grace_seconds=settings.terminate_grace_seconds,
            debug=settings.debug,
        )


# Kill-after-grace tasks for timed-out processes; a strong reference keeps
# each one alive until it finishes
_reapers: set[asyncio.Task[None]] = set()


async def reap(process: EngineProcess, grace_seconds: float, agent_id: str) -> None:
    """Wait out the grace period after SIGTERM, then SIGKILL if still running.

    A process still running when the reaper ends, including by cancellation,
    is killed.
    """
    try:
        await asyncio.wait_for(process.wait(), timeout=grace_seconds)
    except TimeoutError:
        logger.warning(
            "agent_kill_after_grace",
            agent_id=agent_id,
            pid=process.pid,
            grace_seconds=grace_seconds,
        )
    finally:
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()


def _start_reaper(process: EngineProcess, grace_seconds: float, agent_id: str) -> None:
    task = asyncio.create_task(reap(process, grace_seconds, agent_id))
    _reapers.add(task)
    task.add_done_callback(_reapers.discard)


def pending_reapers() -> int:
    """Number of timed-out processes still inside their grace period."""
    return len(_reapers)


async def wait_for_reapers() -> None:
    """Wait until every timed-out process has exited or been killed."""
    if _reapers:
        await asyncio.gather(*_reapers, return_exceptions=True)


class ProcessAgent:
    """Drives a single engine process for one task.

    Attributes:
        id: Generated agent id, the registry key.
        task: The task this agent runs.
    """

    def __init__(
        self,
        task: TaskDescriptor,
        engine: EngineConfig,
        registry: AgentRegistry,
        launcher: ProcessLauncher = spawn_subprocess,
    ) -> None:
        self.id = registry.generate_agent_id()
        self.task = task
        self._engine = engine
        self._registry = registry
        self._launcher = launcher
        self._cleaned_up = False

    def build_argv(self, prompt: str) -> list[str]:
        """Non-interactive, structured-output invocation of the engine."""
        return [
            self._engine.command,
            "--print",
            "--output-format=json",
            "--model",
            self._engine.model,
            "-p",
            prompt,
        ]

    def build_env(self) -> dict[str, str]:
        """Host environment with the isolated cortex and hooks disabled."""
        env = dict(os.environ)
        env[CONFIG_DIR_ENV] = str(self._engine.cortex_path)
        env[SKIP_HOOKS_ENV] = "1"
        return env

    async def run(self, prompt: str) -> str:
        """Run the engine on ``prompt`` and return its stdout.

        Raises:
            SpawnError: If the process could not be started.
            TaskTimeoutError: If the process outlived the timeout.
            NonZeroExitError: If the process exited with a failure code.
        """
        try:
            process = await self._launcher(self.build_argv(prompt), self.build_env())
        except (OSError, ValueError) as e:
            logger.warning(
                "agent_spawn_failed",
                task_id=self.task.id,
                command=self._engine.command,
                error=str(e),
            )
            raise SpawnError(f"spawn failed: {e}") from e

        self._registry.register(self.id, self.task.id, self.task.type.value, pid=process.pid)
        logger.info(
            "agent_spawned",
            agent_id=self.id,
            task_id=self.task.id,
            task_type=self.task.type.value,
            pid=process.pid,
        )

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(),
                timeout=self._engine.timeout_seconds,
            )
        except TimeoutError:
            logger.warning(
                "agent_timeout",
                agent_id=self.id,
                task_id=self.task.id,
                timeout_seconds=self._engine.timeout_seconds,
            )
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            self._cleanup(AgentStatus.FAILED)
            _start_reaper(process, self._engine.terminate_grace_seconds, self.id)
            raise TaskTimeoutError(self._engine.timeout_seconds) from None
        except BaseException:
            # Cancelled or failed mid-flight; don't leave an orphan behind
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            self._cleanup(AgentStatus.FAILED)
            raise

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        if stderr and self._engine.debug:
            logger.debug("agent_stderr", agent_id=self.id, task_id=self.task.id, stderr=stderr)

        exit_code = process.returncode
        if exit_code != 0:
            self._cleanup(AgentStatus.FAILED)
            raise NonZeroExitError(exit_code if exit_code is not None else -1, stderr.strip())

        self._cleanup(AgentStatus.COMPLETED)
        return stdout

    def _cleanup(self, status: AgentStatus) -> bool:
        """Record the terminal status and drop the agent. Runs at most once."""
        if self._cleaned_up:
            return False
        self._cleaned_up = True
        return self._registry.finish(self.id, status)
