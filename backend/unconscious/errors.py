"""Failure taxonomy for a single unconscious task.

Every error raised while driving one engine process is a subclass of
UnconsciousTaskError. TaskExecutor.execute converts all of them into a
failed TaskResult; none of them escape a sweep.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Failure class of a task."""

    SPAWN = "spawn"
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"
    PARSE = "parse"


class UnconsciousTaskError(Exception):
    """Base class for absorbed task failures."""

    kind: ErrorKind


class SpawnError(UnconsciousTaskError):
    """Raised when the engine executable is missing or cannot be started."""

    kind = ErrorKind.SPAWN


class TaskTimeoutError(UnconsciousTaskError):
    """Raised when an engine process outlives the configured timeout."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__("timeout")
        self.timeout_seconds = timeout_seconds


class NonZeroExitError(UnconsciousTaskError):
    """Raised when the engine exits with a failure code."""

    kind = ErrorKind.NON_ZERO_EXIT

    def __init__(self, exit_code: int, stderr: str) -> None:
        super().__init__(f"{exit_code}: {stderr}")
        self.exit_code = exit_code
        self.stderr = stderr


class PayloadParseError(UnconsciousTaskError):
    """Raised when engine stdout holds no recoverable JSON object."""

    kind = ErrorKind.PARSE

    def __init__(self, message: str = "no parsable JSON") -> None:
        super().__init__(message)
