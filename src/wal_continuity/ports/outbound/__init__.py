"""Outbound ports - External dependency interfaces for WAL continuity.

Outbound ports define the interfaces for the two things the engine
touches outside its own memory: the backup tool process and the local
spool directory.
"""

from __future__ import annotations

import threading
import time
from abc import abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol


# =============================================================================
# Execution context
# =============================================================================


@dataclass
class ExecutionContext:
    """Deadline and cancellation shared by every command of one request.

    A batch of parallel commands shares one context; cancelling it (or
    letting it expire) terminates every child process still running.

    Example:
        ctx = ExecutionContext(timeout_seconds=30)
        runner.run_streaming(args, env, ctx)
    """

    timeout_seconds: float | None = None
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)
    _started_at: float = field(default_factory=time.monotonic, repr=False)

    def cancel(self) -> None:
        """Ask every command bound to this context to stop."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, None when there is no deadline."""
        if self.timeout_seconds is None:
            return None
        return max(0.0, self.timeout_seconds - (time.monotonic() - self._started_at))

    @property
    def done(self) -> bool:
        """True once the context is cancelled or past its deadline."""
        remaining = self.remaining()
        return self.cancelled or (remaining is not None and remaining <= 0)


# =============================================================================
# Command Runner Port
# =============================================================================


@dataclass(frozen=True)
class CommandOutput:
    """Captured output of a finished command."""
    stdout: str
    stderr: str


class CommandError(Exception):
    """Raised when a command exits non-zero or is killed.

    Attributes:
        exit_code: Process exit code, None when the process was killed
            because its context was cancelled or expired.
        stderr: Captured standard error, when available.
    """

    def __init__(
        self,
        args: Sequence[str],
        exit_code: int | None,
        stderr: str = "",
    ) -> None:
        self.command = list(args)
        self.exit_code = exit_code
        self.stderr = stderr
        if exit_code is None:
            message = f"{self.command[0]} terminated before completion"
        else:
            message = f"{self.command[0]} exited with code {exit_code}"
        super().__init__(message)

    @property
    def killed(self) -> bool:
        return self.exit_code is None


class CommandRunnerPort(Protocol):
    """Protocol for invoking the backup tool executable.

    Each call starts exactly one child process and blocks until it ends.
    Implementations must honour the execution context: when it is
    cancelled or expires the child is killed and CommandError is raised
    with ``exit_code=None``.

    Thread Safety:
        All methods must be safe to call from several threads at once.
    """

    @abstractmethod
    def run_streaming(
        self,
        args: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> None:
        """Run a command, forwarding its output to the log.

        Args:
            args: Executable followed by its arguments.
            env: Complete environment of the child process.
            context: Deadline and cancellation.

        Raises:
            CommandError: If the command fails or is killed.
            OSError: If the executable cannot be started.
        """
        ...

    @abstractmethod
    def run_capture(
        self,
        args: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> CommandOutput:
        """Run a command and return its standard output and error.

        Raises:
            CommandError: If the command fails or is killed.
            OSError: If the executable cannot be started.
        """
        ...


# =============================================================================
# Spool Port
# =============================================================================


class SpoolEntryNotFoundError(FileNotFoundError):
    """Raised when a name is not staged in the spool."""

    pass


class SpoolPort(Protocol):
    """Protocol for the local WAL staging directory.

    A name is either absent or present exactly once; presence is the
    only truth about whether a file is staged. Operations on distinct
    names may run concurrently.
    """

    @abstractmethod
    def contains(self, name: str) -> bool:
        """Return whether ``name`` is staged."""
        ...

    @abstractmethod
    def touch(self, name: str) -> None:
        """Create an empty marker for ``name``. Idempotent."""
        ...

    @abstractmethod
    def move_out(self, name: str, destination: str | Path) -> None:
        """Atomically move a staged file to ``destination``.

        Raises:
            SpoolEntryNotFoundError: If ``name`` is not staged.
        """
        ...

    @abstractmethod
    def remove(self, name: str) -> None:
        """Delete ``name`` if staged. No error if absent."""
        ...

    @abstractmethod
    def file_name(self, name: str) -> Path:
        """Return the staging path of ``name``, always inside the spool."""
        ...


__all__ = [
    "ExecutionContext",
    "CommandOutput",
    "CommandError",
    "CommandRunnerPort",
    "SpoolEntryNotFoundError",
    "SpoolPort",
]
