"""Subprocess based command runner.

This adapter implements the CommandRunnerPort by starting the backup tool
as a child process. The caller's thread blocks on the child, waking up
every POLL_INTERVAL_SECONDS to check the execution context; a cancelled
or expired context kills the child.

Each command runs in its own session, so killing it also kills the
workers it forked (pgBackRest's process-max workers, wrapper scripts'
children), which would otherwise keep the output pipe open.

Thread Safety:
    Stateless. Any number of threads may run commands concurrently.
"""

from __future__ import annotations

import os
import signal
import subprocess
import threading
from collections import deque
from collections.abc import Mapping, Sequence
from typing import IO

from structlog.typing import FilteringBoundLogger

from wal_continuity.infrastructure.logging import get_logger
from wal_continuity.ports.outbound import CommandError, CommandOutput, ExecutionContext

logger = get_logger(__name__)

POLL_INTERVAL_SECONDS = 0.1

# Upper bound on draining output after a kill
KILL_GRACE_SECONDS = 2.0

# Output lines kept to attach to a CommandError from a streaming run
STDERR_TAIL_LINES = 20


class SubprocessCommandRunner:
    """Run commands with ``subprocess.Popen``, honouring an ExecutionContext."""

    def __init__(
        self,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        kill_grace: float = KILL_GRACE_SECONDS,
    ) -> None:
        self.poll_interval = poll_interval
        self.kill_grace = kill_grace

    def run_streaming(
        self,
        args: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> None:
        """Run a command, logging each line of its merged stdout/stderr."""
        context = context or ExecutionContext()
        log = logger.bind(command=args[0])

        proc = subprocess.Popen(
            list(args),
            env=dict(env),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            start_new_session=True,
        )
        tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        reader = threading.Thread(
            target=_forward_lines,
            args=(proc.stdout, tail, log),
            daemon=True,
        )
        reader.start()

        killed = False
        try:
            killed = self._wait(proc, context)
        finally:
            reader.join(self.kill_grace if killed else None)

        if killed:
            raise CommandError(args, None, "\n".join(tail))
        if proc.returncode != 0:
            raise CommandError(args, proc.returncode, "\n".join(tail))

    def run_capture(
        self,
        args: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> CommandOutput:
        """Run a command and return what it printed."""
        context = context or ExecutionContext()

        proc = subprocess.Popen(
            list(args),
            env=dict(env),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            start_new_session=True,
        )

        while True:
            try:
                stdout, stderr = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if context.done:
                    self._kill(proc, context)
                    try:
                        _, stderr = proc.communicate(timeout=self.kill_grace)
                    except subprocess.TimeoutExpired:
                        stderr = ""
                    raise CommandError(args, None, stderr or "")

        if proc.returncode != 0:
            raise CommandError(args, proc.returncode, stderr or "")
        return CommandOutput(stdout=stdout or "", stderr=stderr or "")

    def _wait(self, proc: subprocess.Popen, context: ExecutionContext) -> bool:
        """Wait for ``proc``; return True if it had to be killed."""
        while True:
            try:
                proc.wait(timeout=self.poll_interval)
                return False
            except subprocess.TimeoutExpired:
                if context.done:
                    self._kill(proc, context)
                    return True

    def _kill(self, proc: subprocess.Popen, context: ExecutionContext) -> None:
        """Kill the command's whole process group and reap the command."""
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            # Group already gone
            pass
        proc.wait()
        logger.warning(
            "command terminated",
            command=proc.args[0],
            cancelled=context.cancelled,
        )


def _forward_lines(
    stream: IO[str] | None,
    tail: deque[str],
    log: FilteringBoundLogger,
) -> None:
    if stream is None:
        return
    with stream:
        for line in stream:
            line = line.rstrip("\n")
            if not line:
                continue
            tail.append(line)
            log.info("backup tool output", line=line)
