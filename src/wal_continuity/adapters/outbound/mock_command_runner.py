"""Mock command runner for testing and development.

This adapter provides an in-memory implementation of the CommandRunnerPort
protocol that behaves like a pgBackRest repository: archive-push stores
files, archive-get returns them (exit code 1 when missing), info prints
the catalog JSON and backup/restore/stanza-create keep simple state.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from wal_continuity.domain.value_objects import Segment
from wal_continuity.ports.outbound import CommandError, CommandOutput, ExecutionContext


logger = logging.getLogger(__name__)

COMMANDS = ("archive-push", "archive-get", "info", "backup", "stanza-create", "restore")


@dataclass
class MockBackup:
    """A backup held by the mock repository."""

    label: str
    start: int
    stop: int
    wal_start: str = ""
    wal_stop: str = ""
    lsn_start: str = ""
    lsn_stop: str = ""
    type: str = "full"
    annotations: dict[str, str] = field(default_factory=dict)

    def to_info(self) -> dict:
        return {
            "label": self.label,
            "type": self.type,
            "prior": None,
            "annotation": self.annotations or None,
            "archive": {"start": self.wal_start, "stop": self.wal_stop},
            "lsn": {"start": self.lsn_start, "stop": self.lsn_stop},
            "timestamp": {"start": self.start, "stop": self.stop},
        }


class MockCommandRunner:
    """Mock implementation of CommandRunnerPort for testing.

    Example:
        runner = MockCommandRunner()
        runner.add_wal("000000010000000000000001", b"...")
        runner.fail("archive-get", 2, target="000000010000000000000002")
    """

    def __init__(self, stanza: str = "main", system_id: int = 7000000000000000001):
        self.stanza = stanza
        self.system_id = system_id
        self.stanza_created = False
        self.archive: dict[str, bytes] = {}
        self.backups: list[MockBackup] = []
        self.restored: list[str] = []
        self.calls: list[list[str]] = []
        self._failures: dict[tuple[str, str | None], int] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def add_wal(self, name: str, content: bytes = b"") -> None:
        with self._lock:
            self.archive[name] = content

    def add_backup(self, backup: MockBackup) -> None:
        with self._lock:
            self.backups.append(backup)

    def fail(self, command: str, exit_code: int, target: str | None = None) -> None:
        """Make ``command`` exit with ``exit_code``, for one operand or for all."""
        self._failures[(command, target)] = exit_code

    def clear_failures(self) -> None:
        self._failures.clear()

    def calls_for(self, command: str) -> list[list[str]]:
        with self._lock:
            return [call for call in self.calls if command in call]

    # ------------------------------------------------------------------
    # CommandRunnerPort
    # ------------------------------------------------------------------

    def run_streaming(
        self,
        args: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> None:
        output = self._dispatch(list(args), context)
        for line in output.stdout.splitlines():
            logger.info(line)

    def run_capture(
        self,
        args: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> CommandOutput:
        return self._dispatch(list(args), context)

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def _dispatch(self, args: list[str], context: ExecutionContext | None) -> CommandOutput:
        with self._lock:
            self.calls.append(args)

        if context is not None and context.done:
            raise CommandError(args, None)

        index = next((i for i, arg in enumerate(args) if arg in COMMANDS), None)
        if index is None:
            raise CommandError(args, 3, "no command")
        command = args[index]
        operands = args[index + 1:]

        target = operands[0] if operands and not operands[0].startswith("-") else None
        if target is not None and command == "archive-push":
            target = os.path.basename(target)
        exit_code = self._failures.get((command, target), self._failures.get((command, None)))
        if exit_code is not None:
            logger.debug(f"Injected failure for {command} {target}: exit code {exit_code}")
            raise CommandError(args, exit_code, "injected failure")

        handler = getattr(self, "_" + command.replace("-", "_"))
        return handler(args, operands)

    def _archive_push(self, args: list[str], operands: list[str]) -> CommandOutput:
        wal_path = operands[0]
        try:
            with open(wal_path, "rb") as f:
                content = f.read()
        except FileNotFoundError:
            raise CommandError(args, 1, f"unable to open {wal_path}") from None
        self.add_wal(os.path.basename(wal_path), content)
        return CommandOutput(stdout=f"pushed WAL file '{os.path.basename(wal_path)}' to the archive", stderr="")

    def _archive_get(self, args: list[str], operands: list[str]) -> CommandOutput:
        wal_name, destination = operands[0], operands[1]
        with self._lock:
            content = self.archive.get(wal_name)
        if content is None:
            raise CommandError(args, 1, f"unable to find {wal_name} in the archive")
        with open(destination, "wb") as f:
            f.write(content)
        return CommandOutput(stdout=f"found {wal_name} in the archive", stderr="")

    def _info(self, args: list[str], operands: list[str]) -> CommandOutput:
        label = operands[operands.index("--set") + 1] if "--set" in operands else None
        with self._lock:
            backups = [b for b in self.backups if label is None or b.label == label]
            segments = sorted(name for name in self.archive if _is_segment(name))

        database = {"id": 1, "repo-key": 1, "system-id": self.system_id, "version": "16"}
        archive = []
        if segments:
            archive.append({
                "id": "16-1",
                "min": segments[0],
                "max": segments[-1],
                "database": {"id": 1, "repo-key": 1},
            })
        catalog = [{
            "name": self.stanza,
            "cipher": "none",
            "db": [database],
            "archive": archive,
            "backup": [backup.to_info() for backup in backups],
        }]
        return CommandOutput(stdout=json.dumps(catalog), stderr="")

    def _backup(self, args: list[str], operands: list[str]) -> CommandOutput:
        annotations = {}
        for i, arg in enumerate(operands[:-1]):
            if arg == "--annotation":
                key, _, value = operands[i + 1].partition("=")
                annotations[key] = value

        now = int(time.time())
        with self._lock:
            label = time.strftime("%Y%m%d-%H%M%S", time.gmtime(now)) + f"-{len(self.backups):03d}F"
            segments = sorted(name for name in self.archive if _is_segment(name))
            wal = segments[-1] if segments else "000000010000000000000001"
            self.backups.append(MockBackup(
                label=label,
                start=now,
                stop=now,
                wal_start=wal,
                wal_stop=wal,
                annotations=annotations,
            ))
        return CommandOutput(stdout=f"new backup label = {label}", stderr="")

    def _stanza_create(self, args: list[str], operands: list[str]) -> CommandOutput:
        self.stanza_created = True
        return CommandOutput(stdout=f"stanza-create for stanza '{self.stanza}' completed", stderr="")

    def _restore(self, args: list[str], operands: list[str]) -> CommandOutput:
        label = operands[operands.index("--set") + 1]
        with self._lock:
            if not any(b.label == label for b in self.backups):
                raise CommandError(args, 1, f"backup set {label} is not valid")
            self.restored.append(label)
        return CommandOutput(stdout=f"restore of backup set {label} completed", stderr="")


def _is_segment(name: str) -> bool:
    try:
        Segment.parse(name)
    except ValueError:
        return False
    return True
