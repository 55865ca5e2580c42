"""Unit tests for the backup tool client."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import backup_json, info_json

from wal_continuity.adapters.outbound import (
    BackupToolClient,
    BackupToolError,
    InvalidArgumentsError,
    MockBackup,
    MockCommandRunner,
    WALNotFoundError,
)
from wal_continuity.domain.entities import BackupNotFoundError, CatalogParseError
from wal_continuity.infrastructure.metrics import MetricsRegistry
from wal_continuity.ports.outbound import CommandError, CommandOutput, ExecutionContext

ENV = {"PGBACKREST_REPO1_PATH": "/repo"}
WAL = "000000010000000000000001"


class RecordingRunner:
    """Command runner that records arguments and replays a fixed outcome."""

    def __init__(self, stdout: str = "", exit_code: int | None = 0) -> None:
        self.stdout = stdout
        self.exit_code = exit_code
        self.calls: list[list[str]] = []

    def run_streaming(self, args, env, context=None) -> None:
        self.run_capture(args, env, context)

    def run_capture(self, args, env, context=None) -> CommandOutput:
        self.calls.append(list(args))
        if self.exit_code != 0:
            raise CommandError(args, self.exit_code)
        return CommandOutput(stdout=self.stdout, stderr="")


@pytest.mark.unit
class TestBackupToolError:
    """Tests for the exit code taxonomy."""

    @pytest.mark.parametrize(
        ("exit_code", "retriable"),
        [(1, False), (2, True), (3, False), (4, True), (5, False), (None, False)],
    )
    def test_is_retriable(self, exit_code: int | None, retriable: bool) -> None:
        assert BackupToolError("restore", exit_code).is_retriable() is retriable

    def test_not_retriable_without_error_codes(self) -> None:
        assert not BackupToolError("archive-push", 2, has_restore_error_codes=False).is_retriable()

    def test_descriptions(self) -> None:
        assert str(BackupToolError("restore", 2)) == "restore: Network error (exit code 2)"
        assert str(BackupToolError("restore", 42)) == "restore: Generic failure (exit code 42)"
        assert "terminated" in str(BackupToolError("restore", None))

    def test_from_exit_code(self) -> None:
        assert isinstance(BackupToolError.from_exit_code("info", 3), InvalidArgumentsError)
        assert type(BackupToolError.from_exit_code("info", 4)) is BackupToolError


@pytest.mark.unit
class TestCommandShapes:
    """Tests for the argument vectors handed to the runner."""

    @pytest.fixture
    def runner(self) -> RecordingRunner:
        return RecordingRunner()

    @pytest.fixture
    def client(self, runner: RecordingRunner, metrics_registry: MetricsRegistry) -> BackupToolClient:
        return BackupToolClient(runner, metrics=metrics_registry)

    def test_archive_push(self, client: BackupToolClient, runner: RecordingRunner) -> None:
        client.archive_push("/pgdata/pg_wal/" + WAL, ["--stanza", "main"], ENV)

        assert runner.calls == [["pgbackrest", "--stanza", "main", "archive-push", "/pgdata/pg_wal/" + WAL]]

    def test_archive_get(self, client: BackupToolClient, runner: RecordingRunner) -> None:
        client.archive_get(WAL, "/pgdata/pg_wal/RECOVERYXLOG", ["--stanza", "main"], ENV)

        assert runner.calls == [
            ["pgbackrest", "--stanza", "main", "archive-get", WAL, "/pgdata/pg_wal/RECOVERYXLOG"]
        ]

    def test_info(self, client: BackupToolClient, runner: RecordingRunner) -> None:
        client.info(["--stanza", "main"], ENV, ["--set", "A"])

        assert runner.calls == [
            ["pgbackrest", "info", "--output", "json", "--stanza", "main", "--set", "A"]
        ]

    def test_backup(self, client: BackupToolClient, runner: RecordingRunner) -> None:
        client.backup("nightly", ["--stanza", "main"], ENV, annotations={"team": "db"})

        assert runner.calls == [[
            "pgbackrest", "backup",
            "--annotation", "cnpg-backup-name=nightly",
            "--annotation", "team=db",
            "--stanza", "main",
        ]]

    def test_backup_rejects_reserved_annotation(self, client: BackupToolClient, runner: RecordingRunner) -> None:
        with pytest.raises(ValueError, match="reserved"):
            client.backup("nightly", [], ENV, annotations={"cnpg-backup-name": "other"})
        assert runner.calls == []

    def test_stanza_create(self, client: BackupToolClient, runner: RecordingRunner) -> None:
        client.stanza_create(["--stanza", "main"], ENV)

        assert runner.calls == [["pgbackrest", "stanza-create", "--stanza", "main"]]

    def test_restore(self, client: BackupToolClient, runner: RecordingRunner) -> None:
        client.restore("20250331-142029F", ["--stanza", "main"], ENV)

        assert runner.calls == [["pgbackrest", "--stanza", "main", "restore", "--set", "20250331-142029F"]]

    def test_custom_executable(self, runner: RecordingRunner, metrics_registry: MetricsRegistry) -> None:
        client = BackupToolClient(runner, executable="/usr/local/bin/pgbackrest", metrics=metrics_registry)
        client.stanza_create([], ENV)

        assert runner.calls[0][0] == "/usr/local/bin/pgbackrest"

    def test_command_counter(self, client: BackupToolClient, metrics_registry: MetricsRegistry) -> None:
        client.stanza_create([], ENV)

        counter = metrics_registry.backup_tool_commands_total.labels(command="stanza-create", status="success")
        assert counter._value.get() == 1


@pytest.mark.unit
class TestErrorMapping:
    """Tests for exit code translation."""

    def _client(self, exit_code: int | None, metrics: MetricsRegistry) -> BackupToolClient:
        return BackupToolClient(RecordingRunner(exit_code=exit_code), metrics=metrics)

    def test_archive_get_not_found(self, metrics_registry: MetricsRegistry) -> None:
        with pytest.raises(WALNotFoundError) as excinfo:
            self._client(1, metrics_registry).archive_get(WAL, "/tmp/x", [], ENV)
        assert excinfo.value.wal_name == WAL
        assert not excinfo.value.is_retriable()

    def test_archive_get_network_error(self, metrics_registry: MetricsRegistry) -> None:
        with pytest.raises(BackupToolError) as excinfo:
            self._client(2, metrics_registry).archive_get(WAL, "/tmp/x", [], ENV)
        assert not isinstance(excinfo.value, WALNotFoundError)
        assert excinfo.value.is_retriable()

    def test_archive_get_killed(self, metrics_registry: MetricsRegistry) -> None:
        with pytest.raises(BackupToolError) as excinfo:
            self._client(None, metrics_registry).archive_get(WAL, "/tmp/x", [], ENV)
        assert excinfo.value.exit_code is None

    def test_archive_push_failure(self, metrics_registry: MetricsRegistry) -> None:
        with pytest.raises(BackupToolError) as excinfo:
            self._client(4, metrics_registry).archive_push("/pg_wal/" + WAL, [], ENV)
        assert excinfo.value.exit_code == 4
        assert isinstance(excinfo.value.__cause__, CommandError)

    def test_backup_invalid_arguments(self, metrics_registry: MetricsRegistry) -> None:
        with pytest.raises(InvalidArgumentsError, match="invalid arguments"):
            self._client(3, metrics_registry).backup("nightly", ["--bogus"], ENV)

    def test_restore_error_codes(self, metrics_registry: MetricsRegistry) -> None:
        with pytest.raises(BackupToolError) as excinfo:
            self._client(2, metrics_registry).restore("A", [], ENV)
        assert excinfo.value.is_retriable()

    def test_info_failure(self, metrics_registry: MetricsRegistry) -> None:
        with pytest.raises(BackupToolError):
            self._client(1, metrics_registry).get_backup_list([], ENV)


@pytest.mark.unit
class TestCatalogCommands:
    """Tests for catalog retrieval."""

    def test_get_backup_list(self, metrics_registry: MetricsRegistry) -> None:
        runner = RecordingRunner(stdout=info_json([backup_json("A", 1, 2)]))
        catalog = BackupToolClient(runner, metrics=metrics_registry).get_backup_list([], ENV)

        assert catalog.backup_ids() == ["A"]

    def test_get_backup_list_garbage(self, metrics_registry: MetricsRegistry) -> None:
        runner = RecordingRunner(stdout="WARN: environment contains invalid option")

        with pytest.raises(CatalogParseError):
            BackupToolClient(runner, metrics=metrics_registry).get_backup_list([], ENV)

    def test_get_backup_by_annotated_name(self, metrics_registry: MetricsRegistry) -> None:
        runner = MockCommandRunner()
        runner.add_backup(MockBackup("A", 1, 2, annotations={"cnpg-backup-name": "nightly"}))
        runner.add_backup(MockBackup("B", 3, 4, annotations={"cnpg-backup-name": "weekly"}))
        client = BackupToolClient(runner, metrics=metrics_registry)

        catalog = client.get_backup_by_annotated_name("weekly", ["--stanza", "main"], ENV)

        assert catalog.backup_ids() == ["B"]
        assert runner.calls[-1][-2:] == ["--set", "B"]

    def test_get_backup_by_unknown_name(self, metrics_registry: MetricsRegistry) -> None:
        client = BackupToolClient(MockCommandRunner(), metrics=metrics_registry)

        with pytest.raises(BackupNotFoundError):
            client.get_backup_by_annotated_name("weekly", [], ENV)

    def test_get_latest_backup(self, metrics_registry: MetricsRegistry) -> None:
        runner = MockCommandRunner()
        runner.add_backup(MockBackup("A", 1, 2))
        runner.add_backup(MockBackup("B", 3, 4))

        assert BackupToolClient(runner, metrics=metrics_registry).get_latest_backup([], ENV).id == "B"

    def test_get_latest_backup_empty(self, metrics_registry: MetricsRegistry) -> None:
        client = BackupToolClient(MockCommandRunner(), metrics=metrics_registry)

        with pytest.raises(BackupNotFoundError, match="no backup found"):
            client.get_latest_backup([], ENV)


@pytest.mark.unit
class TestMockRepository:
    """Tests for the backup tool client against the in-memory repository."""

    def test_push_then_get(self, temp_dir: Path, metrics_registry: MetricsRegistry) -> None:
        runner = MockCommandRunner()
        client = BackupToolClient(runner, metrics=metrics_registry)
        source = temp_dir / WAL
        source.write_bytes(b"segment")

        client.archive_push(str(source), [], ENV)
        client.archive_get(WAL, str(temp_dir / "restored"), [], ENV)

        assert (temp_dir / "restored").read_bytes() == b"segment"

    def test_backup_and_restore(self, metrics_registry: MetricsRegistry) -> None:
        runner = MockCommandRunner()
        client = BackupToolClient(runner, metrics=metrics_registry)

        client.stanza_create([], ENV)
        client.backup("nightly", [], ENV)
        backup = client.get_latest_backup([], ENV)
        client.restore(backup.id, [], ENV)

        assert runner.stanza_created
        assert backup.name == "nightly"
        assert runner.restored == [backup.id]

    def test_cancelled_context(self, metrics_registry: MetricsRegistry) -> None:
        context = ExecutionContext()
        context.cancel()

        with pytest.raises(BackupToolError) as excinfo:
            BackupToolClient(MockCommandRunner(), metrics=metrics_registry).stanza_create([], ENV, context)
        assert excinfo.value.exit_code is None
