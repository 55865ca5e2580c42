"""pgBackRest command line client.

Builds the argument vectors of the backup tool's commands, runs them
through a CommandRunnerPort and translates exit codes into typed errors.
Option lists arrive fully built (repository, stanza, logging options);
this client only decides where the subcommand and its operands go.

Exit codes:
    1  operation error (for archive-get: the WAL is not in the archive)
    2  network error
    3  command line argument error
    4  general error
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from wal_continuity.domain.entities import (
    BACKUP_NAME_ANNOTATION,
    Backup,
    BackupNotFoundError,
    Catalog,
    CatalogParseError,
)
from wal_continuity.infrastructure.logging import get_logger
from wal_continuity.infrastructure.metrics import MetricsRegistry, get_metrics
from wal_continuity.ports.outbound import (
    CommandError,
    CommandRunnerPort,
    ExecutionContext,
)

logger = get_logger(__name__)

DEFAULT_EXECUTABLE = "pgbackrest"

OPERATION_ERROR_CODE = 1
NETWORK_ERROR_CODE = 2
CLI_ERROR_CODE = 3
GENERAL_ERROR_CODE = 4

ERROR_DESCRIPTIONS = {
    OPERATION_ERROR_CODE: "Operation error",
    NETWORK_ERROR_CODE: "Network error",
    CLI_ERROR_CODE: "CLI argument parsing error",
    GENERAL_ERROR_CODE: "General error",
}


class BackupToolError(Exception):
    """A backup tool command failed.

    Attributes:
        command: Backup tool subcommand (archive-push, restore, ...).
        exit_code: Exit code, None if the process was killed.
        has_restore_error_codes: Whether the exit code follows the
            documented taxonomy and can drive retry decisions.
    """

    def __init__(
        self,
        command: str,
        exit_code: int | None,
        has_restore_error_codes: bool = True,
        message: str | None = None,
    ) -> None:
        self.command = command
        self.exit_code = exit_code
        self.has_restore_error_codes = has_restore_error_codes
        super().__init__(message or self._describe())

    def _describe(self) -> str:
        if self.exit_code is None:
            return f"{self.command} terminated before completion"
        description = ERROR_DESCRIPTIONS.get(self.exit_code, "Generic failure")
        return f"{self.command}: {description} (exit code {self.exit_code})"

    def is_retriable(self) -> bool:
        """Whether the failure is probably temporary and worth retrying later."""
        return (
            self.exit_code in (NETWORK_ERROR_CODE, GENERAL_ERROR_CODE)
            and self.has_restore_error_codes
        )

    @classmethod
    def from_exit_code(cls, command: str, exit_code: int | None) -> BackupToolError:
        """Return the most specific error for ``exit_code``."""
        if exit_code == CLI_ERROR_CODE:
            return InvalidArgumentsError(command)
        return cls(command, exit_code)


class InvalidArgumentsError(BackupToolError):
    """The tool rejected its command line (exit code 3)."""

    def __init__(self, command: str, message: str | None = None) -> None:
        super().__init__(command, CLI_ERROR_CODE, message=message)


class WALNotFoundError(BackupToolError):
    """archive-get could not find the WAL in the archive (exit code 1)."""

    def __init__(self, wal_name: str) -> None:
        self.wal_name = wal_name
        super().__init__(
            "archive-get", OPERATION_ERROR_CODE, message=f"WAL not found: {wal_name}"
        )

    def is_retriable(self) -> bool:
        return False


class BackupToolClient:
    """Runs backup tool commands.

    Example:
        client = BackupToolClient(SubprocessCommandRunner())
        catalog = client.get_backup_list(["--stanza", "main"], env)
    """

    def __init__(
        self,
        runner: CommandRunnerPort,
        executable: str = DEFAULT_EXECUTABLE,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.runner = runner
        self.executable = executable
        self._metrics = metrics

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics or get_metrics()

    # ------------------------------------------------------------------
    # WAL transfer
    # ------------------------------------------------------------------

    def archive_push(
        self,
        wal_path: str,
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> None:
        """Push one WAL file to the repository.

        Raises:
            BackupToolError: If the push fails or is killed.
        """
        args = [self.executable, *options, "archive-push", wal_path]
        logger.info("executing archive-push", wal_name=wal_path, options=list(options))
        try:
            self.runner.run_streaming(args, env, context)
        except CommandError as e:
            self._count("archive-push", "error")
            logger.error(
                "error invoking archive-push",
                wal_name=wal_path,
                options=list(options),
                exit_code=e.exit_code,
            )
            raise BackupToolError("archive-push", e.exit_code, has_restore_error_codes=False) from e
        self._count("archive-push", "success")

    def archive_get(
        self,
        wal_name: str,
        destination: str,
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> None:
        """Fetch one WAL file from the repository into ``destination``.

        Raises:
            WALNotFoundError: If the archive does not have the file.
            BackupToolError: On any other failure.
        """
        args = [self.executable, *options, "archive-get", wal_name, destination]
        try:
            self.runner.run_streaming(args, env, context)
        except CommandError as e:
            if e.exit_code == OPERATION_ERROR_CODE:
                self._count("archive-get", "not_found")
                raise WALNotFoundError(wal_name) from e
            self._count("archive-get", "error")
            raise BackupToolError.from_exit_code("archive-get", e.exit_code) from e
        self._count("archive-get", "success")

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def info(
        self,
        options: Sequence[str],
        env: Mapping[str, str],
        additional_options: Sequence[str] = (),
        context: ExecutionContext | None = None,
    ) -> str:
        """Run ``info --output json`` and return its raw output.

        Raises:
            BackupToolError: If the command fails.
        """
        args = [self.executable, "info", "--output", "json", *options, *additional_options]
        try:
            output = self.runner.run_capture(args, env, context)
        except CommandError as e:
            self._count("info", "error")
            logger.error(
                "can't extract backup list",
                options=args[1:],
                exit_code=e.exit_code,
                stderr=e.stderr,
            )
            raise BackupToolError.from_exit_code("info", e.exit_code) from e
        self._count("info", "success")
        return output.stdout

    def get_backup_list(
        self,
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> Catalog:
        """Return the catalog of the stanza selected by ``options``.

        Raises:
            BackupToolError: If the command fails.
            CatalogParseError: If its output is not a single catalog.
        """
        raw_json = self.info(options, env, context=context)
        try:
            return Catalog.from_info_json(raw_json)
        except CatalogParseError:
            logger.error("can't parse backup tool output", command="info", output=raw_json)
            raise

    def get_backup_by_annotated_name(
        self,
        backup_name: str,
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> Catalog:
        """Return a single-backup catalog for the backup annotated with ``backup_name``.

        The tool cannot filter by annotation, so the full list is fetched
        first to find the label, then ``info --set <label>``.

        Raises:
            BackupNotFoundError: If no backup carries the name.
        """
        full_catalog = self.get_backup_list(options, env, context)
        backup_id = full_catalog.backup_id_from_annotated_name(backup_name)
        if backup_id is None:
            logger.error("can't find backup with name", name=backup_name)
            raise BackupNotFoundError(f"no backup found with name {backup_name}")

        raw_json = self.info(options, env, ["--set", backup_id], context)
        logger.debug("raw single backup info", output=raw_json)
        return Catalog.from_single_backup_info_json(raw_json)

    def get_latest_backup(
        self,
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> Backup:
        """Return the newest completed backup.

        Raises:
            BackupNotFoundError: If the repository holds no completed backup.
        """
        catalog = self.get_backup_list(options, env, context)
        latest = catalog.latest_backup_info()
        if latest is None:
            raise BackupNotFoundError("no backup found on the remote object storage")
        return latest

    # ------------------------------------------------------------------
    # Backup and restore
    # ------------------------------------------------------------------

    def backup(
        self,
        backup_name: str,
        options: Sequence[str],
        env: Mapping[str, str],
        annotations: Mapping[str, str] | None = None,
        context: ExecutionContext | None = None,
    ) -> None:
        """Take a backup annotated with ``backup_name``.

        Raises:
            ValueError: If ``annotations`` uses the reserved name annotation.
            InvalidArgumentsError: If the tool rejects the options.
            BackupToolError: On any other failure.
        """
        args = [
            self.executable,
            "backup",
            "--annotation",
            f"{BACKUP_NAME_ANNOTATION}={backup_name}",
        ]
        for key, value in (annotations or {}).items():
            if key == BACKUP_NAME_ANNOTATION:
                raise ValueError(f"annotation '{BACKUP_NAME_ANNOTATION}' is reserved for backup name")
            args += ["--annotation", f"{key}={value}"]
        args += options

        logger.info("starting backup", backup_name=backup_name, options=args[1:])
        try:
            self.runner.run_streaming(args, env, context)
        except CommandError as e:
            self._count("backup", "error")
            if e.exit_code == CLI_ERROR_CODE:
                logger.error("invalid backup arguments", arguments=args[1:])
                raise InvalidArgumentsError(
                    "backup",
                    "invalid arguments for backup, "
                    "ensure that the additional command arguments are correctly populated",
                ) from e
            raise BackupToolError("backup", e.exit_code, has_restore_error_codes=False) from e

        self._count("backup", "success")
        logger.info("completed backup", backup_name=backup_name)

    def stanza_create(
        self,
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> None:
        """Create the stanza. Safe to re-run on an existing repository."""
        args = [self.executable, "stanza-create", *options]
        logger.info("executing stanza-create", options=list(options))
        try:
            self.runner.run_streaming(args, env, context)
        except CommandError as e:
            self._count("stanza-create", "error")
            logger.error("error invoking stanza-create", exit_code=e.exit_code)
            raise BackupToolError("stanza-create", e.exit_code, has_restore_error_codes=False) from e
        self._count("stanza-create", "success")

    def restore(
        self,
        backup_id: str,
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> None:
        """Restore the data directory from backup ``backup_id``.

        Raises:
            BackupToolError: With the exit code of the failed restore.
        """
        args = [self.executable, *options, "restore", "--set", backup_id]
        logger.info("starting restore", backup_id=backup_id, options=list(options))
        try:
            self.runner.run_streaming(args, env, context)
        except CommandError as e:
            self._count("restore", "error")
            error = BackupToolError.from_exit_code("restore", e.exit_code)
            logger.error("can't restore backup", backup_id=backup_id, error=str(error))
            raise error from e
        self._count("restore", "success")
        logger.info("restore completed", backup_id=backup_id)

    def _count(self, command: str, status: str) -> None:
        self.metrics.backup_tool_commands_total.labels(command=command, status=status).inc()
