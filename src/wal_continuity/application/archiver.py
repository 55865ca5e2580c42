"""Parallel WAL archiver.

PostgreSQL calls archive_command once per WAL file, sequentially. To
archive faster than that, each call pushes the requested file together
with up to ``max_parallel - 1`` other files that PostgreSQL has already
marked ready. Those extra pushes leave an empty marker in the spool, so
that when PostgreSQL later asks for one of them the call is acknowledged
without pushing again.

Archive flow for one request:
    1. delete_from_spool(name)  -> already pushed, done
    2. check_destination()      -> repository/stanza usable
    3. discover(name, parallel) -> requested file first, then ready files
    4. archive_list(paths)      -> one push per file, concurrently
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from wal_continuity.adapters.outbound.backup_tool import BackupToolClient, BackupToolError
from wal_continuity.domain.entities import Catalog
from wal_continuity.domain.value_objects import is_archivable_file
from wal_continuity.infrastructure.logging import get_logger
from wal_continuity.ports.outbound import ExecutionContext, SpoolPort

logger = get_logger(__name__)

READY_SUFFIX = ".ready"


@dataclass
class ArchiverResult:
    """Outcome of archiving one WAL file."""

    wal_name: str
    error: Exception | None
    start_time: datetime
    end_time: datetime

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def elapsed_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()


class WALArchiver:
    """Pushes WAL files with archive-push, in parallel batches.

    Args:
        spool: Spool holding markers of files pushed ahead of time.
        client: Backup tool client.
        pgdata: PostgreSQL data directory.
        empty_wal_archive_path: Flag file removed after the first
            successful push, None to skip.
    """

    def __init__(
        self,
        spool: SpoolPort,
        client: BackupToolClient,
        pgdata: str | Path,
        empty_wal_archive_path: str | Path | None = None,
    ) -> None:
        self.spool = spool
        self.client = client
        self.pgdata = Path(pgdata)
        self.empty_wal_archive_path = (
            Path(empty_wal_archive_path) if empty_wal_archive_path else None
        )

    @property
    def archive_status_directory(self) -> Path:
        return self.pgdata / "pg_wal" / "archive_status"

    def delete_from_spool(self, wal_name: str) -> bool:
        """Consume the marker of a file pushed by a previous batch.

        Returns:
            True if the file was already archived and nothing else is needed.
        """
        # PostgreSQL never runs two archive commands at once, so the
        # check and the removal cannot race.
        if not self.spool.contains(wal_name):
            return False
        self.spool.remove(wal_name)
        return True

    def check_destination(
        self,
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> Catalog:
        """Make sure the repository and stanza can be archived to.

        ``info`` is the cheapest check: stanza-create would need the
        stanza lock, which a running backup holds.

        Raises:
            BackupToolError: If the listing fails.
            CatalogParseError: If the listing is not a single catalog.
        """
        return self.client.get_backup_list(options, env, context)

    def discover(self, requested_file: str, parallel: int) -> list[str]:
        """Return the files to push: the requested one, then ready ones.

        Args:
            requested_file: Path given by archive_command, relative to
                PGDATA or absolute.
            parallel: Maximum number of files in the batch.

        Returns:
            Absolute paths; index 0 is always the requested file.
        """
        requested_path = os.path.join(self.pgdata, requested_file)
        wal_list = [requested_path]
        if parallel <= 1:
            return wal_list

        requested_name = os.path.basename(requested_file)
        pg_wal = self.pgdata / "pg_wal"

        try:
            with os.scandir(self.archive_status_directory) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            logger.warning(
                "unable to list archive status directory, archiving requested file only",
                directory=str(self.archive_status_directory),
                error=str(e),
            )
            return wal_list

        for entry in entries:
            if len(wal_list) >= parallel:
                break
            if not entry.name.endswith(READY_SUFFIX) or not entry.is_file(follow_symlinks=False):
                continue
            wal_name = entry.name[: -len(READY_SUFFIX)]
            if wal_name == requested_name or not is_archivable_file(wal_name):
                continue
            wal_list.append(str(pg_wal / wal_name))

        return wal_list

    def archive(
        self,
        wal_path: str,
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> None:
        """Push one file, then drop the empty-archive flag.

        Raises:
            BackupToolError: If the push fails.
            OSError: If the flag file cannot be removed.
        """
        self.client.archive_push(wal_path, options, env, context)
        if self.empty_wal_archive_path is not None:
            self.empty_wal_archive_path.unlink(missing_ok=True)

    def archive_list(
        self,
        wal_paths: Sequence[str],
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> list[ArchiverResult]:
        """Push every file concurrently; results follow ``wal_paths`` order.

        Failures are logged and returned, never raised.
        """
        if not wal_paths:
            return []

        with ThreadPoolExecutor(max_workers=len(wal_paths)) as executor:
            futures = [
                executor.submit(self._archive_one, index, wal_path, options, env, context)
                for index, wal_path in enumerate(wal_paths)
            ]
            return [future.result() for future in futures]

    def _archive_one(
        self,
        index: int,
        wal_path: str,
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None,
    ) -> ArchiverResult:
        start_time = datetime.now(timezone.utc)
        error: Exception | None = None
        try:
            self.archive(wal_path, options, env, context)
            if index != 0:
                self.spool.touch(os.path.basename(wal_path))
        except (BackupToolError, OSError) as e:
            error = e
        result = ArchiverResult(
            wal_name=wal_path,
            error=error,
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
        )

        if error is not None:
            logger.warning(
                "failed archiving WAL, PostgreSQL will retry",
                wal_name=wal_path,
                elapsed_seconds=result.elapsed_seconds,
                error=str(error),
            )
        else:
            logger.info(
                "archived WAL file",
                wal_name=wal_path,
                elapsed_seconds=result.elapsed_seconds,
            )
        return result
