"""Parallel WAL restorer.

The requested WAL goes straight to the destination PostgreSQL asked for;
the WALs prefetched with it land in the spool and are moved into place
when PostgreSQL requests them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from wal_continuity.adapters.outbound.backup_tool import (
    BackupToolClient,
    BackupToolError,
    WALNotFoundError,
)
from wal_continuity.domain.value_objects import PARTIAL_SUFFIX
from wal_continuity.infrastructure.logging import get_logger
from wal_continuity.ports.outbound import ExecutionContext, SpoolEntryNotFoundError, SpoolPort

logger = get_logger(__name__)

END_OF_WAL_STREAM_FLAG = "end-of-wal-stream"


@dataclass
class RestorerResult:
    """Outcome of fetching one WAL file."""

    wal_name: str
    destination: str
    error: Exception | None
    start_time: datetime
    end_time: datetime

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def not_found(self) -> bool:
        return isinstance(self.error, WALNotFoundError)

    @property
    def elapsed_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()


class WALRestorer:
    """Fetches WAL files with archive-get, in parallel batches."""

    def __init__(self, spool: SpoolPort, client: BackupToolClient) -> None:
        self.spool = spool
        self.client = client

    # ------------------------------------------------------------------
    # Spool
    # ------------------------------------------------------------------

    def restore_from_spool(self, wal_name: str, destination: str | Path) -> bool:
        """Move a prefetched file into place.

        Returns:
            True if the file was in the spool.
        """
        try:
            self.spool.move_out(wal_name, destination)
        except SpoolEntryNotFoundError:
            return False
        return True

    def set_end_of_wal_stream(self) -> None:
        self.spool.touch(END_OF_WAL_STREAM_FLAG)

    def is_end_of_wal_stream(self) -> bool:
        return self.spool.contains(END_OF_WAL_STREAM_FLAG)

    def reset_end_of_wal_stream(self) -> None:
        self.spool.remove(END_OF_WAL_STREAM_FLAG)

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    def restore(
        self,
        wal_name: str,
        destination: str | Path,
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> None:
        """Fetch one file.

        Raises:
            WALNotFoundError: If the archive does not have it.
            BackupToolError: On any other failure.
        """
        self.client.archive_get(wal_name, str(destination), options, env, context)

    def restore_list(
        self,
        fetch_list: Sequence[str],
        destination: str | Path,
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None = None,
    ) -> list[RestorerResult]:
        """Fetch every file concurrently; results follow ``fetch_list`` order.

        Index 0 goes to ``destination``, the others to the spool. A
        ``.partial`` name is stored in the spool under its full name so
        that a later request for the full segment picks it up.
        """
        if not fetch_list:
            return []

        with ThreadPoolExecutor(max_workers=len(fetch_list)) as executor:
            futures = [
                executor.submit(
                    self._restore_one,
                    index,
                    wal_name,
                    str(destination) if index == 0 else self._spool_destination(wal_name),
                    options,
                    env,
                    context,
                )
                for index, wal_name in enumerate(fetch_list)
            ]
            return [future.result() for future in futures]

    def _spool_destination(self, wal_name: str) -> str:
        # Partial WALs are only fetched alongside their full variant, which
        # is tried first as the requested file.
        return str(self.spool.file_name(wal_name.removesuffix(PARTIAL_SUFFIX)))

    def _restore_one(
        self,
        index: int,
        wal_name: str,
        destination: str,
        options: Sequence[str],
        env: Mapping[str, str],
        context: ExecutionContext | None,
    ) -> RestorerResult:
        start_time = datetime.now(timezone.utc)
        error: Exception | None = None
        try:
            self.restore(wal_name, destination, options, env, context)
        except (BackupToolError, OSError) as e:
            error = e
        result = RestorerResult(
            wal_name=wal_name,
            destination=destination,
            error=error,
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
        )

        if error is None:
            logger.info(
                "restored WAL file",
                wal_name=wal_name,
                elapsed_seconds=result.elapsed_seconds,
            )
        elif index == 0:
            # Prefetch failures are reported through the results only
            if result.not_found:
                logger.info(
                    "WAL file not found in the recovery object store",
                    wal_name=wal_name,
                    options=list(options),
                    elapsed_seconds=result.elapsed_seconds,
                )
            else:
                logger.warning(
                    "failed restoring WAL file, PostgreSQL might retry",
                    wal_name=wal_name,
                    options=list(options),
                    elapsed_seconds=result.elapsed_seconds,
                    error=str(error),
                )
        return result
