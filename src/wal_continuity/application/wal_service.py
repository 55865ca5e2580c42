"""WAL service: archive, restore and status.

Orchestrates the archiver and the restorer for the requests PostgreSQL
(and operators) make, and owns the restore state machine:

    1. Spool hit              -> the file was prefetched, move it into place
    2. End-of-stream flag set -> clear it, raise EndOfWALStreamError
       (only when streaming replication can take over)
    3. Build the prefetch list from segment arithmetic
    4. Fetch the list in parallel
    5. Flag the end of stream if any file was missing, then surface the
       requested file's error, if any
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping, Sequence

from wal_continuity.adapters.outbound.backup_tool import BackupToolClient
from wal_continuity.application.archiver import WALArchiver
from wal_continuity.application.restorer import RestorerResult, WALRestorer
from wal_continuity.domain.value_objects import PARTIAL_SUFFIX, Segment
from wal_continuity.infrastructure.config import Config
from wal_continuity.infrastructure.logging import get_logger, request_context
from wal_continuity.infrastructure.metrics import MetricsRegistry, get_metrics
from wal_continuity.infrastructure.tracing import trace_span
from wal_continuity.ports.inbound import (
    ArchiveEmptyError,
    ArchiveRequest,
    EndOfWALStreamError,
    MissingPermissionsError,
    RestoreRequest,
    WALFileNotFoundError,
    WALStatus,
)
from wal_continuity.ports.outbound import ExecutionContext

logger = get_logger(__name__)

EnvironmentProvider = Callable[[], Mapping[str, str]]


def gather_wal_files_to_restore(
    wal_name: str,
    parallel: int,
    controlled_promotion: bool = False,
    pg_version: int | None = None,
    segment_size: int | None = None,
) -> list[str]:
    """Return the files to fetch for ``wal_name``, the requested one first.

    Names that are not plain segments (history files, backup labels,
    partial segments) are fetched alone.

    During a controlled promotion the last segment of the old primary may
    only exist as ``.partial``, which the backup tool only returns when
    asked for by that name, so it is appended to the list.
    """
    try:
        segment = Segment.parse(wal_name)
    except ValueError:
        return [wal_name]

    parallel = max(parallel, 1)
    wal_list = [s.name for s in segment.next_segments(parallel, pg_version, segment_size)]
    if controlled_promotion and (len(wal_list) < parallel or parallel == 1):
        wal_list.append(wal_list[-1] + PARTIAL_SUFFIX)
    return wal_list


def is_end_of_wal_stream(results: Sequence[RestorerResult]) -> bool:
    """True if any file of the batch was missing from the archive."""
    return any(result.not_found for result in results)


class WALService:
    """Implements WALServicePort on top of the archiver and the restorer.

    Args:
        config: Service configuration.
        archiver: WAL archiver.
        restorer: WAL restorer.
        client: Backup tool client, used for status.
        environment_provider: Returns the environment for the backup tool
            (credentials included) for one request. May raise
            PermissionError while credentials are not readable yet.
        metrics: Metrics registry, the global one by default.
    """

    def __init__(
        self,
        config: Config,
        archiver: WALArchiver,
        restorer: WALRestorer,
        client: BackupToolClient,
        environment_provider: EnvironmentProvider,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.config = config
        self.archiver = archiver
        self.restorer = restorer
        self.client = client
        self.environment_provider = environment_provider
        self.metrics = metrics or get_metrics()

    @property
    def max_parallel(self) -> int:
        return self.config.wal.max_parallel

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    def archive(self, request: ArchiveRequest) -> None:
        wal_name = os.path.basename(request.source_file_name)
        tool = self.config.backup_tool

        with (
            request_context(operation="archive", wal_name=wal_name),
            trace_span("wal.archive", {"wal.name": wal_name, "wal.max_parallel": self.max_parallel}),
            self.metrics.wal_archive_duration_seconds.time(),
        ):
            logger.debug("starting WAL archive")

            if self.archiver.delete_from_spool(wal_name):
                logger.info("WAL file already archived by a previous batch, skipping")
                self.metrics.wal_archive_total.labels(status="deduplicated").inc()
                return

            env = self._environment()
            context = self._context()

            try:
                self.archiver.check_destination(tool.with_stanza(tool.info_options), env, context)
            except Exception:
                logger.error("backup repository cannot be used for archival")
                self.metrics.wal_archive_total.labels(status="error").inc()
                raise

            wal_list = self.archiver.discover(request.source_file_name, self.max_parallel)
            results = self.archiver.archive_list(
                wal_list, tool.with_stanza(tool.archive_push_options), env, context
            )

            requested = results[0]
            if requested.error is not None:
                self.metrics.wal_archive_total.labels(status="error").inc()
                raise requested.error

            self.metrics.wal_archive_total.labels(status="success").inc()
            for result in results[1:]:
                self.metrics.wal_prefetch_total.labels(
                    status="success" if result.ok else "error"
                ).inc()

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore(self, request: RestoreRequest) -> None:
        wal_name = request.wal_name

        with (
            request_context(operation="restore", wal_name=wal_name),
            trace_span(
                "wal.restore",
                {
                    "wal.name": wal_name,
                    "wal.max_parallel": self.max_parallel,
                    "wal.controlled_promotion": request.controlled_promotion,
                },
            ),
            self.metrics.wal_restore_duration_seconds.time(),
        ):
            # Step 1: prefetched by a previous call
            if self.restorer.restore_from_spool(wal_name, request.destination):
                logger.info("restored WAL file from spool (parallel)")
                self.metrics.wal_restore_total.labels(source="spool", status="success").inc()
                return

            # Step 2: only a standby that can stream is told the archive ran dry
            if request.streaming_available and self.restorer.is_end_of_wal_stream():
                self.restorer.reset_end_of_wal_stream()
                self.metrics.wal_end_of_stream_total.inc()
                logger.info("end of WAL stream reached")
                raise EndOfWALStreamError()

            env = self._environment()
            tool = self.config.backup_tool

            # Step 3
            fetch_list = gather_wal_files_to_restore(
                wal_name,
                self.max_parallel,
                request.controlled_promotion,
                self.config.wal.pg_version,
                self.config.wal.segment_size,
            )

            # Step 4
            results = self.restorer.restore_list(
                fetch_list,
                request.destination,
                tool.with_stanza(tool.archive_get_options),
                env,
                self._context(),
            )

            # Step 5
            if request.streaming_available and is_end_of_wal_stream(results):
                logger.info(
                    "set end-of-wal-stream flag as one of the WAL files to be prefetched was not found"
                )
                self.restorer.set_end_of_wal_stream()

            for result in results[1:]:
                self.metrics.wal_prefetch_total.labels(
                    status="success" if result.ok else "error"
                ).inc()

            requested = results[0]
            if requested.error is not None:
                if requested.not_found:
                    self.metrics.wal_restore_total.labels(source="archive", status="not_found").inc()
                    raise WALFileNotFoundError(wal_name) from requested.error
                self.metrics.wal_restore_total.labels(source="archive", status="error").inc()
                raise requested.error

            self.metrics.wal_restore_total.labels(source="archive", status="success").inc()
            successful = sum(1 for result in results if result.ok)
            logger.info(
                "WAL restore command completed (parallel)",
                max_parallel=self.max_parallel,
                successful_wal_restore=successful,
                failed_wal_restore=len(results) - successful,
            )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> WALStatus:
        tool = self.config.backup_tool
        with trace_span("wal.status"):
            logger.debug("checking archive status")
            env = self._environment()
            catalog = self.client.get_backup_list(
                tool.with_stanza(tool.info_options), env, self._context()
            )
            if not catalog.archive:
                raise ArchiveEmptyError()
            first = catalog.archive[0]
            return WALStatus(first_wal=first.min, last_wal=first.max)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _environment(self) -> Mapping[str, str]:
        try:
            return self.environment_provider()
        except PermissionError as e:
            raise MissingPermissionsError() from e

    def _context(self) -> ExecutionContext:
        return ExecutionContext(timeout_seconds=self.config.backup_tool.command_timeout_seconds)
