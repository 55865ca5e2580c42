"""Catalog queries: recovery backup selection and recovery window metrics.

Every query fetches a fresh catalog from the repository; catalogs are
never cached between calls.
"""

from __future__ import annotations

from wal_continuity.adapters.outbound.backup_tool import BackupToolClient, BackupToolError
from wal_continuity.application.wal_service import EnvironmentProvider
from wal_continuity.domain.entities import Backup, Catalog, CatalogParseError
from wal_continuity.domain.value_objects import RecoveryTarget
from wal_continuity.infrastructure.config import Config
from wal_continuity.infrastructure.logging import get_logger
from wal_continuity.infrastructure.metrics import MetricsRegistry, get_metrics
from wal_continuity.infrastructure.tracing import trace_span
from wal_continuity.ports.inbound import MissingPermissionsError
from wal_continuity.ports.outbound import ExecutionContext

logger = get_logger(__name__)


class CatalogService:
    """Reads the backup catalog on behalf of recovery and monitoring."""

    def __init__(
        self,
        config: Config,
        client: BackupToolClient,
        environment_provider: EnvironmentProvider,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.environment_provider = environment_provider
        self.metrics = metrics or get_metrics()

    def fetch_catalog(self) -> Catalog:
        """Return a fresh catalog of the configured stanza.

        Raises:
            MissingPermissionsError: If credentials are not readable yet.
            BackupToolError: If the listing fails.
            CatalogParseError: If the listing is not a single catalog.
        """
        try:
            env = self.environment_provider()
        except PermissionError as e:
            raise MissingPermissionsError() from e

        tool = self.config.backup_tool
        return self.client.get_backup_list(
            tool.with_stanza(tool.info_options),
            env,
            ExecutionContext(timeout_seconds=tool.command_timeout_seconds),
        )

    def find_backup(self, target: RecoveryTarget) -> Backup | None:
        """Select the backup a recovery towards ``target`` must start from.

        Returns:
            The backup, or None if no backup satisfies the target.

        Raises:
            BackupNotFoundError: If ``target.backup_id`` names no completed backup.
            RecoveryTargetError: If the target time or LSN is malformed.
        """
        with trace_span(
            "catalog.find_backup",
            {
                "recovery.backup_id": target.backup_id,
                "recovery.target_time": target.target_time,
                "recovery.target_lsn": target.target_lsn,
                "recovery.timeline": target.timeline_id,
            },
        ):
            catalog = self.fetch_catalog()
            if target.target_timeline is not None and target.timeline_id < 0:
                logger.debug(
                    "recovery target timeline is not numeric, following the latest timeline",
                    target_timeline=str(target.target_timeline),
                )

            backup = catalog.find_backup_info(target)
            if backup is None:
                logger.info("no backup satisfies the recovery target", stanza=catalog.stanza)
            else:
                logger.info(
                    "selected backup for recovery",
                    stanza=catalog.stanza,
                    backup_id=backup.id,
                    backup_name=backup.name,
                )
            return backup

    def collect_metrics(self) -> tuple[int, int]:
        """Publish the recovery window to the catalog gauges.

        A catalog that cannot be read, or holds no backups, publishes zeros.

        Returns:
            (first recoverability point, last backup stop) as unix seconds.
        """
        with trace_span("catalog.collect_metrics"):
            try:
                catalog = self.fetch_catalog()
            except (BackupToolError, CatalogParseError) as e:
                logger.error("while getting backup list for metrics", error=str(e))
                window = None
            else:
                window = catalog.recovery_window()
                if window is None:
                    logger.debug("no backup data available for metrics")

            first, last = window or (0, 0)
            self.metrics.first_recoverability_point.set(first)
            self.metrics.last_available_backup_timestamp.set(last)
            return first, last
