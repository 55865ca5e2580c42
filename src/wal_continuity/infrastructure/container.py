"""Dependency injection container for WAL continuity."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from wal_continuity.adapters.outbound import (
    BackupToolClient,
    FileWALSpool,
    SubprocessCommandRunner,
)
from wal_continuity.application import (
    CatalogService,
    WALArchiver,
    WALRestorer,
    WALService,
)
from wal_continuity.application.wal_service import EnvironmentProvider
from wal_continuity.infrastructure.config import Config, get_config
from wal_continuity.infrastructure.environment import sanitized_environ
from wal_continuity.infrastructure.logging import get_logger, setup_logging
from wal_continuity.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from wal_continuity.infrastructure.tracing import setup_tracing
from wal_continuity.ports.outbound import CommandRunnerPort

ARCHIVE_SPOOL = "archive"
RESTORE_SPOOL = "restore"


@dataclass
class Container:
    """Wired WAL continuity components."""

    config: Config
    metrics: MetricsRegistry
    client: BackupToolClient
    archiver: WALArchiver
    restorer: WALRestorer
    wal_service: WALService
    catalog_service: CatalogService

    _instance: ClassVar[Container | None] = None

    @classmethod
    def build(
        cls,
        config: Config,
        runner: CommandRunnerPort | None = None,
        environment_provider: EnvironmentProvider = sanitized_environ,
        metrics: MetricsRegistry | None = None,
    ) -> Container:
        """Wire the components for ``config`` without touching global state.

        Archive markers and restore prefetches live in separate spools, so
        a file prefetched while in recovery is never taken for an archive
        acknowledgement after promotion.
        """
        metrics = metrics or get_metrics()
        client = BackupToolClient(
            runner or SubprocessCommandRunner(),
            executable=config.backup_tool.executable,
            metrics=metrics,
        )
        archiver = WALArchiver(
            FileWALSpool(config.spool.directory / ARCHIVE_SPOOL),
            client,
            config.postgres.pgdata,
            config.postgres.check_empty_wal_archive_path,
        )
        restorer = WALRestorer(FileWALSpool(config.spool.directory / RESTORE_SPOOL), client)

        return cls(
            config=config,
            metrics=metrics,
            client=client,
            archiver=archiver,
            restorer=restorer,
            wal_service=WALService(
                config, archiver, restorer, client, environment_provider, metrics
            ),
            catalog_service=CatalogService(config, client, environment_provider, metrics),
        )

    @classmethod
    def create(cls) -> Container:
        """Create the process-wide container, setting up observability."""
        if cls._instance is not None:
            return cls._instance

        config = get_config()
        observability = config.observability
        setup_logging(observability.log_level, observability.log_format)
        setup_tracing(observability.otel_service_name, observability.otel_endpoint)
        metrics = setup_metrics(observability.metrics_port)

        cls._instance = cls.build(config, metrics=metrics)

        get_logger(__name__).info(
            "wal_continuity_container_initialized",
            spool_directory=str(config.spool.directory),
            max_parallel=config.wal.max_parallel,
        )
        return cls._instance

    @classmethod
    def get(cls) -> Container:
        """Get the singleton container instance."""
        if cls._instance is None:
            return cls.create()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the container (useful for testing)."""
        cls._instance = None


def get_container() -> Container:
    """Get the dependency injection container."""
    return Container.get()
