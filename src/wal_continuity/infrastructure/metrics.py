"""Prometheus metrics for WAL continuity."""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)

# Transfers are subprocess bound, from sub-second local pushes to minutes
# for large segments over a slow link.
_TRANSFER_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)


class MetricsRegistry:
    """Registry of all WAL continuity metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or REGISTRY

        # Archive metrics
        self.wal_archive_total = Counter(
            "wal_archive_total",
            "WAL archive requests",
            ["status"],  # success, deduplicated, error
            registry=self._registry,
        )

        self.wal_archive_duration_seconds = Histogram(
            "wal_archive_duration_seconds",
            "Duration of one archive request including read-ahead",
            buckets=_TRANSFER_BUCKETS,
            registry=self._registry,
        )

        # Restore metrics
        self.wal_restore_total = Counter(
            "wal_restore_total",
            "WAL restore requests",
            ["source", "status"],  # source: spool, archive; status: success, not_found, error
            registry=self._registry,
        )

        self.wal_restore_duration_seconds = Histogram(
            "wal_restore_duration_seconds",
            "Duration of one restore request including prefetch",
            buckets=_TRANSFER_BUCKETS,
            registry=self._registry,
        )

        self.wal_prefetch_total = Counter(
            "wal_prefetch_total",
            "WAL files transferred ahead of the requested one",
            ["status"],  # success, error
            registry=self._registry,
        )

        self.wal_end_of_stream_total = Counter(
            "wal_end_of_stream_total",
            "Times the end of the archived WAL stream was signalled",
            registry=self._registry,
        )

        # Backup tool metrics
        self.backup_tool_commands_total = Counter(
            "backup_tool_commands_total",
            "Backup tool invocations",
            ["command", "status"],
            registry=self._registry,
        )

        # Catalog metrics
        self.first_recoverability_point = Gauge(
            "first_recoverability_point",
            "Earliest backup start time as unix seconds, 0 when unknown",
            registry=self._registry,
        )

        self.last_available_backup_timestamp = Gauge(
            "last_available_backup_timestamp",
            "Latest backup stop time as unix seconds, 0 when unknown",
            registry=self._registry,
        )

        self.info = Info(
            "wal_continuity",
            "WAL continuity build information",
            registry=self._registry,
        )


_metrics: MetricsRegistry | None = None
_http_server_port: int | None = None


def setup_metrics(
    port: int | None = None,
    registry: CollectorRegistry | None = None,
) -> MetricsRegistry:
    """
    Set up the metrics registry and, when a port is given, the scrape endpoint.

    Calling it again with the same registry returns the registry set up
    the first time. The scrape endpoint is started at most once.

    Args:
        port: Port for the metrics HTTP server, None to skip serving
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics, _http_server_port
    target = registry or REGISTRY
    if _metrics is None or _metrics._registry is not target:
        _metrics = MetricsRegistry(target)

    from wal_continuity import __version__
    _metrics.info.info({"version": __version__, "backup_method": "pgbackrest"})

    if port is not None and _http_server_port is None:
        start_http_server(port, registry=target)
        _http_server_port = port

    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
