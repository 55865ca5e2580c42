"""Infrastructure layer - cross-cutting concerns."""

from wal_continuity.infrastructure.config import Config, get_config
from wal_continuity.infrastructure.environment import merge_env, sanitized_environ
from wal_continuity.infrastructure.logging import get_logger, setup_logging
from wal_continuity.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from wal_continuity.infrastructure.tracing import get_tracer, setup_tracing, trace_span

__all__ = [
    "Config",
    "get_config",
    "merge_env",
    "sanitized_environ",
    "setup_logging",
    "get_logger",
    "setup_metrics",
    "get_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
    "trace_span",
]
