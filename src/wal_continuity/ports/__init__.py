"""Ports layer - interface definitions following Hexagonal Architecture.

- Inbound ports: the WAL service API offered to PostgreSQL and operators
- Outbound ports: the backup tool process and the local spool

Adapters implement these ports with concrete functionality.
"""

from wal_continuity.ports.inbound import (
    ArchiveEmptyError,
    ArchiveRequest,
    EndOfWALStreamError,
    MissingPermissionsError,
    RestoreRequest,
    WALFileNotFoundError,
    WALServicePort,
    WALStatus,
)
from wal_continuity.ports.outbound import (
    CommandError,
    CommandOutput,
    CommandRunnerPort,
    ExecutionContext,
    SpoolEntryNotFoundError,
    SpoolPort,
)

__all__ = [
    # Inbound ports
    "ArchiveEmptyError",
    "ArchiveRequest",
    "EndOfWALStreamError",
    "MissingPermissionsError",
    "RestoreRequest",
    "WALFileNotFoundError",
    "WALServicePort",
    "WALStatus",
    # Outbound ports
    "CommandError",
    "CommandOutput",
    "CommandRunnerPort",
    "ExecutionContext",
    "SpoolEntryNotFoundError",
    "SpoolPort",
]
