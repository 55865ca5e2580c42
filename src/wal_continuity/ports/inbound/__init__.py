"""Inbound ports - API contracts for WAL continuity.

The WAL service is the only inbound API: PostgreSQL's archive_command and
restore_command (through whatever transport the host uses) end up calling
``archive`` and ``restore``; operators and monitoring call ``status``.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Protocol


# =============================================================================
# Caller facing errors
# =============================================================================


class WALFileNotFoundError(FileNotFoundError):
    """The requested WAL file is not in the archive.

    PostgreSQL treats this as the normal end of archive recovery, so it is
    reported distinctly from real failures.
    """

    def __init__(self, wal_name: str = "") -> None:
        self.wal_name = wal_name
        super().__init__(f"WAL file not found: {wal_name}" if wal_name else "WAL file not found")


class EndOfWALStreamError(Exception):
    """A previous prefetch saw the end of the archived WAL stream.

    Raised once, so that a standby with a streaming connection switches
    to streaming instead of polling the archive for files that do not
    exist yet.
    """

    def __init__(self) -> None:
        super().__init__("end of WAL reached")


class MissingPermissionsError(PermissionError):
    """Backup credentials don't yet have access permissions."""

    def __init__(self, message: str = "") -> None:
        super().__init__(
            message
            or "backup credentials don't yet have access permissions, will retry"
        )


class ArchiveEmptyError(Exception):
    """No WAL files found in the archive."""

    def __init__(self) -> None:
        super().__init__("no WAL files found in the archive")


# =============================================================================
# Requests and results
# =============================================================================


@dataclass(frozen=True)
class ArchiveRequest:
    """Archive one WAL file.

    Attributes:
        source_file_name: Path of the file as passed by archive_command
            (relative to PGDATA or absolute).
    """

    source_file_name: str


@dataclass(frozen=True)
class RestoreRequest:
    """Restore one WAL file.

    Attributes:
        wal_name: WAL (or history/backup label) file name requested.
        destination: Path PostgreSQL expects the file at.
        controlled_promotion: A replica cluster is being promoted with a
            promotion token; the last segment may only exist as .partial.
        streaming_available: This instance can fall back to streaming
            replication, enabling end-of-stream signalling.
    """

    wal_name: str
    destination: str
    controlled_promotion: bool = False
    streaming_available: bool = False


@dataclass(frozen=True)
class WALStatus:
    """First and last WAL file in the archive."""

    first_wal: str | None
    last_wal: str | None


# =============================================================================
# WAL Service Port
# =============================================================================


class WALServicePort(Protocol):
    """Protocol for WAL archive and restore.

    Thread Safety:
        PostgreSQL invokes archive and restore sequentially per instance;
        implementations parallelise internally.
    """

    @abstractmethod
    def archive(self, request: ArchiveRequest) -> None:
        """Push a WAL file to the archive, with parallel read-ahead.

        Raises:
            MissingPermissionsError: If credentials are not usable yet.
            BackupToolError: If the push of the requested file fails.
        """
        ...

    @abstractmethod
    def restore(self, request: RestoreRequest) -> None:
        """Place a WAL file at the requested destination.

        Raises:
            WALFileNotFoundError: If the file is not in the archive.
            EndOfWALStreamError: If the end of the stream was reached.
            BackupToolError: On any other failure fetching the requested file.
        """
        ...

    @abstractmethod
    def status(self) -> WALStatus:
        """Return the archived WAL range.

        Raises:
            ArchiveEmptyError: If the archive holds no WAL ranges.
        """
        ...


__all__ = [
    # Errors
    "WALFileNotFoundError",
    "EndOfWALStreamError",
    "MissingPermissionsError",
    "ArchiveEmptyError",
    # Requests and results
    "ArchiveRequest",
    "RestoreRequest",
    "WALStatus",
    # Service
    "WALServicePort",
]
