"""Domain entities - objects read from the backup repository.

Entities:
    - Backup: One backup with its time, WAL and LSN ranges
    - Catalog: Immutable snapshot of a stanza's backups and archives
    - WALArchive, DatabaseIdentity: Archive ranges and database metadata
"""

from wal_continuity.domain.entities.backup import (
    BACKUP_NAME_ANNOTATION,
    Backup,
    BackupLSN,
    BackupTime,
    BackupWALRange,
    DatabaseIdentity,
    WALArchive,
)
from wal_continuity.domain.entities.catalog import (
    BACKUP_METHOD,
    BackupNotFoundError,
    Catalog,
    CatalogParseError,
)

__all__ = [
    "Backup",
    "BackupLSN",
    "BackupTime",
    "BackupWALRange",
    "DatabaseIdentity",
    "WALArchive",
    "BACKUP_NAME_ANNOTATION",
    "Catalog",
    "CatalogParseError",
    "BackupNotFoundError",
    "BACKUP_METHOD",
]
