"""Application layer - WAL archive/restore orchestration and catalog queries."""

from wal_continuity.application.archiver import ArchiverResult, WALArchiver
from wal_continuity.application.catalog_service import CatalogService
from wal_continuity.application.restorer import (
    END_OF_WAL_STREAM_FLAG,
    RestorerResult,
    WALRestorer,
)
from wal_continuity.application.wal_service import (
    WALService,
    gather_wal_files_to_restore,
    is_end_of_wal_stream,
)

__all__ = [
    "ArchiverResult",
    "WALArchiver",
    "RestorerResult",
    "WALRestorer",
    "END_OF_WAL_STREAM_FLAG",
    "WALService",
    "gather_wal_files_to_restore",
    "is_end_of_wal_stream",
    "CatalogService",
]
