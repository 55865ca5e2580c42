"""Outbound adapters - implementations of outbound ports.

These adapters run the backup tool, stage WAL files on local disk and
simulate the backup tool for tests.
"""

from wal_continuity.adapters.outbound.backup_tool import (
    BackupToolClient,
    BackupToolError,
    InvalidArgumentsError,
    WALNotFoundError,
)
from wal_continuity.adapters.outbound.file_spool import FileWALSpool
from wal_continuity.adapters.outbound.mock_command_runner import MockBackup, MockCommandRunner
from wal_continuity.adapters.outbound.subprocess_runner import SubprocessCommandRunner

__all__ = [
    "BackupToolClient",
    "BackupToolError",
    "InvalidArgumentsError",
    "WALNotFoundError",
    "FileWALSpool",
    "MockBackup",
    "MockCommandRunner",
    "SubprocessCommandRunner",
]
