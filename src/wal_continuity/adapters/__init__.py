"""Adapters layer - concrete implementations of port interfaces.

There are no inbound adapters: the host process calls the WAL service
directly. Outbound adapters talk to the backup tool and the local disk.
"""

from wal_continuity.adapters.outbound import (
    BackupToolClient,
    FileWALSpool,
    MockCommandRunner,
    SubprocessCommandRunner,
)

__all__ = [
    # Outbound adapters
    "BackupToolClient",
    "FileWALSpool",
    "MockCommandRunner",
    "SubprocessCommandRunner",
]
