"""Directory backed WAL spool.

This adapter implements the SpoolPort with one flat directory. A file's
presence under its base name is the whole state: archive read-ahead
leaves zero-length markers for WALs already pushed, restore prefetch
leaves complete WAL files waiting to be requested.

Thread Safety:
    Workers of one batch always operate on distinct names, so no locking
    is needed; every operation is a single filesystem call or an atomic
    rename.
"""

from __future__ import annotations

import errno
import os
import shutil
import tempfile
from pathlib import Path

from wal_continuity.ports.outbound import SpoolEntryNotFoundError

SPOOL_DIRECTORY_MODE = 0o750


class FileWALSpool:
    """SpoolPort implementation on a local directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(mode=SPOOL_DIRECTORY_MODE, parents=True, exist_ok=True)

    def file_name(self, name: str) -> Path:
        base = os.path.basename(name)
        if base in ("", ".", ".."):
            raise ValueError(f"invalid spool entry name: {name!r}")
        return self.directory / base

    def contains(self, name: str) -> bool:
        return self.file_name(name).is_file()

    def touch(self, name: str) -> None:
        self.file_name(name).touch(exist_ok=True)

    def remove(self, name: str) -> None:
        self.file_name(name).unlink(missing_ok=True)

    def move_out(self, name: str, destination: str | Path) -> None:
        source = self.file_name(name)
        destination = Path(destination)

        try:
            os.replace(source, destination)
        except FileNotFoundError as e:
            if not source.exists():
                raise SpoolEntryNotFoundError(
                    errno.ENOENT, "not in spool", str(source)
                ) from e
            raise
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise
            _move_across_devices(source, destination)


def _move_across_devices(source: Path, destination: Path) -> None:
    """Copy into a sibling of ``destination`` then rename it into place."""
    fd, tmp_name = tempfile.mkstemp(
        dir=destination.parent, prefix=f".{destination.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as tmp, open(source, "rb") as src:
            shutil.copyfileobj(src, tmp)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, destination)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    source.unlink()
