"""Backup and archive records reported by the backup tool.

These entities mirror the JSON schema of ``pgbackrest info --output json``.
Field aliases carry the wire names; attribute names are the ones used in
code. All records are immutable once parsed.

Example wire form of one backup:

    {
      "label": "20250331-142029F",
      "type": "full",
      "prior": null,
      "annotation": {"cnpg-backup-name": "backup-20250331142029"},
      "archive": {"start": "000000010000000000000006", "stop": "..."},
      "lsn": {"start": "0/6000028", "stop": "0/6000158"},
      "timestamp": {"start": 1743430829, "stop": 1743430841}
    }
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


BACKUP_NAME_ANNOTATION = "cnpg-backup-name"
"""Annotation carrying the friendly name of the Backup resource that requested a backup."""

_TIMELINE_RE = re.compile(r"^[0-9A-Fa-f]{8}$")


class InfoRecord(BaseModel):
    """Base for records parsed from the backup tool's info output."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class BackupTime(InfoRecord):
    """Unix timestamps bracketing the backup. Zero means never reached."""

    start: int = 0
    stop: int = 0


class BackupLSN(InfoRecord):
    """LSN range covered by the backup."""

    start: str = ""
    stop: str = ""


class BackupWALRange(InfoRecord):
    """First and last WAL file needed to make the backup consistent."""

    start: str = ""
    stop: str = ""


class DatabaseIdentity(InfoRecord):
    """Identifying metadata of a database cluster in the stanza."""

    id: int = 0
    repo_key: int = Field(default=0, validation_alias=AliasChoices("repo-key", "repo_key"))
    system_id: int | None = Field(
        default=None, validation_alias=AliasChoices("system-id", "system_id")
    )
    version: str | None = None


class WALArchive(InfoRecord):
    """Range of WAL files archived for one database."""

    id: str = ""
    min: str | None = None
    max: str | None = None
    database: DatabaseIdentity = Field(default_factory=DatabaseIdentity)


class Backup(InfoRecord):
    """A backup as listed by the backup tool.

    Attributes:
        id: Backup label, unique within the stanza.
        prior: Label of the backup this one depends on (diff/incr).
        type: full, diff or incr.
        time: Start/stop timestamps.
        wal: Start/stop WAL file names.
        lsn: Start/stop LSNs.
        annotations: Free-form key/value annotations.
    """

    id: str = Field(alias="label")
    prior: str | None = None
    type: str = ""
    time: BackupTime = Field(default_factory=BackupTime, alias="timestamp")
    wal: BackupWALRange = Field(default_factory=BackupWALRange, alias="archive")
    lsn: BackupLSN = Field(default_factory=BackupLSN)
    annotations: dict[str, str] = Field(default_factory=dict, alias="annotation")

    @field_validator("time", "wal", "lsn", "annotations", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        # The tool prints null for sections of backups that never completed
        return {} if value is None else value

    @property
    def is_done(self) -> bool:
        """A backup is usable only if it both started and stopped."""
        return self.time.start != 0 and self.time.stop != 0

    @property
    def name(self) -> str | None:
        """Friendly name recorded in the backup name annotation, if any."""
        return self.annotations.get(BACKUP_NAME_ANNOTATION)

    @property
    def start_time(self) -> datetime:
        return datetime.fromtimestamp(self.time.start, tz=timezone.utc)

    @property
    def stop_time(self) -> datetime:
        return datetime.fromtimestamp(self.time.stop, tz=timezone.utc)

    def start_timeline(self) -> int:
        """Timeline the backup started on, from the first 8 digits of its start WAL.

        Raises:
            ValueError: If the start WAL name is missing or malformed.
        """
        return _timeline_of(self.wal.start)


def _timeline_of(wal_name: str) -> int:
    prefix = wal_name[:8]
    if _TIMELINE_RE.match(prefix) is None:
        raise ValueError(f"WAL name does not start with a timeline: {wal_name!r}")
    return int(prefix, 16)
