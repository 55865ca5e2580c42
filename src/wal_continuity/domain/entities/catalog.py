"""Backup catalog and point-in-time-recovery backup selection.

A catalog is a read-only snapshot of one stanza as reported by the backup
tool: backups ordered from oldest to newest, archived WAL ranges and the
identity of each database. A fresh catalog is fetched for every query.

Backup selection for a recovery target walks the backups from newest to
oldest and returns the first one that:

    - is done (both start and stop timestamps are set),
    - started on a timeline not after the target timeline
      (any timeline when the target is "latest"),
    - is not past the target: stopped no later than the target time,
      or stopped strictly before the target LSN.

Backups whose start WAL does not carry a parseable timeline are skipped.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from pydantic import Field, TypeAdapter, ValidationError

from wal_continuity.domain.entities.backup import (
    BACKUP_NAME_ANNOTATION,
    Backup,
    DatabaseIdentity,
    InfoRecord,
    WALArchive,
)
from wal_continuity.domain.value_objects import (
    LATEST_TIMELINE_ID,
    LSN,
    RecoveryTarget,
)


BACKUP_METHOD = "pgbackrest"


class CatalogParseError(Exception):
    """Raised when the backup tool's listing cannot be trusted.

    Either the JSON is malformed, it does not match the expected schema,
    or it does not contain exactly one catalog.
    """

    pass


class BackupNotFoundError(Exception):
    """Raised when an explicitly requested backup is not in the catalog."""

    pass


class Catalog(InfoRecord):
    """Backups and archives of a single stanza.

    Attributes:
        archive: Archived WAL ranges, one per database.
        backups: Backups, oldest first.
        stanza: Stanza name.
        databases: Database identities known to the stanza.
        encryption: Repository cipher type.
    """

    archive: tuple[WALArchive, ...] = ()
    backups: tuple[Backup, ...] = Field(default=(), alias="backup")
    stanza: str = Field(default="", alias="name")
    databases: tuple[DatabaseIdentity, ...] = Field(default=(), alias="db")
    encryption: str = Field(default="", alias="cipher")

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    @classmethod
    def from_info_json(cls, raw_json: str | bytes) -> Catalog:
        """Parse the output of ``info --output json``.

        The tool prints a JSON array; exactly one element is expected.

        Raises:
            CatalogParseError: If the output is malformed or holds a number
                of catalogs other than one.
        """
        try:
            result = _CATALOG_LIST.validate_json(raw_json)
        except ValidationError as e:
            raise CatalogParseError(f"cannot parse backup catalog: {e}") from e

        if len(result) != 1:
            raise CatalogParseError(f"expected one catalog, got {len(result)}")
        return result[0]

    @classmethod
    def from_single_backup_info_json(cls, raw_json: str | bytes) -> Catalog:
        """Parse the output of ``info --set <label> --output json``.

        The schema is the same as the full listing, with a single backup
        carrying extra detail.
        """
        return cls.from_info_json(raw_json)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def backup_method(self) -> str:
        return BACKUP_METHOD

    def backup_ids(self) -> list[str]:
        """Return the backup labels in catalog order."""
        return [backup.id for backup in self.backups]

    def latest_backup_info(self) -> Backup | None:
        """Return the newest done backup, regardless of timeline."""
        for backup in reversed(self.backups):
            if backup.is_done:
                return backup
        return None

    def last_successful_backup_time(self) -> datetime | None:
        """Return the stop time of the newest done backup."""
        latest = self.latest_backup_info()
        if latest is None:
            return None
        return latest.stop_time

    def first_recoverability_point(self) -> datetime | None:
        """Return the stop time of the oldest done backup."""
        for backup in self.backups:
            if backup.is_done:
                return backup.stop_time
        return None

    def recovery_window(self) -> tuple[int, int] | None:
        """Return (earliest backup start, latest backup stop) as unix seconds.

        Backups that never started are ignored for the lower bound; either
        bound is 0 when unknown. Returns None for an empty catalog.
        """
        if not self.backups:
            return None

        starts = [backup.time.start for backup in self.backups if backup.time.start > 0]
        first = min(starts) if starts else 0
        last = max(backup.time.stop for backup in self.backups)
        return first, max(last, 0)

    def backup_id_from_annotated_name(self, backup_name: str) -> str | None:
        """Return the label of the newest backup annotated with ``backup_name``."""
        for backup in reversed(self.backups):
            if backup.annotations.get(BACKUP_NAME_ANNOTATION) == backup_name:
                return backup.id
        return None

    # ------------------------------------------------------------------
    # Point-in-time recovery
    # ------------------------------------------------------------------

    def find_backup_info(self, target: RecoveryTarget) -> Backup | None:
        """Find the backup a recovery towards ``target`` should start from.

        An explicit backup ID wins over every other field. Otherwise the
        time target is used if present, then the LSN target, then the
        newest backup on the target timeline.

        Returns:
            The selected backup, or None when no backup qualifies.

        Raises:
            BackupNotFoundError: If an explicit backup ID does not match a done backup.
            RecoveryTargetError: If the target time or LSN is malformed.
        """
        if target.backup_id:
            return self.find_backup_by_id(target.backup_id)

        timeline = target.timeline_id

        if target.target_time:
            target_time = target.parsed_time()
            return self._find_newest(
                timeline, lambda backup: backup.stop_time <= target_time
            )

        if target.target_lsn:
            target_lsn = target.parsed_lsn()
            return self._find_newest(
                timeline, lambda backup: _stops_before(backup, target_lsn)
            )

        return self._find_newest(timeline, lambda backup: True)

    def find_backup_by_id(self, backup_id: str) -> Backup:
        """Return the done backup labelled ``backup_id``.

        Raises:
            BackupNotFoundError: If the ID is empty or no done backup carries it.
        """
        if not backup_id:
            raise BackupNotFoundError("no backup ID provided")

        for backup in self.backups:
            if backup.is_done and backup.id == backup_id:
                return backup
        raise BackupNotFoundError(f"no backup found with ID {backup_id}")

    def _find_newest(
        self,
        timeline: int,
        predicate: Callable[[Backup], bool],
    ) -> Backup | None:
        for backup in reversed(self.backups):
            if not backup.is_done:
                continue
            try:
                start_timeline = backup.start_timeline()
            except ValueError:
                continue
            if timeline != LATEST_TIMELINE_ID and start_timeline > timeline:
                continue
            if predicate(backup):
                return backup
        return None


def _stops_before(backup: Backup, target_lsn: LSN) -> bool:
    try:
        return LSN.parse(backup.lsn.stop) < target_lsn
    except ValueError:
        return False


_CATALOG_LIST = TypeAdapter(list[Catalog])
