"""WAL segment naming and arithmetic.

A PostgreSQL WAL file name is the concatenation of three 8 digit
uppercase hexadecimal numbers: timeline ID, log ID and segment ID.

    000000010000000A0000003F
    |tli----||log---||seg---|

The number of segments in each log ID depends on the WAL segment size
(16MB by default, i.e. 256 segments per log ID). Servers older than
9.3 never used the last segment of a log ID.

References:
    - PostgreSQL src/include/access/xlog_internal.h
"""

from __future__ import annotations

import re
from dataclasses import dataclass


DEFAULT_WAL_SEGMENT_SIZE = 16 * 1024 * 1024
"""Default WAL segment size in bytes (16MB)."""

LOG_ID_SPACE = 0x100000000
"""Bytes addressed by a single log ID (4GB)."""

MAX_LOG_ID = 0xFFFFFFFF

PARTIAL_SUFFIX = ".partial"
HISTORY_SUFFIX = ".history"

_SEGMENT_RE = re.compile(r"^([0-9A-F]{8})([0-9A-F]{8})([0-9A-F]{8})$")
_WAL_FILE_RE = re.compile(r"^[0-9A-F]{24}(?:\.partial|\.[0-9A-F]{8}\.backup)?$")
_HISTORY_FILE_RE = re.compile(r"^[0-9A-F]{8}\.history$")


def max_segments_per_log(
    pg_version: int | None = None,
    segment_size: int | None = None,
) -> int:
    """Return how many segments a log ID holds.

    Args:
        pg_version: Server version number (e.g. 170002). Unknown means current.
        segment_size: WAL segment size in bytes. Unknown means the default.

    Raises:
        ValueError: If the segment size is not a positive divisor of 4GB.
    """
    size = segment_size or DEFAULT_WAL_SEGMENT_SIZE
    if size <= 0 or LOG_ID_SPACE % size != 0:
        raise ValueError(f"invalid WAL segment size: {size}")

    segments = LOG_ID_SPACE // size
    if pg_version is not None and pg_version < 90300:
        # The last segment of each log ID is skipped before 9.3
        segments -= 1
    return segments


@dataclass(frozen=True, slots=True, order=True)
class Segment:
    """A WAL segment identifier.

    Attributes:
        tli: Timeline ID.
        log: Log ID.
        seg: Segment ID inside the log.

    Example:
        >>> s = Segment.parse("000000010000000000000002")
        >>> s.next_segments(2)[1].name
        '000000010000000000000003'
    """

    tli: int
    log: int
    seg: int

    def __post_init__(self) -> None:
        """Validate the ranges of the three components."""
        for label, value in (("tli", self.tli), ("log", self.log), ("seg", self.seg)):
            if not 0 <= value <= 0xFFFFFFFF:
                raise ValueError(f"{label} out of range: {value}")

    @classmethod
    def parse(cls, name: str) -> Segment:
        """Parse a plain segment name.

        History files, partial segments and backup labels are not segments.

        Raises:
            ValueError: If the name is not a 24 digit hex triplet.
        """
        match = _SEGMENT_RE.match(name)
        if match is None:
            raise ValueError(f"not a WAL segment name: {name!r}")
        tli, log, seg = (int(group, 16) for group in match.groups())
        return cls(tli=tli, log=log, seg=seg)

    @property
    def name(self) -> str:
        """Return the canonical 24 character file name."""
        return f"{self.tli:08X}{self.log:08X}{self.seg:08X}"

    def __str__(self) -> str:
        return self.name

    def next_segments(
        self,
        count: int,
        pg_version: int | None = None,
        segment_size: int | None = None,
    ) -> list[Segment]:
        """Return ``count`` consecutive segments starting with this one.

        When the caller does not know the server's real segment size the
        default is assumed, so the log ID boundary is a best-effort guess.
        The timeline never changes: if the log ID would overflow, the list
        is returned shorter than requested.

        Args:
            count: Number of segments wanted.
            pg_version: Server version number, if known.
            segment_size: WAL segment size in bytes, if known.
        """
        per_log = max_segments_per_log(pg_version, segment_size)

        result: list[Segment] = []
        log, seg = self.log, self.seg
        while len(result) < count:
            result.append(Segment(self.tli, log, seg))
            seg += 1
            if seg >= per_log:
                if log == MAX_LOG_ID:
                    break
                log += 1
                seg = 0
        return result


def is_wal_file(name: str) -> bool:
    """Tell whether a base name is a WAL segment, partial segment or backup label."""
    return _WAL_FILE_RE.match(name) is not None


def is_history_file(name: str) -> bool:
    """Tell whether a base name is a timeline history file."""
    return _HISTORY_FILE_RE.match(name) is not None


def is_archivable_file(name: str) -> bool:
    """Tell whether PostgreSQL could ask to archive a file with this base name."""
    return is_wal_file(name) or is_history_file(name)
