"""Point-in-time recovery target.

A recovery target is a closed set of optional fields. At most one of them
drives backup selection, in this priority order:

    1. backup_id       - use exactly this backup
    2. target_time     - newest backup finished at or before this time
    3. target_lsn      - newest backup stopped before this LSN
    4. (none)          - newest backup

``target_timeline`` filters candidates in cases 2 to 4.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone

from wal_continuity.domain.value_objects.lsn import LSN


LATEST_TIMELINE_ID = -1
"""Sentinel meaning "follow the latest timeline"."""

# Time of day with an optional fraction and UTC offset, at the end of the text
_CLOCK_RE = re.compile(
    r"(?P<clock>[T ]\d{2}:\d{2}(?::\d{2})?)"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?:(?P<sign>[+-])(?P<hours>\d{2})(?::?(?P<minutes>\d{2}))?)?$"
)


class RecoveryTargetError(ValueError):
    """Raised when a recovery target field cannot be interpreted."""


def parse_target_time(text: str) -> datetime:
    """Parse a recovery target time.

    Accepts ISO 8601 / RFC 3339 timestamps, with either ``T`` or a space
    between date and time. A timestamp without an offset is taken as UTC.

    Raises:
        RecoveryTargetError: If the text is not a timestamp.
    """
    text = _normalize_time(text.strip())
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise RecoveryTargetError(f"invalid recovery target time {text!r}: {e}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _normalize_time(text: str) -> str:
    """Rewrite PostgreSQL style offsets and fractions for fromisoformat.

    ``+02`` and ``+0200`` become ``+02:00``, and the fraction is cut or
    padded to microseconds.
    """
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    match = _CLOCK_RE.search(text)
    if match is None:
        return text

    normalized = match["clock"]
    if match["fraction"] is not None:
        normalized += "." + match["fraction"][:6].ljust(6, "0")
    if match["sign"] is not None:
        normalized += f"{match['sign']}{match['hours']}:{match['minutes'] or '00'}"
    return text[: match.start()] + normalized


def parse_target_timeline(value: str | int | None) -> int:
    """Return the numeric target timeline or LATEST_TIMELINE_ID.

    Anything that is not a base 10 integer, including "latest", an empty
    value and garbage, means the latest timeline.
    """
    if value is None:
        return LATEST_TIMELINE_ID
    if isinstance(value, int):
        return value
    try:
        return int(value.strip(), 10)
    except ValueError:
        return LATEST_TIMELINE_ID


@dataclass(frozen=True, slots=True)
class RecoveryTarget:
    """Where a point-in-time recovery should stop.

    Attributes:
        backup_id: Explicit backup label to restore from.
        target_time: Recovery target time, as text.
        target_lsn: Recovery target LSN, as text (``HI/LO``).
        target_timeline: Target timeline, an integer or "latest".
    """

    backup_id: str | None = None
    target_time: str | None = None
    target_lsn: str | None = None
    target_timeline: str | int | None = None

    @property
    def timeline_id(self) -> int:
        """Numeric target timeline, LATEST_TIMELINE_ID when unspecified."""
        return parse_target_timeline(self.target_timeline)

    def parsed_time(self) -> datetime:
        """Return target_time as an aware datetime.

        Raises:
            RecoveryTargetError: If target_time is unset or invalid.
        """
        if not self.target_time:
            raise RecoveryTargetError("no recovery target time")
        return parse_target_time(self.target_time)

    def parsed_lsn(self) -> LSN:
        """Return target_lsn as an LSN.

        Raises:
            RecoveryTargetError: If target_lsn is unset or invalid.
        """
        if not self.target_lsn:
            raise RecoveryTargetError("no recovery target LSN")
        try:
            return LSN.parse(self.target_lsn)
        except ValueError as e:
            raise RecoveryTargetError(f"invalid recovery target LSN: {e}") from e
