"""Value objects for the WAL continuity domain.

Value objects are immutable types that represent domain concepts.
They have no identity - two value objects with the same attributes are equal.

Exports:
    WAL naming:
        - Segment: Timeline/log/segment triplet with arithmetic
        - is_wal_file, is_history_file, is_archivable_file: Name classifiers
        - max_segments_per_log, DEFAULT_WAL_SEGMENT_SIZE, PARTIAL_SUFFIX

    Recovery:
        - LSN: Log Sequence Number
        - RecoveryTarget: Optional PITR target fields
        - LATEST_TIMELINE_ID: "latest" timeline sentinel
        - RecoveryTargetError: Invalid target value
"""

from wal_continuity.domain.value_objects.lsn import LSN
from wal_continuity.domain.value_objects.recovery_target import (
    LATEST_TIMELINE_ID,
    RecoveryTarget,
    RecoveryTargetError,
    parse_target_time,
    parse_target_timeline,
)
from wal_continuity.domain.value_objects.segment import (
    DEFAULT_WAL_SEGMENT_SIZE,
    HISTORY_SUFFIX,
    PARTIAL_SUFFIX,
    Segment,
    is_archivable_file,
    is_history_file,
    is_wal_file,
    max_segments_per_log,
)

__all__ = [
    # WAL naming
    "Segment",
    "DEFAULT_WAL_SEGMENT_SIZE",
    "PARTIAL_SUFFIX",
    "HISTORY_SUFFIX",
    "is_wal_file",
    "is_history_file",
    "is_archivable_file",
    "max_segments_per_log",
    # Recovery
    "LSN",
    "RecoveryTarget",
    "RecoveryTargetError",
    "LATEST_TIMELINE_ID",
    "parse_target_time",
    "parse_target_timeline",
]
