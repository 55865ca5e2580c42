"""Unit tests for WAL segment naming."""

from __future__ import annotations

import pytest

from wal_continuity.domain.value_objects import (
    Segment,
    is_archivable_file,
    is_history_file,
    is_wal_file,
    max_segments_per_log,
)


@pytest.mark.unit
class TestSegment:
    """Tests for Segment parsing and arithmetic."""

    def test_parse(self) -> None:
        segment = Segment.parse("0000000200000001000000A3")

        assert segment == Segment(tli=2, log=1, seg=0xA3)

    def test_name_round_trip(self) -> None:
        for name in (
            "000000010000000000000001",
            "0000000A00000003000000FF",
            "FFFFFFFFFFFFFFFFFFFFFFFF",
        ):
            assert Segment.parse(name).name == name
            assert str(Segment.parse(name)) == name

    @pytest.mark.parametrize(
        "name",
        [
            "00000001.history",
            "000000010000000000000001.partial",
            "000000010000000000000001.00000028.backup",
            "00000001000000000000001",
            "0000000100000000000000010",
            "000000010000000000000g01",
            "000000010000000000000a01",
            "",
        ],
    )
    def test_parse_rejects_non_segments(self, name: str) -> None:
        with pytest.raises(ValueError):
            Segment.parse(name)

    def test_out_of_range_component(self) -> None:
        with pytest.raises(ValueError):
            Segment(tli=1, log=0x100000000, seg=0)

    def test_next_segments_contiguous(self) -> None:
        segments = Segment.parse("000000010000000000000001").next_segments(4)

        assert [s.name for s in segments] == [
            "000000010000000000000001",
            "000000010000000000000002",
            "000000010000000000000003",
            "000000010000000000000004",
        ]

    def test_next_segments_starts_with_self(self) -> None:
        segment = Segment.parse("0000000300000007000000AA")

        assert segment.next_segments(1) == [segment]

    def test_next_segments_rolls_over_log(self) -> None:
        segments = Segment.parse("0000000100000000000000FE").next_segments(3)

        assert [s.name for s in segments] == [
            "0000000100000000000000FE",
            "0000000100000000000000FF",
            "000000010000000100000000",
        ]

    def test_next_segments_keeps_timeline(self) -> None:
        segments = Segment.parse("0000000500000000000000FF").next_segments(10)

        assert all(s.tli == 5 for s in segments)

    def test_next_segments_old_server_skips_last_segment(self) -> None:
        segments = Segment.parse("0000000100000000000000FE").next_segments(2, pg_version=90200)

        assert [s.name for s in segments] == [
            "0000000100000000000000FE",
            "000000010000000100000000",
        ]

    def test_next_segments_with_segment_size(self) -> None:
        # 1 GiB segments: four per log ID
        segments = Segment.parse("000000010000000000000003").next_segments(
            2, segment_size=1024 * 1024 * 1024
        )

        assert [s.name for s in segments] == [
            "000000010000000000000003",
            "000000010000000100000000",
        ]

    def test_next_segments_stops_at_last_log(self) -> None:
        segments = Segment.parse("00000001FFFFFFFF000000FE").next_segments(5)

        assert [s.name for s in segments] == [
            "00000001FFFFFFFF000000FE",
            "00000001FFFFFFFF000000FF",
        ]

    def test_ordering(self) -> None:
        names = ["000000010000000100000000", "0000000100000000000000FF", "000000020000000000000000"]

        assert [s.name for s in sorted(Segment.parse(n) for n in names)] == [
            "0000000100000000000000FF",
            "000000010000000100000000",
            "000000020000000000000000",
        ]


@pytest.mark.unit
class TestSegmentsPerLog:
    """Tests for max_segments_per_log."""

    def test_default(self) -> None:
        assert max_segments_per_log() == 256

    def test_old_server(self) -> None:
        assert max_segments_per_log(pg_version=90299) == 255
        assert max_segments_per_log(pg_version=90300) == 256

    def test_segment_size(self) -> None:
        assert max_segments_per_log(segment_size=64 * 1024 * 1024) == 64

    def test_invalid_segment_size(self) -> None:
        with pytest.raises(ValueError):
            max_segments_per_log(segment_size=3 * 1024 * 1024)


@pytest.mark.unit
class TestFileClassification:
    """Tests for WAL file name classification."""

    def test_wal_files(self) -> None:
        assert is_wal_file("000000010000000000000001")
        assert is_wal_file("000000010000000000000001.partial")
        assert is_wal_file("000000010000000000000001.00000028.backup")
        assert not is_wal_file("00000002.history")
        assert not is_wal_file("000000010000000000000001.ready")

    def test_history_files(self) -> None:
        assert is_history_file("00000002.history")
        assert not is_history_file("000000010000000000000001")
        assert not is_history_file("0000002.history")

    def test_archivable(self) -> None:
        assert is_archivable_file("00000002.history")
        assert is_archivable_file("000000010000000000000001")
        assert not is_archivable_file("archive_status")
        assert not is_archivable_file("end-of-wal-stream")
