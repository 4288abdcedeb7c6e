"""Tests for data models."""

from diskdive.models import (
    DeletionOutcome,
    DeletionReport,
    DeletionStatus,
    Entry,
    LargeFileRecord,
    NavigatorState,
    ScanResult,
    format_size,
    sort_entries,
)


class TestFormatSize:
    def test_bytes(self):
        assert format_size(0) == "0 B"
        assert format_size(512) == "512 B"
        assert format_size(1023) == "1023 B"

    def test_kilobytes(self):
        assert format_size(1024) == "1.0 KB"
        assert format_size(1536) == "1.5 KB"

    def test_larger_units(self):
        assert format_size(1024**2) == "1.0 MB"
        assert format_size(1024**3) == "1.0 GB"
        assert format_size(1024**4) == "1.0 TB"

    def test_rounding_rolls_over_to_next_unit(self):
        assert format_size(1024**2 - 1) == "1.0 MB"
        assert format_size(1024**3 - 1) == "1.0 GB"
        assert format_size(1023 * 1024 + 900) == "1023.9 KB"

    def test_terabytes_do_not_overflow_ladder(self):
        assert format_size(2048 * 1024**4) == "2048.0 TB"


class TestEntry:
    def test_defaults(self):
        entry = Entry(name="x", path="/r/x")
        assert entry.size_bytes == 0
        assert entry.size_known is False
        assert entry.protected is False

    def test_size_human(self):
        entry = Entry(name="x", path="/r/x", size_bytes=1536)
        assert entry.size_human == "1.5 KB"


class TestSortEntries:
    def test_size_descending(self):
        entries = [
            Entry(name="a.txt", path="/r/a.txt", size_bytes=100),
            Entry(name="b.txt", path="/r/b.txt", size_bytes=300),
            Entry(name="c", path="/r/c", size_bytes=0, is_dir=True),
        ]
        assert [e.name for e in sort_entries(entries)] == ["b.txt", "a.txt", "c"]

    def test_ties_broken_by_name(self):
        entries = [
            Entry(name="zeta", path="/r/zeta", size_bytes=5),
            Entry(name="alpha", path="/r/alpha", size_bytes=5),
            Entry(name="mid", path="/r/mid", size_bytes=5),
        ]
        assert [e.name for e in sort_entries(entries)] == ["alpha", "mid", "zeta"]


class TestScanResult:
    def test_total_human(self):
        result = ScanResult(path="/r", total_bytes=2048)
        assert result.total_human == "2.0 KB"

    def test_large_file_record(self):
        record = LargeFileRecord(path="/r/big.iso", size_bytes=3 * 1024**3)
        assert record.size_human == "3.0 GB"


class TestDeletionReport:
    def _report(self):
        return DeletionReport(
            outcomes=[
                DeletionOutcome(path="/r/a", status=DeletionStatus.REMOVED, bytes_freed=100),
                DeletionOutcome(path="/r/b", status=DeletionStatus.PARTIAL, bytes_freed=50, error="x"),
                DeletionOutcome(path="/r/c", status=DeletionStatus.FAILED, error="y"),
                DeletionOutcome(path="/r/d", status=DeletionStatus.SKIPPED_PROTECTED),
            ]
        )

    def test_total_freed_includes_partial(self):
        assert self._report().total_freed_bytes == 150

    def test_removed_and_partial_paths(self):
        report = self._report()
        assert report.removed_paths == ["/r/a"]
        assert report.partial_paths == ["/r/b"]

    def test_failure_count(self):
        assert self._report().failure_count == 2

    def test_outcome_for(self):
        report = self._report()
        assert report.outcome_for("/r/c").status == DeletionStatus.FAILED
        assert report.outcome_for("/r/missing") is None


class TestNavigatorState:
    def test_current_entry(self):
        state = NavigatorState(
            root="/r",
            current_path="/r",
            entries=[Entry(name="a", path="/r/a"), Entry(name="b", path="/r/b")],
            cursor_index=1,
        )
        assert state.current_entry.name == "b"

    def test_current_entry_empty(self):
        state = NavigatorState(root="/r", current_path="/r")
        assert state.current_entry is None

    def test_selected_bytes(self):
        state = NavigatorState(
            root="/r",
            current_path="/r",
            entries=[
                Entry(name="a", path="/r/a", size_bytes=10),
                Entry(name="b", path="/r/b", size_bytes=20),
            ],
            multi_selected={"/r/b", "/elsewhere/x"},
        )
        assert state.selected_bytes == 20
