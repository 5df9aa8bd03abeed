"""
Unit tests for the per-line scanner.

Line shares are temporary folders laid out as ``<share_root>/<address>/Data Server``.
"""

import os

import pytest

from defect_collector.core.models import FileOutcome, LineConfig, LineStatus
from defect_collector.ingest import is_export_file, resolve_line_root

ROW = "01/12/2025,LINE-A,X100,SCRATCH,Handling,ST-04,3"


@pytest.mark.unit
class TestExportFileNames:

    @pytest.mark.parametrize("name", [
        "December-2025_lineA.csv",
        "may-2024_x.csv",
        "DECEMBER-2025_LINEA.CSV",
        "Jan-2026_.csv",
    ])
    def test_matching_names(self, name):
        assert is_export_file(name)

    @pytest.mark.parametrize("name", [
        "December-2025_lineA.txt",
        "December2025_lineA.csv",
        "December-25_lineA.csv",
        "December-2025lineA.csv",
        "12-2025_lineA.csv",
        "summary.csv",
        "_December-2025_lineA.csv",
    ])
    def test_non_matching_names(self, name):
        assert not is_export_file(name)

    def test_default_root_is_unc_path(self):
        assert resolve_line_root("10.20.1.11") == "\\\\10.20.1.11\\Data Server"

    def test_root_from_template(self):
        assert resolve_line_root("line-a", "exports", "/mnt/{address}/{base_folder}") == "/mnt/line-a/exports"


@pytest.mark.unit
class TestLineScanner:

    def test_scan_ingests_exports(self, scanner, defect_store, make_line_folder, write_export, line_a):
        folder = make_line_folder("line-a")
        write_export(folder, "December-2025_lineA.csv", [ROW])

        result = scanner.scan(line_a)

        assert result.status == LineStatus.OK
        assert result.root == str(folder)
        assert result.files_processed == 1
        assert result.inserted == 1
        assert len(defect_store.rows("defect_line_a")) == 1

    def test_non_matching_files_never_read(
        self, scanner, defect_store, make_line_folder, write_export, line_a
    ):
        folder = make_line_folder("line-a")
        write_export(folder, "summary.csv", [ROW])
        write_export(folder, "December-2025_notes.txt", [ROW])

        result = scanner.scan(line_a)

        assert result.files_ignored == 1
        assert result.files == []
        assert defect_store.rows("defect_line_a") == []

    def test_subfolders_not_scanned(self, scanner, defect_store, make_line_folder, write_export, line_a):
        folder = make_line_folder("line-a")
        archive = folder / "archive"
        archive.mkdir()
        write_export(archive, "November-2025_lineA.csv", [ROW])

        result = scanner.scan(line_a)

        assert result.status == LineStatus.OK
        assert result.files == []

    def test_unchanged_file_not_reingested(
        self, scanner, defect_store, make_line_folder, write_export, line_a
    ):
        folder = make_line_folder("line-a")
        write_export(folder, "December-2025_lineA.csv", [ROW])

        scanner.scan(line_a)
        exists_calls = defect_store.exists_calls
        second = scanner.scan(line_a)

        assert second.files_unchanged == 1
        assert second.files == []
        assert defect_store.exists_calls == exists_calls

    def test_changed_file_reingested(
        self, scanner, cache, defect_store, make_line_folder, write_export, line_a
    ):
        folder = make_line_folder("line-a")
        path = write_export(folder, "December-2025_lineA.csv", [ROW])
        scanner.scan(line_a)

        write_export(folder, "December-2025_lineA.csv", [ROW, "02/12/2025,LINE-A,X100,DENT,Tooling,ST-02,1"])
        first_mtime = cache.get(os.path.abspath(path))
        os.utime(path, (first_mtime + 10, first_mtime + 10))

        second = scanner.scan(line_a)

        assert second.files_processed == 1
        assert second.inserted == 1
        assert second.duplicates == 1
        assert cache.get(os.path.abspath(path)) > first_mtime

    def test_unreachable_share(self, scanner, line_a):
        result = scanner.scan(line_a)

        assert result.status == LineStatus.UNREACHABLE
        assert result.error

    def test_line_without_address_skipped(self, scanner):
        result = scanner.scan(LineConfig(name="Line C", ip="", table_name="defect_line_c"))

        assert result.status == LineStatus.SKIPPED
        assert result.root is None

    def test_open_failure_leaves_file_unmarked(
        self, scanner, cache, make_line_folder, write_export, line_a, monkeypatch
    ):
        folder = make_line_folder("line-a")
        path = write_export(folder, "December-2025_lineA.csv", [ROW])

        def locked(path, result):
            raise PermissionError(13, "The process cannot access the file", str(path))

        monkeypatch.setattr(scanner.ingestor, "read_records", locked)
        result = scanner.scan(line_a)

        assert result.status == LineStatus.OK
        assert result.files[0].outcome == FileOutcome.OPEN_FAILED
        assert os.path.abspath(path) not in cache

    def test_partial_file_retried_next_scan(
        self, scanner, cache, defect_store, make_line_folder, write_export, line_a
    ):
        folder = make_line_folder("line-a")
        path = write_export(folder, "December-2025_lineA.csv", [
            ROW,
            "02/12/2025,LINE-A,X100,DENT,Tooling,ST-02,1",
        ])
        defect_store.fail_when = lambda record: record.defect == "DENT"

        first = scanner.scan(line_a)
        assert first.files[0].outcome == FileOutcome.PARTIAL
        assert os.path.abspath(path) not in cache

        defect_store.fail_when = None
        second = scanner.scan(line_a)

        assert second.files[0].outcome == FileOutcome.PROCESSED
        assert second.inserted == 1
        assert second.duplicates == 1
        assert os.path.abspath(path) in cache

    def test_files_processed_in_name_order(
        self, scanner, make_line_folder, write_export, line_a
    ):
        folder = make_line_folder("line-a")
        for name in ["November-2025_b.csv", "December-2025_a.csv", "January-2026_c.csv"]:
            write_export(folder, name, [])

        result = scanner.scan(line_a)

        assert [os.path.basename(f.path) for f in result.files] == [
            "December-2025_a.csv",
            "January-2026_c.csv",
            "November-2025_b.csv",
        ]

    def test_stop_event_cancels_scan(self, scanner, make_line_folder, write_export, line_a):
        folder = make_line_folder("line-a")
        write_export(folder, "December-2025_lineA.csv", [ROW])
        scanner.stop_event.set()

        result = scanner.scan(line_a)

        assert result.status == LineStatus.CANCELLED
        assert result.files == []

    def test_unexpected_error_reported(self, scanner, make_line_folder, write_export, line_a, monkeypatch):
        folder = make_line_folder("line-a")
        write_export(folder, "December-2025_lineA.csv", [ROW])

        def broken(path, table):
            raise RuntimeError("ingestor exploded")

        monkeypatch.setattr(scanner.ingestor, "ingest_file", broken)
        result = scanner.scan(line_a)

        assert result.status == LineStatus.ERROR
        assert "ingestor exploded" in result.error

    def test_lines_write_to_their_own_tables(
        self, scanner, defect_store, make_line_folder, write_export, line_a, line_b
    ):
        write_export(make_line_folder("line-a"), "December-2025_lineA.csv", [ROW])
        write_export(make_line_folder("line-b"), "December-2025_lineB.csv", [ROW])

        scanner.scan(line_a)
        scanner.scan(line_b)

        assert len(defect_store.rows("defect_line_a")) == 1
        assert len(defect_store.rows("defect_line_b")) == 1
