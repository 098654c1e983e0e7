import csv
from collections import Counter
from pathlib import Path

from media_catalog.models import BatchReport, CatalogStats, ValidationReport
from media_catalog.reporting import ReportGenerator
from media_catalog.exceptions import HashMismatch


def _read(path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


def test_validation_report_csv(tmp_path, make_record):
    gone = make_record("gone")
    changed = make_record("changed")
    report = ValidationReport(
        missing=[gone],
        hash_mismatch=[(changed, "f" * 64)],
        orphans=[tmp_path / "stray.jpg"],
    )
    out = tmp_path / "reports" / "validation.csv"

    rows_written = ReportGenerator().write_validation_report(report, out)

    rows = _read(out)
    assert rows_written == 3
    assert rows[0] == ["Path", "Status", "Catalogued Hash", "Actual Hash", "Notes"]
    assert [r[1] for r in rows[1:]] == ["Missing", "HashMismatch", "Orphan"]
    assert rows[1][0] == str(gone.filepath)
    assert rows[2][2:4] == [changed.hash, "f" * 64]
    assert rows[3][0] == str(tmp_path / "stray.jpg")


def test_batch_report_csv(tmp_path):
    report = BatchReport("copy_from_directory")
    report.record("imported")
    report.record("imported")
    report.record("skipped_duplicate")
    report.record("failed", Path("/src/x.jpg"), error=HashMismatch("/src/x.jpg", "aa", "bb"))
    out = tmp_path / "batch.csv"

    ReportGenerator().write_batch_report(report, out)

    rows = _read(out)
    assert rows[0] == ["Operation", "Outcome", "Count", "Path", "Error", "Message"]
    counts = {r[1]: r[2] for r in rows[1:] if r[1] != "diagnostic"}
    assert counts == {"failed": "1", "imported": "2", "skipped_duplicate": "1"}
    diag = [r for r in rows if r[1] == "diagnostic"][0]
    assert diag[3] == str(Path("/src/x.jpg"))
    assert diag[4] == "HashMismatch"


def test_batch_report_summary():
    report = BatchReport("normalize_directory_structure")
    assert report.summary() == "normalize_directory_structure: nothing to do"
    report.record("moved")
    report.cancelled = True
    assert report.summary() == "normalize_directory_structure: moved=1 (cancelled)"


def test_format_stats():
    stats = CatalogStats(
        count=3,
        count_by_format=Counter({"image/jpeg": 2, "video/mp4": 1}),
        count_by_device=Counter({"CamX": 2, None: 1}),
        count_by_year=Counter({2020: 3}),
    )
    text = ReportGenerator().format_stats(stats)

    assert text.splitlines()[0] == "Records: 3"
    assert "  image/jpeg: 2" in text
    assert "  Unknown: 1" in text
    assert "  2020: 3" in text
