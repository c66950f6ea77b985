import csv
import logging
from datetime import datetime
from pathlib import Path

from casket.models import CatalogEntry, DUPLICATE, FAILED, IMPORTED, FileOutcome, RunSummary
from casket.reporting import REPORT_HEADERS, log_summary, write_csv_report


def _summary():
    entry = CatalogEntry(
        original_path=Path("/card/IMG_0001.JPG"),
        stored_path=Path("/archive/2021/07/04/IMG_0001.JPG"),
        thumbnail_path=Path("/thumbs/2021/07/04/IMG_0001.JPG.jpg"),
        capture_date=datetime(2021, 7, 4, 10, 30),
        file_kind="image",
    )
    summary = RunSummary()
    summary.add(FileOutcome(Path("/card/IMG_0001.JPG"), IMPORTED, entry=entry))
    summary.add(FileOutcome(Path("/card/IMG_0002.JPG"), DUPLICATE, stage="catalog", reason="already cataloged"))
    summary.add(FileOutcome(Path("/card/notes.xyz"), FAILED, stage="scan", reason="unsupported file type '.xyz'"))
    summary.add(FileOutcome(Path("/card/broken.jpg"), FAILED, stage="thumbnail", reason="all decoders failed"))
    return summary


def test_summary_counts():
    summary = _summary()
    assert summary.scanned == 4
    assert summary.imported == 1
    assert summary.duplicates == 1
    assert summary.failed == 2
    assert summary.skipped == 3


def test_csv_report_has_one_row_per_file(tmp_path):
    output_csv = tmp_path / "reports" / "run.csv"
    write_csv_report(_summary(), output_csv)

    with open(output_csv, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))

    assert rows[0] == REPORT_HEADERS
    assert len(rows) == 5
    imported = rows[1]
    assert imported[1] == "imported"
    assert imported[4] == str(Path("/archive/2021/07/04/IMG_0001.JPG"))
    failed = rows[3]
    assert failed[:4] == [str(Path("/card/notes.xyz")), "failed", "scan", "unsupported file type '.xyz'"]
    assert failed[4:] == ["", ""]


def test_log_summary_reports_failures_by_stage(caplog):
    with caplog.at_level(logging.INFO):
        log_summary(_summary())

    assert "1 imported" in caplog.text
    assert "3 skipped" in caplog.text
    assert "scan: 1, thumbnail: 1" in caplog.text
    assert "interrupted" not in caplog.text


def test_log_summary_flags_interrupted_runs(caplog):
    summary = RunSummary(interrupted=True)
    with caplog.at_level(logging.INFO):
        log_summary(summary)
    assert "interrupted" in caplog.text
