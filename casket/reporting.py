import csv
import logging
from pathlib import Path

from .models import RunSummary

REPORT_HEADERS = [
    "Source Path",
    "Status",
    "Stage",
    "Reason",
    "Stored Path",
    "Thumbnail Path",
]


def log_summary(summary: RunSummary):
    """Writes the end-of-run counts to the log."""
    logging.info(
        f"Run summary: {summary.scanned} file(s) seen, {summary.imported} imported, "
        f"{summary.skipped} skipped ({summary.duplicates} already cataloged, {summary.failed} failed)."
    )
    if summary.failed:
        by_stage = {}
        for outcome in summary.outcomes:
            if outcome.status == "failed":
                by_stage[outcome.stage] = by_stage.get(outcome.stage, 0) + 1
        detail = ", ".join(f"{stage}: {n}" for stage, n in sorted(by_stage.items()))
        logging.warning(f"Failures by stage: {detail}")
    if summary.interrupted:
        logging.warning("Run was interrupted before every file was processed.")


def write_csv_report(summary: RunSummary, output_csv: Path):
    """One line per file seen during the run."""
    logging.info(f"Writing import report to {output_csv}")
    output_csv.parent.mkdir(parents=True, exist_ok=True)
    with open(output_csv, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(REPORT_HEADERS)
        for outcome in summary.outcomes:
            entry = outcome.entry
            writer.writerow([
                str(outcome.source_path),
                outcome.status,
                outcome.stage or "",
                outcome.reason or "",
                str(entry.stored_path) if entry else "",
                str(entry.thumbnail_path) if entry else "",
            ])
