import csv
import logging
from pathlib import Path

from .models import BatchReport, CatalogStats, ValidationReport


class ReportGenerator:
    """Writes batch and validation reports out as CSV for later review."""

    def write_validation_report(self, report: ValidationReport, output_csv: Path) -> int:
        """
        One row per discrepancy. Returns the number of rows written.
        """
        headers = ["Path", "Status", "Catalogued Hash", "Actual Hash", "Notes"]
        rows = []
        for record in report.missing:
            rows.append([str(record.filepath), "Missing", record.hash, "", "Indexed, file absent"])
        for record, actual in report.hash_mismatch:
            rows.append([str(record.filepath), "HashMismatch", record.hash, actual, "Content changed"])
        for path in report.orphans:
            rows.append([str(path), "Orphan", "", "", "File present, not indexed"])
        for diag in report.diagnostics:
            rows.append([str(diag.path or ""), "Error", "", "", f"{diag.kind}: {diag.message}"])

        self._write(output_csv, headers, rows)
        logging.info(f"Validation report written: {output_csv} ({len(rows)} rows)")
        return len(rows)

    def write_batch_report(self, report: BatchReport, output_csv: Path) -> int:
        """Counts first, then one row per diagnostic."""
        headers = ["Operation", "Outcome", "Count", "Path", "Error", "Message"]
        rows = [[report.operation, outcome, count, "", "", ""] for outcome, count in sorted(report.counts.items())]
        if report.cancelled:
            rows.append([report.operation, "cancelled", 1, "", "", ""])
        for diag in report.diagnostics:
            rows.append([report.operation, "diagnostic", "", str(diag.path or ""), diag.kind, diag.message])

        self._write(output_csv, headers, rows)
        logging.info(f"Batch report written: {output_csv} ({len(rows)} rows)")
        return len(rows)

    def format_stats(self, stats: CatalogStats) -> str:
        lines = [f"Records: {stats.count}"]
        for title, counter in (("By format", stats.count_by_format),
                               ("By device", stats.count_by_device),
                               ("By year", stats.count_by_year)):
            lines.append(f"{title}:")
            for key, count in sorted(counter.items(), key=lambda kv: (-kv[1], str(kv[0]))):
                lines.append(f"  {key if key is not None else 'Unknown'}: {count}")
        return "\n".join(lines)

    def _write(self, output_csv: Path, headers, rows):
        output_csv = Path(output_csv)
        output_csv.parent.mkdir(parents=True, exist_ok=True)
        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(headers)
            writer.writerows(rows)
