import logging
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from tqdm import tqdm

from .cancellation import is_cancelled
from .catalog.catalog import Catalog, normalize_path
from .exceptions import FileHashError
from .models import BatchReport, Diagnostic, MediaRecord, ValidationReport
from .scanning.filesystem import DiskScanner
from .scanning.hasher import FileHasher


class ValidationMode(str, Enum):
    QUICK = "quick"          # existence only
    FULL_HASH = "full-hash"  # existence + re-hash


class Validator:
    """
    Compares the catalog with the disk and reports every difference.

    Read-only: neither the catalog nor any file is changed. What to do
    about a missing or altered file is up to whoever reads the report.
    """

    def __init__(self,
                 catalog: Catalog,
                 hasher: Optional[FileHasher] = None,
                 scanner: Optional[DiskScanner] = None,
                 show_progress: bool = False):
        self.catalog = catalog
        self.hasher = hasher or FileHasher()
        self.scanner = scanner or DiskScanner(hasher=self.hasher)
        self.show_progress = show_progress

    def validate(self,
                 mode: ValidationMode = ValidationMode.QUICK,
                 root: Optional[Path] = None,
                 cancel=None,
                 ignore_paths: Iterable[Path] = ()) -> ValidationReport:
        mode = ValidationMode(mode)
        report = ValidationReport()

        # One consistent view for both passes
        with self.catalog.write_lock:
            records = list(self.catalog.all())
            known_paths = self.catalog.paths()

        logging.info(f"Validating {len(records)} records (mode={mode.value})")
        for record in tqdm(records, desc="Validating", unit="file", disable=not self.show_progress):
            if is_cancelled(cancel):
                report.cancelled = True
                break
            self._check_record(record, mode, report)

        if root is not None and not report.cancelled:
            ignored = {normalize_path(p) for p in ignore_paths}
            self._find_orphans(normalize_path(root), known_paths | ignored, report, cancel)

        logging.info(report.summary())
        return report

    def _check_record(self, record: MediaRecord, mode: ValidationMode, report: ValidationReport):
        report.checked += 1
        path = record.filepath
        try:
            if not path.is_file():
                logging.warning(f"Missing: {path}")
                report.missing.append(record)
                return
        except OSError as e:
            report.diagnostics.append(Diagnostic(path, type(e).__name__, str(e)))
            return

        if mode != ValidationMode.FULL_HASH:
            return

        try:
            actual = self.hasher.compute_hash(path)
        except FileHashError as e:
            report.diagnostics.append(Diagnostic(path, type(e).__name__, str(e)))
            return
        if actual != record.hash:
            logging.warning(f"Content changed: {path} (catalogued {record.hash}, now {actual})")
            report.hash_mismatch.append((record, actual))

    def _find_orphans(self, root: Path, known_paths, report: ValidationReport, cancel):
        if not root.is_dir():
            report.diagnostics.append(Diagnostic(root, "FileNotFoundError", f"Managed directory not found: {root}"))
            return

        walk_report = BatchReport("orphan_walk")
        for path in self.scanner.iter_files(root, report=walk_report):
            if is_cancelled(cancel):
                report.cancelled = True
                break
            if path not in known_paths:
                report.orphans.append(path)
        report.diagnostics.extend(walk_report.diagnostics)
