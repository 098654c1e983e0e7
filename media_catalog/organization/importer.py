import logging
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from ..cancellation import is_cancelled
from ..catalog.catalog import Catalog, normalize_path
from ..config import ScanOptions
from ..exceptions import (
    CatalogIOError,
    DuplicateHash,
    DuplicatePath,
    FileHashError,
    FileOperationError,
)
from ..models import BatchReport, ScanCandidate
from ..scanning.filesystem import DiskScanner
from .mover import FileMover


class Importer:
    """
    Ingestion: scanner candidates in, catalog records out.

    One candidate at a time, under the catalog write lock, so the
    "is this hash new?" check and the insert cannot interleave with
    another writer in this process.
    """

    def __init__(self,
                 catalog: Catalog,
                 scanner: Optional[DiskScanner] = None,
                 mover: Optional[FileMover] = None,
                 options: Optional[ScanOptions] = None):
        self.catalog = catalog
        self.options = options or (scanner.options if scanner else ScanOptions())
        self.scanner = scanner or DiskScanner(self.options)
        self.mover = mover or FileMover(self.scanner.hasher)

    def copy_from_directory(self, source_root: Path, dest_root: Path, cancel=None) -> BatchReport:
        """
        Copies every not-yet-catalogued file under source_root into the same
        relative location under dest_root and catalogues the copy.
        """
        source_root = normalize_path(source_root)
        dest_root = normalize_path(dest_root)
        if not source_root.is_dir():
            raise CatalogIOError(f"Source directory not found: {source_root}")
        if source_root == dest_root:
            raise CatalogIOError(f"Source and destination are the same directory: {source_root}")
        try:
            dest_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CatalogIOError(f"Cannot open destination {dest_root}: {e}") from e
        if not dest_root.is_dir():
            raise CatalogIOError(f"Destination is not a directory: {dest_root}")

        logging.info(f"Importing {source_root} -> {dest_root}")
        report = BatchReport("copy_from_directory")

        # A library nested inside the source must not be re-imported into itself
        skip_dirs = {dest_root} if source_root in dest_root.parents else set()
        candidates = self.scanner.scan(source_root, report=report, cancel=cancel, skip_dirs=skip_dirs)

        for candidate in tqdm(candidates, desc="Importing", unit="file", disable=not self.options.show_progress):
            if is_cancelled(cancel):
                report.cancelled = True
                break
            dest = dest_root / candidate.path.relative_to(source_root)
            self._import_one(candidate, dest, report)

        if is_cancelled(cancel):
            report.cancelled = True
        logging.info(report.summary())
        return report

    def _import_one(self, candidate: ScanCandidate, dest: Path, report: BatchReport):
        with self.catalog.write_lock:
            existing = self.catalog.lookup_by_hash(candidate.hash)
            if existing is not None:
                logging.debug(f"{candidate.path} already catalogued as {existing.filepath}")
                report.record("skipped_duplicate")
                return

            if self.catalog.lookup_by_path(dest) is not None:
                report.record("failed", candidate.path, error=DuplicatePath(dest))
                return

            try:
                self.mover.copy_verified(candidate.path, dest, candidate.hash)
            except (FileOperationError, FileHashError) as e:
                logging.error(f"Failed to import {candidate.path}: {e}")
                report.record("failed", candidate.path, error=e)
                return

            try:
                self.catalog.insert(candidate.to_record(dest))
            except (DuplicateHash, DuplicatePath) as e:
                # Only catalogued files may live in the library
                dest.unlink(missing_ok=True)
                logging.error(f"Failed to catalogue {dest}: {e}")
                report.record("failed", candidate.path, error=e)
                return

        report.record("imported")

    def add_directory(self, root: Path, cancel=None) -> BatchReport:
        """Catalogues files where they already are; nothing is copied or moved."""
        root = normalize_path(root)
        if not root.is_dir():
            raise CatalogIOError(f"Directory not found: {root}")

        logging.info(f"Adding directory {root}")
        report = BatchReport("add_directory")

        for candidate in tqdm(self.scanner.scan(root, report=report, cancel=cancel),
                              desc="Indexing", unit="file", disable=not self.options.show_progress):
            if is_cancelled(cancel):
                report.cancelled = True
                break
            self._add_one(candidate, report)

        if is_cancelled(cancel):
            report.cancelled = True
        logging.info(report.summary())
        return report

    def _add_one(self, candidate: ScanCandidate, report: BatchReport):
        with self.catalog.write_lock:
            at_path = self.catalog.lookup_by_path(candidate.path)
            if at_path is not None:
                if at_path.hash == candidate.hash:
                    report.record("unchanged")
                else:
                    # Content changed under a catalogued path; reported, not repaired
                    report.record(
                        "failed", candidate.path, error=DuplicatePath(candidate.path),
                        message=f"catalogued as {at_path.hash} but content now hashes to {candidate.hash}",
                    )
                return

            if candidate.hash in self.catalog:
                report.record("skipped_duplicate")
                return

            self.catalog.insert(candidate.to_record())
        report.record("added")
