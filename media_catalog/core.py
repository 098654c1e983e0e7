import logging
from pathlib import Path
from typing import Iterator, Optional, Union

from . import config
from .catalog.catalog import Catalog, normalize_path
from .config import ScanOptions
from .exceptions import RecordNotFound
from .models import BatchReport, CatalogStats, MediaRecord, ValidationReport
from .organization.importer import Importer
from .organization.mover import FileMover
from .organization.normalizer import Normalizer
from .organization.rules import PathTemplate
from .scanning.filesystem import DiskScanner
from .search import Predicate, SearchEngine
from .validation import ValidationMode, Validator


class MediaCatalogApp:
    """
    One catalog plus the library directory it manages.

    The catalog lives in memory for the whole session; nothing is saved
    until write_to_disk is called.
    """

    def __init__(self,
                 library_root: Path,
                 catalog: Optional[Catalog] = None,
                 options: Optional[ScanOptions] = None,
                 snapshot_path: Optional[Path] = None):
        self.library_root = normalize_path(library_root)
        self.catalog = catalog if catalog is not None else Catalog.create()
        self.options = options or ScanOptions()
        self.snapshot_path = normalize_path(snapshot_path) if snapshot_path else self.library_root / config.CATALOG_FILENAME

    @classmethod
    def create(cls, library_root: Path, options: Optional[ScanOptions] = None,
               snapshot_path: Optional[Path] = None) -> "MediaCatalogApp":
        return cls(library_root, Catalog.create(), options, snapshot_path)

    @classmethod
    def read_from_disk(cls, path: Path, library_root: Optional[Path] = None,
                       options: Optional[ScanOptions] = None) -> "MediaCatalogApp":
        """Library root defaults to the directory holding the snapshot."""
        path = normalize_path(path)
        catalog = Catalog.read_from_disk(path)
        return cls(library_root or path.parent, catalog, options, snapshot_path=path)

    def write_to_disk(self, path: Optional[Path] = None) -> Path:
        target = normalize_path(path) if path else self.snapshot_path
        self.catalog.write_to_disk(target)
        return target

    # --- Components ---

    def _scanner(self) -> DiskScanner:
        return DiskScanner(self.options)

    def _importer(self) -> Importer:
        return Importer(self.catalog, scanner=self._scanner(), options=self.options)

    # --- Operations ---

    def add_directory(self, root: Path, cancel=None) -> BatchReport:
        return self._importer().add_directory(root, cancel=cancel)

    def copy_from_directory(self, source_root: Path, dest_root: Optional[Path] = None, cancel=None) -> BatchReport:
        return self._importer().copy_from_directory(source_root, dest_root or self.library_root, cancel=cancel)

    def normalize_directory_structure(self, template: Union[str, PathTemplate] = config.DEFAULT_TEMPLATE,
                                      cancel=None) -> BatchReport:
        normalizer = Normalizer(self.catalog, FileMover(), show_progress=self.options.show_progress)
        return normalizer.normalize_directory_structure(template, self.library_root, cancel=cancel)

    def search(self, predicate: Optional[Predicate] = None, sort_key: Optional[str] = None) -> Iterator[MediaRecord]:
        return SearchEngine(self.catalog).search(predicate, sort_key)

    def validate(self, mode: ValidationMode = ValidationMode.QUICK, cancel=None) -> ValidationReport:
        validator = Validator(self.catalog, scanner=self._scanner(), show_progress=self.options.show_progress)
        return validator.validate(mode, root=self.library_root, cancel=cancel,
                                  ignore_paths=[self.snapshot_path])

    def deindex_missing(self, report: ValidationReport) -> int:
        """
        Drops the records a validation report listed as missing, if their
        file is still absent. Returns how many were removed.
        """
        removed = 0
        with self.catalog.write_lock:
            for record in report.missing:
                current = self.catalog.lookup_by_hash(record.hash)
                if current is None or current.filepath.exists():
                    continue
                self.catalog.remove(record.hash)
                removed += 1
        logging.info(f"Removed {removed} missing records from the catalog")
        return removed

    def stats(self) -> CatalogStats:
        return self.catalog.stats()

    # --- Labels ---

    def _hash_for(self, path_or_hash: Union[str, Path]) -> str:
        record = self.catalog.lookup_by_path(path_or_hash)
        if record is not None:
            return record.hash
        if isinstance(path_or_hash, str) and path_or_hash in self.catalog:
            return path_or_hash
        raise RecordNotFound(str(path_or_hash))

    def add_label(self, path_or_hash: Union[str, Path], label: str):
        self.catalog.add_label(self._hash_for(path_or_hash), label)

    def remove_label(self, path_or_hash: Union[str, Path], label: str) -> bool:
        return self.catalog.remove_label(self._hash_for(path_or_hash), label)
