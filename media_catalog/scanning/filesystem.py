import os
import logging
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Deque, Iterable, Iterator, Optional, Set

from PIL import Image

from .. import config
from ..cancellation import is_cancelled
from ..config import ScanOptions
from ..metadata.extract import MetadataExtractor
from ..models import BatchReport, MediaFormat, MediaKind, ScanCandidate, empty_metadata
from .hasher import FileHasher


@dataclass
class _FileResult:
    """What a worker hands back; the report is only touched on the consuming thread."""
    path: Path
    candidate: Optional[ScanCandidate] = None
    outcome: str = "scanned"
    error: Optional[Exception] = None


def is_ignored_name(name: str) -> bool:
    """Catalog snapshots, our own temp files and OS junk are never media."""
    if name in config.IGNORED_FILENAMES:
        return True
    if name.startswith(config.TEMP_PREFIX) and name.endswith(config.TEMP_SUFFIX):
        return True
    return name.startswith("._")


class DiskScanner:
    def __init__(self,
                 options: Optional[ScanOptions] = None,
                 hasher: Optional[FileHasher] = None,
                 extractor: Optional[MetadataExtractor] = None):
        self.options = options or ScanOptions()
        self.hasher = hasher or FileHasher()
        self.metadata = extractor or MetadataExtractor(use_exiftool=self.options.use_exiftool)

    def scan(self,
             root: Path,
             report: Optional[BatchReport] = None,
             cancel=None,
             skip_dirs: Optional[Set[Path]] = None) -> Iterator[ScanCandidate]:
        """
        Generator that yields a ScanCandidate for every supported file in root.

        Order follows the directory walk (sorted, depth-first) whatever the
        worker count. Unsupported files, hash failures and extraction
        failures land in `report`; only the first two drop the file.
        """
        report = report if report is not None else BatchReport("scan")
        root = Path(root)
        files = self.iter_files(root, skip_dirs, report=report)

        if self.options.max_workers <= 1:
            results = (self._process_single_file(p) for p in self._until_cancelled(files, cancel, report))
            for result in results:
                candidate = self._collect(result, report)
                if candidate is not None:
                    yield candidate
            return

        yield from self._scan_parallel(files, report, cancel)

    def _scan_parallel(self, files: Iterable[Path], report: BatchReport, cancel) -> Iterator[ScanCandidate]:
        """
        Bounded work queue: at most `window` files are hashed ahead of the consumer.
        Results are drained strictly in submission order.
        """
        workers = self.options.max_workers
        window = workers * config.SCAN_WINDOW_PER_WORKER
        pending: Deque[Future] = deque()

        with ThreadPoolExecutor(max_workers=workers) as executor:
            try:
                for path in self._until_cancelled(files, cancel, report):
                    pending.append(executor.submit(self._process_single_file, path))
                    if len(pending) >= window:
                        candidate = self._collect(pending.popleft().result(), report)
                        if candidate is not None:
                            yield candidate

                while pending:
                    if is_cancelled(cancel):
                        report.cancelled = True
                        break
                    candidate = self._collect(pending.popleft().result(), report)
                    if candidate is not None:
                        yield candidate
            finally:
                for future in pending:
                    future.cancel()

    def _until_cancelled(self, files: Iterable[Path], cancel, report: BatchReport) -> Iterator[Path]:
        for path in files:
            if is_cancelled(cancel):
                logging.info("Scan cancelled")
                report.cancelled = True
                return
            yield path

    def _collect(self, result: _FileResult, report: BatchReport) -> Optional[ScanCandidate]:
        if result.outcome == "unsupported":
            report.record("unsupported")
            return None
        if result.outcome == "failed":
            logging.error(f"Failed to scan {result.path}: {result.error}")
            report.record("failed", result.path, error=result.error)
            return None
        if result.error is not None:
            # Extraction failed but the file still gets catalogued
            logging.warning(f"Metadata extraction failed for {result.path}: {result.error}")
            report.record("extraction_failed", result.path, error=result.error)
        return result.candidate

    def _process_single_file(self, path: Path) -> _FileResult:
        """Classify, hash and describe one file. Runs on a worker thread."""
        try:
            media_format = self.classify(path)
            if media_format is None:
                return _FileResult(path, outcome="unsupported")

            stat_result = path.stat()
            file_hash = self.hasher.compute_hash(path)
        except Exception as e:
            return _FileResult(path, outcome="failed", error=e)

        extraction_error = None
        try:
            meta = self.metadata.extract(path, media_format)
        except Exception as e:
            # Whatever the extractor raises, the file is still catalogued
            meta = empty_metadata(media_format)
            extraction_error = e

        if meta.created is None and self.options.mtime_fallback_for_created:
            meta.created = datetime.fromtimestamp(stat_result.st_mtime)

        candidate = ScanCandidate(
            path=path,
            hash=file_hash,
            format=media_format,
            metadata=meta,
            size_bytes=stat_result.st_size,
        )
        return _FileResult(path, candidate=candidate, error=extraction_error)

    def classify(self, path: Path) -> Optional[MediaFormat]:
        """Extension lookup first, content sniffing for anything unrecognised."""
        if path.name.startswith("._"):
            return None
        ext = path.suffix.lower()
        if ext in config.IMAGE_EXTS:
            return MediaFormat(MediaKind.IMAGE, config.IMAGE_EXTS[ext])
        if ext in config.VIDEO_EXTS:
            return MediaFormat(MediaKind.VIDEO, config.VIDEO_EXTS[ext])
        return self._sniff(path)

    def _sniff(self, path: Path) -> Optional[MediaFormat]:
        with path.open('rb') as f:
            head = f.read(12)

        # ISO base media (mp4/mov/heic): size(4) + 'ftyp' + major brand(4)
        if len(head) >= 12 and head[4:8] == b'ftyp':
            brand = head[8:12].decode('latin-1')
            if brand in config.FTYP_IMAGE_BRANDS:
                return MediaFormat(MediaKind.IMAGE, config.FTYP_IMAGE_BRANDS[brand])
            if brand in config.FTYP_VIDEO_BRANDS:
                return MediaFormat(MediaKind.VIDEO, config.FTYP_VIDEO_BRANDS[brand])
            return None

        try:
            with Image.open(path) as im:
                pil_format = im.format
        except (OSError, ValueError, Image.DecompressionBombError):
            return None
        if not pil_format:
            return None
        return MediaFormat(MediaKind.IMAGE, config.PIL_FORMAT_TO_CODEC.get(pil_format, pil_format.lower()))

    def iter_files(self,
                   root: Path,
                   skip_dirs: Optional[Set[Path]] = None,
                   report: Optional[BatchReport] = None) -> Iterator[Path]:
        """Depth-first walker using os.scandir and an explicit stack."""
        skip = {Path(os.path.abspath(d)) for d in (skip_dirs or set())}
        stack = [Path(os.path.abspath(root))]
        while stack:
            current = stack.pop()
            if current in skip:
                continue

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                logging.warning(f"Cannot read directory {current}: {e}")
                if report is not None:
                    report.add_diagnostic(current, error=e)
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: (e.name.lower(), e.name))

            dirs = []
            files = []
            for e in entries:
                if e.is_dir(follow_symlinks=False):
                    dirs.append(Path(e.path))
                elif e.is_file(follow_symlinks=False) and not is_ignored_name(e.name):
                    files.append(Path(e.path))

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)

            for f in files:
                yield f
