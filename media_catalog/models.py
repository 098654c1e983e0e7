from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import ClassVar, List, Optional, Tuple


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    OTHER = "other"


@dataclass(frozen=True, order=True)
class MediaFormat:
    """Media type tag, e.g. image/jpeg or video/mov."""
    kind: MediaKind
    codec: str

    def __str__(self) -> str:
        return f"{self.kind.value}/{self.codec}"

    @classmethod
    def parse(cls, text: str) -> "MediaFormat":
        kind, sep, codec = text.partition("/")
        if not sep or not codec:
            raise ValueError(f"Not a media format: {text!r}")
        return cls(MediaKind(kind), codec)


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class MediaRecord:
    """
    One catalogued file. Identity is the content hash; only the
    filepath ever changes, and only through the Catalog.
    """
    hash: str
    filepath: Path
    format: MediaFormat

    created: Optional[datetime] = None
    location: Optional[Location] = None
    device: Optional[str] = None
    iso: Optional[int] = None

    def with_path(self, new_path: Path) -> "MediaRecord":
        return replace(self, filepath=Path(new_path))


# --- Extraction results (one variant per media kind) ---

@dataclass
class ExtractedMetadata:
    kind: ClassVar[MediaKind] = MediaKind.OTHER

    format: MediaFormat
    created: Optional[datetime] = None
    location: Optional[Location] = None
    device: Optional[str] = None
    iso: Optional[int] = None


@dataclass
class ImageMetadata(ExtractedMetadata):
    kind: ClassVar[MediaKind] = MediaKind.IMAGE


@dataclass
class VideoMetadata(ExtractedMetadata):
    kind: ClassVar[MediaKind] = MediaKind.VIDEO

    duration_sec: Optional[float] = None


def empty_metadata(media_format: MediaFormat) -> ExtractedMetadata:
    """Blank variant matching the format's kind."""
    if media_format.kind == MediaKind.IMAGE:
        return ImageMetadata(format=media_format)
    if media_format.kind == MediaKind.VIDEO:
        return VideoMetadata(format=media_format)
    return ExtractedMetadata(format=media_format)


@dataclass
class ScanCandidate:
    """
    Represents a file found during a scan, hashed and (best effort) described.
    """
    path: Path
    hash: str
    format: MediaFormat
    metadata: ExtractedMetadata
    size_bytes: int

    def to_record(self, filepath: Optional[Path] = None) -> MediaRecord:
        meta = self.metadata
        return MediaRecord(
            hash=self.hash,
            filepath=Path(filepath) if filepath is not None else self.path,
            format=self.format,
            created=meta.created,
            location=meta.location,
            device=meta.device,
            iso=meta.iso,
        )


# --- Reports ---

@dataclass(frozen=True)
class Diagnostic:
    path: Optional[Path]
    kind: str       # exception class name or a short tag
    message: str


@dataclass
class BatchReport:
    """
    Outcome counts for a batch run (scan, import, normalize) plus one
    diagnostic per non-fatal failure.
    """
    operation: str
    counts: Counter = field(default_factory=Counter)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    cancelled: bool = False

    def record(self, outcome: str, path: Optional[Path] = None, error: Optional[BaseException] = None,
               message: Optional[str] = None):
        self.counts[outcome] += 1
        if error is not None or message is not None:
            self.add_diagnostic(path, error=error, message=message, kind=outcome)

    def add_diagnostic(self, path: Optional[Path], error: Optional[BaseException] = None,
                       message: Optional[str] = None, kind: Optional[str] = None):
        if error is not None:
            kind = type(error).__name__
            message = message or str(error)
        self.diagnostics.append(Diagnostic(path, kind or "diagnostic", message or ""))

    @property
    def imported(self) -> int:
        return self.counts["imported"]

    @property
    def skipped_duplicate(self) -> int:
        return self.counts["skipped_duplicate"]

    @property
    def failed(self) -> int:
        return self.counts["failed"]

    @property
    def moved(self) -> int:
        return self.counts["moved"]

    def summary(self) -> str:
        parts = ", ".join(f"{k}={v}" for k, v in sorted(self.counts.items()))
        state = " (cancelled)" if self.cancelled else ""
        return f"{self.operation}: {parts or 'nothing to do'}{state}"


@dataclass
class ValidationReport:
    missing: List[MediaRecord] = field(default_factory=list)
    hash_mismatch: List[Tuple[MediaRecord, str]] = field(default_factory=list)
    orphans: List[Path] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    checked: int = 0
    cancelled: bool = False

    @property
    def is_consistent(self) -> bool:
        return not (self.missing or self.hash_mismatch or self.orphans or self.diagnostics)

    def summary(self) -> str:
        state = " (cancelled)" if self.cancelled else ""
        return (f"validate: checked={self.checked}, missing={len(self.missing)}, "
                f"hash_mismatch={len(self.hash_mismatch)}, orphans={len(self.orphans)}, "
                f"errors={len(self.diagnostics)}{state}")


@dataclass
class CatalogStats:
    count: int
    count_by_format: Counter
    count_by_device: Counter
    count_by_year: Counter
