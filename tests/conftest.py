import pytest
from datetime import datetime
from pathlib import Path

from media_catalog.catalog.catalog import Catalog
from media_catalog.config import ScanOptions
from media_catalog.metadata.extract import MetadataExtractor
from media_catalog.models import MediaFormat, MediaKind, MediaRecord, empty_metadata
from media_catalog.scanning.hasher import hash_bytes

JPEG = MediaFormat(MediaKind.IMAGE, "jpeg")
MP4 = MediaFormat(MediaKind.VIDEO, "mp4")


@pytest.fixture
def catalog():
    """Returns an empty in-memory catalog."""
    return Catalog.create()


@pytest.fixture
def options():
    """Sequential, no exiftool, no progress bars."""
    return ScanOptions(max_workers=1, use_exiftool=False)


@pytest.fixture
def no_metadata(monkeypatch):
    """Skips real metadata extraction; every file comes back with an empty variant."""
    monkeypatch.setattr(MetadataExtractor, "extract", lambda self, path, fmt: empty_metadata(fmt))


@pytest.fixture
def make_record(tmp_path):
    """Factory for records whose hash is derived from a content string."""
    def _make(content="x", name=None, fmt=JPEG, **kwargs):
        path = Path(name) if name and Path(name).is_absolute() else tmp_path / (name or f"{content}.jpg")
        return MediaRecord(hash=hash_bytes(content.encode()), filepath=path, format=fmt, **kwargs)
    return _make


@pytest.fixture
def write_file():
    """Writes bytes to a path, creating parent directories."""
    def _write(path: Path, data: bytes) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path
    return _write


def dt(year, month=1, day=1, hour=0, minute=0, second=0):
    return datetime(year, month, day, hour, minute, second)
