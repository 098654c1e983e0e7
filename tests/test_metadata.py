import pytest
from datetime import datetime

from PIL import Image

import media_catalog.metadata.extract as extract_module
from media_catalog.exceptions import MetadataExtractionFailed
from media_catalog.metadata.extract import MetadataExtractor
from media_catalog.models import ImageMetadata, Location, MediaFormat, MediaKind, VideoMetadata

from conftest import JPEG, MP4


# Mock MediaInfo class structure
class MockTrack:
    def __init__(self, **kwargs):
        self.track_type = "General"
        for k, v in kwargs.items():
            setattr(self, k, v)


class MockMediaInfo:
    def __init__(self, tracks):
        self.tracks = tracks

    @classmethod
    def parse(cls, path):
        return cls([MockTrack(
            duration=5000,
            recorded_date="2023-01-01 12:00:00",
            device_model="TestCam",
            xyz="+37.7749-122.4194+010.000/",
        )])


class BrokenMediaInfo:
    @classmethod
    def parse(cls, path):
        raise OSError("libmediainfo not found")


# Stand-ins for exifread's IfdTag and Ratio
class FakeRatio:
    def __init__(self, num, den=1):
        self.num = num
        self.den = den


class FakeTag:
    def __init__(self, printable, values=None):
        self.printable = printable
        self.values = values if values is not None else [printable]

    def __str__(self):
        return self.printable


def test_video_metadata_extraction(monkeypatch, tmp_path):
    monkeypatch.setattr(extract_module, "MediaInfo", MockMediaInfo)

    vid = tmp_path / "test.mp4"
    vid.touch()

    meta = MetadataExtractor(use_exiftool=False).extract(vid, MP4)

    assert isinstance(meta, VideoMetadata)
    assert meta.created == datetime(2023, 1, 1, 12, 0, 0)
    assert meta.duration_sec == 5.0
    assert meta.device == "TestCam"
    assert meta.location == Location(37.7749, -122.4194)


def test_video_mediainfo_failure_without_exiftool(monkeypatch, tmp_path):
    monkeypatch.setattr(extract_module, "MediaInfo", BrokenMediaInfo)
    vid = tmp_path / "test.mov"
    vid.touch()

    with pytest.raises(MetadataExtractionFailed):
        MetadataExtractor(use_exiftool=False).extract(vid, MediaFormat(MediaKind.VIDEO, "mov"))


def test_video_falls_back_to_exiftool(monkeypatch, tmp_path):
    monkeypatch.setattr(extract_module, "MediaInfo", BrokenMediaInfo)
    monkeypatch.setattr(
        extract_module.subprocess, "check_output",
        lambda cmd, **kw: '[{"CreateDate": "2019:07:04 10:00:00", "Model": "Phone", "Duration": 12.5}]',
    )
    vid = tmp_path / "test.mp4"
    vid.touch()

    meta = MetadataExtractor(use_exiftool=True).extract(vid, MP4)

    assert meta.created == datetime(2019, 7, 4, 10, 0, 0)
    assert meta.device == "Phone"
    assert meta.duration_sec == 12.5


def test_image_exif_from_real_jpeg(tmp_path):
    path = tmp_path / "photo.jpg"
    exif = Image.Exif()
    exif[0x0110] = "CamX"                 # Model
    exif[0x0132] = "2021:05:06 07:08:09"  # DateTime
    Image.new("RGB", (8, 8), "blue").save(path, exif=exif)

    meta = MetadataExtractor(use_exiftool=False).extract(path, JPEG)

    assert isinstance(meta, ImageMetadata)
    assert meta.device == "CamX"
    assert meta.created == datetime(2021, 5, 6, 7, 8, 9)


def test_image_without_exif_is_empty(tmp_path):
    path = tmp_path / "plain.jpg"
    Image.new("RGB", (8, 8)).save(path)

    meta = MetadataExtractor(use_exiftool=False).extract(path, JPEG)

    assert meta.created is None
    assert meta.device is None
    assert meta.location is None


def test_image_tags_parsed(monkeypatch, tmp_path):
    tags = {
        "EXIF DateTimeOriginal": FakeTag("2020:02:03 04:05:06"),
        "Image DateTime": FakeTag("1999:01:01 00:00:00"),
        "Image Make": FakeTag("Maker"),
        "Image Model": FakeTag("Model 7 "),
        "EXIF ISOSpeedRatings": FakeTag("800", [800]),
        "GPS GPSLatitude": FakeTag("[48, 51, 24]", [FakeRatio(48), FakeRatio(51), FakeRatio(24)]),
        "GPS GPSLatitudeRef": FakeTag("N"),
        "GPS GPSLongitude": FakeTag("[2, 21, 0]", [FakeRatio(2), FakeRatio(21), FakeRatio(0)]),
        "GPS GPSLongitudeRef": FakeTag("W"),
    }
    monkeypatch.setattr(extract_module.exifread, "process_file", lambda f, details=False: tags)
    path = tmp_path / "a.jpg"
    path.write_bytes(b"jpeg")

    meta = MetadataExtractor(use_exiftool=False).get_image_metadata(path, JPEG)

    assert meta.created == datetime(2020, 2, 3, 4, 5, 6)
    assert meta.device == "Model 7"
    assert meta.iso == 800
    assert meta.location.latitude == pytest.approx(48.8566, abs=1e-4)
    assert meta.location.longitude == pytest.approx(-2.35, abs=1e-4)


def test_image_bad_gps_is_ignored(monkeypatch, tmp_path):
    tags = {
        "Image Model": FakeTag("CamY"),
        "GPS GPSLatitude": FakeTag("[0, 0, 0]", [FakeRatio(1, 0)]),
        "GPS GPSLatitudeRef": FakeTag("N"),
        "GPS GPSLongitude": FakeTag("[0, 0, 0]", [FakeRatio(1)]),
        "GPS GPSLongitudeRef": FakeTag("E"),
    }
    monkeypatch.setattr(extract_module.exifread, "process_file", lambda f, details=False: tags)
    path = tmp_path / "a.jpg"
    path.write_bytes(b"jpeg")

    meta = MetadataExtractor(use_exiftool=False).get_image_metadata(path, JPEG)

    assert meta.device == "CamY"
    assert meta.location is None


def test_image_reader_crash_without_exiftool(monkeypatch, tmp_path):
    def explode(f, details=False):
        raise ValueError("corrupt IFD")
    monkeypatch.setattr(extract_module.exifread, "process_file", explode)
    path = tmp_path / "a.jpg"
    path.write_bytes(b"jpeg")

    with pytest.raises(MetadataExtractionFailed):
        MetadataExtractor(use_exiftool=False).extract(path, JPEG)


def test_other_kind_is_empty(tmp_path):
    path = tmp_path / "x.bin"
    path.write_bytes(b"?")
    fmt = MediaFormat(MediaKind.OTHER, "bin")

    meta = MetadataExtractor().extract(path, fmt)
    assert meta.format == fmt
    assert meta.created is None


@pytest.mark.parametrize("text,expected", [
    ("2023-01-01 12:00:00", datetime(2023, 1, 1, 12, 0, 0)),
    ("UTC 2023-01-01 12:00:00", datetime(2023, 1, 1, 12, 0, 0)),
    ("2023-01-01T14:00:00+02:00", datetime(2023, 1, 1, 12, 0, 0)),
    ("2023:01:01 12:00:00", datetime(2023, 1, 1, 12, 0, 0)),
    ("2023:01:01 12:00:00.123", datetime(2023, 1, 1, 12, 0, 0)),
    ("garbage", None),
    ("", None),
])
def test_parse_flexible_date(text, expected):
    assert MetadataExtractor()._parse_flexible_date(text) == expected


def test_media_format_parse():
    assert MediaFormat.parse("image/jpeg") == JPEG
    assert str(MP4) == "video/mp4"
    with pytest.raises(ValueError):
        MediaFormat.parse("jpeg")
    with pytest.raises(ValueError):
        MediaFormat.parse("sound/wav")
