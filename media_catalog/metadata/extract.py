import json
import logging
import re
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any

import exifread
from pymediainfo import MediaInfo

from .. import config
from ..exceptions import MetadataExtractionFailed
from ..models import (
    ExtractedMetadata,
    ImageMetadata,
    Location,
    MediaFormat,
    MediaKind,
    VideoMetadata,
    empty_metadata,
)

# "+37.7749-122.4194+010.000/" style coordinates written by phones into video containers
ISO6709_RE = re.compile(r'^([+-]\d+(?:\.\d+)?)([+-]\d+(?:\.\d+)?)')


class MetadataExtractor:
    """
    Unified interface for extracting metadata from various file types.

    Strategies:
      - Images: Uses 'exifread' (fast, Python-native) -> falls back to 'exiftool'.
      - Video: Uses 'pymediainfo' (fast wrapper) -> falls back to 'exiftool' (robust).

    Every public method either returns a (possibly empty) metadata variant
    or raises MetadataExtractionFailed. It never touches the file beyond reading it.
    """

    def __init__(self, use_exiftool: bool = True):
        self.use_exiftool = use_exiftool

    def extract(self, path: Path, media_format: MediaFormat) -> ExtractedMetadata:
        """Picks the strategy for the format's kind once, up front."""
        if media_format.kind == MediaKind.IMAGE:
            return self.get_image_metadata(path, media_format)
        if media_format.kind == MediaKind.VIDEO:
            return self.get_video_metadata(path, media_format)
        return empty_metadata(media_format)

    def get_image_metadata(self, path: Path, media_format: MediaFormat) -> ImageMetadata:
        meta = ImageMetadata(format=media_format)
        try:
            with path.open('rb') as f:
                # details=False speeds up processing significantly
                tags = exifread.process_file(f, details=False)
        except Exception as e:
            if not self.use_exiftool:
                raise MetadataExtractionFailed(f"ExifRead failed for {path}: {e}") from e
            logging.debug(f"ExifRead failed for {path}: {e}; trying exiftool")
            return self._from_exiftool_or_fail(path, meta, e)

        if not tags:
            logging.debug(f"No EXIF tags found for {path}")
            if self.use_exiftool:
                self._try_exiftool(path, meta)
            return meta

        meta.created = self._parse_exif_date(tags)
        meta.device = self._first_tag(tags, config.DEVICE_TAGS)
        meta.iso = self._parse_exif_iso(tags)
        meta.location = self._parse_exif_gps(tags)
        return meta

    def get_video_metadata(self, path: Path, media_format: MediaFormat) -> VideoMetadata:
        meta = VideoMetadata(format=media_format)

        # Strategy 1: Try MediaInfo (Fastest, usually sufficient)
        mediainfo_error: Optional[Exception] = None
        try:
            self._extract_mediainfo(path, meta)
            if meta.created or meta.duration_sec:
                return meta
        except Exception as e:
            mediainfo_error = e
            logging.debug(f"MediaInfo failed for {path}: {e}")

        # Strategy 2: Try ExifTool (Robust fallback, requires system install)
        if self.use_exiftool:
            if mediainfo_error is None:
                self._try_exiftool(path, meta)
                return meta
            return self._from_exiftool_or_fail(path, meta, mediainfo_error)

        if mediainfo_error is not None:
            raise MetadataExtractionFailed(f"MediaInfo failed for {path}: {mediainfo_error}") from mediainfo_error
        return meta

    # --- Internal Extraction Helpers ---

    def _try_exiftool(self, path: Path, meta: ExtractedMetadata):
        """Best-effort top-up; a missing or failing exiftool is not an error here."""
        try:
            self._extract_exiftool(path, meta)
        except Exception as e:
            # Only log at debug level to avoid spamming console if tool is missing
            logging.debug(f"ExifTool failed for {path}: {e}")

    def _from_exiftool_or_fail(self, path: Path, meta, first_error: Exception):
        try:
            self._extract_exiftool(path, meta)
        except Exception as e:
            raise MetadataExtractionFailed(
                f"No metadata readable for {path}: {first_error}; exiftool: {e}"
            ) from e
        return meta

    def _extract_mediainfo(self, path: Path, meta: VideoMetadata):
        """Parses video using pymediainfo."""
        mi = MediaInfo.parse(str(path))

        for track in mi.tracks:
            if track.track_type != "General":
                continue
            if getattr(track, "duration", None):
                # MediaInfo duration is in milliseconds
                meta.duration_sec = float(track.duration) / 1000.0

            # Priority: Original -> Encoded -> Tagged
            # We check multiple fields because different cameras write to different tags.
            for field in ("recorded_date", "encoded_date", "tagged_date"):
                val = getattr(track, field, None)
                if val:
                    dt = self._parse_flexible_date(str(val))
                    if dt:
                        meta.created = dt
                        break

            device = (
                getattr(track, "com_apple_quicktime_model", None) or
                getattr(track, "device_model", None) or
                getattr(track, "performer", None)
            )
            if device:
                meta.device = str(device).strip()

            coords = (
                getattr(track, "xyz", None) or
                getattr(track, "com_apple_quicktime_location_iso6709", None)
            )
            if coords:
                meta.location = self._parse_iso6709(str(coords))

    def _extract_exiftool(self, path: Path, meta: ExtractedMetadata):
        """
        Wraps the 'exiftool' command line utility.
        Must be installed and on the system PATH.
        """
        # -j = JSON output
        # -n = No formatting (returns seconds as float, signed decimal GPS, clean dates)
        cmd = ["exiftool", "-j", "-n", str(path)]
        out = subprocess.check_output(cmd, stderr=subprocess.DEVNULL, text=True, timeout=60)
        data_list = json.loads(out)
        if not data_list:
            return

        tags: Dict[str, Any] = data_list[0]

        if meta.created is None:
            for field in config.EXIFTOOL_DATE_FIELDS:
                if tags.get(field):
                    dt = self._parse_flexible_date(str(tags[field]))
                    if dt:
                        meta.created = dt
                        break

        if meta.device is None:
            for field in config.EXIFTOOL_DEVICE_FIELDS:
                if tags.get(field):
                    meta.device = str(tags[field]).strip()
                    break

        if meta.iso is None:
            for field in config.EXIFTOOL_ISO_FIELDS:
                try:
                    meta.iso = int(float(tags[field]))
                    break
                except (KeyError, TypeError, ValueError):
                    continue

        if meta.location is None and "GPSLatitude" in tags and "GPSLongitude" in tags:
            try:
                meta.location = Location(float(tags["GPSLatitude"]), float(tags["GPSLongitude"]))
            except (TypeError, ValueError):
                pass

        if isinstance(meta, VideoMetadata) and meta.duration_sec is None and tags.get("Duration"):
            try:
                meta.duration_sec = float(tags["Duration"])
            except ValueError:
                pass

    def _first_tag(self, tags, names) -> Optional[str]:
        for name in names:
            if name in tags:
                value = str(tags[name]).strip()
                if value:
                    return value
        return None

    def _parse_exif_date(self, tags) -> Optional[datetime]:
        """Helper to parse standard EXIF date strings from exifread."""
        for tag in config.DATE_TAGS:
            if tag in tags:
                try:
                    # EXIF format is usually "YYYY:MM:DD HH:MM:SS"
                    dt_str = str(tags[tag]).replace(':', '-', 2)
                    return datetime.strptime(dt_str, "%Y-%m-%d %H:%M:%S")
                except ValueError:
                    continue
        return None

    def _parse_exif_iso(self, tags) -> Optional[int]:
        for tag in config.ISO_TAGS:
            if tag in tags:
                values = getattr(tags[tag], "values", None) or [str(tags[tag])]
                try:
                    return int(values[0])
                except (TypeError, ValueError):
                    continue
        return None

    def _parse_exif_gps(self, tags) -> Optional[Location]:
        try:
            lat = self._dms_to_degrees(tags['GPS GPSLatitude'].values, str(tags['GPS GPSLatitudeRef']))
            lon = self._dms_to_degrees(tags['GPS GPSLongitude'].values, str(tags['GPS GPSLongitudeRef']))
        except (KeyError, AttributeError, IndexError, ZeroDivisionError):
            return None
        if lat is None or lon is None:
            return None
        return Location(lat, lon)

    def _dms_to_degrees(self, dms, bearing: str) -> Optional[float]:
        """Degrees/minutes/seconds rationals to signed decimal degrees."""
        parts = [float(r.num) / float(r.den) for r in dms[:3]]
        while len(parts) < 3:
            parts.append(0.0)
        degrees = parts[0] + parts[1] / 60.0 + parts[2] / 3600.0
        bearing = bearing.strip().upper()
        if bearing in ("N", "E"):
            return degrees
        if bearing in ("S", "W"):
            return -degrees
        return None

    def _parse_iso6709(self, text: str) -> Optional[Location]:
        m = ISO6709_RE.match(text.strip())
        if not m:
            return None
        return Location(float(m.group(1)), float(m.group(2)))

    def _parse_flexible_date(self, dt_str: str) -> Optional[datetime]:
        """
        Handles various date formats (ISO, UTC suffixes, Exiftool quirks).
        Returns a naive datetime object; zone-aware input is converted to UTC first.
        """
        if not dt_str:
            return None

        # Clean up common suffixes/prefixes
        clean = dt_str.replace("UTC", "").strip()

        # 1. Try ISO format (e.g. 2020-01-01T12:00:00)
        try:
            dt = datetime.fromisoformat(clean)
            if dt.tzinfo is not None:
                dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
            return dt
        except ValueError:
            pass

        # 2. Try Standard EXIF style "YYYY:MM:DD HH:MM:SS"
        try:
            clean_exif = clean.replace(":", "-", 2)
            # Handle potential sub-second precision / zone offset which strptime hates
            clean_exif = re.split(r'[.+]', clean_exif)[0].strip()
            return datetime.strptime(clean_exif, "%Y-%m-%d %H:%M:%S")
        except ValueError:
            pass

        return None
