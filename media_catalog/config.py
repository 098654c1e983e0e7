"""
Configuration constants for the media catalog.
"""
from dataclasses import dataclass

# --- File Type Definitions ---
# Extension -> codec tag. The kind (image/video) comes from which table it lives in.
IMAGE_EXTS = {
    '.jpg': 'jpeg', '.jpeg': 'jpeg', '.jpe': 'jpeg',
    '.png': 'png', '.gif': 'gif', '.heic': 'heic', '.heif': 'heif', '.webp': 'webp',
    '.tif': 'tiff', '.tiff': 'tiff',
    '.cr2': 'cr2', '.cr3': 'cr3', '.nef': 'nef', '.arw': 'arw',
    '.orf': 'orf', '.rw2': 'rw2', '.dng': 'dng',
}
VIDEO_EXTS = {
    '.mp4': 'mp4', '.m4v': 'mp4', '.mov': 'mov', '.avi': 'avi',
    '.mts': 'mts', '.m2ts': 'mts', '.3gp': '3gp',
    '.mpg': 'mpeg', '.mpeg': 'mpeg', '.mkv': 'mkv', '.tod': 'tod',
}

# Pillow's Image.format -> codec tag, used when the extension is not recognised
PIL_FORMAT_TO_CODEC = {
    'JPEG': 'jpeg', 'MPO': 'jpeg', 'PNG': 'png', 'GIF': 'gif',
    'TIFF': 'tiff', 'WEBP': 'webp', 'BMP': 'bmp',
}

# ISO base media "ftyp" major brands -> codec tag
FTYP_IMAGE_BRANDS = {'heic': 'heic', 'heix': 'heic', 'mif1': 'heif', 'avif': 'avif'}
FTYP_VIDEO_BRANDS = {
    'qt  ': 'mov',
    'isom': 'mp4', 'iso2': 'mp4', 'mp41': 'mp4', 'mp42': 'mp4', 'avc1': 'mp4', 'M4V ': 'mp4',
    '3gp4': '3gp', '3gp5': '3gp', '3g2a': '3gp',
}

# --- Metadata Parsing ---
DATE_TAGS = [
    'EXIF DateTimeOriginal',
    'EXIF DateTimeDigitized',
    'Image DateTime',
]
DEVICE_TAGS = ['Image Model', 'Image Make']
ISO_TAGS = ['EXIF ISOSpeedRatings', 'EXIF PhotographicSensitivity']

# exiftool fields, in priority order
EXIFTOOL_DATE_FIELDS = ["DateTimeOriginal", "CreateDate", "CreationDate", "MediaCreateDate"]
EXIFTOOL_DEVICE_FIELDS = ["Model", "CameraModelName", "Make"]
EXIFTOOL_ISO_FIELDS = ["ISO", "ISOSpeedRatings"]

# --- Hashing & Performance ---
HASH_CHUNK_SIZE = 1024 * 1024  # 1 MB chunks for reading
DEFAULT_WORKERS = 3  # HDD-friendly default
SCAN_WINDOW_PER_WORKER = 4  # in-flight files per worker before the scanner blocks

# --- Catalog ---
CATALOG_FILENAME = "media_catalog.db"
LOG_FILENAME = "media_catalog.log"
TEMP_PREFIX = ".mcat-"
TEMP_SUFFIX = ".tmp"
IGNORED_FILENAMES = {CATALOG_FILENAME, CATALOG_FILENAME + "-journal", LOG_FILENAME, ".DS_Store", "Thumbs.db"}

# --- Organization ---
DEFAULT_TEMPLATE = "{year}/{year}-{month}/{hash}.{ext}"
UNKNOWN_DEVICE = "unknown"


@dataclass
class ScanOptions:
    """Per-run knobs for directory scanning."""
    max_workers: int = DEFAULT_WORKERS
    # Use the file mtime as capture time when metadata has none
    mtime_fallback_for_created: bool = False
    # Try the exiftool CLI when the python libraries come up empty
    use_exiftool: bool = True
    show_progress: bool = False
