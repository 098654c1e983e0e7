"""
Custom exception hierarchy for the media catalog.

Catalog-level errors are raised straight to the caller of the single
operation that hit them. Batch operations catch the per-file ones and
record them as diagnostics instead.
"""


class MediaCatalogError(Exception):
    """Base exception for all media catalog errors."""
    pass


class CatalogIOError(MediaCatalogError, OSError):
    """Raised when the catalog snapshot or a managed directory cannot be read or written."""
    pass


class CorruptPersistence(MediaCatalogError):
    """Raised when a snapshot is unreadable or carries an unknown schema version."""
    pass


class DuplicateHash(MediaCatalogError):
    """Raised when inserting a record whose hash is already catalogued."""

    def __init__(self, hash_value: str):
        super().__init__(f"Hash already catalogued: {hash_value}")
        self.hash = hash_value


class DuplicatePath(MediaCatalogError):
    """Raised when a record would share its filepath with another record."""

    def __init__(self, path):
        super().__init__(f"Path already catalogued: {path}")
        self.path = path


class RecordNotFound(MediaCatalogError, KeyError):
    """Raised when no record exists for the given hash."""

    def __init__(self, hash_value: str):
        super().__init__(f"No record for hash: {hash_value}")
        self.hash = hash_value

    def __str__(self):
        return self.args[0]


class MetadataExtractionFailed(MediaCatalogError):
    """Raised when metadata cannot be extracted from a file. Never fatal to a batch."""
    pass


class FileHashError(MediaCatalogError):
    """Raised when file hashing fails."""
    pass


class FileOperationError(MediaCatalogError):
    """Raised when file copy/move operations fail."""
    pass


class HashMismatch(FileOperationError):
    """Raised when a copied file does not hash to the source's fingerprint."""

    def __init__(self, path, expected: str, actual: str):
        super().__init__(f"Hash mismatch for {path}: expected {expected}, got {actual}")
        self.path = path
        self.expected = expected
        self.actual = actual


class RenameCollision(FileOperationError):
    """Raised when a move target is already taken."""
    pass


class CancelledOperation(MediaCatalogError):
    """Raised when a batch operation is asked to stop."""
    pass


class TemplateError(MediaCatalogError, ValueError):
    """Raised for malformed naming templates or records that cannot fill them."""
    pass
