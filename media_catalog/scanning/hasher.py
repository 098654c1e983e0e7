import hashlib
from pathlib import Path

from .. import config
from ..exceptions import FileHashError


def hash_bytes(data: bytes) -> str:
    """Fingerprint of an in-memory byte string; same digest as FileHasher.compute_hash."""
    return hashlib.sha256(data).hexdigest()


class FileHasher:
    def __init__(self, chunk_size: int = config.HASH_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def compute_hash(self, path: Path) -> str:
        """
        Full SHA-256 of the file's bytes, read in chunks.

        Every byte is read: the result is the catalog identity, so a
        sampled fingerprint would let two different files collapse into one.
        """
        try:
            with open(path, 'rb') as f:
                return self.hash_handle(f)
        except OSError as e:
            raise FileHashError(f"Cannot hash {path}: {e}") from e

    def hash_handle(self, fileobj) -> str:
        """
        Hash from an already-open binary handle.
        Caller should ensure the handle is at position 0.
        """
        h = hashlib.sha256()
        while chunk := fileobj.read(self.chunk_size):
            h.update(chunk)
        return h.hexdigest()
