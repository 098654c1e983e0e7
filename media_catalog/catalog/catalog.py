"""
The in-memory catalog: records keyed by content hash, with a path index
kept in lock-step.
"""
import os
import logging
import threading
from collections import Counter
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set

from ..exceptions import CorruptPersistence, DuplicateHash, DuplicatePath, RecordNotFound
from ..models import CatalogStats, MediaRecord
from .store import SnapshotStore, SqliteSnapshotStore


def normalize_path(path) -> Path:
    """Absolute, lexically normalised; symlinks are left alone."""
    return Path(os.path.abspath(os.fspath(path)))


class Catalog:
    """
    Owns the hash -> record and path -> hash mappings.

    All mutation goes through `write_lock` (re-entrant, so a caller can
    hold it across a check-then-insert sequence). Reads copy what they
    need under the same lock and never see a half-applied update.
    """

    def __init__(self, store: Optional[SnapshotStore] = None):
        self.store = store or SqliteSnapshotStore()
        self._by_hash: Dict[str, MediaRecord] = {}
        self._by_path: Dict[Path, str] = {}
        self._labels: Dict[str, Set[str]] = {}
        self._write_lock = threading.RLock()

    @classmethod
    def create(cls, store: Optional[SnapshotStore] = None) -> "Catalog":
        return cls(store)

    @classmethod
    def read_from_disk(cls, path: Path, store: Optional[SnapshotStore] = None) -> "Catalog":
        catalog = cls(store)
        records, labels = catalog.store.load(Path(path))
        try:
            for record in records:
                catalog.insert(record)
        except (DuplicateHash, DuplicatePath) as e:
            raise CorruptPersistence(f"Snapshot {path} violates catalog invariants: {e}") from e

        for hash_value, names in labels.items():
            if hash_value not in catalog._by_hash:
                raise CorruptPersistence(f"Snapshot {path} labels unknown hash {hash_value}")
            catalog._labels[hash_value] = set(names)
        return catalog

    def write_to_disk(self, path: Path):
        with self._write_lock:
            records = list(self._by_hash.values())
            labels = {h: set(names) for h, names in self._labels.items() if names}
            self.store.save(Path(path), records, labels)

    @property
    def write_lock(self) -> threading.RLock:
        """Returns the lock serialising catalog mutation."""
        return self._write_lock

    # --- Mutation ---

    def insert(self, record: MediaRecord) -> MediaRecord:
        path = normalize_path(record.filepath)
        if path != record.filepath:
            record = record.with_path(path)

        with self._write_lock:
            if record.hash in self._by_hash:
                raise DuplicateHash(record.hash)
            if path in self._by_path:
                raise DuplicatePath(path)
            self._by_hash[record.hash] = record
            self._by_path[path] = record.hash
        return record

    def remove(self, hash_value: str) -> MediaRecord:
        with self._write_lock:
            record = self._by_hash.pop(hash_value, None)
            if record is None:
                raise RecordNotFound(hash_value)
            del self._by_path[record.filepath]
            self._labels.pop(hash_value, None)
        logging.debug(f"Removed {hash_value} ({record.filepath})")
        return record

    def update_path(self, hash_value: str, new_path: Path) -> MediaRecord:
        path = normalize_path(new_path)
        with self._write_lock:
            record = self._by_hash.get(hash_value)
            if record is None:
                raise RecordNotFound(hash_value)
            if record.filepath == path:
                return record
            if path in self._by_path:
                raise DuplicatePath(path)

            updated = record.with_path(path)
            # Both maps change together while the lock is held
            del self._by_path[record.filepath]
            self._by_path[path] = hash_value
            self._by_hash[hash_value] = updated
        return updated

    # --- Lookup ---

    def lookup_by_hash(self, hash_value: str) -> Optional[MediaRecord]:
        with self._write_lock:
            return self._by_hash.get(hash_value)

    def lookup_by_path(self, path) -> Optional[MediaRecord]:
        key = normalize_path(path)
        with self._write_lock:
            hash_value = self._by_path.get(key)
            return self._by_hash.get(hash_value) if hash_value is not None else None

    def all(self) -> Iterator[MediaRecord]:
        """
        Lazy iterator over the records present at call time.
        The snapshot is taken here, not on first next().
        """
        with self._write_lock:
            snapshot = list(self._by_hash.values())
        return iter(snapshot)

    def paths(self) -> Set[Path]:
        with self._write_lock:
            return set(self._by_path)

    def __len__(self) -> int:
        return len(self._by_hash)

    def __contains__(self, hash_value) -> bool:
        return hash_value in self._by_hash

    # --- Labels ---

    def add_label(self, hash_value: str, label: str):
        label = label.strip()
        if not label:
            raise ValueError("Label must not be empty")
        with self._write_lock:
            if hash_value not in self._by_hash:
                raise RecordNotFound(hash_value)
            self._labels.setdefault(hash_value, set()).add(label)

    def remove_label(self, hash_value: str, label: str) -> bool:
        """Returns False when the record did not carry the label."""
        with self._write_lock:
            if hash_value not in self._by_hash:
                raise RecordNotFound(hash_value)
            names = self._labels.get(hash_value)
            if not names or label not in names:
                return False
            names.discard(label)
            if not names:
                del self._labels[hash_value]
            return True

    def labels_for(self, hash_value: str) -> Set[str]:
        with self._write_lock:
            return set(self._labels.get(hash_value, ()))

    def all_labels(self) -> List[str]:
        with self._write_lock:
            return sorted({label for names in self._labels.values() for label in names})

    # --- Stats ---

    def stats(self) -> CatalogStats:
        records = list(self.all())
        return CatalogStats(
            count=len(records),
            count_by_format=Counter(str(r.format) for r in records),
            count_by_device=Counter(r.device for r in records),
            count_by_year=Counter(r.created.year if r.created else None for r in records),
        )
