"""
Structured search over the catalog.

A Predicate is a conjunction: every constraint that is set must hold.
Records that lack a constrained field never match that constraint.
"""
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Iterator, Optional

from .catalog.catalog import Catalog
from .models import Location, MediaFormat, MediaKind, MediaRecord


@dataclass(frozen=True)
class Range:
    """Inclusive range; None leaves that end open."""
    low: Any = None
    high: Any = None

    def __post_init__(self):
        if self.low is not None and self.high is not None and self.low > self.high:
            raise ValueError(f"Empty range: {self.low!r} > {self.high!r}")

    def contains(self, value) -> bool:
        if value is None:
            return False
        if self.low is not None and value < self.low:
            return False
        if self.high is not None and value > self.high:
            return False
        return True


@dataclass(frozen=True)
class BoundingBox:
    """
    Latitude/longitude box, edges inclusive. min_lon > max_lon describes a
    box that crosses the antimeridian.
    """
    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float

    def __post_init__(self):
        if self.min_lat > self.max_lat:
            raise ValueError("min_lat must not exceed max_lat")

    def contains(self, location: Optional[Location]) -> bool:
        if location is None:
            return False
        if not self.min_lat <= location.latitude <= self.max_lat:
            return False
        if self.min_lon <= self.max_lon:
            return self.min_lon <= location.longitude <= self.max_lon
        return location.longitude >= self.min_lon or location.longitude <= self.max_lon


@dataclass(frozen=True)
class Predicate:
    format: Optional[MediaFormat] = None
    kind: Optional[MediaKind] = None
    device: Optional[str] = None
    device_contains: Optional[str] = None
    filepath_contains: Optional[str] = None
    created: Optional[Range] = None
    iso: Optional[Range] = None
    location: Optional[BoundingBox] = None
    label: Optional[str] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def matches(self, record: MediaRecord, labels: Optional[Callable[[str], set]] = None) -> bool:
        if self.format is not None and record.format != self.format:
            return False
        if self.kind is not None and record.format.kind != self.kind:
            return False
        if self.device is not None and record.device != self.device:
            return False
        if self.device_contains is not None:
            if record.device is None or self.device_contains.lower() not in record.device.lower():
                return False
        if self.filepath_contains is not None and self.filepath_contains.lower() not in str(record.filepath).lower():
            return False
        if self.created is not None and not self.created.contains(record.created):
            return False
        if self.iso is not None and not self.iso.contains(record.iso):
            return False
        if self.location is not None and not self.location.contains(record.location):
            return False
        if self.label is not None:
            if labels is None or self.label not in labels(record.hash):
                return False
        return True


SORT_KEYS: Dict[str, Callable[[MediaRecord], Any]] = {
    "hash": lambda r: r.hash,
    "filepath": lambda r: str(r.filepath),
    "format": lambda r: str(r.format),
    "created": lambda r: r.created,
    "device": lambda r: r.device,
    "iso": lambda r: r.iso,
}


def _sort_tuple(key: Callable[[MediaRecord], Any]):
    def build(record: MediaRecord):
        value = key(record)
        # Records without the key go last; ties fall back to the hash
        return (value is None, value if value is not None else 0, record.hash)
    return build


class SearchEngine:
    def __init__(self, catalog: Catalog):
        self.catalog = catalog

    def search(self, predicate: Optional[Predicate] = None, sort_key: Optional[str] = None) -> Iterator[MediaRecord]:
        """
        Matching records from a Catalog.all() snapshot.

        Without a sort key the result is lazy and in no particular order.
        With one, everything is matched first and returned ascending.
        """
        if sort_key is not None and sort_key not in SORT_KEYS:
            raise ValueError(f"Unknown sort key {sort_key!r}; expected one of {', '.join(SORT_KEYS)}")
        predicate = predicate or Predicate()

        matches = self._iter_matches(predicate)
        if sort_key is None:
            return matches
        return iter(sorted(matches, key=_sort_tuple(SORT_KEYS[sort_key])))

    def _iter_matches(self, predicate: Predicate) -> Iterator[MediaRecord]:
        records = self.catalog.all()
        if predicate.is_empty():
            return records
        labels = self.catalog.labels_for if predicate.label is not None else None
        return (r for r in records if predicate.matches(r, labels))

