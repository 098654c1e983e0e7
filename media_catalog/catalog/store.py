import os
import sqlite3
import logging
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Protocol, Set, Tuple

from .. import config
from ..exceptions import CatalogIOError, CorruptPersistence
from ..models import Location, MediaFormat, MediaRecord
from .schema import CURRENT_SCHEMA_VERSION, REQUIRED_TABLES, init_schema, read_schema_version

Labels = Dict[str, Set[str]]


class SnapshotStore(Protocol):
    """Where a Catalog snapshot lives. The Catalog only ever calls these two."""

    def load(self, path: Path) -> Tuple[List[MediaRecord], Labels]:
        ...

    def save(self, path: Path, records: Iterable[MediaRecord], labels: Labels) -> None:
        ...


class SqliteSnapshotStore:
    """
    Snapshots as a standalone SQLite file.

    Saves never write into the live file: a fresh database is built next to
    it and swapped in with os.replace, so a crash leaves the old snapshot.
    """

    def load(self, path: Path) -> Tuple[List[MediaRecord], Labels]:
        path = Path(path)
        if not path.is_file():
            raise CatalogIOError(f"Catalog snapshot not found: {path}")

        try:
            conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
        except sqlite3.Error as e:
            raise CatalogIOError(f"Cannot open catalog snapshot {path}: {e}") from e

        try:
            version, tables = read_schema_version(conn)
            if version is None:
                raise CorruptPersistence(f"{path} has no schema version header")
            if version != CURRENT_SCHEMA_VERSION:
                raise CorruptPersistence(
                    f"{path} has schema version {version}, expected {CURRENT_SCHEMA_VERSION}"
                )
            missing = REQUIRED_TABLES - tables
            if missing:
                raise CorruptPersistence(f"{path} is missing tables: {', '.join(sorted(missing))}")

            cur = conn.cursor()
            cur.execute("""
                SELECT hash, filepath, format, created, latitude, longitude, device, iso
                FROM media
            """)
            records = [self._record_from_row(row) for row in cur.fetchall()]

            labels: Labels = {}
            cur.execute("SELECT hash, label FROM labels")
            for hash_value, label in cur.fetchall():
                labels.setdefault(hash_value, set()).add(label)
        except sqlite3.DatabaseError as e:
            raise CorruptPersistence(f"Unreadable catalog snapshot {path}: {e}") from e
        finally:
            conn.close()

        logging.info(f"Loaded {len(records)} records from {path}")
        return records, labels

    def save(self, path: Path, records: Iterable[MediaRecord], labels: Labels) -> None:
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=config.TEMP_PREFIX, suffix=config.TEMP_SUFFIX, dir=path.parent
            )
            os.close(fd)
        except OSError as e:
            raise CatalogIOError(f"Cannot create snapshot next to {path}: {e}") from e

        tmp = Path(tmp_name)
        count = 0
        try:
            conn = sqlite3.connect(tmp)
            try:
                init_schema(conn)
                with conn:
                    for record in records:
                        conn.execute(
                            """
                            INSERT INTO media
                            (hash, filepath, format, created, latitude, longitude, device, iso)
                            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                            """,
                            self._row_from_record(record),
                        )
                        count += 1
                    conn.executemany(
                        "INSERT INTO labels (hash, label) VALUES (?, ?)",
                        [(h, label) for h, names in labels.items() for label in sorted(names)],
                    )
            finally:
                conn.close()
            os.replace(tmp, path)
        except (OSError, sqlite3.Error) as e:
            raise CatalogIOError(f"Cannot write catalog snapshot {path}: {e}") from e
        finally:
            # Gone already after a successful replace
            tmp.unlink(missing_ok=True)

        logging.info(f"Wrote {count} records to {path}")

    def _row_from_record(self, rec: MediaRecord) -> tuple:
        return (
            rec.hash,
            str(rec.filepath),
            str(rec.format),
            rec.created.isoformat() if rec.created else None,
            rec.location.latitude if rec.location else None,
            rec.location.longitude if rec.location else None,
            rec.device,
            rec.iso,
        )

    def _record_from_row(self, row) -> MediaRecord:
        hash_value, filepath, fmt, created, lat, lon, device, iso = row
        try:
            if not hash_value or not filepath:
                raise ValueError("empty hash or filepath")
            location = None
            if lat is not None or lon is not None:
                location = Location(float(lat), float(lon))
            return MediaRecord(
                hash=str(hash_value),
                filepath=Path(filepath),
                format=MediaFormat.parse(fmt),
                created=datetime.fromisoformat(created) if created else None,
                location=location,
                device=device,
                iso=int(iso) if iso is not None else None,
            )
        except (TypeError, ValueError) as e:
            raise CorruptPersistence(f"Invalid media row for hash {hash_value!r}: {e}") from e
