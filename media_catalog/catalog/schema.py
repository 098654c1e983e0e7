"""
Snapshot schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

REQUIRED_TABLES = {"schema_version", "media", "labels"}


def init_schema(conn: sqlite3.Connection):
    """
    Applies the snapshot schema to a fresh database.
    Idempotent: safe to run twice.
    """
    with conn:
        # 1. Version Tracking (the header readers check first)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. One row per catalogued content hash
        conn.execute("""
        CREATE TABLE IF NOT EXISTS media (
            hash            TEXT PRIMARY KEY,
            filepath        TEXT NOT NULL UNIQUE,
            format          TEXT NOT NULL,
            created         TEXT,                 -- ISO-8601, naive
            latitude        REAL,
            longitude       REAL,
            device          TEXT,
            iso             INTEGER
        );
        """)

        # 3. Free-text labels attached to a record
        conn.execute("""
        CREATE TABLE IF NOT EXISTS labels (
            hash            TEXT NOT NULL,
            label           TEXT NOT NULL,
            PRIMARY KEY (hash, label),
            FOREIGN KEY(hash) REFERENCES media(hash) ON DELETE CASCADE
        );
        """)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_labels_label ON labels(label);")

    logging.debug("Snapshot schema initialized.")


def read_schema_version(conn: sqlite3.Connection):
    """Returns the stored version, or None when the header table is absent or empty."""
    cur = conn.cursor()
    cur.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
    tables = {row[0] for row in cur.fetchall()}
    if "schema_version" not in tables:
        return None, tables
    cur.execute("SELECT version FROM schema_version")
    rows = cur.fetchall()
    if len(rows) != 1:
        return None, tables
    return rows[0][0], tables
