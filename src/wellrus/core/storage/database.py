"""SQLite database for the local side of the blob pipeline.

Holds simulated blobs (when the network store is unavailable), the record of
published datasets, and the PHI-free audit log.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- Payloads of blobs uploaded while the network store was unreachable
CREATE TABLE IF NOT EXISTS simulated_blobs (
    id          TEXT PRIMARY KEY,
    payload     BLOB NOT NULL,
    checksum    TEXT NOT NULL,
    size        INTEGER NOT NULL,
    encrypted   INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL
);

-- One row per published dataset (manifest is a pointer document, kept in clear)
CREATE TABLE IF NOT EXISTS published_datasets (
    dataset_id          TEXT PRIMARY KEY,
    manifest_blob_id    TEXT NOT NULL,
    manifest_url        TEXT NOT NULL,
    manifest_checksum   TEXT NOT NULL,
    manifest_json       TEXT NOT NULL,
    metrics_json        TEXT NOT NULL,
    bio_age_enc         TEXT,
    total_samples       INTEGER NOT NULL DEFAULT 0,
    data_source         TEXT,
    created_at          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_datasets_created ON published_datasets(created_at);
"""

# ---------------------------------------------------------------------------
# V2: Audit log
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    tool_name       TEXT,
    tool_input_hash TEXT,
    dataset_id      TEXT,
    blob_id         TEXT,
    encrypted       INTEGER DEFAULT 0,
    left_device     INTEGER DEFAULT 0,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_dataset   ON audit_log(dataset_id);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class WellrusDatabase:
    """SQLite connection manager with a versioned schema.

    Supports both file-based and in-memory (``:memory:``) databases.

    Usage::

        with WellrusDatabase(":memory:") as db:
            db.connection.execute(...)
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def connection(self) -> sqlite3.Connection:
        """The active connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Open the connection and ensure the schema exists. Idempotent."""
        if self._conn is not None:
            return

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file))
        else:
            self._conn = sqlite3.connect(":memory:")

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._ensure_schema()
        logger.info("Database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        conn = self.connection
        conn.executescript(_SCHEMA_V1)

        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        current_version = row[0] if row[0] is not None else 0

        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log table")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Database closed")

    def __enter__(self) -> WellrusDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
