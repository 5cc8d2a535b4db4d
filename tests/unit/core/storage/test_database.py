"""Tests for WellrusDatabase schema management."""

from __future__ import annotations

import pytest

from wellrus.core.storage.database import SCHEMA_VERSION, DatabaseError, WellrusDatabase


def _tables(db: WellrusDatabase) -> set[str]:
    rows = db.connection.execute(
        "SELECT name FROM sqlite_master WHERE type='table'"
    ).fetchall()
    return {row[0] for row in rows}


class TestInitialize:
    def test_creates_tables(self, database):
        tables = _tables(database)
        assert {"simulated_blobs", "published_datasets", "audit_log", "schema_version"} <= tables

    def test_schema_version(self, database):
        assert database.get_schema_version() == SCHEMA_VERSION

    def test_initialize_is_idempotent(self, database):
        database.initialize()
        assert database.get_schema_version() == SCHEMA_VERSION

    def test_connection_before_initialize_raises(self):
        db = WellrusDatabase(":memory:")
        with pytest.raises(DatabaseError, match="not initialized"):
            _ = db.connection

    def test_context_manager_closes(self):
        with WellrusDatabase(":memory:") as db:
            assert db.get_schema_version() == SCHEMA_VERSION
        with pytest.raises(DatabaseError):
            _ = db.connection


class TestFileDatabase:
    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "wellrus.db"
        db = WellrusDatabase(str(path))
        db.initialize()
        try:
            assert path.exists()
        finally:
            db.close()

    def test_reopen_keeps_version(self, tmp_path):
        path = str(tmp_path / "wellrus.db")
        with WellrusDatabase(path):
            pass
        with WellrusDatabase(path) as db:
            assert db.get_schema_version() == SCHEMA_VERSION
            rows = db.connection.execute("SELECT COUNT(*) FROM schema_version").fetchone()
            assert rows[0] == 1
