"""Shared test fixtures for Wellrus Health tests."""

from __future__ import annotations

import random
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from cryptography.fernet import Fernet

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BLOB_STORE_MODE", "simulated")
    monkeypatch.setenv("HEALTH_DATA_SOURCE", "mock")
    monkeypatch.setenv("APPLE_HEALTH_EXPORT_PATH", "")
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("ENCRYPTION_KEY", Fernet.generate_key().decode())

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))


FIXED_NOW = datetime(2025, 12, 1, 12, 0, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def database():
    """Create an in-memory WellrusDatabase for testing."""
    from wellrus.core.storage.database import WellrusDatabase

    db = WellrusDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def encryptor():
    """Create a BlobEncryptor with a test key."""
    from wellrus.core.storage.encryption import BlobEncryptor

    return BlobEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def simulated_store(database, encryptor):
    """Create a SimulatedBlobStore backed by in-memory SQLite."""
    from wellrus.core.storage.blob_store import SimulatedBlobStore

    return SimulatedBlobStore(database, encryptor, clock=fixed_clock)


@pytest.fixture
def repository(database, encryptor):
    """Create a DatasetRepository backed by in-memory SQLite."""
    from wellrus.core.storage.repository import DatasetRepository

    return DatasetRepository(database, encryptor)


@pytest.fixture
def audit_logger(database):
    """Create an AuditLogger backed by in-memory SQLite."""
    from wellrus.core.audit.logger import AuditLogger

    return AuditLogger(database)
