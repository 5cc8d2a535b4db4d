"""Repository for published datasets.

The manifest is stored in clear (it only carries blob pointers). The
biological-age result is derived health data and is stored encrypted.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from wellrus.core.storage.database import WellrusDatabase
from wellrus.core.storage.encryption import BlobEncryptor, EncryptionError

logger = logging.getLogger(__name__)


@dataclass
class PublicationRecord:
    """A stored publication, as read back from the database."""

    dataset_id: str
    manifest_blob_id: str
    manifest_url: str
    manifest_checksum: str
    manifest: dict[str, Any]
    metric_blobs: dict[str, dict[str, Any]] = field(default_factory=dict)
    biological_age: dict[str, Any] | None = None
    total_samples: int = 0
    data_source: str | None = None
    created_at: str = ""

    def summary(self) -> dict[str, Any]:
        return {
            "dataset_id": self.dataset_id,
            "manifest_blob_id": self.manifest_blob_id,
            "manifest_url": self.manifest_url,
            "metrics": sorted(self.metric_blobs),
            "total_samples": self.total_samples,
            "data_source": self.data_source,
            "created_at": self.created_at,
        }


class DatasetRepository:
    """CRUD for the ``published_datasets`` table.

    Usage::

        repo = DatasetRepository(database, encryptor)
        repo.save_publication(record)
        repo.list_publications(limit=10)
    """

    def __init__(self, database: WellrusDatabase, encryptor: BlobEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    def save_publication(self, record: PublicationRecord) -> str:
        conn = self._db.connection
        conn.execute(
            """INSERT INTO published_datasets (
                dataset_id, manifest_blob_id, manifest_url, manifest_checksum,
                manifest_json, metrics_json, bio_age_enc, total_samples,
                data_source, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.dataset_id,
                record.manifest_blob_id,
                record.manifest_url,
                record.manifest_checksum,
                json.dumps(record.manifest, separators=(",", ":")),
                json.dumps(record.metric_blobs, separators=(",", ":")),
                self._enc.encrypt_json(record.biological_age),
                record.total_samples,
                record.data_source,
                record.created_at,
            ),
        )
        conn.commit()
        logger.info("Saved publication %s", record.dataset_id)
        return record.dataset_id

    def get_publication(self, dataset_id: str) -> PublicationRecord | None:
        row = self._db.connection.execute(
            "SELECT * FROM published_datasets WHERE dataset_id = ?", (dataset_id,)
        ).fetchone()
        return self._row_to_record(row) if row else None

    def list_publications(self, *, limit: int = 20) -> list[PublicationRecord]:
        """Newest first."""
        rows = self._db.connection.execute(
            "SELECT * FROM published_datasets ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def delete_publication(self, dataset_id: str) -> bool:
        """Forget a publication locally. Uploaded blobs are immutable."""
        conn = self._db.connection
        cursor = conn.execute(
            "DELETE FROM published_datasets WHERE dataset_id = ?", (dataset_id,)
        )
        conn.commit()
        return cursor.rowcount > 0

    def count_publications(self) -> int:
        row = self._db.connection.execute("SELECT COUNT(*) FROM published_datasets").fetchone()
        return row[0]

    def _row_to_record(self, row) -> PublicationRecord:
        try:
            biological_age = self._enc.decrypt_json(row["bio_age_enc"] or "")
        except EncryptionError:
            # Sealed under a different key.
            logger.warning(
                "Cannot decrypt biological age for %s with the current key", row["dataset_id"]
            )
            biological_age = None
        return PublicationRecord(
            dataset_id=row["dataset_id"],
            manifest_blob_id=row["manifest_blob_id"],
            manifest_url=row["manifest_url"],
            manifest_checksum=row["manifest_checksum"],
            manifest=json.loads(row["manifest_json"]),
            metric_blobs=json.loads(row["metrics_json"]),
            biological_age=biological_age,
            total_samples=row["total_samples"],
            data_source=row["data_source"],
            created_at=row["created_at"],
        )
