"""Publish one upload session: score, anonymize, upload, describe.

Pipeline (per session)::

    provider ──► raw series ──► BiologicalAgeScorer
                     │
                     └──► Anonymizer ──► JSON Lines ──┐
                                                      ├─► blob store (encrypted, concurrent)
    bio-age result ──► anonymize_object ──────────────┘
                                                      │
                     all receipts ──► ManifestBuilder ──► blob store (clear)
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from wellrus.core.audit.logger import AuditLogger
from wellrus.core.privacy.anonymizer import Anonymizer
from wellrus.core.storage.blob_store import BlobReceipt, BlobStore, BlobStoreError
from wellrus.core.storage.repository import DatasetRepository, PublicationRecord
from wellrus.core.timeutil import Clock, utc_now
from wellrus.domains.health.connectors import HealthDataProvider
from wellrus.domains.health.domain_logic.biological_age import BiologicalAgeScorer
from wellrus.domains.health.domain_logic.manifest import (
    DatasetManifest,
    ManifestBuilder,
    SessionMetadata,
)
from wellrus.domains.health.domain_logic.sample_models import (
    BIO_AGE_KEY,
    BiologicalAgeResult,
)

logger = logging.getLogger(__name__)


def to_json_lines(records: list[Any]) -> str:
    """One compact JSON object per line, newline-terminated."""
    return "".join(json.dumps(record, separators=(",", ":")) + "\n" for record in records)


@dataclass
class PublishResult:
    """Everything produced by one publication."""

    manifest: DatasetManifest
    manifest_receipt: BlobReceipt
    metric_receipts: dict[str, BlobReceipt]
    biological_age: BiologicalAgeResult
    data_source: str
    store_mode: str
    sample_counts: dict[str, int] = field(default_factory=dict)

    @property
    def dataset_id(self) -> str:
        return self.manifest.dataset_id

    @property
    def total_samples(self) -> int:
        return sum(self.sample_counts.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "dataset_id": self.dataset_id,
            "manifest_blob_id": self.manifest_receipt.id,
            "manifest_url": self.manifest_receipt.url,
            "manifest_checksum": self.manifest_receipt.checksum,
            "blobs": {name: receipt.to_dict() for name, receipt in self.metric_receipts.items()},
            "sample_counts": dict(self.sample_counts),
            "total_samples": self.total_samples,
            "biological_age": self.biological_age.to_dict(),
            "data_source": self.data_source,
            "blob_store_mode": self.store_mode,
        }

    def to_record(self) -> PublicationRecord:
        return PublicationRecord(
            dataset_id=self.dataset_id,
            manifest_blob_id=self.manifest_receipt.id,
            manifest_url=self.manifest_receipt.url,
            manifest_checksum=self.manifest_receipt.checksum,
            manifest=self.manifest.to_dict(),
            metric_blobs={
                name: receipt.to_dict() for name, receipt in self.metric_receipts.items()
            },
            biological_age=self.biological_age.to_dict(),
            total_samples=self.total_samples,
            data_source=self.data_source,
            created_at=self.manifest.created_at,
        )


class DatasetPublisher:
    """Runs the publish pipeline against injected collaborators.

    Usage::

        publisher = DatasetPublisher(
            provider, store,
            anonymizer=Anonymizer(), scorer=BiologicalAgeScorer(),
            manifest_builder=ManifestBuilder(),
        )
        result = await publisher.publish(user_id="user_123")
    """

    def __init__(
        self,
        provider: HealthDataProvider,
        blob_store: BlobStore,
        *,
        anonymizer: Anonymizer,
        scorer: BiologicalAgeScorer,
        manifest_builder: ManifestBuilder,
        repository: DatasetRepository | None = None,
        audit_logger: AuditLogger | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._provider = provider
        self._store = blob_store
        self._anonymizer = anonymizer
        self._scorer = scorer
        self._builder = manifest_builder
        self._repository = repository
        self._audit = audit_logger
        self._clock = clock or utc_now

    async def publish(
        self,
        *,
        user_id: str,
        days: int = 30,
        chronological_age: int | None = None,
    ) -> PublishResult:
        """Publish the last ``days`` of health data as a new dataset.

        Raises:
            BlobStoreError: If any upload fails. No manifest is built then.
        """
        started = time.monotonic()
        end = self._clock()
        start = end - timedelta(days=days)

        try:
            result = await self._publish(user_id, start, end, chronological_age)
        except BlobStoreError as exc:
            if self._audit:
                self._audit.log_dataset_publish(
                    dataset_id=None,
                    duration_ms=(time.monotonic() - started) * 1000,
                    status="failure",
                    error_type=type(exc).__name__,
                )
            raise

        if self._repository is not None:
            self._repository.save_publication(result.to_record())

        if self._audit:
            for name, receipt in result.metric_receipts.items():
                self._audit.log_blob_upload(
                    blob_id=receipt.id,
                    encrypted=True,
                    size=receipt.size,
                    label=name,
                    store_mode=receipt.store,
                    dataset_id=result.dataset_id,
                )
            self._audit.log_blob_upload(
                blob_id=result.manifest_receipt.id,
                encrypted=False,
                size=result.manifest_receipt.size,
                label="manifest",
                store_mode=result.manifest_receipt.store,
                dataset_id=result.dataset_id,
            )
            self._audit.log_dataset_publish(
                dataset_id=result.dataset_id,
                manifest_blob_id=result.manifest_receipt.id,
                metric_count=len(result.metric_receipts),
                duration_ms=(time.monotonic() - started) * 1000,
            )

        logger.info(
            "Published dataset %s: %d blobs, %d samples (%s store)",
            result.dataset_id,
            len(result.metric_receipts) + 1,
            result.total_samples,
            self._store.mode,
        )
        return result

    async def _publish(self, user_id, start, end, chronological_age) -> PublishResult:
        health_data = await self._provider.get_all_health_data(start, end)

        bio_age = self._scorer.score(
            health_data.get("hrv"),
            health_data.get("rhr"),
            health_data.get("exercise"),
            health_data.get("weight"),
            chronological_age,
        )

        payloads: dict[str, str] = {}
        sample_counts: dict[str, int] = {}
        for name, series in health_data.items():
            if not series:
                continue
            anonymized = self._anonymizer.anonymize_array(list(series))
            payloads[name] = to_json_lines(anonymized)
            sample_counts[name] = len(anonymized)

        payloads[BIO_AGE_KEY] = json.dumps(
            self._anonymizer.anonymize_object(bio_age.to_dict()), separators=(",", ":")
        )

        names = list(payloads)
        receipts = await asyncio.gather(
            *(self._store.upload(payloads[name], encrypt=True) for name in names)
        )
        metric_receipts = dict(zip(names, receipts))

        manifest = self._builder.build(
            metric_receipts,
            SessionMetadata(
                start=start,
                end=end,
                user_id=user_id,
                sample_counts=sample_counts,
            ),
        )
        manifest_receipt = await self._store.upload(manifest.to_json(), encrypt=False)

        return PublishResult(
            manifest=manifest,
            manifest_receipt=manifest_receipt,
            metric_receipts=metric_receipts,
            biological_age=bio_age,
            data_source=self._provider.data_source,
            store_mode=self._store.mode,
            sample_counts=sample_counts,
        )
