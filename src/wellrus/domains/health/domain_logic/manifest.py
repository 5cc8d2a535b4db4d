"""Dataset manifest: the pointer document for one upload session.

The manifest lists every per-metric blob (url + checksum only, never sample
values) plus dataset-level metadata and a description of the anonymization
that was applied. It is uploaded unencrypted as the public entry point.
"""

from __future__ import annotations

import json
import logging
import random
import string
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from wellrus.core.storage.encryption import sha256_hex
from wellrus.core.timeutil import Clock, epoch_millis, to_iso, utc_now

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"
MANIFEST_VERSION = 1

DATASET_TITLE = "Anonymized Health Metrics Dataset"
DATASET_DESCRIPTION = (
    "Privacy-protected biometric data with differential privacy and "
    "anonymization applied"
)

# Always published as generic types, whatever devices produced the data
GENERIC_DEVICE_TYPES = ["smartwatch", "smartphone"]

ANONYMIZATION_METHOD = "differential_privacy_with_temporal_jitter"
ANONYMIZATION_EPSILON = 1.0
K_ANONYMITY = 20
TIME_GRANULARITY = "hour_with_jitter"
REMOVED_FIELDS = [
    "user_name",
    "device_name",
    "device_id",
    "user_id",
    "exact_location",
    "serial_number",
    "source_name",
    "device_serial",
    "apple_id",
    "health_record_id",
]

PSEUDONYM_LENGTH = 16
_ID_ALPHABET = string.ascii_lowercase + string.digits


class ManifestError(ValueError):
    """Raised for malformed upload receipts."""


@dataclass(frozen=True)
class SessionMetadata:
    """Per-session inputs to the manifest."""

    start: datetime
    end: datetime
    user_id: str
    sample_counts: Mapping[str, int] = field(default_factory=dict)


@dataclass
class MetricEntry:
    included: bool
    samples: int
    frequency: str
    blob_url: str
    checksum: str


@dataclass
class AnonymizationInfo:
    method: str = ANONYMIZATION_METHOD
    epsilon: float = ANONYMIZATION_EPSILON
    k_anonymity: int = K_ANONYMITY
    removed_fields: list[str] = field(default_factory=lambda: list(REMOVED_FIELDS))
    time_granularity: str = TIME_GRANULARITY
    noise_added: bool = True


@dataclass
class DatasetManifest:
    schema_version: str
    dataset_id: str
    user_pseudonymous_id: str
    title: str
    description: str
    metrics: dict[str, MetricEntry]
    time_range: dict[str, str]
    device_types: list[str]
    anonymization: AnonymizationInfo
    created_at: str
    updated_at: str
    version: int = MANIFEST_VERSION

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DatasetManifest:
        return cls(
            schema_version=data["schema_version"],
            dataset_id=data["dataset_id"],
            user_pseudonymous_id=data["user_pseudonymous_id"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            metrics={
                name: MetricEntry(**entry)
                for name, entry in (data.get("metrics") or {}).items()
            },
            time_range=dict(data.get("time_range") or {}),
            device_types=list(data.get("device_types") or []),
            anonymization=AnonymizationInfo(**(data.get("anonymization") or {})),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            version=int(data.get("version", MANIFEST_VERSION)),
        )


def _receipt_field(receipt: Any, name: str) -> Any:
    if isinstance(receipt, Mapping):
        return receipt.get(name)
    return getattr(receipt, name, None)


def sampling_frequency(metric: str) -> str:
    return "hourly" if metric == "hrv" else "daily"


class ManifestBuilder:
    """Builds a DatasetManifest once every blob of a session is uploaded.

    Clock and RNG are injectable::

        builder = ManifestBuilder(clock=lambda: fixed_time, rng=random.Random(1))
        manifest = builder.build(receipts, SessionMetadata(start, end, user_id))
    """

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._clock = clock or utc_now
        self._rng = rng or random.SystemRandom()

    def pseudonymous_id(self, user_id: str, now: datetime) -> str:
        """One-way, per-call pseudonym: hash of id, time and a random draw."""
        seed = f"{user_id}_{epoch_millis(now)}_{self._rng.random()!r}"
        return sha256_hex(seed)[:PSEUDONYM_LENGTH]

    def dataset_id(self, now: datetime) -> str:
        suffix = "".join(self._rng.choice(_ID_ALPHABET) for _ in range(9))
        return f"ds_{epoch_millis(now)}_{suffix}"

    def build(self, receipts: Mapping[str, Any], meta: SessionMetadata) -> DatasetManifest:
        """Combine upload receipts and session metadata into a manifest.

        Raises:
            ManifestError: If a receipt lacks a url or checksum.
        """
        now = self._clock()
        timestamp = to_iso(now)

        metrics: dict[str, MetricEntry] = {}
        for name, receipt in receipts.items():
            url = _receipt_field(receipt, "url")
            checksum = _receipt_field(receipt, "checksum")
            if not url or not checksum:
                raise ManifestError(f"Receipt for '{name}' is missing url or checksum")
            metrics[name] = MetricEntry(
                included=True,
                samples=int(meta.sample_counts.get(name, 0)),
                frequency=sampling_frequency(name),
                blob_url=str(url),
                checksum=str(checksum),
            )

        manifest = DatasetManifest(
            schema_version=SCHEMA_VERSION,
            dataset_id=self.dataset_id(now),
            user_pseudonymous_id=self.pseudonymous_id(meta.user_id, now),
            title=DATASET_TITLE,
            description=DATASET_DESCRIPTION,
            metrics=metrics,
            time_range={
                "start": to_iso(meta.start),
                "end": to_iso(meta.end),
                "timezone": "UTC",
            },
            device_types=list(GENERIC_DEVICE_TYPES),
            anonymization=AnonymizationInfo(),
            created_at=timestamp,
            updated_at=timestamp,
            version=MANIFEST_VERSION,
        )
        logger.info("Built manifest %s with %d metric blobs", manifest.dataset_id, len(metrics))
        return manifest
