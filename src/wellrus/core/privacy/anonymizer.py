"""Anonymization of health records before they leave the device.

Two entry points:

- ``anonymize_array`` for per-sample records: generalizes device and source
  strings, applies temporal jitter to timestamps, and drops the direct
  identifiers a health export can carry.
- ``anonymize_object`` for arbitrary nested payloads (e.g. a biological-age
  result): walks mappings and lists and removes every deny-listed key at
  every depth.

Neither raises for missing or oddly-typed fields. Inputs are never mutated.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Mapping
from datetime import timedelta
from typing import Any, Final

from wellrus.core.timeutil import parse_timestamp, to_iso

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Deny-lists
# ---------------------------------------------------------------------------

SAMPLE_IDENTIFIER_FIELDS: Final = frozenset({
    "userId",
    "userName",
    "deviceId",
    "serialNumber",
})

NESTED_IDENTIFIER_FIELDS: Final = SAMPLE_IDENTIFIER_FIELDS | frozenset({
    "user_id",
    "device_serial",
    "patient_id",
})

PII_FIELDS: Final = frozenset({
    "firstName",
    "lastName",
    "name",
    "email",
    "phone",
    "address",
    "ssn",
    "dob",
    "dateOfBirth",
    "id",
    "patientId",
    "personalInfo",
})

FULL_DENY_LIST: Final = NESTED_IDENTIFIER_FIELDS | PII_FIELDS

# Substring match, first hit wins
_DEVICE_TYPES: Final = (
    ("Apple Watch", "smartwatch"),
    ("iPhone", "smartphone"),
)
_GENERIC_DEVICE: Final = "health_device"

_SOURCE_ALIASES: Final = {"apple_health": "health_app"}

DEFAULT_JITTER_MINUTES: Final = 30.0


def generalize_device(value: Any) -> Any:
    """Collapse a device name into one of the generic device types."""
    if not value:
        return value
    if not isinstance(value, str):
        return _GENERIC_DEVICE
    for needle, device_type in _DEVICE_TYPES:
        if needle in value:
            return device_type
    return _GENERIC_DEVICE


def generalize_source(value: Any) -> Any:
    """Replace platform-specific source labels with generic ones."""
    if isinstance(value, str):
        return _SOURCE_ALIASES.get(value, value)
    return value


class Anonymizer:
    """Strips identifying information from health records.

    The random generator is injectable so tests can pin the jitter::

        anonymizer = Anonymizer(rng=random.Random(7))
        safe = anonymizer.anonymize_array(samples)
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        jitter_minutes: float = DEFAULT_JITTER_MINUTES,
    ) -> None:
        if jitter_minutes < 0:
            raise ValueError("jitter_minutes must not be negative")
        self._rng = rng or random.Random()
        self._jitter_ms = jitter_minutes * 60 * 1000

    @property
    def jitter_minutes(self) -> float:
        return self._jitter_ms / 60_000

    # ------------------------------------------------------------------
    # Per-sample records
    # ------------------------------------------------------------------

    def jitter_timestamp(self, value: Any) -> Any:
        """Shift a timestamp by a uniform offset within +/- the jitter window.

        Unreadable timestamps are returned unchanged.
        """
        dt = parse_timestamp(value)
        if dt is None:
            return value
        # Whole milliseconds on both sides, so serializing cannot widen the shift.
        dt = dt.replace(microsecond=dt.microsecond // 1000 * 1000)
        offset_ms = int(self._rng.uniform(-self._jitter_ms, self._jitter_ms))
        return to_iso(dt + timedelta(milliseconds=offset_ms))

    def anonymize_sample(self, sample: Mapping[str, Any]) -> dict[str, Any]:
        """Anonymize a single sample record (shallow copy)."""
        sanitized = dict(sample)

        if sanitized.get("device"):
            sanitized["device"] = generalize_device(sanitized["device"])

        if "source" in sanitized:
            sanitized["source"] = generalize_source(sanitized["source"])

        if sanitized.get("timestamp"):
            sanitized["timestamp"] = self.jitter_timestamp(sanitized["timestamp"])

        for key in SAMPLE_IDENTIFIER_FIELDS:
            sanitized.pop(key, None)

        return sanitized

    def anonymize_array(self, samples: list[Any]) -> list[Any]:
        """Anonymize a series of sample records.

        Output length and order match the input. Jitter is drawn per sample,
        so neighbouring timestamps may swap order; they are not re-sorted.
        Elements that are not records pass through unchanged.
        """
        result: list[Any] = []
        for item in samples or []:
            record = item.to_dict() if hasattr(item, "to_dict") else item
            if isinstance(record, Mapping):
                result.append(self.anonymize_sample(record))
            else:
                result.append(record)
        return result

    # ------------------------------------------------------------------
    # Arbitrary nested payloads
    # ------------------------------------------------------------------

    def anonymize_object(self, obj: Any) -> Any:
        """Remove deny-listed keys from a nested payload at every depth.

        ``None`` and other primitives are returned as-is.
        """
        return _strip(obj, FULL_DENY_LIST)


def _strip(node: Any, deny: frozenset[str]) -> Any:
    if isinstance(node, Mapping):
        return {
            key: _strip(value, deny)
            for key, value in node.items()
            if key not in deny
        }
    if isinstance(node, (list, tuple)):
        return [_strip(item, deny) for item in node]
    return node


def contains_denied_keys(node: Any, deny: frozenset[str] = FULL_DENY_LIST) -> bool:
    """Whether any deny-listed key is present anywhere in ``node``."""
    if isinstance(node, Mapping):
        return any(
            key in deny or contains_denied_keys(value, deny)
            for key, value in node.items()
        )
    if isinstance(node, (list, tuple)):
        return any(contains_denied_keys(item, deny) for item in node)
    return False
