"""Tests for sample and result models."""

from __future__ import annotations

from wellrus.domains.health.domain_logic.sample_models import (
    METRIC_UNITS,
    METRICS,
    PAYLOAD_KEYS,
    HealthSample,
)


class TestHealthSample:
    def test_to_dict_omits_missing_device(self):
        sample = HealthSample("2025-11-20T08:00:00.000Z", "hrv", 55.0, "ms", "mock_data")
        assert "device" not in sample.to_dict()

    def test_from_dict(self):
        sample = HealthSample.from_dict({
            "timestamp": "2025-11-20T08:00:00.000Z",
            "metric": "rhr",
            "value": "58",
            "unit": "bpm",
            "source": "apple_health",
            "device": "Apple Watch",
        })
        assert sample.value == 58.0
        assert sample.device == "Apple Watch"
        assert HealthSample.from_dict(sample.to_dict()) == sample


def test_every_payload_key_maps_to_a_known_metric():
    assert set(PAYLOAD_KEYS.values()) <= set(METRICS)
    assert set(METRICS) == set(METRIC_UNITS)
