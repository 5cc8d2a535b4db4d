"""Concrete HealthDataProvider implementations."""

from __future__ import annotations

import random
from datetime import datetime

from wellrus.domains.health.connectors.mock_data import generate_mock_samples
from wellrus.domains.health.domain_logic.sample_models import PAYLOAD_KEYS, HealthSample


class MockHealthDataProvider:
    """Uses mock data generators. Always available."""

    def __init__(self, rng: random.Random | None = None, samples_per_metric: int = 30) -> None:
        self._rng = rng or random.Random()
        self._samples_per_metric = samples_per_metric

    async def get_all_health_data(
        self, start: datetime, end: datetime
    ) -> dict[str, list[HealthSample]]:
        return {
            key: generate_mock_samples(metric, start, end, self._samples_per_metric, self._rng)
            for key, metric in PAYLOAD_KEYS.items()
        }

    def is_connected(self) -> bool:
        return False

    @property
    def data_source(self) -> str:
        return "mock"

    def get_provenance(self) -> dict[str, str]:
        return {
            "data_source": self.data_source,
            "data_source_note": (
                "Using simulated health data (demo mode). "
                "Point APPLE_HEALTH_EXPORT_PATH at an export.xml for real measurements."
            ),
        }
