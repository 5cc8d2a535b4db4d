"""Health data connectors: abstraction layer for health sample retrieval."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from wellrus.domains.health.domain_logic.sample_models import HealthSample


@runtime_checkable
class HealthDataProvider(Protocol):
    """Abstract interface for personal health data retrieval.

    The pipeline calls these methods without knowing whether samples come
    from an Apple Health export or the mock generator; both are treated
    identically downstream.
    """

    async def get_all_health_data(
        self, start: datetime, end: datetime
    ) -> dict[str, list[HealthSample]]:
        """Samples per metric: keys hrv, rhr, calories, exercise, weight."""
        ...

    def is_connected(self) -> bool:
        """Whether real health data is available."""
        ...

    @property
    def data_source(self) -> str:
        """Label for the active data source: 'apple_health' or 'mock'."""
        ...

    def get_provenance(self) -> dict[str, str]:
        """Provenance metadata for tool responses."""
        ...
