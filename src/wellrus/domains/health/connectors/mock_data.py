"""Mock health sample generators for demo mode and testing.

Values are drawn uniformly from plausible ranges for a young adult; samples
are evenly spaced across the requested range.
"""

from __future__ import annotations

import random
from datetime import datetime

from wellrus.core.timeutil import to_iso
from wellrus.domains.health.domain_logic.sample_models import (
    METRIC_ACTIVE_CALORIES,
    METRIC_EXERCISE_MINUTES,
    METRIC_HRV,
    METRIC_RHR,
    METRIC_WEIGHT,
    HealthSample,
)

# metric -> (low, span, unit); value = low + randrange(span)
_RANGES: dict[str, tuple[int, int, str]] = {
    METRIC_HRV: (40, 30, "ms"),
    METRIC_RHR: (50, 20, "bpm"),
    METRIC_ACTIVE_CALORIES: (200, 500, "kcal"),
    METRIC_EXERCISE_MINUTES: (10, 60, "min"),
    METRIC_WEIGHT: (140, 40, "lbs"),
}

MOCK_SOURCE = "mock_data"
MOCK_DEVICE = "simulator"


def generate_mock_samples(
    metric: str,
    start: datetime,
    end: datetime,
    count: int = 30,
    rng: random.Random | None = None,
) -> list[HealthSample]:
    """Return ``count`` synthetic samples for ``metric`` between start and end."""
    if count <= 0:
        return []
    rng = rng or random.Random()
    interval = (end - start) / count

    samples = []
    for i in range(count):
        if metric in _RANGES:
            low, span, unit = _RANGES[metric]
            value = float(low + rng.randrange(span))
        else:
            value, unit = rng.random() * 100, "units"
        samples.append(HealthSample(
            timestamp=to_iso(start + interval * i),
            metric=metric,
            value=value,
            unit=unit,
            source=MOCK_SOURCE,
            device=MOCK_DEVICE,
        ))
    return samples
