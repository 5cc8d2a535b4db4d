"""Health sample and biological-age result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Metric constants
# ---------------------------------------------------------------------------

METRIC_HRV = "hrv"
METRIC_RHR = "rhr"
METRIC_ACTIVE_CALORIES = "active_calories"
METRIC_EXERCISE_MINUTES = "exercise_minutes"
METRIC_WEIGHT = "weight"

METRICS = [
    METRIC_HRV,
    METRIC_RHR,
    METRIC_ACTIVE_CALORIES,
    METRIC_EXERCISE_MINUTES,
    METRIC_WEIGHT,
]

METRIC_UNITS = {
    METRIC_HRV: "ms",
    METRIC_RHR: "bpm",
    METRIC_ACTIVE_CALORIES: "kcal",
    METRIC_EXERCISE_MINUTES: "min",
    METRIC_WEIGHT: "lbs",
}

# Keys of the get_all_health_data() payload, mapped to the sample metric they hold
PAYLOAD_KEYS = {
    "hrv": METRIC_HRV,
    "rhr": METRIC_RHR,
    "calories": METRIC_ACTIVE_CALORIES,
    "exercise": METRIC_EXERCISE_MINUTES,
    "weight": METRIC_WEIGHT,
}

# Upload key for the biological-age blob alongside the metric blobs
BIO_AGE_KEY = "bio_age"


@dataclass(frozen=True)
class HealthSample:
    """One observation as produced by a health data provider."""

    timestamp: str                 # ISO-8601
    metric: str                    # one of METRICS
    value: float
    unit: str
    source: str
    device: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": self.timestamp,
            "metric": self.metric,
            "value": self.value,
            "unit": self.unit,
            "source": self.source,
        }
        if self.device is not None:
            data["device"] = self.device
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HealthSample:
        return cls(
            timestamp=str(data.get("timestamp", "")),
            metric=str(data.get("metric", "")),
            value=float(data.get("value", 0.0)),
            unit=str(data.get("unit", "")),
            source=str(data.get("source", "")),
            device=data.get("device"),
        )


@dataclass(frozen=True)
class FactorScore:
    """A 0-100 sub-score with its descriptive label."""

    score: float
    impact: str

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "impact": self.impact}


@dataclass(frozen=True)
class BiologicalAgeResult:
    """Composite biological-age estimate. Recomputed on every scoring call."""

    biological_age: float
    chronological_age: int
    age_difference: float
    factors: dict[str, FactorScore]
    interpretation: str
    recommendations: list[str] = field(default_factory=list)
    overall_score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "biological_age": self.biological_age,
            "chronological_age": self.chronological_age,
            "age_difference": self.age_difference,
            "overall_score": self.overall_score,
            "factors": {name: f.to_dict() for name, f in self.factors.items()},
            "interpretation": self.interpretation,
            "recommendations": list(self.recommendations),
        }
