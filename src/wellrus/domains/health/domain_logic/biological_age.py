"""Deterministic biological-age scoring from four metric series.

Each factor maps a series mean to a 0-100 sub-score; the weighted composite
is mapped to a years-younger/older offset from chronological age.

Empty series degrade to a mean of 0 and the resulting (implausible) score is
returned as-is. Nothing here raises for absent data.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Iterable, Mapping
from typing import Any

from wellrus.domains.health.domain_logic.sample_models import (
    BiologicalAgeResult,
    FactorScore,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

FACTOR_WEIGHTS = {
    "hrv": 0.30,
    "rhr": 0.25,
    "exercise": 0.25,
    "weight": 0.20,
}

# Resting heart rate (bpm)
RHR_OPTIMAL = 55
RHR_ACCEPTABLE = 70

# Exercise minutes per day; WHO's 150 min/week is ~21 min/day
EXERCISE_OPTIMAL = 30
EXERCISE_MINIMUM = 20

# Weight (lbs), tuned for the 18-25 bracket
WEIGHT_OPTIMAL = 145
WEIGHT_TOLERANCE = 5
WEIGHT_RANGE = 15

# Synthetic chronological age when the caller supplies none
DEFAULT_AGE_MIN = 18
DEFAULT_AGE_MAX = 25

MAINTAIN_RECOMMENDATIONS = [
    "Maintain your excellent health habits!",
    "Consider advanced optimization strategies",
]

BIOLOGICAL_AGE_EXPLANATION = """Biological age is calculated using key health metrics:

- Heart Rate Variability (30%): Measures autonomic nervous system health
- Resting Heart Rate (25%): Indicates cardiovascular fitness
- Exercise Minutes (25%): Reflects physical activity levels
- Weight Trends (20%): Shows metabolic health

Your biological age may be younger or older than your chronological age based on these health indicators."""


def _clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, value))


def _round1(value: float) -> float:
    """Round half up to one decimal place."""
    return math.floor(value * 10 + 0.5) / 10


def _sample_value(sample: Any) -> float:
    """Read a sample's value; anything unreadable counts as 0."""
    if isinstance(sample, Mapping):
        raw = sample.get("value")
    else:
        raw = getattr(sample, "value", None)
    if raw is None or isinstance(raw, bool):
        return 0.0
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


def series_mean(samples: Iterable[Any] | None) -> float:
    """Arithmetic mean of a series' values; 0 for an empty series."""
    values = [_sample_value(s) for s in (samples or [])]
    if not values:
        return 0.0
    return sum(values) / len(values)


# ---------------------------------------------------------------------------
# Factor scores (0-100)
# ---------------------------------------------------------------------------

def score_hrv(mean_hrv: float, age: float) -> float:
    """HRV declines with age; score against an age-adjusted baseline."""
    expected = max(20.0, 60 - (age - 20) * 0.8)
    return _clamp((mean_hrv / expected) * 85)


def score_rhr(mean_rhr: float) -> float:
    """Lower resting heart rate scores higher."""
    if mean_rhr <= RHR_OPTIMAL:
        return 100.0
    if mean_rhr <= RHR_ACCEPTABLE:
        return 80 - ((mean_rhr - RHR_OPTIMAL) / (RHR_ACCEPTABLE - RHR_OPTIMAL)) * 30
    return max(20.0, 50 - (mean_rhr - RHR_ACCEPTABLE))


def score_exercise(mean_minutes: float) -> float:
    if mean_minutes >= EXERCISE_OPTIMAL:
        return 100.0
    if mean_minutes >= EXERCISE_MINIMUM:
        return 70 + ((mean_minutes - EXERCISE_MINIMUM) / (EXERCISE_OPTIMAL - EXERCISE_MINIMUM)) * 30
    return (mean_minutes / EXERCISE_MINIMUM) * 70


def score_weight(mean_weight: float) -> float:
    deviation = abs(mean_weight - WEIGHT_OPTIMAL)
    if deviation <= WEIGHT_TOLERANCE:
        return 100.0
    if deviation <= WEIGHT_RANGE:
        return 80 - ((deviation - WEIGHT_TOLERANCE) / (WEIGHT_RANGE - WEIGHT_TOLERANCE)) * 30
    return max(30.0, 50 - (deviation - WEIGHT_RANGE))


def score_to_biological_age(score: float, chronological_age: float) -> float:
    """Map a composite score onto an offset from chronological age.

    >= 85: up to 8 years younger; 50-85: up to 5 years older;
    < 50: 5 to 15 years older.
    """
    if score >= 85:
        return chronological_age - ((score - 85) / 15) * 8
    if score >= 50:
        return chronological_age + ((85 - score) / 35) * 5
    return chronological_age + 5 + ((50 - score) / 50) * 10


# ---------------------------------------------------------------------------
# Labels and text
# ---------------------------------------------------------------------------

def impact_label(score: float) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 65:
        return "Good"
    if score >= 50:
        return "Average"
    if score >= 35:
        return "Below Average"
    return "Poor"


def interpretation_for(age_difference: float) -> str:
    if age_difference <= -3:
        return (
            "Your biological age suggests excellent health! Your body is "
            "functioning like someone significantly younger."
        )
    if age_difference <= -1:
        return (
            "Great job! Your biological age indicates you're healthier than "
            "average for your age."
        )
    if age_difference <= 1:
        return "Your biological age aligns well with your chronological age."
    if age_difference <= 3:
        return "Your biological age suggests room for improvement in your health metrics."
    return (
        "Your biological age indicates significant opportunity to improve "
        "your health and longevity."
    )


def recommendations_for(
    hrv_score: float,
    rhr_score: float,
    exercise_score: float,
    weight_score: float,
) -> list[str]:
    # Thresholds differ per factor (60/60/70/70); kept as published.
    recommendations: list[str] = []
    if hrv_score < 60:
        recommendations.append(
            "Improve HRV through stress management, better sleep, and meditation"
        )
    if rhr_score < 60:
        recommendations.append("Lower resting heart rate with regular cardio exercise")
    if exercise_score < 70:
        recommendations.append("Increase daily exercise to 30+ minutes for optimal health")
    if weight_score < 70:
        recommendations.append(
            "Optimize weight through balanced nutrition and portion control"
        )

    if not recommendations:
        recommendations.extend(MAINTAIN_RECOMMENDATIONS)
    return recommendations


# ---------------------------------------------------------------------------
# Scorer
# ---------------------------------------------------------------------------

class BiologicalAgeScorer:
    """Computes a BiologicalAgeResult from HRV, RHR, exercise and weight series.

    Usage::

        scorer = BiologicalAgeScorer()
        result = scorer.score(hrv, rhr, exercise, weight, chronological_age=22)
        result.biological_age  # e.g. 16.5

    Output is fully deterministic when ``chronological_age`` is supplied.
    Otherwise a synthetic age in 18..25 is drawn from the injected RNG.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def score(
        self,
        hrv: Iterable[Any] | None,
        rhr: Iterable[Any] | None,
        exercise: Iterable[Any] | None,
        weight: Iterable[Any] | None,
        chronological_age: int | None = None,
    ) -> BiologicalAgeResult:
        if chronological_age is None:
            chronological_age = self._rng.randint(DEFAULT_AGE_MIN, DEFAULT_AGE_MAX)
            logger.debug("No chronological age supplied; using synthetic age")

        hrv_score = score_hrv(series_mean(hrv), chronological_age)
        rhr_score = score_rhr(series_mean(rhr))
        exercise_score = score_exercise(series_mean(exercise))
        weight_score = score_weight(series_mean(weight))

        overall = (
            hrv_score * FACTOR_WEIGHTS["hrv"]
            + rhr_score * FACTOR_WEIGHTS["rhr"]
            + exercise_score * FACTOR_WEIGHTS["exercise"]
            + weight_score * FACTOR_WEIGHTS["weight"]
        )

        biological_age = score_to_biological_age(overall, chronological_age)
        age_difference = biological_age - chronological_age

        return BiologicalAgeResult(
            biological_age=_round1(biological_age),
            chronological_age=chronological_age,
            age_difference=_round1(age_difference),
            factors={
                "hrv": FactorScore(hrv_score, impact_label(hrv_score)),
                "rhr": FactorScore(rhr_score, impact_label(rhr_score)),
                "exercise": FactorScore(exercise_score, impact_label(exercise_score)),
                "weight": FactorScore(weight_score, impact_label(weight_score)),
            },
            interpretation=interpretation_for(age_difference),
            recommendations=recommendations_for(
                hrv_score, rhr_score, exercise_score, weight_score
            ),
            overall_score=overall,
        )


def calculate_biological_age(
    health_data: Mapping[str, Iterable[Any]],
    chronological_age: int | None = None,
    *,
    rng: random.Random | None = None,
) -> BiologicalAgeResult:
    """Score a ``get_all_health_data()`` payload (keys hrv, rhr, exercise, weight)."""
    return BiologicalAgeScorer(rng).score(
        health_data.get("hrv"),
        health_data.get("rhr"),
        health_data.get("exercise"),
        health_data.get("weight"),
        chronological_age,
    )
