"""Apple Health XML export parser.

Parses the ``export.xml`` file produced by Apple Health (iOS → Share → Export
Health Data) into per-metric HealthSample series. Uses iterparse so large
exports are processed incrementally.

HealthKit type mappings:
- HKQuantityTypeIdentifierHeartRateVariabilitySDNN → hrv (ms)
- HKQuantityTypeIdentifierRestingHeartRate → rhr (bpm)
- HKQuantityTypeIdentifierActiveEnergyBurned → active_calories (kcal, daily total)
- HKQuantityTypeIdentifierAppleExerciseTime → exercise_minutes (min, daily total)
- HKQuantityTypeIdentifierBodyMass → weight (lbs)
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections import defaultdict
from datetime import datetime
from pathlib import Path

from wellrus.core.timeutil import parse_timestamp, to_iso
from wellrus.domains.health.domain_logic.sample_models import (
    METRIC_ACTIVE_CALORIES,
    METRIC_EXERCISE_MINUTES,
    METRIC_HRV,
    METRIC_RHR,
    METRIC_UNITS,
    METRIC_WEIGHT,
    PAYLOAD_KEYS,
    HealthSample,
)

logger = logging.getLogger(__name__)

APPLE_HEALTH_SOURCE = "apple_health"

_TYPE_TO_METRIC = {
    "HKQuantityTypeIdentifierHeartRateVariabilitySDNN": METRIC_HRV,
    "HKQuantityTypeIdentifierRestingHeartRate": METRIC_RHR,
    "HKQuantityTypeIdentifierActiveEnergyBurned": METRIC_ACTIVE_CALORIES,
    "HKQuantityTypeIdentifierAppleExerciseTime": METRIC_EXERCISE_MINUTES,
    "HKQuantityTypeIdentifierBodyMass": METRIC_WEIGHT,
}

# Recorded in small increments; rolled up to one sample per day
DAILY_TOTAL_METRICS = {METRIC_ACTIVE_CALORIES, METRIC_EXERCISE_MINUTES}

_KG_TO_LBS = 2.20462


class AppleHealthParseError(Exception):
    """Raised when parsing Apple Health export XML fails."""


def _convert(metric: str, value: float, unit: str) -> float:
    if metric == METRIC_WEIGHT and unit == "kg":
        return value * _KG_TO_LBS
    if metric == METRIC_ACTIVE_CALORIES and unit == "kJ":
        return value / 4.184
    return value


def _daily_totals(samples: list[HealthSample]) -> list[HealthSample]:
    totals: dict[str, float] = defaultdict(float)
    devices: dict[str, str | None] = {}
    for sample in samples:
        day = sample.timestamp[:10]
        totals[day] += sample.value
        devices.setdefault(day, sample.device)

    first = samples[0]
    return [
        HealthSample(
            timestamp=f"{day}T00:00:00.000Z",
            metric=first.metric,
            value=round(total, 2),
            unit=first.unit,
            source=first.source,
            device=devices[day],
        )
        for day, total in sorted(totals.items())
    ]


def parse_apple_health_samples(
    export_path: str | Path,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict[str, list[HealthSample]]:
    """Parse an export.xml into series keyed like ``get_all_health_data()``.

    Args:
        export_path: Path to the Apple Health export.xml file.
        start: Inclusive lower bound on sample start time (None: unbounded).
        end: Inclusive upper bound on sample start time (None: unbounded).

    Returns:
        Dict with keys hrv, rhr, calories, exercise, weight; each a
        time-ordered list of HealthSample.

    Raises:
        AppleHealthParseError: If the file is missing or not valid XML.
    """
    path = Path(export_path)
    if not path.exists():
        raise AppleHealthParseError(f"Export file not found: {path}")

    lo = parse_timestamp(start) if start is not None else None
    hi = parse_timestamp(end) if end is not None else None
    by_metric: dict[str, list[HealthSample]] = defaultdict(list)
    skipped = 0

    try:
        for _event, elem in ET.iterparse(str(path), events=("end",)):
            if elem.tag != "Record":
                continue
            metric = _TYPE_TO_METRIC.get(elem.get("type", ""))
            if metric is not None:
                dt = parse_timestamp(elem.get("startDate", ""))
                try:
                    value = float(elem.get("value", ""))
                except ValueError:
                    value = None
                if dt is None or value is None:
                    skipped += 1
                elif (lo is None or lo <= dt) and (hi is None or dt <= hi):
                    by_metric[metric].append(HealthSample(
                        timestamp=to_iso(dt),
                        metric=metric,
                        value=_convert(metric, value, elem.get("unit", "")),
                        unit=METRIC_UNITS[metric],
                        source=APPLE_HEALTH_SOURCE,
                        device=elem.get("sourceName") or None,
                    ))
            elem.clear()
    except ET.ParseError as exc:
        raise AppleHealthParseError(f"Invalid XML: {exc}") from exc

    result: dict[str, list[HealthSample]] = {}
    for key, metric in PAYLOAD_KEYS.items():
        series = sorted(by_metric.get(metric, []), key=lambda s: s.timestamp)
        if series and metric in DAILY_TOTAL_METRICS:
            series = _daily_totals(series)
        result[key] = series

    logger.info(
        "Parsed Apple Health export: %s (%d unreadable records skipped)",
        ", ".join(f"{k}={len(v)}" for k, v in result.items()),
        skipped,
    )
    return result
