"""Apple Health data provider: reads from exported Health data XML.

Users export via iOS Health app → Share → Export Health Data → produces
export.xml. This provider parses that XML to implement HealthDataProvider.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from wellrus.core.timeutil import to_iso
from wellrus.domains.health.connectors.apple_health_parser import (
    DAILY_TOTAL_METRICS,
    AppleHealthParseError,
    parse_apple_health_samples,
)
from wellrus.domains.health.domain_logic.sample_models import PAYLOAD_KEYS, HealthSample

logger = logging.getLogger(__name__)


def _within(series: list[HealthSample], start: datetime, end: datetime) -> list[HealthSample]:
    """Samples whose timestamp falls in [start, end]; daily totals match by day."""
    lo, hi = to_iso(start), to_iso(end)
    return [
        sample for sample in series
        if (lo[:10] <= sample.timestamp[:10] <= hi[:10]
            if sample.metric in DAILY_TOTAL_METRICS
            else lo <= sample.timestamp <= hi)
    ]


class AppleHealthProvider:
    """HealthDataProvider backed by an Apple Health XML export.

    The export is parsed once per file modification time; each call filters
    that parse to the requested window.

    Usage::

        provider = AppleHealthProvider("/path/to/export.xml")
        if provider.is_connected():
            data = await provider.get_all_health_data(start, end)
    """

    def __init__(self, export_path: str) -> None:
        self._export_path = export_path
        self._cache: tuple[int, dict[str, list[HealthSample]]] | None = None
        self._connected = bool(export_path) and Path(export_path).expanduser().exists()

    async def get_all_health_data(
        self, start: datetime, end: datetime
    ) -> dict[str, list[HealthSample]]:
        path = Path(self._export_path).expanduser()
        try:
            mtime = path.stat().st_mtime_ns
            if self._cache is None or self._cache[0] != mtime:
                self._cache = (mtime, parse_apple_health_samples(path))
        except (OSError, AppleHealthParseError):
            logger.exception("Failed to parse Apple Health export")
            return {payload_key: [] for payload_key in PAYLOAD_KEYS}

        parsed = self._cache[1]
        return {key: _within(series, start, end) for key, series in parsed.items()}

    def is_connected(self) -> bool:
        """Check if the export file exists."""
        return self._connected

    @property
    def data_source(self) -> str:
        return "apple_health"

    def get_provenance(self) -> dict[str, str]:
        return {
            "data_source": self.data_source,
            "data_source_note": "Data from Apple Health export.",
        }
