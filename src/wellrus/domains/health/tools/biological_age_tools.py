"""MCP tools for the biological-age estimate.

Scoring runs locally on raw values; nothing leaves the device here.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import timedelta
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from wellrus.core.timeutil import utc_now
from wellrus.domains.health.domain_logic.biological_age import BIOLOGICAL_AGE_EXPLANATION

if TYPE_CHECKING:
    from wellrus.core.audit.logger import AuditLogger
    from wellrus.domains.health.connectors import HealthDataProvider
    from wellrus.domains.health.domain_logic.biological_age import BiologicalAgeScorer

logger = logging.getLogger(__name__)


def register_biological_age_tools(
    mcp: FastMCP,
    provider: HealthDataProvider,
    scorer: BiologicalAgeScorer,
    audit_logger: AuditLogger | None = None,
    default_days: int = 30,
) -> None:
    """Register biological-age tools on the MCP server."""

    @mcp.tool
    async def calculate_biological_age(
        ctx: Context,
        days: int = default_days,
        chronological_age: int | None = None,
    ) -> str:
        """Estimate biological age from recent HRV, resting heart rate,
        exercise and weight.

        Each factor is scored 0-100, combined with fixed weights and mapped
        to an age within +/-10 years of the chronological age.

        Args:
            days: Number of days of data to use (default: 30).
            chronological_age: Your age in years. A synthetic age between 18
                and 25 is used when omitted (demo mode).
        """
        if days < 1:
            return json.dumps({"status": "error", "message": "days must be at least 1."})

        start_time = time.monotonic()
        end = utc_now()
        health_data = await provider.get_all_health_data(end - timedelta(days=days), end)

        result = scorer.score(
            health_data.get("hrv"),
            health_data.get("rhr"),
            health_data.get("exercise"),
            health_data.get("weight"),
            chronological_age,
        )
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="calculate_biological_age",
                tool_input={"days": days, "chronological_age": chronological_age},
                duration_ms=elapsed_ms,
            )

        return json.dumps({
            "status": "ok",
            "period_days": days,
            **result.to_dict(),
            "sample_counts": {name: len(series or []) for name, series in health_data.items()},
            "provenance": provider.get_provenance(),
        }, indent=2)

    @mcp.tool
    async def explain_biological_age(ctx: Context) -> str:
        """Explain how the biological-age estimate is calculated."""
        return json.dumps({
            "status": "ok",
            "explanation": BIOLOGICAL_AGE_EXPLANATION,
        }, indent=2)
