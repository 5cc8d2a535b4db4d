"""MCP tools for viewing the audit trail.

The audit log answers how often health data left this device and whether
it was encrypted when it did. It never holds sample values, only blob
ids, sizes and hashed tool inputs.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from wellrus.core.timeutil import utc_now

if TYPE_CHECKING:
    from wellrus.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


def register_audit_tools(
    mcp: FastMCP,
    audit_logger: AuditLogger,
) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(
        ctx: Context,
        days: int = 30,
    ) -> str:
        """View recent uploads, publications and deletions.

        Args:
            days: Number of days to look back (default: 30).
        """
        since = (utc_now() - timedelta(days=days)).isoformat()

        total_events = audit_logger.count_events(since=since)
        uploads = audit_logger.count_uploads(since=since, left_device_only=False)
        network_uploads = audit_logger.count_uploads(since=since)
        recent_events = audit_logger.get_events(since=since, limit=20)

        display_events = [
            {
                "timestamp": event.get("timestamp"),
                "action": event.get("action"),
                "tool_name": event.get("tool_name"),
                "dataset_id": event.get("dataset_id"),
                "blob_id": event.get("blob_id"),
                "encrypted": bool(event.get("encrypted")),
                "left_device": bool(event.get("left_device")),
                "status": event.get("status"),
            }
            for event in recent_events
        ]

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": total_events,
            "blob_uploads": uploads,
            "uploads_left_device": network_uploads,
            "recent_events": display_events,
            "note": (
                "This audit trail contains no health data. "
                "It tracks uploads, publications and deletions."
            ),
        }, indent=2)
