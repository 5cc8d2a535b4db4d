"""Audit logger: PHI-free record of tool calls, uploads and deletions.

Every blob that leaves the device is recorded, so the user can answer
"how many times has my health data been uploaded, and was it encrypted?"

* ``tool_input_hash``: SHA-256 of canonical JSON (no raw inputs in logs).
* ``left_device``:     True when a payload was sent to the blob store.
* ``encrypted``:       whether that payload was sealed before upload.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from wellrus.core.storage.database import WellrusDatabase

logger = logging.getLogger(__name__)


def _hash_input(data: Any) -> str:
    """SHA-256 hash of canonical JSON, or empty string if not serializable."""
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()
    except (TypeError, ValueError):
        return ""


@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # 'tool_invocation' | 'blob_upload' | 'dataset_publish' | 'data_delete'
    tool_name: str = ""
    tool_input_hash: str = ""
    dataset_id: str | None = None
    blob_id: str | None = None
    encrypted: bool = False
    left_device: bool = False
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'failure'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class AuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    Writes are committed immediately so no entry is lost on crash.

    Usage::

        audit = AuditLogger(database)
        audit.log_blob_upload(blob_id=receipt.id, encrypted=True, size=receipt.size)
    """

    def __init__(self, database: WellrusDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Insert an audit event and return its UUID ('' if the write failed)."""
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        metadata_json = (
            json.dumps(event.metadata, separators=(",", ":"))
            if event.metadata
            else None
        )

        try:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO audit_log
                   (id, timestamp, action, tool_name, tool_input_hash,
                    dataset_id, blob_id, encrypted, left_device,
                    duration_ms, status, error_type, metadata_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event_id,
                    now,
                    event.action,
                    event.tool_name or None,
                    event.tool_input_hash or None,
                    event.dataset_id,
                    event.blob_id,
                    1 if event.encrypted else 0,
                    1 if event.left_device else 0,
                    event.duration_ms,
                    event.status,
                    event.error_type,
                    metadata_json,
                ),
            )
            conn.commit()
        except Exception:
            logger.exception("Failed to write audit event; event lost")
            return ""

        return event_id

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        dataset_id: str | None = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log a tool invocation. ``tool_input`` is hashed, never stored."""
        return self.log_event(AuditEvent(
            action="tool_invocation",
            tool_name=tool_name,
            tool_input_hash=_hash_input(tool_input) if tool_input else "",
            dataset_id=dataset_id,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_blob_upload(
        self,
        *,
        blob_id: str,
        encrypted: bool,
        size: int,
        label: str = "",
        store_mode: str = "",
        dataset_id: str | None = None,
    ) -> str:
        """Log one stored payload.

        ``store_mode`` names the store that accepted the blob; only the
        simulated store keeps it on the device.
        """
        return self.log_event(AuditEvent(
            action="blob_upload",
            blob_id=blob_id,
            dataset_id=dataset_id,
            encrypted=encrypted,
            left_device=store_mode != "simulated",
            metadata={"label": label, "size": size, "store_mode": store_mode},
        ))

    def log_dataset_publish(
        self,
        *,
        dataset_id: str | None,
        manifest_blob_id: str | None = None,
        metric_count: int = 0,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
    ) -> str:
        return self.log_event(AuditEvent(
            action="dataset_publish",
            dataset_id=dataset_id,
            blob_id=manifest_blob_id,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata={"metric_count": metric_count},
        ))

    def log_data_delete(
        self,
        *,
        tool_name: str = "",
        dataset_id: str | None = None,
        count: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        return self.log_event(AuditEvent(
            action="data_delete",
            tool_name=tool_name,
            dataset_id=dataset_id,
            metadata={**(metadata or {}), "records_deleted": count},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        dataset_id: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events with optional filters, newest first."""
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if dataset_id:
            conditions.append("dataset_id = ?")
            params.append(dataset_id)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def count_events(self, *, since: str | None = None) -> int:
        if since:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE timestamp >= ?", (since,)
            ).fetchone()
        else:
            row = self._db.connection.execute("SELECT COUNT(*) FROM audit_log").fetchone()
        return row[0]

    def count_uploads(self, *, since: str | None = None, left_device_only: bool = True) -> int:
        """Count blob uploads, by default only those that reached the network."""
        query = "SELECT COUNT(*) FROM audit_log WHERE action = 'blob_upload'"
        params: list[Any] = []
        if left_device_only:
            query += " AND left_device = 1"
        if since:
            query += " AND timestamp >= ?"
            params.append(since)
        return self._db.connection.execute(query, params).fetchone()[0]
