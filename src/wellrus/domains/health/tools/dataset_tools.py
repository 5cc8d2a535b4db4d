"""MCP tools for publishing anonymized datasets and managing publications.

Metric blobs are encrypted before upload; the manifest is public. Uploaded
blobs are immutable, so deleting a publication only forgets it locally.
All uploads and deletions are audit-logged.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from wellrus.core.storage.blob_store import BlobNotFoundError, BlobStoreError
from wellrus.core.storage.encryption import EncryptionError

if TYPE_CHECKING:
    from wellrus.core.audit.logger import AuditLogger
    from wellrus.core.storage.blob_store import BlobStore
    from wellrus.core.storage.encryption import BlobEncryptor
    from wellrus.core.storage.repository import DatasetRepository
    from wellrus.domains.health.domain_logic.dataset_publisher import DatasetPublisher

logger = logging.getLogger(__name__)

_DEFAULT_USER_ID = "local_user"


def register_dataset_tools(
    mcp: FastMCP,
    publisher: DatasetPublisher,
    repository: DatasetRepository,
    blob_store: BlobStore,
    encryptor: BlobEncryptor,
    audit_logger: AuditLogger | None = None,
    default_days: int = 30,
) -> None:
    """Register dataset publishing and management tools on the MCP server."""

    @mcp.tool
    async def publish_health_dataset(
        ctx: Context,
        user_id: str = "",
        days: int = default_days,
        chronological_age: int | None = None,
    ) -> str:
        """Anonymize recent health data and publish it as a dataset.

        Each metric series is anonymized (device and source generalized,
        timestamps jittered, identifiers removed), encrypted and uploaded
        as its own blob, together with the biological-age result. A public
        manifest pointing at those blobs is uploaded last.

        Args:
            user_id: Local identifier; only a one-way pseudonym is published.
            days: Number of days of data to publish (default: 30).
            chronological_age: Your age in years, used for the biological-age
                blob. A synthetic age is used when omitted.
        """
        if days < 1:
            return json.dumps({"status": "error", "message": "days must be at least 1."})

        start_time = time.monotonic()
        try:
            result = await publisher.publish(
                user_id=user_id or _DEFAULT_USER_ID,
                days=days,
                chronological_age=chronological_age,
            )
        except BlobStoreError as exc:
            logger.error("Dataset publish failed: %s", exc)
            return json.dumps({
                "status": "error",
                "error_type": type(exc).__name__,
                "message": f"Upload failed: {exc}",
            })
        elapsed_ms = (time.monotonic() - start_time) * 1000

        return json.dumps({
            "status": "published",
            **result.to_dict(),
            "duration_ms": round(elapsed_ms, 1),
        }, indent=2)

    @mcp.tool
    async def list_published_datasets(
        ctx: Context,
        limit: int = 20,
    ) -> str:
        """List datasets published from this device, newest first.

        Args:
            limit: Maximum number of datasets to return (default: 20).
        """
        records = repository.list_publications(limit=max(1, limit))
        return json.dumps({
            "status": "ok",
            "count": len(records),
            "total": repository.count_publications(),
            "datasets": [record.summary() for record in records],
        }, indent=2)

    @mcp.tool
    async def get_dataset_manifest(
        ctx: Context,
        dataset_id: str,
    ) -> str:
        """Return the manifest of a published dataset.

        Args:
            dataset_id: The dataset id (``ds_...``).
        """
        record = repository.get_publication(dataset_id)
        if record is None:
            return json.dumps({
                "status": "not_found",
                "dataset_id": dataset_id,
                "message": "No dataset found with that ID.",
            })
        return json.dumps({
            "status": "ok",
            "dataset_id": dataset_id,
            "manifest_blob_id": record.manifest_blob_id,
            "manifest_url": record.manifest_url,
            "manifest_checksum": record.manifest_checksum,
            "manifest": record.manifest,
        }, indent=2)

    @mcp.tool
    async def delete_published_dataset(
        ctx: Context,
        dataset_id: str,
    ) -> str:
        """Forget a published dataset on this device.

        Blobs already uploaded are immutable and stay in the blob store;
        only the local record (including the encrypted biological-age
        result) is removed.

        Args:
            dataset_id: The dataset id (``ds_...``).
        """
        deleted = repository.delete_publication(dataset_id)
        if not deleted:
            return json.dumps({
                "status": "not_found",
                "dataset_id": dataset_id,
                "message": "No dataset found with that ID.",
            })

        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_published_dataset",
                dataset_id=dataset_id,
                count=1,
            )
        logger.info("Deleted publication record %s", dataset_id)
        return json.dumps({
            "status": "deleted",
            "dataset_id": dataset_id,
            "note": "Uploaded blobs are immutable; only the local record was removed.",
        })

    @mcp.tool
    async def download_blob(
        ctx: Context,
        blob_id: str,
        decrypt: bool = False,
    ) -> str:
        """Fetch a blob from the blob store.

        Args:
            blob_id: The blob id returned at upload.
            decrypt: Decrypt with the local key (metric and bio_age blobs).
        """
        try:
            payload = await blob_store.download(blob_id)
        except BlobNotFoundError:
            return json.dumps({
                "status": "not_found",
                "blob_id": blob_id,
                "message": "No blob found with that ID.",
            })
        except BlobStoreError as exc:
            return json.dumps({
                "status": "error",
                "error_type": type(exc).__name__,
                "message": str(exc),
            })

        if decrypt:
            try:
                payload = encryptor.decrypt(payload)
            except EncryptionError as exc:
                return json.dumps({
                    "status": "error",
                    "error_type": type(exc).__name__,
                    "message": str(exc),
                })

        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="download_blob",
                tool_input={"blob_id": blob_id, "decrypt": decrypt},
            )

        return json.dumps({
            "status": "ok",
            "blob_id": blob_id,
            "decrypted": decrypt,
            "size": len(payload),
            "content": payload.decode("utf-8", errors="replace"),
        }, indent=2)
