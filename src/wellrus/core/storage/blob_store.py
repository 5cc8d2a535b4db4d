"""Blob storage clients: Walrus publisher/aggregator HTTP API and a local simulation.

Every store implements the same two calls::

    receipt = await store.upload(jsonl, encrypt=True)
    payload = await store.download(receipt.id)

When ``encrypt`` is set the payload is sealed with the Fernet key before it
leaves the process. The receipt checksum always covers the stored bytes.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx

from wellrus.core.storage.database import WellrusDatabase
from wellrus.core.storage.encryption import BlobEncryptor, sha256_hex
from wellrus.core.timeutil import Clock, epoch_millis, to_iso, utc_now

logger = logging.getLogger(__name__)

SIMULATED_URL_PREFIX = "walrus://simulated/"
_BLOB_ID_LENGTH = 66  # "0x" + 64 hex chars


class BlobStoreError(Exception):
    """Raised when a blob cannot be stored or retrieved."""


class BlobNotFoundError(BlobStoreError):
    """Raised when a blob id is unknown to the store."""


@dataclass(frozen=True)
class BlobReceipt:
    """What the store hands back for an uploaded blob."""

    id: str
    url: str
    checksum: str
    size: int
    created_at: str
    store: str = "walrus"

    @property
    def left_device(self) -> bool:
        return self.store != "simulated"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "checksum": self.checksum,
            "size": self.size,
            "created_at": self.created_at,
            "store": self.store,
        }


@runtime_checkable
class BlobStore(Protocol):
    """Abstract interface for the decentralized blob store."""

    async def upload(self, data: str | bytes, *, encrypt: bool = True) -> BlobReceipt:
        ...

    async def download(self, blob_id: str) -> bytes:
        ...

    @property
    def mode(self) -> str:
        """'walrus', 'simulated', or 'auto'."""
        ...


def prepare_payload(
    data: str | bytes,
    encryptor: BlobEncryptor | None,
    encrypt: bool,
) -> bytes:
    """Turn upload input into the bytes that will be stored."""
    raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
    if not encrypt:
        return raw
    if encryptor is None:
        raise BlobStoreError("Encrypted upload requested but no encryption key is configured")
    return encryptor.encrypt(raw)


# ---------------------------------------------------------------------------
# Walrus HTTP store
# ---------------------------------------------------------------------------

class WalrusBlobStore:
    """Uploads to Walrus publishers and reads back through an aggregator.

    Publishers are tried in order; the first one that accepts the blob wins.

    Usage::

        store = WalrusBlobStore(
            ["https://publisher.walrus-testnet.walrus.space"],
            "https://aggregator.walrus-testnet.walrus.space",
            encryptor,
        )
    """

    def __init__(
        self,
        publisher_urls: list[str],
        aggregator_url: str,
        encryptor: BlobEncryptor | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        clock: Clock | None = None,
    ) -> None:
        urls = [u.rstrip("/") for u in publisher_urls if u]
        if not urls:
            raise ValueError("At least one publisher URL is required")
        self._publishers = list(dict.fromkeys(urls))
        self._aggregator = aggregator_url.rstrip("/")
        self._encryptor = encryptor
        self._client = client
        self._timeout = timeout
        self._clock = clock or utc_now

    @property
    def mode(self) -> str:
        return "walrus"

    async def upload(self, data: str | bytes, *, encrypt: bool = True) -> BlobReceipt:
        payload = prepare_payload(data, self._encryptor, encrypt)
        last_error: Exception | None = None

        for publisher in self._publishers:
            endpoint = f"{publisher}/v1/blobs"
            try:
                response = await self._request(
                    "PUT",
                    endpoint,
                    content=payload,
                    headers={"Content-Type": "application/octet-stream"},
                )
                blob_id = _extract_blob_id(response.json())
            except (httpx.HTTPError, ValueError, BlobStoreError) as exc:
                logger.warning("Walrus publisher %s failed: %s", publisher, exc)
                last_error = exc
                continue

            logger.info("Uploaded blob %s (%d bytes) via %s", blob_id, len(payload), publisher)
            return BlobReceipt(
                id=blob_id,
                url=f"{self._aggregator}/v1/blobs/{blob_id}",
                checksum=sha256_hex(payload),
                size=len(payload),
                created_at=to_iso(self._clock()),
                store=self.mode,
            )

        raise BlobStoreError(f"All Walrus publishers failed: {last_error}") from last_error

    async def download(self, blob_id: str) -> bytes:
        url = f"{self._aggregator}/v1/blobs/{blob_id}"
        try:
            response = await self._request("GET", url)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                raise BlobNotFoundError(f"Blob not found: {blob_id}") from exc
            raise BlobStoreError(f"Failed to download blob {blob_id}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise BlobStoreError(f"Failed to download blob {blob_id}: {exc}") from exc
        return response.content

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._client is not None:
            response = await self._client.request(method, url, timeout=self._timeout, **kwargs)
            response.raise_for_status()
            return response
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
            return response


def _extract_blob_id(body: Any) -> str:
    """Read the blob id from a publisher response.

    Two shapes: ``newlyCreated.blobObject.blobId`` for new content and
    ``alreadyCertified.blobId`` when identical content is already stored.
    """
    if not isinstance(body, dict):
        raise BlobStoreError("Unexpected response format from Walrus")
    try:
        if "newlyCreated" in body:
            return str(body["newlyCreated"]["blobObject"]["blobId"])
        if "alreadyCertified" in body:
            return str(body["alreadyCertified"]["blobId"])
    except (KeyError, TypeError) as exc:
        raise BlobStoreError("Unexpected response format from Walrus") from exc
    raise BlobStoreError("Unexpected response format from Walrus")


# ---------------------------------------------------------------------------
# Simulated store
# ---------------------------------------------------------------------------

class SimulatedBlobStore:
    """Keeps blobs in the local SQLite database under Walrus-shaped ids."""

    def __init__(
        self,
        database: WellrusDatabase,
        encryptor: BlobEncryptor | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._db = database
        self._encryptor = encryptor
        self._clock = clock or utc_now

    @property
    def mode(self) -> str:
        return "simulated"

    def _new_blob_id(self) -> str:
        stamp = format(epoch_millis(self._clock()), "x")
        return f"0x{stamp}{secrets.token_hex(32)}"[:_BLOB_ID_LENGTH]

    async def upload(self, data: str | bytes, *, encrypt: bool = True) -> BlobReceipt:
        payload = prepare_payload(data, self._encryptor, encrypt)
        blob_id = self._new_blob_id()
        checksum = sha256_hex(payload)
        created_at = to_iso(self._clock())

        conn = self._db.connection
        conn.execute(
            """INSERT INTO simulated_blobs (id, payload, checksum, size, encrypted, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (blob_id, payload, checksum, len(payload), 1 if encrypt else 0, created_at),
        )
        conn.commit()

        logger.info("Stored simulated blob %s (%d bytes)", blob_id, len(payload))
        return BlobReceipt(
            id=blob_id,
            url=f"{SIMULATED_URL_PREFIX}{blob_id}",
            checksum=checksum,
            size=len(payload),
            created_at=created_at,
            store=self.mode,
        )

    async def download(self, blob_id: str) -> bytes:
        row = self._db.connection.execute(
            "SELECT payload FROM simulated_blobs WHERE id = ?", (blob_id,)
        ).fetchone()
        if row is None:
            raise BlobNotFoundError(f"Blob not found: {blob_id}")
        return bytes(row["payload"])

    def count_blobs(self) -> int:
        row = self._db.connection.execute("SELECT COUNT(*) FROM simulated_blobs").fetchone()
        return row[0]


# ---------------------------------------------------------------------------
# Network-first with local fallback
# ---------------------------------------------------------------------------

class FallbackBlobStore:
    """Tries the network store first and falls back to the simulation.

    Usage::

        store = FallbackBlobStore(walrus_store, simulated_store)
    """

    def __init__(self, primary: BlobStore, fallback: BlobStore) -> None:
        self._primary = primary
        self._fallback = fallback

    @property
    def mode(self) -> str:
        return "auto"

    async def upload(self, data: str | bytes, *, encrypt: bool = True) -> BlobReceipt:
        try:
            return await self._primary.upload(data, encrypt=encrypt)
        except BlobStoreError as exc:
            logger.warning("Blob upload failed on %s store, using simulation: %s",
                           self._primary.mode, exc)
            return await self._fallback.upload(data, encrypt=encrypt)

    async def download(self, blob_id: str) -> bytes:
        try:
            return await self._fallback.download(blob_id)
        except BlobNotFoundError:
            return await self._primary.download(blob_id)
