"""Tests for the Walrus HTTP store, the simulated store and the fallback wrapper."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from wellrus.core.storage.blob_store import (
    SIMULATED_URL_PREFIX,
    BlobNotFoundError,
    BlobStoreError,
    FallbackBlobStore,
    SimulatedBlobStore,
    WalrusBlobStore,
    prepare_payload,
)
from wellrus.core.storage.encryption import sha256_hex

PUBLISHER = "https://publisher.test"
BACKUP_PUBLISHER = "https://publisher-2.test"
AGGREGATOR = "https://aggregator.test"
BLOB_ID = "Zr3kQ-example-blob-id"


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _newly_created(blob_id: str = BLOB_ID) -> dict:
    return {"newlyCreated": {"blobObject": {"blobId": blob_id, "size": 10}, "cost": 1}}


def _walrus(handler, encryptor=None, publishers=(PUBLISHER,)) -> WalrusBlobStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WalrusBlobStore(list(publishers), AGGREGATOR, encryptor, client=client)


# ---------------------------------------------------------------------------
# prepare_payload
# ---------------------------------------------------------------------------

class TestPreparePayload:
    def test_plain_string_encoded(self):
        assert prepare_payload("abc", None, encrypt=False) == b"abc"

    def test_encrypts_when_requested(self, encryptor):
        payload = prepare_payload("abc", encryptor, encrypt=True)
        assert payload != b"abc"
        assert encryptor.decrypt(payload) == b"abc"

    def test_encrypt_without_key_raises(self):
        with pytest.raises(BlobStoreError, match="no encryption key"):
            prepare_payload("abc", None, encrypt=True)


# ---------------------------------------------------------------------------
# WalrusBlobStore
# ---------------------------------------------------------------------------

class TestWalrusUpload:
    def test_put_to_v1_blobs(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_newly_created())

        receipt = _run(_walrus(handler).upload("hello", encrypt=False))

        assert seen[0].method == "PUT"
        assert str(seen[0].url) == f"{PUBLISHER}/v1/blobs"
        assert seen[0].content == b"hello"
        assert receipt.id == BLOB_ID
        assert receipt.url == f"{AGGREGATOR}/v1/blobs/{BLOB_ID}"
        assert receipt.checksum == sha256_hex(b"hello")
        assert receipt.size == 5

    def test_already_certified_shape(self):
        def handler(request):
            return httpx.Response(200, json={"alreadyCertified": {"blobId": "existing", "endEpoch": 9}})

        receipt = _run(_walrus(handler).upload("hello", encrypt=False))
        assert receipt.id == "existing"

    def test_encrypted_body_and_checksum(self, encryptor):
        bodies: list[bytes] = []

        def handler(request):
            bodies.append(request.content)
            return httpx.Response(200, json=_newly_created())

        receipt = _run(_walrus(handler, encryptor).upload('{"value":55}\n'))
        assert b"value" not in bodies[0]
        assert encryptor.decrypt(bodies[0]) == b'{"value":55}\n'
        assert receipt.checksum == sha256_hex(bodies[0])

    def test_falls_through_to_next_publisher(self):
        hosts: list[str] = []

        def handler(request):
            hosts.append(request.url.host)
            if request.url.host == "publisher.test":
                return httpx.Response(503)
            return httpx.Response(200, json=_newly_created("from-backup"))

        store = _walrus(handler, publishers=(PUBLISHER, BACKUP_PUBLISHER))
        receipt = _run(store.upload("x", encrypt=False))
        assert hosts == ["publisher.test", "publisher-2.test"]
        assert receipt.id == "from-backup"

    def test_all_publishers_failing_raises(self):
        def handler(request):
            return httpx.Response(500)

        store = _walrus(handler, publishers=(PUBLISHER, BACKUP_PUBLISHER))
        with pytest.raises(BlobStoreError, match="All Walrus publishers failed"):
            _run(store.upload("x", encrypt=False))

    def test_unexpected_response_shape_raises(self):
        def handler(request):
            return httpx.Response(200, json={"something": "else"})

        with pytest.raises(BlobStoreError):
            _run(_walrus(handler).upload("x", encrypt=False))

    def test_non_json_response_raises(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>")

        with pytest.raises(BlobStoreError):
            _run(_walrus(handler).upload("x", encrypt=False))

    def test_requires_a_publisher(self):
        with pytest.raises(ValueError):
            WalrusBlobStore([], AGGREGATOR)


class TestWalrusDownload:
    def test_get_from_aggregator(self):
        def handler(request):
            assert request.method == "GET"
            assert str(request.url) == f"{AGGREGATOR}/v1/blobs/{BLOB_ID}"
            return httpx.Response(200, content=b"payload")

        assert _run(_walrus(handler).download(BLOB_ID)) == b"payload"

    def test_404_is_not_found(self):
        def handler(request):
            return httpx.Response(404)

        with pytest.raises(BlobNotFoundError):
            _run(_walrus(handler).download("missing"))

    def test_server_error_is_store_error(self):
        def handler(request):
            return httpx.Response(500)

        with pytest.raises(BlobStoreError):
            _run(_walrus(handler).download(BLOB_ID))


# ---------------------------------------------------------------------------
# SimulatedBlobStore
# ---------------------------------------------------------------------------

class TestSimulatedStore:
    def test_walrus_shaped_id_and_url(self, simulated_store):
        receipt = _run(simulated_store.upload("hello", encrypt=False))
        assert receipt.id.startswith("0x")
        assert len(receipt.id) == 66
        assert receipt.url == f"{SIMULATED_URL_PREFIX}{receipt.id}"

    def test_round_trip_plain(self, simulated_store):
        receipt = _run(simulated_store.upload("hello", encrypt=False))
        assert _run(simulated_store.download(receipt.id)) == b"hello"
        assert receipt.checksum == sha256_hex(b"hello")

    def test_encrypted_payload_stored(self, simulated_store, encryptor):
        receipt = _run(simulated_store.upload("hello"))
        stored = _run(simulated_store.download(receipt.id))
        assert stored != b"hello"
        assert encryptor.decrypt(stored) == b"hello"
        assert receipt.checksum == sha256_hex(stored)

    def test_ids_are_unique(self, simulated_store):
        ids = {_run(simulated_store.upload("same", encrypt=False)).id for _ in range(5)}
        assert len(ids) == 5
        assert simulated_store.count_blobs() == 5

    def test_missing_blob_raises(self, simulated_store):
        with pytest.raises(BlobNotFoundError):
            _run(simulated_store.download("0xdeadbeef"))

    def test_created_at_from_clock(self, simulated_store):
        receipt = _run(simulated_store.upload("x", encrypt=False))
        assert receipt.created_at == "2025-12-01T12:00:00.000Z"


# ---------------------------------------------------------------------------
# FallbackBlobStore
# ---------------------------------------------------------------------------

class TestFallbackStore:
    def test_uses_primary_when_available(self, simulated_store):
        def handler(request):
            return httpx.Response(200, json=_newly_created())

        store = FallbackBlobStore(_walrus(handler), simulated_store)
        receipt = _run(store.upload("x", encrypt=False))
        assert receipt.id == BLOB_ID
        assert receipt.store == "walrus"
        assert receipt.left_device is True
        assert simulated_store.count_blobs() == 0

    def test_falls_back_to_simulation(self, simulated_store):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        store = FallbackBlobStore(_walrus(handler), simulated_store)
        receipt = _run(store.upload("x", encrypt=False))
        assert receipt.url.startswith(SIMULATED_URL_PREFIX)
        assert receipt.store == "simulated"
        assert receipt.left_device is False
        assert simulated_store.count_blobs() == 1
        assert _run(store.download(receipt.id)) == b"x"

    def test_download_goes_to_network_for_unknown_ids(self, simulated_store):
        def handler(request):
            return httpx.Response(200, content=json.dumps({"ok": True}).encode())

        store = FallbackBlobStore(_walrus(handler), simulated_store)
        assert _run(store.download(BLOB_ID)) == b'{"ok": true}'

    def test_mode(self, simulated_store):
        store = FallbackBlobStore(simulated_store, simulated_store)
        assert store.mode == "auto"
