"""Integration tests for the Wellrus Health MCP server."""

from __future__ import annotations

import asyncio
import json
import random

import pytest
from fastmcp import Client

from wellrus.core.server.app import create_app
from wellrus.core.storage.database import WellrusDatabase


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _payload(result) -> dict:
    """Decode the JSON text returned by a tool."""
    content = getattr(result, "content", result)
    return json.loads(content[0].text)


ALL_EXPECTED_TOOLS = [
    "health_check",
    "calculate_biological_age",
    "explain_biological_age",
    "publish_health_dataset",
    "list_published_datasets",
    "get_dataset_manifest",
    "delete_published_dataset",
    "download_blob",
    "audit_summary",
]


@pytest.fixture
def db():
    database = WellrusDatabase(":memory:")
    yield database
    database.close()


@pytest.fixture
def client(db):
    """Create an MCP client connected to a server on mock data and simulated blobs."""
    mcp = create_app(database_override=db, rng=random.Random(21))
    return Client(mcp)


def test_server_starts_and_lists_tools(client):
    """Server should start and expose all registered tools."""
    async def _check():
        async with client:
            tools = await client.list_tools()
            tool_names = [t.name for t in tools]
            for expected in ALL_EXPECTED_TOOLS:
                assert expected in tool_names, f"Missing tool: {expected}"
    _run(_check())


def test_health_check_returns_ok(client):
    async def _check():
        async with client:
            result = await client.call_tool("health_check", {})
            result_text = str(result)
            assert "blob_store_mode" in result_text
            assert "simulated" in result_text
            assert "mock" in result_text
    _run(_check())


def test_calculate_biological_age(client):
    async def _check():
        async with client:
            result = await client.call_tool(
                "calculate_biological_age", {"chronological_age": 22}
            )
            data = _payload(result)
            assert data["status"] == "ok"
            assert data["chronological_age"] == 22
            assert 14.0 <= data["biological_age"] <= 37.0
            assert set(data["factors"]) == {"hrv", "rhr", "exercise", "weight"}
            assert data["provenance"]["data_source"] == "mock"
    _run(_check())


def test_calculate_biological_age_rejects_bad_days(client):
    async def _check():
        async with client:
            result = await client.call_tool("calculate_biological_age", {"days": 0})
            assert _payload(result)["status"] == "error"
    _run(_check())


def test_explain_biological_age(client):
    async def _check():
        async with client:
            result = await client.call_tool("explain_biological_age", {})
            assert "Heart Rate Variability (30%)" in _payload(result)["explanation"]
    _run(_check())


def test_publish_list_get_delete(client):
    async def _check():
        async with client:
            published = _payload(await client.call_tool(
                "publish_health_dataset", {"user_id": "jane", "chronological_age": 22}
            ))
            assert published["status"] == "published"
            assert published["blob_store_mode"] == "simulated"
            assert published["manifest_url"].startswith("walrus://simulated/0x")
            assert set(published["blobs"]) == {
                "hrv", "rhr", "calories", "exercise", "weight", "bio_age",
            }
            dataset_id = published["dataset_id"]

            listed = _payload(await client.call_tool("list_published_datasets", {}))
            assert listed["count"] == 1
            assert listed["datasets"][0]["dataset_id"] == dataset_id

            manifest = _payload(await client.call_tool(
                "get_dataset_manifest", {"dataset_id": dataset_id}
            ))
            assert manifest["manifest"]["dataset_id"] == dataset_id
            assert manifest["manifest"]["metrics"]["hrv"]["samples"] == 30
            assert "jane" not in json.dumps(manifest["manifest"])

            deleted = _payload(await client.call_tool(
                "delete_published_dataset", {"dataset_id": dataset_id}
            ))
            assert deleted["status"] == "deleted"

            missing = _payload(await client.call_tool(
                "get_dataset_manifest", {"dataset_id": dataset_id}
            ))
            assert missing["status"] == "not_found"
    _run(_check())


def test_download_blob_decrypts_metric_series(client):
    async def _check():
        async with client:
            published = _payload(await client.call_tool("publish_health_dataset", {}))
            hrv_blob = published["blobs"]["hrv"]["id"]

            sealed = _payload(await client.call_tool("download_blob", {"blob_id": hrv_blob}))
            assert sealed["status"] == "ok"
            assert sealed["content"].startswith("gAAAAA")

            opened = _payload(await client.call_tool(
                "download_blob", {"blob_id": hrv_blob, "decrypt": True}
            ))
            records = [json.loads(line) for line in opened["content"].splitlines()]
            assert len(records) == 30
            assert all(r["device"] == "health_device" for r in records)

            manifest = _payload(await client.call_tool(
                "download_blob", {"blob_id": published["manifest_blob_id"]}
            ))
            assert json.loads(manifest["content"])["dataset_id"] == published["dataset_id"]
    _run(_check())


def test_download_unknown_blob(client):
    async def _check():
        async with client:
            result = await client.call_tool("download_blob", {"blob_id": "0xmissing"})
            assert _payload(result)["status"] == "not_found"
    _run(_check())


def test_audit_summary_counts_uploads(client):
    async def _check():
        async with client:
            await client.call_tool("publish_health_dataset", {})
            summary = _payload(await client.call_tool("audit_summary", {}))
            # 5 metrics + bio_age + manifest, all kept locally
            assert summary["blob_uploads"] == 7
            assert summary["uploads_left_device"] == 0
            assert any(e["action"] == "dataset_publish" for e in summary["recent_events"])
    _run(_check())


def test_without_encryption_key_nothing_is_persisted(monkeypatch, tmp_path):
    db_file = tmp_path / "wellrus.db"
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DB_PATH", str(db_file))

    async def _check():
        async with Client(create_app(rng=random.Random(4))) as client:
            status = _payload(await client.call_tool("health_check", {}))
            assert status["storage_persistent"] is False
            await client.call_tool("publish_health_dataset", {})
            listed = _payload(await client.call_tool("list_published_datasets", {}))
            assert listed["count"] == 1
    _run(_check())
    assert not db_file.exists()
