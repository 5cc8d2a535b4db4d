"""Wellrus Health MCP Server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
import random

from fastmcp import FastMCP

from wellrus.core.audit.logger import AuditLogger
from wellrus.core.config.settings import Settings, get_settings
from wellrus.core.privacy.anonymizer import Anonymizer
from wellrus.core.storage.blob_store import (
    BlobStore,
    FallbackBlobStore,
    SimulatedBlobStore,
    WalrusBlobStore,
)
from wellrus.core.storage.database import WellrusDatabase
from wellrus.core.storage.encryption import BlobEncryptor
from wellrus.core.storage.repository import DatasetRepository
from wellrus.domains.health.connectors import HealthDataProvider
from wellrus.domains.health.connectors.apple_health import AppleHealthProvider
from wellrus.domains.health.connectors.providers import MockHealthDataProvider
from wellrus.domains.health.domain_logic.biological_age import BiologicalAgeScorer
from wellrus.domains.health.domain_logic.dataset_publisher import DatasetPublisher
from wellrus.domains.health.domain_logic.manifest import ManifestBuilder
from wellrus.domains.health.tools.audit_tools import register_audit_tools
from wellrus.domains.health.tools.biological_age_tools import register_biological_age_tools
from wellrus.domains.health.tools.dataset_tools import register_dataset_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "Wellrus Health"
SERVER_VERSION = "0.1.0"


def _select_provider(settings: Settings, rng: random.Random | None) -> HealthDataProvider:
    if settings.health_data_source == "apple_health":
        provider = AppleHealthProvider(settings.apple_health_export_path)
        if provider.is_connected():
            logger.info("Using Apple Health export provider")
            return provider
        logger.warning(
            "Apple Health export not found at '%s'; falling back to mock data",
            settings.apple_health_export_path,
        )
    logger.info("Using mock health data provider")
    return MockHealthDataProvider(rng=rng)


def _select_blob_store(
    settings: Settings,
    database: WellrusDatabase,
    encryptor: BlobEncryptor,
) -> BlobStore:
    simulated = SimulatedBlobStore(database, encryptor)
    if settings.blob_store_mode == "simulated":
        return simulated

    walrus = WalrusBlobStore(
        settings.publisher_urls,
        settings.walrus_aggregator_url,
        encryptor,
        timeout=settings.walrus_timeout_seconds,
    )
    if settings.blob_store_mode == "walrus":
        return walrus
    return FallbackBlobStore(walrus, simulated)


def create_app(
    *,
    health_data_provider_override: HealthDataProvider | None = None,
    blob_store_override: BlobStore | None = None,
    database_override: WellrusDatabase | None = None,
    rng: random.Random | None = None,
) -> FastMCP:
    """Create and configure the Wellrus Health MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Initializes the encryptor and local database (in memory without a key)
    3. Initializes the blob store
    4. Initializes the health data provider
    5. Wires the anonymizer, scorer and manifest builder into the publisher
    6. Registers all tools
    """
    settings = get_settings()

    # --- Server instance ---
    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "Wellrus Health estimates biological age from personal health "
            "metrics and publishes anonymized, encrypted datasets to Walrus "
            "blob storage behind a public manifest."
        ),
    )

    # --- Encryption and local database ---
    if settings.encryption_key:
        encryptor = BlobEncryptor(settings.encryption_key)
        db_path = settings.db_path
    else:
        logger.warning(
            "No ENCRYPTION_KEY configured; using an ephemeral key and running "
            "without persistence. Set ENCRYPTION_KEY to keep publications across restarts."
        )
        encryptor = BlobEncryptor(BlobEncryptor.generate_key())
        db_path = ":memory:"
    database = database_override if database_override is not None else WellrusDatabase(db_path)
    database.initialize()
    persistent = database.path != ":memory:"
    logger.info(
        "Local database ready: %s (schema v%d)",
        database.path,
        database.get_schema_version(),
    )

    # --- Blob store ---
    if blob_store_override is not None:
        blob_store = blob_store_override
    else:
        blob_store = _select_blob_store(settings, database, encryptor)
    logger.info("Blob store mode: %s", blob_store.mode)

    # --- Health data provider ---
    if health_data_provider_override is not None:
        health_provider = health_data_provider_override
    else:
        health_provider = _select_provider(settings, rng)

    # --- Pipeline ---
    audit_logger = AuditLogger(database)
    repository = DatasetRepository(database, encryptor)
    scorer = BiologicalAgeScorer(rng=rng)
    publisher = DatasetPublisher(
        health_provider,
        blob_store,
        anonymizer=Anonymizer(rng=rng, jitter_minutes=settings.jitter_minutes),
        scorer=scorer,
        manifest_builder=ManifestBuilder(rng=rng),
        repository=repository,
        audit_logger=audit_logger,
    )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        status = {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "data_source": health_provider.data_source,
            "blob_store_mode": blob_store.mode,
            "storage_persistent": persistent,
            "datasets_published": repository.count_publications(),
            "blob_uploads": audit_logger.count_uploads(left_device_only=False),
        }
        if isinstance(blob_store, SimulatedBlobStore):
            status["simulated_blobs_stored"] = blob_store.count_blobs()
        return status

    register_biological_age_tools(
        server, health_provider, scorer, audit_logger, settings.default_lookback_days
    )
    register_dataset_tools(
        server,
        publisher,
        repository,
        blob_store,
        encryptor,
        audit_logger,
        settings.default_lookback_days,
    )
    register_audit_tools(server, audit_logger)
    logger.info("Biological age, dataset and audit tools registered")

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
