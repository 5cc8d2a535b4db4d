"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Wellrus Health server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default; there is no auth layer in front of the tools.
    wellrus_host: str = "127.0.0.1"
    wellrus_port: int = 8001
    wellrus_log_level: str = "info"
    # Binding to a non-loopback host is refused unless this is true.
    wellrus_allow_insecure_bind: bool = False

    # Health data
    health_data_source: Literal["mock", "apple_health"] = "mock"
    apple_health_export_path: str = ""
    default_lookback_days: int = 30

    # Blob store
    blob_store_mode: Literal["auto", "walrus", "simulated"] = "auto"
    walrus_publisher_url: str = "https://publisher.walrus-testnet.walrus.space"
    # Comma-separated, tried in order after the primary publisher
    walrus_fallback_publisher_urls: str = ""
    walrus_aggregator_url: str = "https://aggregator.walrus-testnet.walrus.space"
    walrus_timeout_seconds: float = 30.0

    # Storage (local publication index + simulated blobs)
    db_path: str = "~/.wellrus/wellrus.db"

    # Encryption
    encryption_key: str = ""

    # Privacy
    jitter_minutes: float = 30.0

    @property
    def publisher_urls(self) -> list[str]:
        extra = [u.strip() for u in self.walrus_fallback_publisher_urls.split(",") if u.strip()]
        return [self.walrus_publisher_url, *extra]


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
