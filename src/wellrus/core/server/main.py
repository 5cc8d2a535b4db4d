"""Wellrus server entry point: ``python -m wellrus.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from wellrus.core.config.settings import get_settings
from wellrus.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the Wellrus MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.wellrus_log_level.upper(), logging.INFO)
    )

    logger = logging.getLogger(__name__)
    if not settings.wellrus_allow_insecure_bind and not _is_loopback_host(settings.wellrus_host):
        raise RuntimeError(
            "Refusing to bind Wellrus server to a non-loopback host without an auth layer. "
            "Set WELLRUS_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting Wellrus Health server on %s:%d",
        settings.wellrus_host,
        settings.wellrus_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.wellrus_host,
        port=settings.wellrus_port,
    )


if __name__ == "__main__":
    run()
