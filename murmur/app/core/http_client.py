"""Shared HTTP client management for connection pooling.

One httpx.AsyncClient is opened in the application lifespan and shared by
the completion provider, the credential issuer and the mail transport.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx

from murmur.app.core.config import Settings, settings


def create_http_client(config: Settings | None = None) -> httpx.AsyncClient:
    """Create a new HTTP client with pool limits and granular timeouts.

    The returned client should be closed when done.
    """
    cfg = config or settings
    limits = httpx.Limits(
        max_connections=cfg.httpx_max_connections,
        max_keepalive_connections=cfg.httpx_max_keepalive_connections,
        keepalive_expiry=cfg.httpx_keepalive_expiry,
    )
    timeout = httpx.Timeout(
        connect=cfg.httpx_connect_timeout,
        read=cfg.httpx_read_timeout,
        write=cfg.httpx_write_timeout,
        pool=cfg.httpx_pool_timeout,
    )
    return httpx.AsyncClient(timeout=timeout, limits=limits)


@asynccontextmanager
async def init_http_client(config: Settings | None = None) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Open the shared HTTP client and close it on exit.

    Used in the FastAPI lifespan:

        async with init_http_client(config) as http_client:
            ...
    """
    client = create_http_client(config)
    try:
        yield client
    finally:
        await client.aclose()
