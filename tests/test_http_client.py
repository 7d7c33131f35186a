"""Tests for the shared HTTP client lifecycle."""

import httpx
import pytest

from murmur.app.core.http_client import create_http_client, init_http_client


@pytest.mark.asyncio
async def test_timeouts_follow_settings(test_settings):
    cfg = test_settings.model_copy(update={"httpx_connect_timeout": 2.5})
    client = create_http_client(cfg)
    try:
        assert client.timeout.connect == 2.5
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_init_closes_client_on_exit(test_settings):
    async with init_http_client(test_settings) as client:
        assert isinstance(client, httpx.AsyncClient)
        assert not client.is_closed
    assert client.is_closed
