"""Shared fixtures for relay tests."""

import random

import pytest

from murmur.app.core.config import Settings
from murmur.app.core.kv_store import InMemoryKVStore
from murmur.app.services.delivery import CredentialCache, DeliveryGateway

from fakes import FakeClock, RecordingTransport, StaticIssuer


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryKVStore(clock=clock)


@pytest.fixture
def issuer():
    return StaticIssuer()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def gateway(issuer, transport, clock):
    cache = CredentialCache(issuer, clock=clock)
    return DeliveryGateway(cache, transport, recipient="inbox@example.com")


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        environment="test",
        completion_provider="mock",
        recipient_email="inbox@example.com",
        queue_sweep_on_startup=False,
    )
