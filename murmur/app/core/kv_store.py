"""Durable key-value store shared by the rate governor and the delivery queue.

Provides a pluggable store with in-memory and Redis implementations. Every
record carries a string value, optional JSON metadata and an optional TTL.
Callers keep to disjoint key prefixes (``rate_limit:`` and ``msg_``).
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from murmur.app.exceptions import StoreError

Metadata = dict[str, Any]


@dataclass
class StoredValue:
    """A value read back together with its metadata."""

    value: str
    metadata: Metadata = field(default_factory=dict)


@dataclass
class _StoreEntry:
    """Internal store entry with TTL tracking."""

    value: str
    metadata: Metadata
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        if self.expires_at is None:
            return False
        return now >= self.expires_at


class KVStore(ABC):
    """Abstract base class for key-value store backends."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value for key, or None if absent or expired."""

    @abstractmethod
    async def get_with_metadata(self, key: str) -> Optional[StoredValue]:
        """Return value and metadata for key, or None if absent or expired."""

    @abstractmethod
    async def put(
        self,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None,
        metadata: Optional[Metadata] = None,
    ) -> None:
        """Store value under key, replacing any previous value and metadata.

        Args:
            key: The record key.
            value: The value to store.
            ttl_seconds: Time-to-live in seconds; None keeps the record
                until deleted.
            metadata: JSON-serializable metadata stored with the value.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Deleting an absent key is not an error."""

    @abstractmethod
    async def list_keys(self, prefix: str) -> list[str]:
        """List live keys starting with prefix."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryKVStore(KVStore):
    """In-memory store with TTL support.

    This is the default backend. Data is lost when the process restarts,
    so queued messages do not survive a redeploy with this backend.

    Expired entries are dropped when read, and a write purges every expired
    entry once at least ``sweep_interval`` seconds have passed since the
    last purge.
    """

    def __init__(self, clock=time.time, sweep_interval: float = 60.0) -> None:
        self._data: dict[str, _StoreEntry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self.sweep_interval = sweep_interval
        self._last_sweep = clock()

    def _purge_expired(self, now: float) -> int:
        expired_keys = [
            key for key, entry in self._data.items() if entry.is_expired(now)
        ]
        for key in expired_keys:
            del self._data[key]
        self._last_sweep = now
        return len(expired_keys)

    def _live_entry(self, key: str) -> Optional[_StoreEntry]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._live_entry(key)
            return entry.value if entry else None

    async def get_with_metadata(self, key: str) -> Optional[StoredValue]:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            return StoredValue(value=entry.value, metadata=dict(entry.metadata))

    async def put(
        self,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None,
        metadata: Optional[Metadata] = None,
    ) -> None:
        async with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self.sweep_interval:
                self._purge_expired(now)
            expires_at = now + ttl_seconds if ttl_seconds and ttl_seconds > 0 else None
            self._data[key] = _StoreEntry(
                value=value, metadata=dict(metadata or {}), expires_at=expires_at
            )

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def list_keys(self, prefix: str) -> list[str]:
        async with self._lock:
            return [
                key for key in list(self._data)
                if key.startswith(prefix) and self._live_entry(key) is not None
            ]


class RedisKVStore(KVStore):
    """Redis-backed store.

    Each record is a hash with ``value`` and ``metadata`` fields; the TTL is
    applied to the whole hash with EXPIRE in the same transaction.

    Example:
        >>> store = RedisKVStore("redis://localhost:6379/0")
        >>> await store.put("msg_1", "{}", ttl_seconds=86400)
    """

    VALUE_FIELD = "value"
    METADATA_FIELD = "metadata"

    def __init__(self, redis_url: str, client: Any = None) -> None:
        import redis.asyncio as aioredis
        from redis.exceptions import RedisError

        self._redis_url = redis_url
        self._redis = client
        self._client_factory = aioredis.from_url
        self._errors = (RedisError, OSError)

    def _get_client(self) -> Any:
        if self._redis is None:
            self._redis = self._client_factory(self._redis_url, decode_responses=True)
        return self._redis

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._get_client().hget(key, self.VALUE_FIELD)
        except self._errors as e:
            raise StoreError(f"Store read failed: {e}") from e

    async def get_with_metadata(self, key: str) -> Optional[StoredValue]:
        try:
            raw = await self._get_client().hgetall(key)
        except self._errors as e:
            raise StoreError(f"Store read failed: {e}") from e
        if not raw or self.VALUE_FIELD not in raw:
            return None
        try:
            metadata = json.loads(raw.get(self.METADATA_FIELD) or "{}")
        except json.JSONDecodeError:
            metadata = {}
        return StoredValue(value=raw[self.VALUE_FIELD], metadata=metadata)

    async def put(
        self,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None,
        metadata: Optional[Metadata] = None,
    ) -> None:
        mapping = {
            self.VALUE_FIELD: value,
            self.METADATA_FIELD: json.dumps(metadata or {}),
        }
        try:
            async with self._get_client().pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(key, mapping=mapping)
                if ttl_seconds and ttl_seconds > 0:
                    pipe.expire(key, int(ttl_seconds))
                await pipe.execute()
        except self._errors as e:
            raise StoreError(f"Store write failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._get_client().delete(key)
        except self._errors as e:
            raise StoreError(f"Store delete failed: {e}") from e

    async def list_keys(self, prefix: str) -> list[str]:
        try:
            return [key async for key in self._get_client().scan_iter(match=f"{prefix}*")]
        except self._errors as e:
            raise StoreError(f"Store scan failed: {e}") from e

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def create_kv_store(backend: str | None = None, redis_url: str | None = None) -> KVStore:
    """Create the key-value store selected by configuration.

    Args:
        backend: 'memory', 'redis', or None to follow settings.redis_enabled.
        redis_url: Redis connection URL. Defaults to settings.redis_url.
    """
    from murmur.app.core.config import settings

    if backend == "redis" or (backend is None and settings.redis_enabled):
        return RedisKVStore(redis_url or settings.redis_url)
    return InMemoryKVStore()
