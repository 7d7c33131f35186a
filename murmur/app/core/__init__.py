"""Core utilities for the relay application."""

from murmur.app.core.config import Settings, settings
from murmur.app.core.kv_store import (
    InMemoryKVStore,
    KVStore,
    RedisKVStore,
    StoredValue,
    create_kv_store,
)
from murmur.app.core.logging import get_logger, setup_logging
from murmur.app.core.text_utils import count_words, exceeds_word_limit, truncate_to_words

__all__ = [
    "Settings",
    "settings",
    "KVStore",
    "InMemoryKVStore",
    "RedisKVStore",
    "StoredValue",
    "create_kv_store",
    "get_logger",
    "setup_logging",
    "count_words",
    "exceeds_word_limit",
    "truncate_to_words",
]
