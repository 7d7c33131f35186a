"""Text completion providers package.

This package provides:
- Base provider interface (BaseProvider)
- Provider implementations (WorkerProvider, OpenAIProvider, MockProvider)
- Provider factory (create_provider, ProviderType)
"""

from murmur.app.providers.base import BaseProvider
from murmur.app.providers.factory import ProviderType, create_provider
from murmur.app.providers.mock import MockProvider
from murmur.app.providers.openai import OpenAIProvider
from murmur.app.providers.worker import WorkerProvider

__all__ = [
    "BaseProvider",
    "WorkerProvider",
    "OpenAIProvider",
    "MockProvider",
    "ProviderType",
    "create_provider",
]
