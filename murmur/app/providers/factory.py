"""Provider factory for creating text completion provider instances."""

from enum import Enum
from typing import Dict, Optional, Type

import httpx

from murmur.app.core.config import Settings, settings
from murmur.app.core.logging import get_logger
from murmur.app.providers.base import BaseProvider
from murmur.app.providers.mock import MockProvider
from murmur.app.providers.openai import OpenAIProvider
from murmur.app.providers.worker import WorkerProvider

logger = get_logger(__name__)


class ProviderType(str, Enum):
    """Supported provider types."""
    WORKER = "worker"
    OPENAI = "openai"
    MOCK = "mock"


_PROVIDER_REGISTRY: Dict[ProviderType, Type[BaseProvider]] = {
    ProviderType.WORKER: WorkerProvider,
    ProviderType.OPENAI: OpenAIProvider,
    ProviderType.MOCK: MockProvider,
}


def create_provider(
    config: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> BaseProvider:
    """Create the provider selected by ``completion_provider``.

    Raises:
        ValueError: If the provider type is unknown or its API key is missing
    """
    cfg = config or settings
    try:
        provider_type = ProviderType(cfg.completion_provider.lower())
    except ValueError:
        raise ValueError(f"Unknown completion provider: {cfg.completion_provider}") from None

    provider_class = _PROVIDER_REGISTRY[provider_type]

    if provider_type == ProviderType.MOCK:
        provider = provider_class()
    elif provider_type == ProviderType.OPENAI:
        if not cfg.openai_api_key:
            raise ValueError("OPENAI_API_KEY is not configured")
        provider = provider_class(
            base_url=cfg.openai_base_url,
            api_key=cfg.openai_api_key,
            model=cfg.openai_model,
            http_client=http_client,
            timeout=cfg.completion_timeout,
        )
    else:
        if not cfg.ai_worker_api_key:
            raise ValueError(
                "AI_WORKER_API_SECRET_KEY is not configured. "
                "In development, set it in .env or use COMPLETION_PROVIDER=mock."
            )
        provider = provider_class(
            base_url=cfg.ai_worker_base_url,
            api_key=cfg.ai_worker_api_key,
            model=cfg.ai_worker_model,
            http_client=http_client,
            timeout=cfg.completion_timeout,
        )

    logger.info("Text completion provider configured", extra={"provider": provider.name})
    return provider
