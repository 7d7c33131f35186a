"""Wiring of the relay's components from settings."""

from dataclasses import dataclass
from typing import Optional

import httpx

from murmur.app.core.config import Settings, settings
from murmur.app.core.kv_store import KVStore, create_kv_store
from murmur.app.core.logging import get_logger
from murmur.app.providers.base import BaseProvider
from murmur.app.providers.factory import create_provider
from murmur.app.services.delivery import (
    CredentialCache,
    DeliveryGateway,
    GmailTransport,
    GoogleOAuthIssuer,
)
from murmur.app.services.delivery_queue import (
    AsyncioScheduler,
    DelayedDeliveryQueue,
    DeliveryScheduler,
)
from murmur.app.services.rate_governor import RateGovernor
from murmur.app.services.style_transformer import StyleTransformer
from murmur.app.services.submission import SubmissionService

logger = get_logger(__name__)


@dataclass
class Pipeline:
    """Every long-lived component of one running relay."""
    settings: Settings
    store: KVStore
    provider: BaseProvider
    governor: RateGovernor
    transformer: StyleTransformer
    gateway: DeliveryGateway
    scheduler: DeliveryScheduler
    queue: DelayedDeliveryQueue
    submissions: SubmissionService

    async def close(self) -> None:
        await self.scheduler.shutdown()
        await self.store.close()


def build_pipeline(
    config: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    store: Optional[KVStore] = None,
    provider: Optional[BaseProvider] = None,
    gateway: Optional[DeliveryGateway] = None,
    scheduler: Optional[DeliveryScheduler] = None,
) -> Pipeline:
    """Build the relay from configuration.

    Any component passed in is used as is; the rest are created from config.
    """
    cfg = config or settings

    if store is None:
        store = create_kv_store("redis" if cfg.redis_enabled else "memory", cfg.redis_url)
    if provider is None:
        provider = create_provider(cfg, http_client=http_client)
    if gateway is None:
        issuer = GoogleOAuthIssuer(
            client_id=cfg.gmail_client_id,
            client_secret=cfg.gmail_client_secret,
            refresh_token=cfg.gmail_refresh_token,
            token_url=cfg.gmail_token_url,
            http_client=http_client,
        )
        cache = CredentialCache(
            issuer,
            safety_margin=cfg.credential_safety_margin_seconds,
            lifetime_margin=cfg.credential_lifetime_margin_seconds,
        )
        gateway = DeliveryGateway(
            cache,
            GmailTransport(base_url=cfg.gmail_api_base_url, http_client=http_client),
            recipient=cfg.recipient_email,
            subject=cfg.email_subject,
        )
    if scheduler is None:
        scheduler = AsyncioScheduler()

    governor = RateGovernor(
        store,
        max_requests=cfg.rate_limit_max_requests,
        window_seconds=cfg.rate_limit_window_seconds,
    )
    transformer = StyleTransformer(
        provider,
        max_words=cfg.message_max_words,
        timeout=cfg.completion_timeout,
        max_tokens=cfg.completion_max_tokens,
        custom_max_length=cfg.custom_persona_max_length,
    )
    min_delay, max_delay = cfg.delay_range
    queue = DelayedDeliveryQueue(
        store,
        gateway,
        scheduler,
        min_delay=min_delay,
        max_delay=max_delay,
        safety_ttl=cfg.queue_safety_ttl_seconds,
    )
    submissions = SubmissionService(
        governor,
        transformer,
        queue,
        message_max_length=cfg.message_max_length,
        custom_persona_max_length=cfg.custom_persona_max_length,
        content_filter_enabled=cfg.content_filter_enabled,
    )

    if not cfg.recipient_email:
        logger.warning("RECIPIENT_EMAIL is not set; deliveries will be rejected")
    logger.info(
        f"Pipeline ready: store={type(store).__name__}, delay={min_delay}-{max_delay}s"
    )

    return Pipeline(
        settings=cfg,
        store=store,
        provider=provider,
        governor=governor,
        transformer=transformer,
        gateway=gateway,
        scheduler=scheduler,
        queue=queue,
        submissions=submissions,
    )
