from murmur.app.services.delivery_queue import (
    AsyncioScheduler,
    DelayedDeliveryQueue,
    DeliveryScheduler,
    QueuedMessage,
    SweepResult,
)
from murmur.app.services.personas import PersonaSelector, get_persona, list_personas
from murmur.app.services.rate_governor import RateGovernor, RateLimitStatus
from murmur.app.services.style_transformer import StyleTransformer
from murmur.app.services.submission import (
    PreviewResult,
    SubmissionRequest,
    SubmissionService,
    SubmitResult,
)

__all__ = [
    "AsyncioScheduler",
    "DelayedDeliveryQueue",
    "DeliveryScheduler",
    "PersonaSelector",
    "PreviewResult",
    "QueuedMessage",
    "RateGovernor",
    "RateLimitStatus",
    "StyleTransformer",
    "SubmissionRequest",
    "SubmissionService",
    "SubmitResult",
    "SweepResult",
    "get_persona",
    "list_personas",
]
