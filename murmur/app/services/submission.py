"""Submission and preview orchestration.

Every request goes through the same ordered steps: validation, admission by
the rate governor, then style transformation. A submission additionally
enqueues the transformed text; a preview returns it to the caller instead.
Validation failures never consume quota.
"""

from dataclasses import dataclass
from typing import Optional

from murmur.app.core.logging import get_log_context, get_logger
from murmur.app.exceptions import ValidationError
from murmur.app.services.content_policy import contains_problematic_content
from murmur.app.services.delivery_queue import DelayedDeliveryQueue
from murmur.app.services.personas import PersonaSelector
from murmur.app.services.rate_governor import RateGovernor, RateLimitStatus
from murmur.app.services.style_transformer import StyleTransformer

logger = get_logger(__name__)


@dataclass
class SubmissionRequest:
    message: str
    persona: Optional[str] = None
    custom_persona: Optional[str] = None

    @property
    def selector(self) -> PersonaSelector:
        return PersonaSelector(persona=self.persona, custom_persona=self.custom_persona)


@dataclass
class SubmitResult:
    success: bool
    rate_limit_remaining: int
    rate_limit_reset: float
    message_id: Optional[str] = None


@dataclass
class PreviewResult:
    transformed_message: str
    original_message: str
    persona: str
    rate_limit_remaining: int
    rate_limit_reset: float
    email_preview: str


class SubmissionService:
    """Runs submissions and previews through governor, transformer and queue.

    Args:
        governor: Rate governor for admission
        transformer: Style transformer
        queue: Delayed delivery queue for submissions
        message_max_length: Longest accepted message, in characters
        custom_persona_max_length: Longest accepted custom persona
        content_filter_enabled: Reject messages and custom personas that
            match the keyword screen
    """

    def __init__(
        self,
        governor: RateGovernor,
        transformer: StyleTransformer,
        queue: DelayedDeliveryQueue,
        message_max_length: int = 2000,
        custom_persona_max_length: int = 500,
        content_filter_enabled: bool = True,
    ):
        self.governor = governor
        self.transformer = transformer
        self.queue = queue
        self.message_max_length = message_max_length
        self.custom_persona_max_length = custom_persona_max_length
        self.content_filter_enabled = content_filter_enabled

    def validate(self, request: SubmissionRequest) -> str:
        """Check a request before anything is consumed.

        Returns:
            The trimmed message

        Raises:
            ValidationError: On empty, oversized or filtered input, or an
                unknown persona
        """
        if not isinstance(request.message, str) or not request.message.strip():
            raise ValidationError("Message cannot be empty")
        message = request.message.strip()
        if len(message) > self.message_max_length:
            raise ValidationError(
                f"Message too long (max {self.message_max_length} characters)"
            )

        selector = request.selector
        selector.validate(self.custom_persona_max_length)

        if self.content_filter_enabled:
            if contains_problematic_content(message):
                raise ValidationError("Message contains inappropriate content")
            if selector.is_custom and contains_problematic_content(selector.custom_persona):
                raise ValidationError("Custom persona contains inappropriate content")

        return message

    async def _admit_and_transform(
        self, request: SubmissionRequest, rate_key: str
    ) -> tuple[str, str, RateLimitStatus]:
        message = self.validate(request)
        quota = await self.governor.consume(rate_key)
        transformed = await self.transformer.transform(message, request.selector)
        return message, transformed, quota

    async def submit(
        self,
        request: SubmissionRequest,
        rate_key: str,
        immediate: bool = False,
    ) -> SubmitResult:
        """Transform a message and queue it for delayed delivery.

        Raises:
            ValidationError: Before any quota is consumed
            QuotaExceededError: If the identity is out of quota
            TransformationError: If the rewrite failed; nothing is queued
            StoreError: If the message could not be persisted
        """
        _, transformed, quota = await self._admit_and_transform(request, rate_key)
        queued = await self.queue.enqueue(transformed, immediate=immediate)

        logger.info(
            "Submission accepted",
            extra=get_log_context(persona=request.selector.label),
        )
        return SubmitResult(
            success=True,
            rate_limit_remaining=quota.remaining,
            rate_limit_reset=quota.reset_at,
            message_id=queued.id,
        )

    async def preview(self, request: SubmissionRequest, rate_key: str) -> PreviewResult:
        """Transform a message and return it without queueing.

        Previews draw on the same quota as submissions.
        """
        original, transformed, quota = await self._admit_and_transform(request, rate_key)
        return PreviewResult(
            transformed_message=transformed,
            original_message=original,
            persona=request.selector.label,
            rate_limit_remaining=quota.remaining,
            rate_limit_reset=quota.reset_at,
            email_preview=transformed,
        )

    async def status(self, rate_key: str) -> RateLimitStatus:
        return await self.governor.peek(rate_key)
