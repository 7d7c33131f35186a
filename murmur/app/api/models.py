"""Request and response bodies of the public API (camelCase on the wire)."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from murmur.app.services.submission import PreviewResult, SubmissionRequest, SubmitResult


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageRequest(CamelModel):
    """Body of /api/submit, /api/test-submit and /api/preview."""
    message: str
    persona: Optional[str] = None
    custom_persona: Optional[str] = None
    session_id: Optional[str] = None

    def to_submission(self) -> SubmissionRequest:
        return SubmissionRequest(
            message=self.message,
            persona=self.persona or None,
            custom_persona=self.custom_persona or None,
        )


class SubmitResponse(CamelModel):
    success: bool = True
    rate_limit_remaining: int
    rate_limit_reset: int

    @classmethod
    def from_result(cls, result: SubmitResult) -> "SubmitResponse":
        return cls(
            success=result.success,
            rate_limit_remaining=result.rate_limit_remaining,
            rate_limit_reset=int(result.rate_limit_reset),
        )


class PreviewResponse(CamelModel):
    transformed_message: str
    original_message: str
    persona: str
    rate_limit_remaining: int
    rate_limit_reset: int
    email_preview: str

    @classmethod
    def from_result(cls, result: PreviewResult) -> "PreviewResponse":
        return cls(
            transformed_message=result.transformed_message,
            original_message=result.original_message,
            persona=result.persona,
            rate_limit_remaining=result.rate_limit_remaining,
            rate_limit_reset=int(result.rate_limit_reset),
            email_preview=result.email_preview,
        )


class RateLimitStatusResponse(CamelModel):
    remaining: int
    reset: int
    limit: int


class PersonaOption(CamelModel):
    key: str
    name: str
    description: str
    example: str = ""


class ProcessQueueResponse(CamelModel):
    success: bool = True
    processed: int
    scheduled: int
    errors: list[str] = Field(default_factory=list)
    timestamp: int


class QueueDebugResponse(CamelModel):
    total_queued: int
    pending_timers: int
    delay_range: tuple[float, float]
    queued_messages: list[dict[str, Any]]
