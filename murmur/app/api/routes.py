import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from murmur.app.api.models import (
    MessageRequest,
    PersonaOption,
    PreviewResponse,
    ProcessQueueResponse,
    QueueDebugResponse,
    RateLimitStatusResponse,
    SubmitResponse,
)
from murmur.app.core.logging import get_log_context, get_logger
from murmur.app.middleware.auth import require_admin
from murmur.app.middleware.request_id import get_request_id
from murmur.app.pipeline import Pipeline
from murmur.app.services.personas import list_personas
from murmur.app.services.rate_governor import RateGovernor

router = APIRouter(prefix="/api")
logger = get_logger(__name__)


def get_pipeline(request: Request) -> Pipeline:
    """The pipeline built in the application lifespan."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise RuntimeError("Pipeline not initialized. Ensure lifespan context is active.")
    return pipeline


def require_debug(pipeline: Pipeline = Depends(get_pipeline)) -> Pipeline:
    if not pipeline.settings.debug:
        raise HTTPException(status_code=404, detail="Not found")
    return pipeline


def _rate_key(request: Request, session_id: Optional[str]) -> str:
    return RateGovernor.identify(request.headers, session_id)


@router.post("/submit", response_model=SubmitResponse)
async def submit(
    body: MessageRequest,
    request: Request,
    pipeline: Pipeline = Depends(get_pipeline),
) -> SubmitResponse:
    """Transform a message and queue it for delayed delivery."""
    result = await pipeline.submissions.submit(
        body.to_submission(), _rate_key(request, body.session_id)
    )
    return SubmitResponse.from_result(result)


@router.post("/test-submit", response_model=SubmitResponse)
async def test_submit(
    body: MessageRequest,
    request: Request,
    pipeline: Pipeline = Depends(get_pipeline),
) -> SubmitResponse:
    """Like /submit, but delivers without the random delay."""
    if not pipeline.settings.test_submit_enabled:
        raise HTTPException(status_code=404, detail="Not found")
    result = await pipeline.submissions.submit(
        body.to_submission(), _rate_key(request, body.session_id), immediate=True
    )
    logger.info(
        "Immediate test submission queued",
        extra=get_log_context(request_id=get_request_id(request)),
    )
    return SubmitResponse.from_result(result)


@router.post("/preview", response_model=PreviewResponse)
async def preview(
    body: MessageRequest,
    request: Request,
    pipeline: Pipeline = Depends(get_pipeline),
) -> PreviewResponse:
    """Transform a message and return it without queueing."""
    result = await pipeline.submissions.preview(
        body.to_submission(), _rate_key(request, body.session_id)
    )
    return PreviewResponse.from_result(result)


@router.get("/rate-limit-status", response_model=RateLimitStatusResponse)
async def rate_limit_status(
    request: Request,
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    pipeline: Pipeline = Depends(get_pipeline),
) -> RateLimitStatusResponse:
    status = await pipeline.submissions.status(_rate_key(request, session_id))
    return RateLimitStatusResponse(
        remaining=status.remaining,
        reset=int(status.reset_at),
        limit=status.limit,
    )


@router.get("/personas", response_model=list[PersonaOption])
async def personas() -> list[PersonaOption]:
    return [PersonaOption(**persona) for persona in list_personas()]


@router.post("/process-queue", response_model=ProcessQueueResponse)
async def process_queue(
    pipeline: Pipeline = Depends(get_pipeline),
    admin: str = Depends(require_admin),
) -> ProcessQueueResponse:
    """Deliver due messages whose timers were lost."""
    result = await pipeline.queue.process_due()
    return ProcessQueueResponse(
        processed=result.processed,
        scheduled=result.scheduled,
        errors=result.errors,
        timestamp=int(time.time()),
    )


@router.get("/debug/queue", response_model=QueueDebugResponse)
async def debug_queue(pipeline: Pipeline = Depends(require_debug)) -> QueueDebugResponse:
    """Queued message ids and schedule; message content is never listed."""
    entries = await pipeline.queue.snapshot()
    return QueueDebugResponse(
        total_queued=len(entries),
        pending_timers=sum(1 for entry in entries if entry.get("timerPending")),
        delay_range=(pipeline.queue.min_delay, pipeline.queue.max_delay),
        queued_messages=entries,
    )


@router.get("/debug/token")
async def debug_token(pipeline: Pipeline = Depends(require_debug)) -> dict:
    return await pipeline.gateway.credential_status()
