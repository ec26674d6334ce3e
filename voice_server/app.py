"""
HTTP server for the voice assistant endpoint.

POST /api/chat runs validate -> transcribe -> chat completion -> synthesis and
returns audio/mpeg with the transcript and reply in percent-encoded headers.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import Response
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from logging_setup import get_logger, Component
from observability.event_store import event_store
from observability.events import Severity, server_emitter
from observability.spans import RequestSpan
from voice_pipeline.config import VoiceConfig
from voice_pipeline.context import build_caller_context
from voice_pipeline.pipeline import VoicePipeline
from voice_pipeline.results import StageFailure
from .errors import ErrorCategory, RequestValidationFailed, category_for_failure, error_response
from .headers import reply_headers
from .validation import validate_form

logger = get_logger(Component.VOICE_SERVER)
router = APIRouter()


def _send(response: Response, span: RequestSpan) -> Response:
    """Attach the span's completion callback; it runs after the body is sent."""
    span.mark_response_sent(response.status_code)
    response.background = BackgroundTask(span.finish)
    return response


@router.post("/api/chat")
async def chat(request: Request) -> Response:
    caller = build_caller_context(request.headers)
    request_id = caller.request_id
    log = logger.with_request(request_id)
    span = RequestSpan(request_id)
    config: VoiceConfig = request.app.state.config
    pipeline: VoicePipeline = request.app.state.pipeline

    server_emitter.emit(
        "request.received",
        request_id=request_id,
        content_type=request.headers.get("content-type", "").split(";")[0],
        location_known=caller.location != "unknown",
    )

    try:
        # Upload bytes are read during validation; spooled files close on exit
        async with request.form() as form:
            chat_request = await validate_form(form, strict=config.history_strict, request_id=request_id)
    except (RequestValidationFailed, MultiPartException, StarletteHTTPException, ValueError) as e:
        log.warning("Invalid request", error=str(e), error_type=type(e).__name__)
        server_emitter.emit(
            "request.rejected",
            request_id=request_id,
            severity=Severity.WARN,
            category=ErrorCategory.MALFORMED_REQUEST,
        )
        return _send(error_response(ErrorCategory.MALFORMED_REQUEST), span)

    try:
        outcome = await pipeline.run(
            chat_request.user_input,
            chat_request.history_messages(),
            caller,
            span=span,
        )
    except Exception:
        log.exception("Pipeline raised unexpectedly")
        server_emitter.emit(
            "request.rejected",
            request_id=request_id,
            severity=Severity.ERROR,
            category=ErrorCategory.UNEXPECTED_EXCEPTION,
        )
        return _send(error_response(ErrorCategory.UNEXPECTED_EXCEPTION), span)

    if isinstance(outcome, StageFailure):
        category = category_for_failure(outcome)
        log.warning(
            "Pipeline failed",
            category=category,
            stage=outcome.stage.value,
            reason=outcome.reason.value,
            status_code=outcome.status_code,
        )
        return _send(error_response(category), span)

    log.info_pii("Reply ready", transcript=outcome.transcript, response=outcome.completion)
    return _send(
        Response(
            content=outcome.audio,
            media_type="audio/mpeg",
            headers=reply_headers(outcome.transcript, outcome.completion),
        ),
        span,
    )


@router.get("/api/requests/{request_id}/events")
async def get_request_events(request_id: str) -> dict:
    """Events recorded for one request, oldest first."""
    events = event_store.query(request_id=request_id)
    if not events:
        raise HTTPException(status_code=404, detail="No events for request")
    return {"request_id": request_id, "events": events, "count": len(events)}


@router.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok", "component": "voice_server"}


def create_app(
    config: Optional[VoiceConfig] = None,
    pipeline: Optional[VoicePipeline] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Configuration is resolved here, once, so missing API keys fail at startup
    rather than on the first request.
    """
    config = config or VoiceConfig.from_env()
    pipeline = pipeline or VoicePipeline(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Voice server starting",
            llm_model=config.llm_model,
            tts_voice=config.tts_voice,
            persona=config.persona,
        )
        try:
            yield
        finally:
            await pipeline.aclose()
            logger.info("Voice server stopped")

    app = FastAPI(title="Voice Assistant", lifespan=lifespan)
    app.state.config = config
    app.state.pipeline = pipeline
    app.include_router(router)
    return app
