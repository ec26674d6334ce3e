"""
Error taxonomy for the voice endpoint.

Every failure a caller can observe maps to exactly one category with a stable
status code and plain-text body. Provider details are logged, never returned.
"""
from typing import Dict, NamedTuple

from fastapi.responses import PlainTextResponse

from voice_pipeline.results import Stage, StageFailure


class ErrorCategory:
    """Stable error categories."""

    MALFORMED_REQUEST = "malformed_request"
    TRANSCRIPTION_FAILED = "transcription_failed"
    COMPLETION_FAILED = "completion_failed"
    SYNTHESIS_FAILED = "synthesis_failed"
    UNEXPECTED_EXCEPTION = "unexpected_exception"


class ErrorResponse(NamedTuple):
    status_code: int
    body: str


ERROR_RESPONSES: Dict[str, ErrorResponse] = {
    ErrorCategory.MALFORMED_REQUEST: ErrorResponse(400, "Invalid request"),
    ErrorCategory.TRANSCRIPTION_FAILED: ErrorResponse(400, "Invalid audio"),
    ErrorCategory.COMPLETION_FAILED: ErrorResponse(500, "Chat completion failed"),
    ErrorCategory.SYNTHESIS_FAILED: ErrorResponse(500, "Voice synthesis failed"),
    ErrorCategory.UNEXPECTED_EXCEPTION: ErrorResponse(500, "Internal server error"),
}

_STAGE_CATEGORIES = {
    Stage.TRANSCRIPTION: ErrorCategory.TRANSCRIPTION_FAILED,
    Stage.COMPLETION: ErrorCategory.COMPLETION_FAILED,
    Stage.SYNTHESIS: ErrorCategory.SYNTHESIS_FAILED,
}


class RequestValidationFailed(Exception):
    """The multipart form does not have the expected shape."""


def category_for_failure(failure: StageFailure) -> str:
    """Map a failed pipeline stage to its error category."""
    return _STAGE_CATEGORIES[failure.stage]


def error_response(category: str) -> PlainTextResponse:
    status_code, body = ERROR_RESPONSES[category]
    return PlainTextResponse(body, status_code=status_code)
