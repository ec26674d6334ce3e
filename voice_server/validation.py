"""
Validation of the multipart chat request.

Shape:
- exactly one `input`: non-empty text or a non-empty file upload
- zero or more `message`: JSON {"role": "user"|"assistant", "content": str}

Either the whole form is accepted or RequestValidationFailed is raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, ValidationError
from starlette.datastructures import FormData, UploadFile

from logging_setup import get_logger, Component
from voice_pipeline.transcription import AudioInput, UserInput
from .errors import RequestValidationFailed

logger = get_logger(Component.REQUEST_VALIDATOR)


class ConversationTurn(BaseModel):
    """One role-tagged message of the visible history."""

    # Clients attach bookkeeping such as `latency`; it is dropped here.
    model_config = ConfigDict(extra="ignore")

    role: Literal["user", "assistant"]
    content: str

    def as_message(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatRequest:
    user_input: UserInput
    history: List[ConversationTurn] = field(default_factory=list)
    dropped_turns: int = 0

    def history_messages(self) -> List[dict]:
        return [turn.as_message() for turn in self.history]


def _only_role_errors(error: ValidationError) -> bool:
    return all(
        e.get("loc") == ("role",) and e.get("type") == "literal_error"
        for e in error.errors()
    )


def parse_turn(raw: Any, *, strict: bool = True) -> Optional[ConversationTurn]:
    """
    Parse one `message` field.

    Returns None when the entry only fails on an unknown role and strict is
    off. Anything else that does not parse raises RequestValidationFailed.
    """
    if not isinstance(raw, str):
        raise RequestValidationFailed("message must be a JSON string, not a file")
    try:
        return ConversationTurn.model_validate_json(raw)
    except ValidationError as e:
        if not strict and _only_role_errors(e):
            return None
        raise RequestValidationFailed(f"invalid message: {e.error_count()} error(s)") from e


async def parse_input(value: Any) -> UserInput:
    if isinstance(value, UploadFile):
        data = await value.read()
        if not data:
            raise RequestValidationFailed("input file is empty")
        return AudioInput(
            data=data,
            filename=value.filename or "audio.wav",
            content_type=value.content_type or "application/octet-stream",
        )
    if isinstance(value, str) and value:
        return value
    raise RequestValidationFailed("input must be non-empty text or a file")


async def validate_form(form: FormData, *, strict: bool = True, request_id: str = "unknown") -> ChatRequest:
    log = logger.with_request(request_id)

    inputs = form.getlist("input")
    if len(inputs) != 1:
        raise RequestValidationFailed(f"expected exactly one input field, got {len(inputs)}")

    user_input = await parse_input(inputs[0])

    history: List[ConversationTurn] = []
    dropped = 0
    for raw in form.getlist("message"):
        turn = parse_turn(raw, strict=strict)
        if turn is None:
            dropped += 1
            continue
        history.append(turn)

    if dropped:
        log.warning("Dropped history entries with unknown role", dropped_turns=dropped)

    log.debug(
        "Request validated",
        input_kind="text" if isinstance(user_input, str) else "audio",
        history_turns=len(history),
    )
    return ChatRequest(user_input=user_input, history=history, dropped_turns=dropped)
