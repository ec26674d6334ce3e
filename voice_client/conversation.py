"""
Conversation client for the voice endpoint.

Keeps the running history on the caller side (the server is stateless), posts
each new input with that history, and turns the response headers back into
conversation turns. One submission may be in flight at a time.

State machine per submission:
    IDLE -> PENDING -> SUCCESS | ERROR -> IDLE
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, List, Literal, Optional, Union

import aiohttp

from logging_setup import get_logger, Component
from voice_server.headers import RESPONSE_HEADER, TRANSCRIPT_HEADER, decode_header_value

logger = get_logger(Component.CLIENT)

GENERIC_ERROR = "An error occurred."
RATE_LIMITED_ERROR = "Too many requests. Please try again later."


class ClientState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class Turn:
    role: Literal["user", "assistant"]
    content: str
    latency: Optional[int] = None

    def to_json(self) -> str:
        data = asdict(self)
        if data["latency"] is None:
            del data["latency"]
        return json.dumps(data, ensure_ascii=False)


@dataclass(frozen=True)
class Reply:
    transcript: str
    text: str
    audio: bytes
    latency_ms: int


class ConversationError(Exception):
    """A submission failed; the message is meant for the user."""


class SubmissionInProgress(ConversationError):
    pass


class Conversation:
    """
    Client-side conversation state.

    `state` is PENDING while a submission is in flight and IDLE otherwise.
    SUCCESS and ERROR are passed through on the way back to IDLE; `outcome`
    keeps the last one. `on_state` receives every transition.
    `track` receives analytics event names ("Text input" / "Speech input").
    """

    def __init__(
        self,
        endpoint: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        track: Optional[Callable[[str], None]] = None,
        on_state: Optional[Callable[[ClientState], None]] = None,
        now: Callable[[], float] = time.monotonic,
    ):
        self.endpoint = endpoint
        self.messages: List[Turn] = []
        self.state = ClientState.IDLE
        self.outcome: Optional[ClientState] = None
        self.last_error: Optional[str] = None
        self._session = session
        self._track = track
        self._on_state = on_state
        self._now = now

    @property
    def is_pending(self) -> bool:
        return self.state == ClientState.PENDING

    def _set_state(self, state: ClientState) -> None:
        self.state = state
        if state in (ClientState.SUCCESS, ClientState.ERROR):
            self.outcome = state
        if self._on_state:
            self._on_state(state)

    def _build_form(self, data: Union[str, bytes]) -> aiohttp.FormData:
        form = aiohttp.FormData()
        if isinstance(data, str):
            form.add_field("input", data)
            event = "Text input"
        else:
            form.add_field("input", data, filename="audio.wav", content_type="audio/wav")
            event = "Speech input"
        if self._track:
            self._track(event)

        for turn in self.messages:
            form.add_field("message", turn.to_json())
        return form

    def _fail(self, message: str) -> ConversationError:
        self.last_error = message
        self._set_state(ClientState.ERROR)
        logger.warning("Submission failed", error=message)
        return ConversationError(message)

    async def _post(self, session: aiohttp.ClientSession, form: aiohttp.FormData, submitted_at: float) -> Reply:
        async with session.post(self.endpoint, data=form) as response:
            transcript = decode_header_value(response.headers.get(TRANSCRIPT_HEADER, ""))
            text = decode_header_value(response.headers.get(RESPONSE_HEADER, ""))

            if not (200 <= response.status < 300) or not transcript or not text:
                if response.status == 429:
                    raise self._fail(RATE_LIMITED_ERROR)
                body = await response.text()
                raise self._fail(body or GENERIC_ERROR)

            audio = await response.read()

        latency_ms = int((self._now() - submitted_at) * 1000)
        return Reply(transcript=transcript, text=text, audio=audio, latency_ms=latency_ms)

    async def _send(self, data: Union[str, bytes]) -> Reply:
        form = self._build_form(data)
        submitted_at = self._now()
        try:
            if self._session is not None:
                return await self._post(self._session, form, submitted_at)
            async with aiohttp.ClientSession() as session:
                return await self._post(session, form, submitted_at)
        except ConversationError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Submission request error", error=str(e), error_type=type(e).__name__)
            raise self._fail(GENERIC_ERROR) from e

    async def submit(self, data: Union[str, bytes]) -> Reply:
        """
        Send text or WAV audio with the accumulated history.

        On success the user and assistant turns are appended. On any failure
        the message list is left unchanged and ConversationError is raised.
        Cancellation and unexpected errors propagate as-is, recorded as ERROR.
        Either way the conversation is IDLE again when this returns.
        """
        if self.is_pending:
            raise SubmissionInProgress("A submission is already in flight")

        self.last_error = None
        self._set_state(ClientState.PENDING)
        try:
            reply = await self._send(data)
            self.messages.extend([
                Turn(role="user", content=reply.transcript),
                Turn(role="assistant", content=reply.text, latency=reply.latency_ms),
            ])
            self._set_state(ClientState.SUCCESS)
            logger.info("Submission succeeded", latency_ms=reply.latency_ms, turns=len(self.messages))
            return reply
        finally:
            if self.state == ClientState.PENDING:
                self.last_error = GENERIC_ERROR
                self._set_state(ClientState.ERROR)
                logger.warning("Submission aborted")
            self._set_state(ClientState.IDLE)

    def reset(self) -> None:
        self.messages.clear()
        self.state = ClientState.IDLE
        self.outcome = None
        self.last_error = None
