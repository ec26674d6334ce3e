"""
STT -> LLM -> TTS orchestration for one request.

Stages run strictly in order, each feeding the next. The first StageFailure
short-circuits the run; a partial reply is never produced.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping, Optional, Sequence, Union

import aiohttp

from logging_setup import get_logger, Component as LogComponent
from observability.events import EventEmitter, Severity, pii_fields, pipeline_emitter
from observability.spans import RequestSpan
from .completion import complete
from .config import VoiceConfig
from .context import CallerContext
from .http import create_http_session
from .instructions import build_messages, build_system_prompt, persona_prompt
from .results import StageFailure, StageSuccess
from .synthesis import synthesize
from .transcription import UserInput, transcribe

logger = get_logger(LogComponent.PIPELINE)

TranscribeFn = Callable[..., Awaitable[Union[StageSuccess, StageFailure]]]
CompleteFn = Callable[..., Awaitable[Union[StageSuccess, StageFailure]]]
SynthesizeFn = Callable[..., Awaitable[Union[StageSuccess, StageFailure]]]


@dataclass(frozen=True)
class PipelineReply:
    """Everything a successful run produces."""

    transcript: str
    completion: str
    audio: bytes


class VoicePipeline:
    """
    Runs the three upstream calls for a request.

    Stage functions are injectable so tests can count calls or fake providers
    without touching the network.
    """

    def __init__(
        self,
        config: VoiceConfig,
        session: Optional[aiohttp.ClientSession] = None,
        *,
        transcribe_fn: TranscribeFn = transcribe,
        complete_fn: CompleteFn = complete,
        synthesize_fn: SynthesizeFn = synthesize,
        emitter: EventEmitter = pipeline_emitter,
    ):
        self.config = config
        self._session = session
        self._owns_session = session is None
        self._transcribe = transcribe_fn
        self._complete = complete_fn
        self._synthesize = synthesize_fn
        self.emitter = emitter
        # Unknown persona names fail here, at startup
        self.prompt_template = persona_prompt(config.persona)

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = create_http_session(self.config)
            self._owns_session = True
        return self._session

    async def aclose(self) -> None:
        """Close the HTTP session if this pipeline created it. Safe to call twice."""
        if self._owns_session and self._session is not None:
            try:
                await self._session.close()
                logger.info("Upstream connection pool closed")
            finally:
                self._session = None

    def _stage_failed(self, failure: StageFailure, request_id: str) -> StageFailure:
        self.emitter.emit(
            "stage.failed",
            request_id=request_id,
            severity=Severity.ERROR,
            stage=failure.stage.value,
            reason=failure.reason.value,
            status_code=failure.status_code,
            latency_ms=failure.latency_ms,
        )
        return failure

    async def run(
        self,
        user_input: UserInput,
        history: Sequence[Mapping[str, str]],
        caller: CallerContext,
        span: Optional[RequestSpan] = None,
    ) -> Union[PipelineReply, StageFailure]:
        request_id = caller.request_id
        span = span or RequestSpan(request_id)
        log = logger.with_request(request_id)

        # 1. Transcribe
        with span.stage("transcribe"):
            stt = await self._transcribe(self.session, self.config, user_input, request_id=request_id)
        if isinstance(stt, StageFailure):
            return self._stage_failed(stt, request_id)
        transcript = stt.value
        self.emitter.emit(
            "stt.completed",
            request_id=request_id,
            source="text" if isinstance(user_input, str) else "audio",
            transcript_length=len(transcript),
            latency_ms=stt.latency_ms,
        )

        # 2. Chat completion
        messages = build_messages(
            build_system_prompt(caller, self.prompt_template),
            history,
            transcript,
        )
        self.emitter.emit(
            "llm.request",
            request_id=request_id,
            pii=pii_fields("input_text"),
            input_text=transcript,
            history_turns=len(history),
            model=self.config.llm_model,
        )
        with span.stage("chat completion"):
            llm = await self._complete(self.session, self.config, messages, request_id=request_id)
        if isinstance(llm, StageFailure):
            return self._stage_failed(llm, request_id)
        completion = llm.value
        self.emitter.emit(
            "llm.response",
            request_id=request_id,
            pii=pii_fields("output_text"),
            output_text=completion,
            latency_ms=llm.latency_ms,
        )

        # 3. Speech synthesis
        with span.stage("tts request"):
            tts = await self._synthesize(self.session, self.config, completion, request_id=request_id)
        if isinstance(tts, StageFailure):
            return self._stage_failed(tts, request_id)
        self.emitter.emit(
            "tts.completed",
            request_id=request_id,
            audio_bytes=len(tts.value),
            latency_ms=tts.latency_ms,
        )

        log.debug("Pipeline completed", stages=span.latencies())
        return PipelineReply(transcript=transcript, completion=completion, audio=tts.value)
