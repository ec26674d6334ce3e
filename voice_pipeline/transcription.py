"""
Speech-to-text via Deepgram's pre-recorded /v1/listen endpoint.

Text input is passed through untouched; only audio uploads hit the network.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Union

import aiohttp

from logging_setup import get_logger, Component
from .config import VoiceConfig
from .http import elapsed_ms, is_success, redact
from .results import FailureReason, Stage, StageFailure, StageResult, StageSuccess

logger = get_logger(Component.STT)


@dataclass(frozen=True)
class AudioInput:
    """An uploaded audio clip."""

    data: bytes
    filename: str = "audio.wav"
    content_type: str = "audio/wav"


UserInput = Union[str, AudioInput]


def extract_transcript(result: dict) -> str:
    """
    Best alternative of the first channel, whitespace-stripped.

    Raises KeyError / IndexError / TypeError if the structure is not there.
    """
    return result["results"]["channels"][0]["alternatives"][0]["transcript"].strip()


async def transcribe(
    session: aiohttp.ClientSession,
    config: VoiceConfig,
    user_input: UserInput,
    *,
    request_id: str = "unknown",
) -> StageResult[str]:
    """Turn the user's input into text."""
    if isinstance(user_input, str):
        return StageSuccess(user_input)

    log = logger.with_request(request_id)

    def failure(reason: FailureReason, **kw) -> StageFailure:
        return StageFailure(Stage.TRANSCRIPTION, reason, latency_ms=elapsed_ms(start), **kw)

    form = aiohttp.FormData()
    form.add_field(
        "file",
        user_input.data,
        filename=user_input.filename,
        content_type=user_input.content_type,
    )
    headers = {"Authorization": f"Token {config.deepgram_api_key}"}

    log.debug("STT call started", audio_bytes=len(user_input.data), filename=user_input.filename)
    start = time.perf_counter()
    try:
        async with session.post(config.deepgram_url, data=form, headers=headers) as response:
            if not is_success(response.status):
                detail = redact(await response.text(), [config.deepgram_api_key])
                log.error("Deepgram STT error", status_code=response.status, error_text=detail)
                return failure(FailureReason.HTTP_STATUS, status_code=response.status, detail=detail)

            result = await response.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        log.error("Deepgram STT exception", error=str(e), error_type=type(e).__name__)
        return failure(FailureReason.NETWORK, detail=str(e))
    except ValueError as e:
        log.error("Deepgram STT returned invalid JSON", error=str(e))
        return failure(FailureReason.MALFORMED_RESPONSE, detail=str(e))

    try:
        transcript = extract_transcript(result)
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        log.error("Deepgram STT response missing transcript", error_type=type(e).__name__)
        return failure(FailureReason.MALFORMED_RESPONSE, detail=f"missing field: {e}")

    if not transcript:
        log.warning("Deepgram STT returned an empty transcript", latency_ms=elapsed_ms(start))
        return failure(FailureReason.EMPTY_RESULT)

    latency_ms = elapsed_ms(start)
    log.info("STT call completed", transcript_length=len(transcript), latency_ms=latency_ms)
    return StageSuccess(transcript, latency_ms=latency_ms)
