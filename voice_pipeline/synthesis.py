"""
Text-to-speech via the Neets.ai REST API.

The provider returns MP3 bytes directly; they are passed to the caller as-is.
"""

from __future__ import annotations

import asyncio
import time

import aiohttp

from logging_setup import get_logger, Component
from .config import VoiceConfig
from .http import elapsed_ms, is_success, redact
from .results import FailureReason, Stage, StageFailure, StageResult, StageSuccess

logger = get_logger(Component.TTS)


async def synthesize(
    session: aiohttp.ClientSession,
    config: VoiceConfig,
    text: str,
    *,
    request_id: str = "unknown",
) -> StageResult[bytes]:
    """Synthesize `text` with the configured voice and model."""
    log = logger.with_request(request_id)

    def failure(reason: FailureReason, **kw) -> StageFailure:
        return StageFailure(Stage.SYNTHESIS, reason, latency_ms=elapsed_ms(start), **kw)

    payload = {
        "text": text,
        "voice_id": config.tts_voice,
        "params": {"model": config.tts_model},
    }
    headers = {
        "Content-Type": "application/json",
        "X-API-Key": config.neets_api_key,
    }

    log.info("TTS call started", voice=config.tts_voice, model=config.tts_model, text_length=len(text))
    start = time.perf_counter()
    try:
        async with session.post(config.neets_url, json=payload, headers=headers) as response:
            if not is_success(response.status):
                detail = redact(await response.text(), [config.neets_api_key])
                log.error("Neets TTS error", status_code=response.status, error_text=detail)
                return failure(FailureReason.HTTP_STATUS, status_code=response.status, detail=detail)

            audio = await response.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        log.error("Neets TTS exception", error=str(e), error_type=type(e).__name__)
        return failure(FailureReason.NETWORK, detail=str(e))

    if not audio:
        log.error("Neets TTS returned no audio")
        return failure(FailureReason.EMPTY_RESULT)

    latency_ms = elapsed_ms(start)
    log.info("TTS call completed", audio_bytes=len(audio), latency_ms=latency_ms)
    return StageSuccess(audio, latency_ms=latency_ms)
