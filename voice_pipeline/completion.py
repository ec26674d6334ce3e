"""
Chat completion via Together AI's OpenAI-compatible endpoint.

Non-streaming, fixed sampling parameters, one model. No retries and no
fallback model.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Sequence

import aiohttp

from logging_setup import get_logger, Component
from .config import VoiceConfig
from .http import elapsed_ms, is_success, redact
from .results import FailureReason, Stage, StageFailure, StageResult, StageSuccess

logger = get_logger(Component.LLM)

SAMPLING_PARAMS: Dict[str, Any] = {
    "max_tokens": 4000,
    "temperature": 0.7,
    "top_p": 0.7,
    "top_k": 73,
    "repetition_penalty": 1,
    "stop": ["<|eot_id|>"],
}


def build_payload(model: str, messages: Sequence[Mapping[str, str]]) -> Dict[str, Any]:
    return {
        "model": model,
        "messages": list(messages),
        **SAMPLING_PARAMS,
        "update_at": datetime.now(timezone.utc).isoformat(),
        "stream": False,
    }


def extract_completion(result: dict) -> str:
    content = result["choices"][0]["message"]["content"]
    if not isinstance(content, str):
        raise TypeError(f"completion content is {type(content).__name__}, expected str")
    return content


async def complete(
    session: aiohttp.ClientSession,
    config: VoiceConfig,
    messages: List[Dict[str, str]],
    *,
    request_id: str = "unknown",
) -> StageResult[str]:
    """Request a reply for the full message list (system prompt first)."""
    log = logger.with_request(request_id)

    def failure(reason: FailureReason, **kw) -> StageFailure:
        return StageFailure(Stage.COMPLETION, reason, latency_ms=elapsed_ms(start), **kw)

    payload = build_payload(config.llm_model, messages)
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {config.togetherai_api_key}",
    }

    log.info("LLM call started", model=config.llm_model, message_count=len(messages))
    log.debug_pii("LLM input", input_text=messages[-1]["content"] if messages else "")
    start = time.perf_counter()
    try:
        async with session.post(config.togetherai_url, json=payload, headers=headers) as response:
            if not is_success(response.status):
                detail = redact(await response.text(), [config.togetherai_api_key])
                log.error("Together AI chat completion error", status_code=response.status, error_text=detail)
                return failure(FailureReason.HTTP_STATUS, status_code=response.status, detail=detail)

            result = await response.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        log.error("Together AI chat completion exception", error=str(e), error_type=type(e).__name__)
        return failure(FailureReason.NETWORK, detail=str(e))
    except ValueError as e:
        log.error("Together AI returned invalid JSON", error=str(e))
        return failure(FailureReason.MALFORMED_RESPONSE, detail=str(e))

    try:
        completion = extract_completion(result)
    except (KeyError, IndexError, TypeError) as e:
        log.error("Together AI response missing completion", error=str(e), error_type=type(e).__name__)
        return failure(FailureReason.MALFORMED_RESPONSE, detail=str(e))

    if not completion.strip():
        log.warning("Together AI returned an empty completion")
        return failure(FailureReason.EMPTY_RESULT)

    latency_ms = elapsed_ms(start)
    log.info("LLM call completed", response_length=len(completion), latency_ms=latency_ms)
    return StageSuccess(completion, latency_ms=latency_ms)
