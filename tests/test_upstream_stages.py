"""
Tests for the three upstream stages against a fake HTTP session.

Verifies request shape per provider and that every failure mode turns into a
StageFailure with the right reason instead of raising.
"""
import asyncio

import aiohttp
import pytest

from conftest import FakeResponse, deepgram_body, together_body
from voice_pipeline.completion import SAMPLING_PARAMS, build_payload, complete
from voice_pipeline.results import FailureReason, Stage, StageFailure, StageSuccess
from voice_pipeline.synthesis import synthesize
from voice_pipeline.transcription import AudioInput, extract_transcript, transcribe

AUDIO = AudioInput(data=b"RIFF....WAVEfmt ", filename="audio.wav", content_type="audio/wav")


# --- Transcription ---


@pytest.mark.asyncio
async def test_text_input_is_identity_and_makes_no_call(fake_session, voice_config):
    for text in ("Hello", "  padded  ", "¿Qué hora es?, 3 o'clock"):
        result = await transcribe(fake_session, voice_config, text)
        assert isinstance(result, StageSuccess)
        assert result.value == text
    assert fake_session.calls == []


@pytest.mark.asyncio
async def test_transcribe_audio_uploads_file_with_token(fake_session, voice_config):
    fake_session.queue(FakeResponse(json_body=deepgram_body("  what time is it  ")))

    result = await transcribe(fake_session, voice_config, AUDIO, request_id="r1")

    assert isinstance(result, StageSuccess)
    assert result.value == "what time is it"
    call = fake_session.calls[0]
    assert call.url == voice_config.deepgram_url
    assert call.kwargs["headers"] == {"Authorization": "Token dg-secret"}
    assert isinstance(call.kwargs["data"], aiohttp.FormData)


@pytest.mark.asyncio
@pytest.mark.parametrize("transcript", ["", "   ", "\n\t"])
async def test_transcribe_blank_transcript_is_failure(fake_session, voice_config, transcript):
    fake_session.queue(FakeResponse(json_body=deepgram_body(transcript)))

    result = await transcribe(fake_session, voice_config, AUDIO)

    assert isinstance(result, StageFailure)
    assert result.stage == Stage.TRANSCRIPTION
    assert result.reason == FailureReason.EMPTY_RESULT


@pytest.mark.asyncio
async def test_transcribe_http_error_is_failure_with_redacted_detail(fake_session, voice_config):
    fake_session.queue(FakeResponse(401, body=b"bad token dg-secret"))

    result = await transcribe(fake_session, voice_config, AUDIO)

    assert isinstance(result, StageFailure)
    assert result.reason == FailureReason.HTTP_STATUS
    assert result.status_code == 401
    assert "dg-secret" not in result.detail
    assert "[redacted]" in result.detail


@pytest.mark.asyncio
async def test_transcribe_network_error_is_failure(fake_session, voice_config):
    fake_session.queue(FakeResponse(raise_on_enter=aiohttp.ClientConnectionError("refused")))

    result = await transcribe(fake_session, voice_config, AUDIO)

    assert isinstance(result, StageFailure)
    assert result.reason == FailureReason.NETWORK


@pytest.mark.asyncio
async def test_transcribe_timeout_is_failure(fake_session, voice_config):
    fake_session.queue(FakeResponse(raise_on_enter=asyncio.TimeoutError()))

    result = await transcribe(fake_session, voice_config, AUDIO)

    assert result.reason == FailureReason.NETWORK


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"not json", b'{"results": {"channels": []}}', b"[]"])
async def test_transcribe_malformed_body_is_failure(fake_session, voice_config, body):
    fake_session.queue(FakeResponse(body=body))

    result = await transcribe(fake_session, voice_config, AUDIO)

    assert isinstance(result, StageFailure)
    assert result.reason == FailureReason.MALFORMED_RESPONSE


def test_extract_transcript_takes_first_alternative():
    body = {"results": {"channels": [{"alternatives": [{"transcript": " a "}, {"transcript": "b"}]}]}}
    assert extract_transcript(body) == "a"


# --- Chat completion ---


def test_build_payload_fixed_sampling():
    payload = build_payload("m", [{"role": "user", "content": "Hi"}])

    assert payload["model"] == "m"
    assert payload["stream"] is False
    assert payload["max_tokens"] == 4000
    assert payload["temperature"] == 0.7
    assert payload["top_p"] == 0.7
    assert payload["top_k"] == 73
    assert payload["repetition_penalty"] == 1
    assert payload["stop"] == ["<|eot_id|>"]
    assert set(SAMPLING_PARAMS) <= set(payload)


@pytest.mark.asyncio
async def test_complete_posts_messages_with_bearer(fake_session, voice_config):
    fake_session.queue(FakeResponse(json_body=together_body("Hi there")))
    messages = [{"role": "system", "content": "S"}, {"role": "user", "content": "Hello"}]

    result = await complete(fake_session, voice_config, messages, request_id="r1")

    assert isinstance(result, StageSuccess)
    assert result.value == "Hi there"
    call = fake_session.calls[0]
    assert call.url == voice_config.togetherai_url
    assert call.kwargs["headers"]["Authorization"] == "Bearer together-secret"
    assert call.kwargs["json"]["messages"] == messages
    assert call.kwargs["json"]["model"] == voice_config.llm_model


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 429, 500, 503])
async def test_complete_non_success_status_is_failure(fake_session, voice_config, status):
    fake_session.queue(FakeResponse(status, body=b'{"error": "nope"}'))

    result = await complete(fake_session, voice_config, [{"role": "user", "content": "x"}])

    assert isinstance(result, StageFailure)
    assert result.stage == Stage.COMPLETION
    assert result.reason == FailureReason.HTTP_STATUS
    assert result.status_code == status


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"choices": []}, {"choices": [{"message": {"content": None}}]}, {}])
async def test_complete_malformed_body_is_failure(fake_session, voice_config, body):
    fake_session.queue(FakeResponse(json_body=body))

    result = await complete(fake_session, voice_config, [{"role": "user", "content": "x"}])

    assert isinstance(result, StageFailure)
    assert result.reason == FailureReason.MALFORMED_RESPONSE


@pytest.mark.asyncio
async def test_complete_network_error_is_failure(fake_session, voice_config):
    fake_session.queue(FakeResponse(raise_on_enter=aiohttp.ServerDisconnectedError()))

    result = await complete(fake_session, voice_config, [{"role": "user", "content": "x"}])

    assert result.reason == FailureReason.NETWORK


# --- Synthesis ---


@pytest.mark.asyncio
async def test_synthesize_posts_voice_and_model(fake_session, voice_config):
    fake_session.queue(FakeResponse(body=b"ID3\x03mp3-bytes"))

    result = await synthesize(fake_session, voice_config, "Hi there", request_id="r1")

    assert isinstance(result, StageSuccess)
    assert result.value == b"ID3\x03mp3-bytes"
    call = fake_session.calls[0]
    assert call.url == voice_config.neets_url
    assert call.kwargs["headers"]["X-API-Key"] == "neets-secret"
    assert call.kwargs["json"] == {
        "text": "Hi there",
        "voice_id": "us-male-2",
        "params": {"model": "style-diff-500"},
    }


@pytest.mark.asyncio
async def test_synthesize_non_success_status_is_failure(fake_session, voice_config):
    fake_session.queue(FakeResponse(402, body=b"quota exceeded"))

    result = await synthesize(fake_session, voice_config, "Hi")

    assert isinstance(result, StageFailure)
    assert result.stage == Stage.SYNTHESIS
    assert result.status_code == 402
    assert result.detail == "quota exceeded"


@pytest.mark.asyncio
async def test_synthesize_empty_audio_is_failure(fake_session, voice_config):
    fake_session.queue(FakeResponse(body=b""))

    result = await synthesize(fake_session, voice_config, "Hi")

    assert result.reason == FailureReason.EMPTY_RESULT
