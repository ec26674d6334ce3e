"""
Shared fixtures and fakes.

Upstream providers are never contacted: FakeSession stands in for the
aiohttp.ClientSession handed to each stage and records every call.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest

from observability.event_store import event_store
from voice_pipeline.config import VoiceConfig


class FakeResponse:
    def __init__(
        self,
        status: int = 200,
        *,
        json_body: Any = None,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        raise_on_enter: Optional[BaseException] = None,
    ):
        self.status = status
        self.headers = headers or {}
        self._raise_on_enter = raise_on_enter
        if json_body is not None:
            body = json.dumps(json_body).encode()
        self._body = body

    async def __aenter__(self) -> "FakeResponse":
        if self._raise_on_enter is not None:
            raise self._raise_on_enter
        return self

    async def __aexit__(self, *exc) -> None:
        return None

    async def text(self) -> str:
        return self._body.decode("utf-8", errors="replace")

    async def json(self, content_type: Optional[str] = "application/json") -> Any:
        return json.loads(self._body)

    async def read(self) -> bytes:
        return self._body


@dataclass
class RecordedCall:
    url: str
    kwargs: Dict[str, Any]


@dataclass
class FakeSession:
    """Minimal aiohttp.ClientSession stand-in: queued responses, recorded calls."""

    responses: List[FakeResponse] = field(default_factory=list)
    calls: List[RecordedCall] = field(default_factory=list)
    closed: bool = False

    def queue(self, response: FakeResponse) -> "FakeSession":
        self.responses.append(response)
        return self

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append(RecordedCall(url=url, kwargs=kwargs))
        if not self.responses:
            raise AssertionError(f"unexpected POST to {url}")
        return self.responses.pop(0)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def voice_config() -> VoiceConfig:
    return VoiceConfig(
        deepgram_api_key="dg-secret",
        togetherai_api_key="together-secret",
        neets_api_key="neets-secret",
        deepgram_url="https://stt.test/v1/listen",
        togetherai_url="https://llm.test/v1/chat/completions",
        neets_url="https://tts.test/v1/tts",
    )


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture(autouse=True)
def clear_event_store():
    event_store.clear()
    yield
    event_store.clear()


def deepgram_body(transcript: str) -> dict:
    return {"results": {"channels": [{"alternatives": [{"transcript": transcript, "confidence": 0.98}]}]}}


def together_body(content: str) -> dict:
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}
