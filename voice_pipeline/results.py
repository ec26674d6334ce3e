"""
Stage results.

Each pipeline stage returns either a StageSuccess carrying its payload or a
StageFailure tagged with why it failed. Callers match on the type instead of
checking for a None sentinel.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


class Stage(str, Enum):
    TRANSCRIPTION = "transcription"
    COMPLETION = "completion"
    SYNTHESIS = "synthesis"


class FailureReason(str, Enum):
    """Why an upstream call did not produce a usable payload."""

    HTTP_STATUS = "http_status"  # non-2xx from the provider
    NETWORK = "network"  # connection error / timeout
    MALFORMED_RESPONSE = "malformed_response"  # body missing expected fields
    EMPTY_RESULT = "empty_result"  # e.g. blank transcript, zero-byte audio


@dataclass(frozen=True)
class StageSuccess(Generic[T]):
    value: T
    latency_ms: int = 0


@dataclass(frozen=True)
class StageFailure:
    stage: Stage
    reason: FailureReason
    status_code: Optional[int] = None
    detail: Optional[str] = None
    latency_ms: int = 0


StageResult = Union[StageSuccess[T], StageFailure]
