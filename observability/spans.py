"""
Per-request timing spans.

A RequestSpan is opened when a request arrives, times each pipeline stage and
is finished by a completion callback once the response body has been sent.
The "stream" phase covers the time between handing the response to the server
and the last byte going out.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Optional

from logging_setup import get_logger, Component as LogComponent
from .events import EventEmitter, Severity, server_emitter


@dataclass
class StageTiming:
    name: str
    started_at: float
    ended_at: Optional[float] = None

    @property
    def latency_ms(self) -> Optional[int]:
        if self.ended_at is None:
            return None
        return int((self.ended_at - self.started_at) * 1000)


@dataclass
class RequestSpan:
    """Timing record for one request through the voice endpoint."""

    request_id: str
    emitter: EventEmitter = server_emitter
    clock: Callable[[], float] = time.perf_counter
    started_at: float = field(default=0.0)
    stages: Dict[str, StageTiming] = field(default_factory=dict)
    finished: bool = False

    def __post_init__(self) -> None:
        self.started_at = self.clock()
        self.logger = get_logger(LogComponent.VOICE_SERVER, request_id=self.request_id)

    def start(self, name: str) -> StageTiming:
        timing = StageTiming(name=name, started_at=self.clock())
        self.stages[name] = timing
        return timing

    def end(self, name: str, **fields: Any) -> Optional[int]:
        """Close a stage and log its latency. Returns latency in ms."""
        timing = self.stages.get(name)
        if timing is None or timing.ended_at is not None:
            return None
        timing.ended_at = self.clock()
        self.logger.info(f"{name} finished", stage=name, latency_ms=timing.latency_ms, **fields)
        return timing.latency_ms

    @contextmanager
    def stage(self, name: str) -> Iterator[StageTiming]:
        timing = self.start(name)
        try:
            yield timing
        finally:
            self.end(name)

    def latencies(self) -> Dict[str, int]:
        return {
            name: timing.latency_ms
            for name, timing in self.stages.items()
            if timing.latency_ms is not None
        }

    def mark_response_sent(self, status_code: int) -> None:
        """Record handoff of the response and open the stream phase."""
        self.emitter.emit(
            "response.sent",
            request_id=self.request_id,
            status_code=status_code,
            stages=self.latencies(),
        )
        self.start("stream")

    def finish(self) -> None:
        """
        Completion callback, run after the response body has gone out.

        Safe to call more than once; only the first call emits.
        """
        if self.finished:
            return
        self.finished = True
        stream_ms = self.end("stream")
        total_ms = int((self.clock() - self.started_at) * 1000)
        self.emitter.emit(
            "stream.completed",
            request_id=self.request_id,
            severity=Severity.INFO,
            stream_ms=stream_ms,
            latency_ms=total_ms,
        )
