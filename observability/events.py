"""
Structured JSON event emission.

Every request through the voice endpoint produces a small, ordered set of
events (request.received -> stage events -> response.sent -> stream.completed)
correlated by request_id. Events go to stdout and to the in-memory event store.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from logging_setup import format_latency
from .event_store import event_store


class Component(str, Enum):
    """Component types that emit events."""

    VOICE_SERVER = "voice_server"
    PIPELINE = "pipeline"


class Severity(str, Enum):
    """Event severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


DEFAULT_PII = {"contains_pii": False, "fields": [], "handling": "none"}


def pii_fields(*fields: str) -> Dict[str, Any]:
    """PII metadata for an event carrying user text in the given fields."""
    return {"contains_pii": True, "fields": list(fields), "handling": "none"}


class EventEmitter:
    """Emits structured JSON events."""

    def __init__(self, component: Component):
        self.component = component

    def emit(
        self,
        event_type: str,
        request_id: str,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """
        Emit one event.

        Args:
            event_type: Stable event type string (e.g. "stt.completed")
            request_id: Opaque request identifier
            severity: Event severity level
            correlation_id: Optional correlation ID, defaults to request_id
            pii: PII metadata dict with contains_pii, fields, handling
            **kwargs: Additional event-specific fields

        Returns the event dict as stored.
        """
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "request_id": request_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "correlation_id": correlation_id or request_id,
            "pii": pii or DEFAULT_PII,
        }
        event.update(kwargs)

        json_output = json.dumps(event, ensure_ascii=False, default=str)
        if "latency_ms" in kwargs:
            json_output = format_latency(json_output)

        sys.stdout.write(json_output)
        sys.stdout.write("\n")
        sys.stdout.flush()

        # Stored without the console latency formatting
        event_store.store(event)
        return event


server_emitter = EventEmitter(Component.VOICE_SERVER)
pipeline_emitter = EventEmitter(Component.PIPELINE)
