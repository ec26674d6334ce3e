"""
Shared logging infrastructure for the voice assistant.

Used by the HTTP server, the STT -> LLM -> TTS pipeline and the conversation
client. Every record is rendered as one JSON object so request timings and
upstream failures can be grepped and aggregated.

Features:
- JSON-formatted structured logs
- Component tagging
- Request ID correlation
- PII-aware helpers for transcript / reply text
- latency_ms rendered with a unit (colored on terminals)
"""

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Severity(str, Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Component(str, Enum):
    """System components for log tagging."""
    VOICE_SERVER = "voice_server"
    REQUEST_VALIDATOR = "request_validator"
    PIPELINE = "pipeline"
    STT = "stt"
    LLM = "llm"
    TTS = "tts"
    CLIENT = "client"


# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "component", "request_id", "message",
})

_LATENCY_PATTERN = re.compile(r'("latency_ms"\s*:\s*)(\d+)')


def _use_color() -> bool:
    if os.environ.get("NO_COLOR", "").lower() in ("1", "true", "yes"):
        return False
    if os.environ.get("FORCE_COLOR", "").lower() in ("1", "true", "yes"):
        return True
    try:
        return sys.stdout.isatty()
    except (AttributeError, OSError):
        return False


def format_latency(json_output: str) -> str:
    """
    Append an "ms" unit to the latency_ms value of a serialized record.

    The output stops being strict JSON once this runs, so it is only applied
    to console output and never to stored events.
    """
    if _use_color():
        replacement = rf"\1{JSONFormatter.ORANGE}\2 ms{JSONFormatter.RESET}"
    else:
        replacement = r"\1\2 ms"
    return _LATENCY_PATTERN.sub(replacement, json_output)


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Output fields:
    - ISO8601 timestamp
    - severity
    - component
    - request_id (if the logger is request scoped)
    - message plus any extra keyword fields
    """

    ORANGE = "\033[38;5;208m"
    RESET = "\033[0m"

    def __init__(self, render_latency: bool = False):
        super().__init__()
        self.render_latency = render_latency

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }

        if hasattr(record, "request_id"):
            log_data["request_id"] = record.request_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        json_output = json.dumps(log_data, ensure_ascii=False, default=str)
        if self.render_latency and "latency_ms" in log_data:
            json_output = format_latency(json_output)
        return json_output


class StructuredLogger:
    """
    Wrapper around Python's logging with keyword-field structured output.

    Usage:
        logger = StructuredLogger(Component.PIPELINE, request_id="iad1::abc")
        logger.info("Stage completed", stage="stt", latency_ms=412)
        logger.info_pii("Transcript received", transcript="hello there")
    """

    def __init__(
        self,
        component: str | Component,
        request_id: Optional[str] = None,
        logger_name: Optional[str] = None
    ):
        self.component = component.value if isinstance(component, Component) else component
        self.request_id = request_id
        self.logger = logging.getLogger(logger_name or self.component)

    def _log(
        self,
        level: int,
        message: str,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        exc_info = kwargs.pop("exc_info", None)
        stack_info = kwargs.pop("stack_info", None)
        stacklevel = kwargs.pop("stacklevel", 1)

        extra = {
            "component": self.component,
            **kwargs
        }

        if self.request_id:
            extra["request_id"] = self.request_id

        if pii:
            # Kept under its own key so log shippers can drop or mask it
            extra["pii"] = pii

        self.logger.log(
            level,
            message,
            exc_info=exc_info,
            stack_info=stack_info,
            stacklevel=stacklevel,
            extra=extra
        )

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """Log an error message with the active exception attached."""
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **kwargs)

    def debug_pii(self, message: str, **pii_fields):
        """
        Log debug with PII fields explicitly marked.

        Example:
            logger.debug_pii("Prompt built", transcript="what time is it")
        """
        self._log(logging.DEBUG, message, pii=pii_fields)

    def info_pii(self, message: str, **pii_fields):
        """Log info with PII fields explicitly marked."""
        self._log(logging.INFO, message, pii=pii_fields)

    def with_request(self, request_id: str) -> "StructuredLogger":
        """Create a new logger instance bound to a request ID."""
        return StructuredLogger(
            self.component,
            request_id=request_id,
            logger_name=self.logger.name
        )


def setup_logging(
    level: str = "INFO",
    use_json: bool = True,
    include_timestamp: bool = True
) -> None:
    """
    Configure the root logger for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Use the JSON formatter (True) or plain text (False)
        include_timestamp: Include timestamps in plain text logs

    Call once at process startup.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)

    if use_json:
        formatter = JSONFormatter(render_latency=True)
    else:
        format_str = "%(levelname)s - %(component)s - %(message)s"
        if include_timestamp:
            format_str = "%(asctime)s - " + format_str
        formatter = logging.Formatter(format_str, defaults={"component": "unknown"})

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)


def get_logger(
    component: str | Component,
    request_id: Optional[str] = None
) -> StructuredLogger:
    """
    Get a structured logger for a component.

    Example:
        logger = get_logger(Component.VOICE_SERVER, request_id="local-1234")
        logger.info("Request received")
    """
    return StructuredLogger(component, request_id=request_id)
