"""
Tests for logging_setup module.

Verifies:
- JSON structured logging format
- Component tagging
- Request ID correlation
- PII-aware logging helpers
- latency_ms unit rendering
- Log level configuration
"""
import json
import logging
from io import StringIO
from datetime import datetime

import pytest

from logging_setup import (
    setup_logging,
    get_logger,
    format_latency,
    Component,
    JSONFormatter,
)


@pytest.fixture
def capture_logs():
    """Capture log output to a string buffer."""
    buffer = StringIO()
    handler = logging.StreamHandler(buffer)
    handler.setFormatter(JSONFormatter())

    logger = logging.getLogger()
    saved_handlers, saved_level = logger.handlers[:], logger.level
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG)

    yield buffer

    logger.handlers = saved_handlers
    logger.setLevel(saved_level)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield root
    root.handlers = saved_handlers
    root.setLevel(saved_level)


def _last_entry(buffer: StringIO) -> dict:
    return json.loads(buffer.getvalue().strip().splitlines()[-1])


def test_json_formatter_basic(capture_logs):
    logger = get_logger(Component.VOICE_SERVER)
    logger.info("Test message", extra_field="value")

    log_entry = _last_entry(capture_logs)

    assert log_entry["severity"] == "info"
    assert log_entry["component"] == "voice_server"
    assert log_entry["message"] == "Test message"
    assert log_entry["extra_field"] == "value"
    assert "timestamp" in log_entry


def test_json_formatter_timestamp_format(capture_logs):
    """Timestamp is ISO8601."""
    get_logger(Component.PIPELINE).info("Timestamp test")

    timestamp = _last_entry(capture_logs)["timestamp"]
    assert datetime.fromisoformat(timestamp.replace("Z", "+00:00")) is not None


def test_request_id_correlation(capture_logs):
    get_logger(Component.VOICE_SERVER, request_id="iad1::abc").info("Request test")

    assert _last_entry(capture_logs)["request_id"] == "iad1::abc"


def test_request_id_absent_when_not_provided(capture_logs):
    get_logger(Component.PIPELINE).info("No request")

    assert "request_id" not in _last_entry(capture_logs)


def test_with_request_creates_new_logger(capture_logs):
    base_logger = get_logger(Component.STT)
    request_logger = base_logger.with_request("local-456")
    request_logger.info("With request")

    assert base_logger.request_id is None
    log_entry = _last_entry(capture_logs)
    assert log_entry["request_id"] == "local-456"
    assert log_entry["component"] == "stt"


def test_pii_logging(capture_logs):
    """Transcript text goes into the separate pii field."""
    logger = get_logger(Component.VOICE_SERVER, request_id="local-789")
    logger.info_pii("Reply ready", transcript="what's the weather", response="Sunny.")

    log_entry = _last_entry(capture_logs)
    assert log_entry["pii"] == {"transcript": "what's the weather", "response": "Sunny."}
    assert log_entry["message"] == "Reply ready"


def test_severity_levels(capture_logs):
    logger = get_logger(Component.LLM)

    logger.debug("Debug message")
    logger.info("Info message")
    logger.warning("Warning message")
    logger.error("Error message")
    logger.critical("Critical message")

    lines = [line for line in capture_logs.getvalue().strip().split("\n") if line]
    severities = [json.loads(line)["severity"] for line in lines]
    assert severities == ["debug", "info", "warning", "error", "critical"]


def test_component_enum():
    assert Component.VOICE_SERVER.value == "voice_server"
    assert Component.REQUEST_VALIDATOR.value == "request_validator"
    assert Component.STT.value == "stt"
    assert Component.LLM.value == "llm"
    assert Component.TTS.value == "tts"


def test_component_string_fallback(capture_logs):
    get_logger("custom_component").info("Test")

    assert _last_entry(capture_logs)["component"] == "custom_component"


def test_non_serializable_extra_is_stringified(capture_logs):
    get_logger(Component.PIPELINE).info("Bytes", payload=b"\x00\x01")

    assert _last_entry(capture_logs)["payload"] == "b'\\x00\\x01'"


def test_exception_logging(capture_logs):
    logger = get_logger(Component.VOICE_SERVER)

    try:
        raise ValueError("Test exception")
    except ValueError:
        logger.exception("Exception occurred")

    log_entry = _last_entry(capture_logs)
    assert log_entry["severity"] == "error"
    assert "ValueError: Test exception" in log_entry["exception"]


def test_format_latency_plain(monkeypatch):
    monkeypatch.setenv("NO_COLOR", "1")
    out = format_latency('{"stage": "stt", "latency_ms": 412}')
    assert out == '{"stage": "stt", "latency_ms": 412 ms}'


def test_format_latency_colored(monkeypatch):
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.setenv("FORCE_COLOR", "1")
    out = format_latency('{"latency_ms": 7}')
    assert JSONFormatter.ORANGE in out
    assert "7 ms" in out


def test_raw_formatter_output_stays_json(capture_logs):
    """The test/capture formatter does not render units."""
    get_logger(Component.TTS).info("TTS call completed", latency_ms=250)

    assert _last_entry(capture_logs)["latency_ms"] == 250


def test_setup_logging_json(restore_root_logger):
    setup_logging(level="DEBUG", use_json=True)

    assert restore_root_logger.level == logging.DEBUG
    assert len(restore_root_logger.handlers) == 1
    formatter = restore_root_logger.handlers[0].formatter
    assert isinstance(formatter, JSONFormatter)
    assert formatter.render_latency is True


def test_setup_logging_text(restore_root_logger):
    setup_logging(level="warning", use_json=False)

    assert restore_root_logger.level == logging.WARNING
    assert len(restore_root_logger.handlers) == 1
    assert not isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)


def test_setup_logging_unknown_level_defaults_to_info(restore_root_logger):
    setup_logging(level="chatty")

    assert restore_root_logger.level == logging.INFO
