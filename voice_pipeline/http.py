"""
Shared upstream HTTP plumbing for the pipeline stages.
"""

from __future__ import annotations

import time
from typing import Iterable, Optional

import aiohttp

from logging_setup import get_logger, Component
from .config import VoiceConfig

logger = get_logger(Component.PIPELINE)

# Provider error bodies are logged, not returned; cap what we keep.
MAX_DETAIL_CHARS = 500


def create_http_session(config: VoiceConfig) -> aiohttp.ClientSession:
    """
    Create the shared HTTP session with connection pooling.

    Reuses TCP connections between requests to the three providers.
    """
    connector = aiohttp.TCPConnector(
        limit=config.connection_pool_size,
        ttl_dns_cache=300,
        force_close=False,
    )
    timeout = aiohttp.ClientTimeout(
        total=config.total_timeout_seconds,
        connect=config.connect_timeout_seconds,
    )
    logger.info(
        "Upstream connection pool created",
        pool_size=config.connection_pool_size,
        connect_timeout_ms=int(config.connect_timeout_seconds * 1000),
        total_timeout_ms=(
            int(config.total_timeout_seconds * 1000) if config.total_timeout_seconds is not None else None
        ),
    )
    return aiohttp.ClientSession(connector=connector, timeout=timeout)


def redact(detail: Optional[str], secrets: Iterable[str] = ()) -> Optional[str]:
    """Remove known secrets from provider error text and cap its length."""
    if detail is None:
        return None
    for secret in secrets:
        if secret:
            detail = detail.replace(secret, "[redacted]")
    if len(detail) > MAX_DETAIL_CHARS:
        detail = detail[:MAX_DETAIL_CHARS] + "..."
    return detail


def elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def is_success(status: int) -> bool:
    return 200 <= status < 300
