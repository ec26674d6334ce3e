"""
Caller context extraction.

The hosting edge (Vercel-style) annotates every request with coarse
geolocation headers. This module turns them into the location / local-time
strings the system prompt is interpolated with, and resolves a request id for
log correlation.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional
from urllib.parse import unquote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

UNKNOWN_LOCATION = "unknown"


@dataclass(frozen=True)
class CallerContext:
    """Per-request context derived from edge headers."""

    request_id: str
    location: str = UNKNOWN_LOCATION
    timezone: Optional[str] = None

    def local_time(self, now: Optional[datetime] = None) -> str:
        return format_local_time(self.timezone, now=now)


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def resolve_request_id(headers: Mapping[str, str]) -> str:
    """
    Resolve the request id used to correlate logs and events.

    Priority:
    1) x-vercel-id
    2) x-request-id
    3) fallback: local-<uuid>
    """
    for name in ("x-vercel-id", "x-request-id"):
        value = _header(headers, name)
        if value:
            return value
    return f"local-{uuid.uuid4().hex[:12]}"


def resolve_location(headers: Mapping[str, str]) -> str:
    """
    "City, Region, Country" from the edge geolocation headers.

    Returns "unknown" unless all three parts are present. The city header is
    percent-encoded by the edge ("S%C3%A3o%20Paulo").
    """
    country = _header(headers, "x-vercel-ip-country")
    region = _header(headers, "x-vercel-ip-country-region")
    city = _header(headers, "x-vercel-ip-city")

    if not country or not region or not city:
        return UNKNOWN_LOCATION

    return f"{unquote(city)}, {region}, {country}"


def format_local_time(tz_name: Optional[str], now: Optional[datetime] = None) -> str:
    """
    Current time in the caller's timezone, formatted like en-US locale strings
    ("6/14/2024, 3:07:09 PM").

    Unknown or missing timezones fall back to server local time.
    """
    tz = None
    if tz_name:
        try:
            tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            tz = None

    if now is None:
        current = datetime.now(tz) if tz else datetime.now().astimezone()
    elif tz is not None:
        current = now.astimezone(tz)
    else:
        current = now

    hour = current.hour % 12 or 12
    meridiem = "AM" if current.hour < 12 else "PM"
    return (
        f"{current.month}/{current.day}/{current.year}, "
        f"{hour}:{current.minute:02d}:{current.second:02d} {meridiem}"
    )


def build_caller_context(headers: Mapping[str, str]) -> CallerContext:
    """Build the single context object used by the pipeline."""
    return CallerContext(
        request_id=resolve_request_id(headers),
        location=resolve_location(headers),
        timezone=_header(headers, "x-vercel-ip-timezone"),
    )
