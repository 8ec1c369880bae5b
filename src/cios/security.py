"""Header redaction and URL checks."""

from __future__ import annotations

import datetime as _dt
from email.utils import parsedate_to_datetime
from typing import Iterable, Mapping
from urllib.parse import urlparse

SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
    }
)


def sanitize_headers(headers: Mapping[str, str] | Iterable[tuple[str, str]]) -> dict[str, str]:
    """Return headers with credentials redacted, for log lines."""
    items = headers.items() if isinstance(headers, Mapping) else headers
    return {
        key: "[REDACTED]" if key.lower() in SENSITIVE_HEADERS else value
        for key, value in items
    }


def validate_base_url(url: str) -> None:
    """Reject base URLs that are not absolute http(s) URLs.

    An empty base URL is allowed; endpoints must then be absolute.
    """
    if not url:
        return
    if "\x00" in url:
        raise ValueError("Invalid base_url")
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"}:
        raise ValueError(f"Unsupported base_url scheme: {parsed.scheme or '<none>'}")
    if not parsed.netloc:
        raise ValueError("base_url must include a host")


def parse_retry_after(raw: str | None) -> float | None:
    """Convert a Retry-After header (seconds or HTTP date) to seconds."""
    if raw is None or not raw.strip():
        return None
    value = raw.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=_dt.timezone.utc)
    delta = when - _dt.datetime.now(_dt.timezone.utc)
    return max(0.0, delta.total_seconds())
