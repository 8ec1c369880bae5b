"""URL resolution and query-string building."""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Callable, Mapping
from urllib.parse import urlencode, urlsplit, urlunsplit

ParamsSerializer = Callable[[Mapping[str, Any]], str]


def is_absolute_url(url: str) -> bool:
    parsed = urlsplit(url)
    return bool(parsed.scheme) and bool(parsed.netloc)


def resolve_url(endpoint: str, base_url: str | None = "") -> str:
    """Join ``endpoint`` onto ``base_url`` with exactly one slash between them."""

    if not base_url or is_absolute_url(endpoint):
        return endpoint
    base = base_url if base_url.endswith("/") else f"{base_url}/"
    path = endpoint[1:] if endpoint.startswith("/") else endpoint
    return f"{base}{path}"


def _coerce_param_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return json.dumps(dict(value), separators=(",", ":"), default=str)
    return str(value)


def _query_pairs(params: Mapping[str, Any]) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set, frozenset)):
            pairs.extend((str(key), _coerce_param_value(item)) for item in value if item is not None)
            continue
        pairs.append((str(key), _coerce_param_value(value)))
    return pairs


def build_url_with_params(
    url: str,
    params: Mapping[str, Any] | None = None,
    serializer: ParamsSerializer | None = None,
) -> str:
    """Append ``params`` to ``url``.

    ``None`` values are skipped, sequences repeat their key and mappings are
    JSON-encoded. A custom ``serializer`` replaces the query string entirely.
    """

    if not params:
        return url
    parts = urlsplit(url)
    if serializer is not None:
        query = serializer(params)
        query = query[1:] if query.startswith("?") else query
        return urlunsplit(parts._replace(query=query))

    encoded = urlencode(_query_pairs(params))
    if not encoded:
        return url
    query = f"{parts.query}&{encoded}" if parts.query else encoded
    return urlunsplit(parts._replace(query=query))
