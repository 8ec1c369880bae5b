"""Layered per-request options."""

from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace
from typing import TYPE_CHECKING, Any, Callable, Collection, Mapping

from .exceptions import CiosValidationError
from .models import ProgressEvent, ResponseType

if TYPE_CHECKING:
    from .cancel_token import CancelToken

ProgressObserver = Callable[[ProgressEvent], None]

DEFAULT_TIMEOUT = 10.0


def default_validate_status(status: int) -> bool:
    return 200 <= status < 300


@dataclass(frozen=True)
class RequestOptions:
    """Options for one request; ``None`` means "inherit from the layer below".

    ``timeout`` is in seconds; pass ``math.inf`` to disable the deadline.
    """

    base_url: str | None = None
    timeout: float | None = None
    retries: int | None = None
    retry_delay: float | None = None
    retry_status_codes: Collection[int] | None = None
    response_type: ResponseType | str | None = None
    response_model: Any = None
    validate_status: Callable[[int], bool] | None = None
    cancel_token: CancelToken | None = None
    on_upload_progress: ProgressObserver | None = None
    on_download_progress: ProgressObserver | None = None
    params: Mapping[str, Any] | None = None
    params_serializer: Callable[[Mapping[str, Any]], str] | None = None
    headers: Mapping[str, str | None] | None = None
    use_low_level_transport: bool | None = None

    def merge(self, override: RequestOptions | None) -> RequestOptions:
        """Return these options with every field set in ``override`` taking precedence."""
        if override is None:
            return self
        changes = {
            f.name: getattr(override, f.name)
            for f in fields(override)
            if f.name != "headers" and getattr(override, f.name) is not None
        }
        return replace(self, headers=merge_headers(self.headers, override.headers), **changes)


def merge_headers(*layers: Mapping[str, str | None] | None) -> dict[str, str]:
    """Merge header mappings by case-insensitive key; later layers win.

    A ``None`` value removes the header inherited from earlier layers.
    """
    merged: dict[str, str] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            for existing in [k for k in merged if k.lower() == str(key).lower()]:
                del merged[existing]
            if value is not None:
                merged[str(key)] = str(value)
    return merged


def resolve_timeout(options: RequestOptions) -> float | None:
    timeout = options.timeout
    if timeout is None or math.isinf(timeout):
        return None
    if timeout <= 0:
        raise CiosValidationError("timeout must be greater than 0")
    return float(timeout)


def resolve_retries(options: RequestOptions) -> int:
    retries = options.retries if options.retries is not None else 0
    if retries < 0:
        raise CiosValidationError("retries must be non-negative")
    return int(retries)


def resolve_retry_delay(options: RequestOptions, default: float) -> float:
    delay = options.retry_delay if options.retry_delay is not None else default
    if delay < 0:
        raise CiosValidationError("retry_delay must be non-negative")
    return float(delay)


def resolve_response_type(options: RequestOptions) -> ResponseType:
    if options.response_type is None:
        return ResponseType.JSON
    try:
        return ResponseType(options.response_type)
    except ValueError:
        raise CiosValidationError(f"Unsupported response_type: {options.response_type!r}") from None
