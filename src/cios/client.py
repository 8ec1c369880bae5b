"""Asynchronous HTTP client built on the request pipeline."""

from __future__ import annotations

import math
import os
from dataclasses import replace
from types import MappingProxyType
from typing import Any, Callable, Collection, Iterable, Mapping, Sequence

import httpx

from .exceptions import CiosValidationError
from .fanout import FanoutMember, gather_outcomes
from .interceptors import (
    ErrorInterceptor,
    Interceptors,
    RequestInterceptor,
    ResponseInterceptor,
    log_error,
)
from .models import Blob, FormData, Outcome, ResponseType
from .pipeline import RequestPipeline
from .request_options import DEFAULT_TIMEOUT, RequestOptions, default_validate_status, merge_headers
from .retry import DEFAULT_RETRY_DELAY, DEFAULT_RETRY_STATUS_CODES, RetryController
from .security import validate_base_url
from .throttle import DEFAULT_THROTTLE_INTERVAL, DEFAULT_THROTTLE_METHODS, HostThrottle
from .transport import HttpcoreTransport, HttpxTransport, Transport


_BODY_KEYWORDS = ("content", "json_data", "data", "files")


def _coerce_body(payload: Any) -> dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, (bytes, bytearray, str)):
        return {"content": bytes(payload) if isinstance(payload, bytearray) else payload}
    if isinstance(payload, Mapping):
        return {"json_data": dict(payload)}
    return {"json_data": payload}


def _multipart_files(
    fields: Mapping[str, Any] | FormData | None,
    files: Mapping[str, Any] | Sequence[tuple[str, Any]] | None,
) -> list[tuple[str, Any]]:
    """Flatten form fields and files into httpx ``files`` entries.

    Plain fields become parts without a filename so the body is multipart even
    when no file is attached.
    """
    parts: list[tuple[str, Any]] = []
    if isinstance(fields, FormData):
        items: Iterable[tuple[str, Any]] = fields.fields
    else:
        items = []
        for key, value in (fields or {}).items():
            if isinstance(value, (list, tuple)):
                items.extend((key, item) for item in value)
            else:
                items.append((key, value))
    for name, value in items:
        if value is None:
            continue
        if isinstance(value, Blob):
            parts.append((name, (value.filename or name, value.content, value.content_type)))
        else:
            parts.append((name, (None, str(value))))
    if files:
        parts.extend(files.items() if isinstance(files, Mapping) else files)
    return parts


class AsyncCiosClient:
    """Asynchronous client.

    Every request method returns an :class:`~cios.models.Outcome` instead of
    raising. Options are layered: the client's defaults, then ``options``, then
    keyword overrides such as ``params=`` or ``retries=``.
    """

    default_timeout = DEFAULT_TIMEOUT
    default_headers = MappingProxyType(
        {
            "Accept": "application/json",
            "User-Agent": "cios-python/0.1.0",
        }
    )

    def __init__(
        self,
        base_url: str | None = None,
        *,
        options: RequestOptions | None = None,
        timeout: float | None = default_timeout,
        retries: int = 0,
        headers: Mapping[str, str] | None = None,
        httpx_client: httpx.AsyncClient | None = None,
        low_level_transport: Transport | None = None,
        throttle_interval: float = DEFAULT_THROTTLE_INTERVAL,
        throttle_methods: Collection[str] = DEFAULT_THROTTLE_METHODS,
        retry_controller: RetryController | None = None,
        log_errors: bool = True,
        base_url_env_var: str = "CIOS_BASE_URL",
    ) -> None:
        self.base_url = (base_url or os.getenv(base_url_env_var) or "").rstrip("/")
        validate_base_url(self.base_url)

        self._default_options = RequestOptions(
            base_url=self.base_url or None,
            timeout=timeout if timeout is not None else math.inf,
            retries=retries,
            retry_delay=DEFAULT_RETRY_DELAY,
            retry_status_codes=DEFAULT_RETRY_STATUS_CODES,
            response_type=ResponseType.JSON,
            validate_status=default_validate_status,
            headers=merge_headers(self.default_headers, headers),
            use_low_level_transport=False,
        ).merge(options)

        self._settings = {
            "httpx_client": httpx_client,
            "low_level_transport": low_level_transport,
            "throttle_interval": throttle_interval,
            "throttle_methods": throttle_methods,
            "retry_controller": retry_controller,
            "log_errors": log_errors,
            "base_url_env_var": base_url_env_var,
        }
        self._owned_transports: list[Transport] = []
        transport = HttpxTransport(httpx_client)
        self._owned_transports.append(transport)
        if low_level_transport is None:
            low_level_transport = HttpcoreTransport()
            self._owned_transports.append(low_level_transport)

        self.interceptors = Interceptors()
        if log_errors:
            self.interceptors.error.add(log_error)
        self.throttle = HostThrottle(throttle_interval, throttle_methods)
        self.pipeline = RequestPipeline(
            transport=transport,
            low_level_transport=low_level_transport,
            interceptors=self.interceptors,
            throttle=self.throttle,
            retry=retry_controller or RetryController(),
        )

    async def __aenter__(self) -> "AsyncCiosClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for transport in self._owned_transports:
            await transport.aclose()

    def create(
        self,
        base_url: str | None = None,
        *,
        options: RequestOptions | None = None,
    ) -> "AsyncCiosClient":
        """Return a new client inheriting this client's defaults.

        The new client has its own interceptors and throttle state.
        """
        inherited = replace(self._default_options, base_url=None).merge(options)
        return AsyncCiosClient(
            base_url or self.base_url or None,
            options=inherited,
            **self._settings,
        )

    @property
    def default_options(self) -> RequestOptions:
        return self._default_options

    def set_headers(self, headers: Mapping[str, str]) -> None:
        self._default_options = replace(
            self._default_options,
            headers=merge_headers(self._default_options.headers, headers),
        )

    def set_header(self, name: str, value: str) -> None:
        self.set_headers({name: value})

    def add_request_interceptor(self, interceptor: RequestInterceptor) -> Callable[[], None]:
        return self.interceptors.request.add(interceptor)

    def add_response_interceptor(self, interceptor: ResponseInterceptor) -> Callable[[], None]:
        return self.interceptors.response.add(interceptor)

    def add_error_interceptor(self, interceptor: ErrorInterceptor) -> Callable[[], None]:
        return self.interceptors.error.add(interceptor)

    def clear_interceptors(self) -> None:
        self.interceptors.clear()

    def _options(self, options: RequestOptions | None, overrides: Mapping[str, Any]) -> RequestOptions:
        merged = self._default_options.merge(options)
        if overrides:
            try:
                merged = merged.merge(RequestOptions(**overrides))
            except TypeError as exc:
                raise CiosValidationError(f"Invalid request option: {exc}", cause=exc) from exc
        return merged

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        content: bytes | str | None = None,
        json_data: Any = None,
        data: Mapping[str, Any] | None = None,
        files: Any = None,
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> Outcome:
        try:
            merged = self._options(options, overrides)
        except CiosValidationError as exc:
            return Outcome.failure(exc)
        return await self.pipeline.execute(
            method.upper(),
            endpoint,
            merged,
            content=content,
            json_data=json_data,
            data=data,
            files=files,
        )

    async def _send_with_body(
        self,
        method: str,
        endpoint: str,
        body: Mapping[str, Any],
        options: RequestOptions | None,
        overrides: Mapping[str, Any],
    ) -> Outcome:
        clashing = sorted(key for key in _BODY_KEYWORDS if key in overrides)
        if body and clashing:
            return Outcome.failure(
                CiosValidationError(f"Request body given twice: positional data and {', '.join(clashing)}")
            )
        return await self.request(method, endpoint, options=options, **body, **overrides)

    async def get(self, endpoint: str, options: RequestOptions | None = None, **overrides: Any) -> Outcome:
        return await self.request("GET", endpoint, options=options, **overrides)

    async def delete(self, endpoint: str, options: RequestOptions | None = None, **overrides: Any) -> Outcome:
        return await self.request("DELETE", endpoint, options=options, **overrides)

    async def head(self, endpoint: str, options: RequestOptions | None = None, **overrides: Any) -> Outcome:
        return await self.request("HEAD", endpoint, options=options, **overrides)

    async def options(self, endpoint: str, options: RequestOptions | None = None, **overrides: Any) -> Outcome:
        return await self.request("OPTIONS", endpoint, options=options, **overrides)

    async def post(
        self,
        endpoint: str,
        data: Any = None,
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> Outcome:
        return await self._send_with_body("POST", endpoint, _coerce_body(data), options, overrides)

    async def put(
        self,
        endpoint: str,
        data: Any = None,
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> Outcome:
        return await self._send_with_body("PUT", endpoint, _coerce_body(data), options, overrides)

    async def patch(
        self,
        endpoint: str,
        data: Any = None,
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> Outcome:
        return await self._send_with_body("PATCH", endpoint, _coerce_body(data), options, overrides)

    async def post_form(
        self,
        endpoint: str,
        fields: Mapping[str, Any] | FormData | None = None,
        files: Mapping[str, Any] | Sequence[tuple[str, Any]] | None = None,
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> Outcome:
        """POST ``multipart/form-data``; the encoder sets Content-Type and boundary."""
        try:
            merged = self._options(options, overrides)
        except CiosValidationError as exc:
            return Outcome.failure(exc)
        headers = {k: v for k, v in (merged.headers or {}).items() if k.lower() != "content-type"}
        return await self.pipeline.execute(
            "POST",
            endpoint,
            replace(merged, headers=headers),
            files=_multipart_files(fields, files),
        )

    async def post_url_encoded(
        self,
        endpoint: str,
        data: Mapping[str, Any],
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> Outcome:
        return await self._send_with_body("POST", endpoint, {"data": dict(data)}, options, overrides)

    async def all(self, requests: Sequence[FanoutMember]) -> Outcome:
        return await gather_outcomes(requests)
