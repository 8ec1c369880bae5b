"""The request pipeline: one logical request from options to an Outcome.

Stages run in order: build, request interceptors, host throttle, transport,
response interceptors, status validation, decoding. Any failure goes to the
retry controller; a failure it will not retry passes through the error
interceptors and becomes the error half of the returned ``Outcome``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Mapping, TypeVar

import httpx

from .cancel_token import CancelToken
from .decoding import decode_body, error_body
from .exceptions import CiosCancelledError, CiosHTTPError, CiosTimeoutError, CiosValidationError
from .interceptors import Interceptors
from .models import Outcome
from .request_options import (
    RequestOptions,
    default_validate_status,
    merge_headers,
    resolve_response_type,
    resolve_retries,
    resolve_retry_delay,
    resolve_timeout,
)
from .retry import DEFAULT_RETRY_DELAY, DEFAULT_RETRY_STATUS_CODES, RetryController
from .security import parse_retry_after, sanitize_headers
from .throttle import HostThrottle
from .transport import Transport
from .urls import build_url_with_params, is_absolute_url, resolve_url

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestDescriptor:
    """Encoded request shared by every attempt of one logical request."""

    method: str
    url: str
    headers: tuple[tuple[str, str], ...] = ()
    content: bytes | None = None

    @classmethod
    def encode(
        cls,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        *,
        content: bytes | str | None = None,
        json_data: Any = None,
        data: Mapping[str, Any] | None = None,
        files: Any = None,
    ) -> "RequestDescriptor":
        try:
            request = httpx.Request(
                method.upper(),
                url,
                headers=headers,
                content=content,
                json=json_data,
                data=data,
                files=files,
            )
            body = request.read()
        except (TypeError, ValueError) as exc:
            raise CiosValidationError(f"Could not encode request body: {exc}", cause=exc) from exc
        return cls(
            method=request.method,
            url=str(request.url),
            headers=tuple(request.headers.multi_items()),
            content=body or None,
        )

    def build(self, timeout: float | None = None) -> httpx.Request:
        return httpx.Request(
            self.method,
            self.url,
            headers=list(self.headers),
            content=self.content,
            extensions={"timeout": httpx.Timeout(timeout).as_dict()},
        )


def _validate_request(request: object) -> httpx.Request:
    if not isinstance(request, httpx.Request):
        raise CiosValidationError(
            f"Request interceptors must return an httpx.Request, got {type(request).__name__}"
        )
    if not request.method:
        raise CiosValidationError("Request method must not be empty")
    if request.url.scheme not in {"http", "https"} or not request.url.host:
        raise CiosValidationError(f"Request URL must be an absolute http(s) URL: {request.url}")
    return request


def _checkpoint(token: CancelToken | None) -> None:
    if token is not None:
        token.throw_if_requested()


class RequestPipeline:
    def __init__(
        self,
        *,
        transport: Transport,
        low_level_transport: Transport | None = None,
        interceptors: Interceptors | None = None,
        throttle: HostThrottle | None = None,
        retry: RetryController | None = None,
    ) -> None:
        self.transport = transport
        self.low_level_transport = low_level_transport
        self.interceptors = interceptors or Interceptors()
        self.throttle = throttle or HostThrottle()
        self.retry = retry or RetryController()

    async def execute(
        self,
        method: str,
        endpoint: str,
        options: RequestOptions,
        *,
        content: bytes | str | None = None,
        json_data: Any = None,
        data: Mapping[str, Any] | None = None,
        files: Any = None,
    ) -> Outcome:
        """Run one logical request. Never raises for request failures."""
        try:
            result = await self._run(
                method,
                endpoint,
                options,
                content=content,
                json_data=json_data,
                data=data,
                files=files,
            )
        except Exception as exc:
            return Outcome.failure(await self._intercept_error(exc))
        return Outcome.success(result)

    async def _intercept_error(self, error: Exception) -> Exception:
        try:
            intercepted = await self.interceptors.error.apply(error)
        except Exception as exc:
            return exc
        if not isinstance(intercepted, BaseException):
            logger.warning("error interceptor returned %r instead of an exception; keeping %r", intercepted, error)
            return error
        return intercepted

    async def _run(
        self,
        method: str,
        endpoint: str,
        options: RequestOptions,
        **body: Any,
    ) -> Any:
        token = options.cancel_token
        _checkpoint(token)

        timeout = resolve_timeout(options)
        configured = resolve_retries(options)
        retry_delay = resolve_retry_delay(options, DEFAULT_RETRY_DELAY)
        retry_status_codes = frozenset(
            options.retry_status_codes if options.retry_status_codes is not None else DEFAULT_RETRY_STATUS_CODES
        )

        url = build_url_with_params(
            resolve_url(endpoint, options.base_url),
            options.params,
            options.params_serializer,
        )
        if not is_absolute_url(url):
            raise CiosValidationError(f"Cannot resolve an absolute URL for {endpoint!r}; set a base_url")
        descriptor = RequestDescriptor.encode(method, url, merge_headers(options.headers), **body)

        cancelled: asyncio.Event | None = None
        unregister = None
        if token is not None:
            loop = asyncio.get_running_loop()
            cancelled = asyncio.Event()

            def on_cancel(reason: str) -> None:
                if not loop.is_closed():
                    loop.call_soon_threadsafe(cancelled.set)

            unregister = token.register(on_cancel)

        try:
            remaining = configured
            attempt = 0
            while True:
                attempt += 1
                try:
                    return await self._attempt(descriptor, options, timeout, cancelled)
                except Exception as exc:
                    if not self.retry.should_retry(exc, remaining=remaining, retry_status_codes=retry_status_codes):
                        raise
                    delay = self.retry.delay(retry_delay=retry_delay, configured=configured, remaining=remaining)
                    logger.debug(
                        "attempt %d of %s %s failed (%s); retrying in %.3fs, %d retries left",
                        attempt,
                        descriptor.method,
                        descriptor.url,
                        exc,
                        delay,
                        remaining - 1,
                    )
                await self._race(self.retry.wait(delay), token, cancelled)
                remaining -= 1
        finally:
            if unregister is not None:
                unregister()

    async def _attempt(
        self,
        descriptor: RequestDescriptor,
        options: RequestOptions,
        timeout: float | None,
        cancelled: asyncio.Event | None,
    ) -> Any:
        token = options.cancel_token
        response_type = resolve_response_type(options)
        validate_status = options.validate_status or default_validate_status
        transport = self.transport
        if options.use_low_level_transport and self.low_level_transport is not None:
            transport = self.low_level_transport

        _checkpoint(token)
        request = _validate_request(await self.interceptors.request.apply(descriptor.build(timeout)))

        _checkpoint(token)
        if self.throttle.applies_to(request.method):
            await self._race(self.throttle.acquire(request.url.host, request.method), token, cancelled)

        _checkpoint(token)
        logger.debug(
            "dispatching %s %s headers=%s",
            request.method,
            request.url,
            sanitize_headers(request.headers.multi_items()),
        )
        response = await self._race(
            transport.send(
                request,
                on_upload_progress=options.on_upload_progress,
                on_download_progress=options.on_download_progress,
            ),
            token,
            cancelled,
            timeout=timeout,
            request=request,
        )

        _checkpoint(token)
        response = await self.interceptors.response.apply(response)
        if not isinstance(response, httpx.Response):
            raise CiosValidationError(
                f"Response interceptors must return an httpx.Response, got {type(response).__name__}"
            )

        if not validate_status(response.status_code):
            raise CiosHTTPError(
                f"Request failed with status {response.status_code}",
                status_code=response.status_code,
                body=error_body(response),
                headers=response.headers,
                request=request,
                response=response,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        return decode_body(
            response,
            response_type,
            supports_form_data=transport.supports_form_data,
            response_model=options.response_model,
        )

    async def _race(
        self,
        awaitable: Awaitable[T],
        token: CancelToken | None,
        cancelled: asyncio.Event | None,
        *,
        timeout: float | None = None,
        request: httpx.Request | None = None,
    ) -> T:
        """Await ``awaitable`` unless the token fires or ``timeout`` elapses first."""
        if cancelled is None and timeout is None:
            return await awaitable

        task = asyncio.ensure_future(awaitable)
        watcher = asyncio.ensure_future(cancelled.wait()) if cancelled is not None else None
        waiters = {task} if watcher is None else {task, watcher}
        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if watcher is not None:
                watcher.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        if token is not None and token.is_cancelled:
            raise CiosCancelledError(
                f"Request canceled: {token.reason}",
                reason=token.reason,
                request=request,
            )
        raise CiosTimeoutError(f"Request timed out after {timeout}s", request=request)
