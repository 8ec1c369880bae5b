"""Transports that put one prepared request on the wire.

Both transports return an ``httpx.Response`` whose body has been fully read,
so the pipeline can inspect it for diagnostics and decode it afterwards.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Protocol

import httpcore
import httpx

from .exceptions import CiosNetworkError, CiosTimeoutError
from .models import ProgressEvent
from .request_options import ProgressObserver

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 64 * 1024


class Transport(Protocol):
    supports_form_data: bool

    async def send(
        self,
        request: httpx.Request,
        *,
        on_upload_progress: ProgressObserver | None = None,
        on_download_progress: ProgressObserver | None = None,
    ) -> httpx.Response: ...

    async def aclose(self) -> None: ...


def _content_length(headers: httpx.Headers) -> int | None:
    raw = headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class _DownloadProgress:
    def __init__(self, observer: ProgressObserver, total: int | None) -> None:
        self._observer = observer
        self._total = total
        self._last: ProgressEvent | None = None

    def report(self, loaded: int) -> None:
        self._emit(ProgressEvent(loaded=loaded, total=self._total))

    def finish(self, loaded: int) -> None:
        total = self._total if self._total is not None else loaded
        final = ProgressEvent(loaded=loaded, total=total)
        if final != self._last:
            self._emit(final)

    def _emit(self, event: ProgressEvent) -> None:
        self._last = event
        self._observer(event)


async def _upload_stream(content: bytes, observer: ProgressObserver) -> AsyncIterator[bytes]:
    total = len(content)
    loaded = 0
    observer(ProgressEvent(loaded=0, total=total))
    for start in range(0, total, UPLOAD_CHUNK_SIZE):
        chunk = content[start : start + UPLOAD_CHUNK_SIZE]
        yield chunk
        loaded += len(chunk)
        observer(ProgressEvent(loaded=loaded, total=total))


class HttpxTransport:
    """Default transport on top of ``httpx.AsyncClient``."""

    supports_form_data = True

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True, trust_env=False)

    async def send(
        self,
        request: httpx.Request,
        *,
        on_upload_progress: ProgressObserver | None = None,
        on_download_progress: ProgressObserver | None = None,
    ) -> httpx.Response:
        outgoing = request
        if on_upload_progress is not None:
            if request.content:
                outgoing = httpx.Request(
                    request.method,
                    request.url,
                    headers=request.headers,
                    content=_upload_stream(request.content, on_upload_progress),
                    extensions=request.extensions,
                )
            else:
                on_upload_progress(ProgressEvent(loaded=0, total=0))

        try:
            response = await self._client.send(outgoing, stream=True)
            try:
                if on_download_progress is None:
                    await response.aread()
                    response.request = request
                    return response

                progress = _DownloadProgress(on_download_progress, _content_length(response.headers))
                progress.report(0)
                chunks: list[bytes] = []
                async for chunk in response.aiter_raw():
                    chunks.append(chunk)
                    progress.report(response.num_bytes_downloaded)
                progress.finish(response.num_bytes_downloaded)
                # Rebuilt from the raw bytes so content decoding still applies.
                return httpx.Response(
                    response.status_code,
                    headers=response.headers,
                    content=b"".join(chunks),
                    request=request,
                    extensions=response.extensions,
                )
            finally:
                await response.aclose()
        except httpx.TimeoutException as exc:
            raise CiosTimeoutError("Request timed out", request=request, cause=exc) from exc
        except httpx.TransportError as exc:
            raise CiosNetworkError(f"Network error: {exc}", request=request, cause=exc) from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class HttpcoreTransport:
    """Low-level transport driving an ``httpcore`` connection pool directly.

    It skips httpx's client layer (redirects, cookies, auth) and cannot decode
    ``form_data`` responses.
    """

    supports_form_data = False

    def __init__(self, pool: httpcore.AsyncConnectionPool | None = None) -> None:
        self._owns_pool = pool is None
        self._pool = pool or httpcore.AsyncConnectionPool()

    async def send(
        self,
        request: httpx.Request,
        *,
        on_upload_progress: ProgressObserver | None = None,
        on_download_progress: ProgressObserver | None = None,
    ) -> httpx.Response:
        content = request.content
        body: bytes | AsyncIterator[bytes] | None = content or None
        if on_upload_progress is not None:
            if content:
                body = _upload_stream(content, on_upload_progress)
            else:
                on_upload_progress(ProgressEvent(loaded=0, total=0))

        try:
            async with self._pool.stream(
                request.method,
                str(request.url),
                headers=request.headers.raw,
                content=body,
                extensions=request.extensions,
            ) as raw:
                headers = httpx.Headers(raw.headers)
                progress = None
                if on_download_progress is not None:
                    progress = _DownloadProgress(on_download_progress, _content_length(headers))
                    progress.report(0)
                chunks: list[bytes] = []
                loaded = 0
                async for chunk in raw.aiter_stream():
                    chunks.append(chunk)
                    loaded += len(chunk)
                    if progress is not None:
                        progress.report(loaded)
                if progress is not None:
                    progress.finish(loaded)
                status = raw.status
                extensions = dict(raw.extensions)
        except httpcore.TimeoutException as exc:
            raise CiosTimeoutError("Request timed out", request=request, cause=exc) from exc
        except (
            httpcore.NetworkError,
            httpcore.ProtocolError,
            httpcore.UnsupportedProtocol,
            httpcore.ProxyError,
        ) as exc:
            raise CiosNetworkError(f"Network error: {exc}", request=request, cause=exc) from exc

        return httpx.Response(
            status,
            headers=headers,
            content=b"".join(chunks),
            request=request,
            extensions=extensions,
        )

    async def aclose(self) -> None:
        if self._owns_pool:
            await self._pool.aclose()
