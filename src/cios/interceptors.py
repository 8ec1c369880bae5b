"""Request, response and error interceptor chains."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

import httpx

T = TypeVar("T")

logger = logging.getLogger(__name__)

RequestInterceptor = Callable[[httpx.Request], Union[httpx.Request, Awaitable[httpx.Request]]]
ResponseInterceptor = Callable[[httpx.Response], Union[httpx.Response, Awaitable[httpx.Response]]]
ErrorInterceptor = Callable[[Exception], Union[Exception, Awaitable[Exception]]]


class _Registration:
    __slots__ = ("handler", "active")

    def __init__(self, handler: Callable[[Any], Any]) -> None:
        self.handler = handler
        self.active = True


class InterceptorChain(Generic[T]):
    """Insertion-ordered transforms applied one after another.

    The registration list is copy-on-write: ``apply`` iterates the list as it was
    when the chain started and skips entries removed in the meantime.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._registrations: tuple[_Registration, ...] = ()

    def add(self, handler: Callable[[T], T | Awaitable[T]]) -> Callable[[], None]:
        """Register ``handler`` and return a function removing this registration."""
        registration = _Registration(handler)
        self._registrations = self._registrations + (registration,)

        def remove() -> None:
            registration.active = False
            self._registrations = tuple(r for r in self._registrations if r is not registration)

        return remove

    def clear(self) -> None:
        for registration in self._registrations:
            registration.active = False
        self._registrations = ()

    def __len__(self) -> int:
        return len(self._registrations)

    async def apply(self, value: T) -> T:
        for registration in self._registrations:
            if not registration.active:
                logger.debug("skipping %s interceptor %r removed mid-chain", self.name, registration.handler)
                continue
            result = registration.handler(value)
            if inspect.isawaitable(result):
                result = await result
            value = result
        return value


class Interceptors:
    """The three chains owned by one client."""

    def __init__(self) -> None:
        self.request: InterceptorChain[httpx.Request] = InterceptorChain("request")
        self.response: InterceptorChain[httpx.Response] = InterceptorChain("response")
        self.error: InterceptorChain[Exception] = InterceptorChain("error")

    def clear(self) -> None:
        self.request.clear()
        self.response.clear()
        self.error.clear()


def log_error(error: Exception) -> Exception:
    """Default error interceptor: log the terminal error and pass it on."""
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        logger.warning(
            "%s: %s (status=%s, body=%r)",
            type(error).__name__,
            error,
            status_code,
            getattr(error, "body", None),
        )
    else:
        logger.warning("%s: %s", type(error).__name__, error)
    return error
