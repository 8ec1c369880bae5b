"""Exceptions returned in the error slot of an :class:`~cios.models.Outcome`."""

from __future__ import annotations

from typing import Any, Mapping


class CiosError(Exception):
    """Base exception for all cios request failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: object = None,
        headers: Mapping[str, str] | None = None,
        request: Any = None,
        response: Any = None,
        retry_after: float | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body
        self.headers = dict(headers) if headers is not None else {}
        self.request = request
        self.response = response
        self.retry_after = retry_after
        self.cause = cause

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        if self.status_code is None:
            return str(self.args[0])
        return f"{self.status_code}: {self.args[0]}"


class CiosValidationError(CiosError):
    """Raised when options or intercepted requests are malformed."""


class CiosNetworkError(CiosError):
    """Raised when no response was obtained (DNS, TCP, protocol failures)."""


class CiosTimeoutError(CiosError):
    """Raised when a request exceeds its deadline."""


class CiosCancelledError(CiosError):
    """Raised when the request's cancel token fired."""

    def __init__(self, message: str, *, reason: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.reason = reason


class CiosHTTPError(CiosError):
    """Raised when a response status is rejected by ``validate_status``."""


class CiosDecodeError(CiosError):
    """Raised when a body cannot be converted to the requested response type."""


class CiosUnsupportedError(CiosError):
    """Raised when the active transport cannot provide the requested response type."""


class CiosAggregateError(CiosError):
    """Raised by fan-out when more than one member request failed."""

    def __init__(self, errors: Mapping[int, BaseException]) -> None:
        self.errors = dict(errors)
        combined = "; ".join(
            f"Request {index}: {_message_of(error)}" for index, error in sorted(self.errors.items())
        )
        super().__init__(f"Multiple requests failed: {combined}")


def _message_of(error: BaseException) -> str:
    if isinstance(error, CiosError):
        return error.message
    return str(error) or type(error).__name__
