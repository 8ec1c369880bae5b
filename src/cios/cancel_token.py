"""Shared, one-shot cancellation signal."""

from __future__ import annotations

import logging
import threading
from typing import Callable, NamedTuple

from .exceptions import CiosCancelledError

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "Operation canceled by user"

CancelObserver = Callable[[str], None]


class CancelTokenSource(NamedTuple):
    token: "CancelToken"
    cancel: Callable[..., None]


class CancelToken:
    """Broadcast cancellation for any number of requests.

    The token moves from pending to cancelled exactly once. Observers registered
    while pending are called in registration order at that moment; observers
    registered afterwards are called immediately with the stored reason.
    """

    def __init__(self) -> None:
        self._reason: str | None = None
        self._observers: list[tuple[object, CancelObserver]] = []
        self._lock = threading.Lock()

    @classmethod
    def source(cls) -> CancelTokenSource:
        """Create a token together with its ``cancel`` function."""
        token = cls()
        return CancelTokenSource(token, token.cancel)

    @property
    def reason(self) -> str | None:
        return self._reason

    @property
    def is_cancelled(self) -> bool:
        return self._reason is not None

    def cancel(self, reason: str | None = None) -> None:
        with self._lock:
            if self._reason is not None:
                return
            self._reason = reason or DEFAULT_CANCEL_REASON
            observers, self._observers = self._observers, []
        for _, observer in observers:
            self._notify(observer, self._reason)

    def register(self, observer: CancelObserver) -> Callable[[], None]:
        """Call ``observer(reason)`` on cancellation.

        Returns a function that unregisters the observer again; it is a no-op
        once the observer has fired.
        """
        handle = object()
        with self._lock:
            reason = self._reason
            if reason is None:
                self._observers.append((handle, observer))
        if reason is not None:
            self._notify(observer, reason)

        def unregister() -> None:
            with self._lock:
                self._observers = [entry for entry in self._observers if entry[0] is not handle]

        return unregister

    def throw_if_requested(self) -> None:
        reason = self._reason
        if reason is not None:
            raise CiosCancelledError(f"Request canceled: {reason}", reason=reason)

    @staticmethod
    def _notify(observer: CancelObserver, reason: str) -> None:
        try:
            observer(reason)
        except Exception:
            logger.exception("cancel observer %r failed", observer)

    def __repr__(self) -> str:
        state = f"cancelled({self._reason!r})" if self._reason is not None else "pending"
        return f"<CancelToken {state}>"
