"""cios: an asyncio HTTP client with retries, cancellation, interceptors and throttling."""

from .cancel_token import CancelToken, CancelTokenSource
from .client import AsyncCiosClient
from .exceptions import (
    CiosAggregateError,
    CiosCancelledError,
    CiosDecodeError,
    CiosError,
    CiosHTTPError,
    CiosNetworkError,
    CiosTimeoutError,
    CiosUnsupportedError,
    CiosValidationError,
)
from .fanout import gather_outcomes
from .interceptors import InterceptorChain, Interceptors
from .models import Blob, FormData, Outcome, ProgressEvent, ResponseType
from .pipeline import RequestDescriptor, RequestPipeline
from .request_options import RequestOptions
from .retry import RetryController
from .throttle import HostThrottle
from .transport import HttpcoreTransport, HttpxTransport, Transport

__version__ = "0.1.0"

__all__ = [
    "AsyncCiosClient",
    "Blob",
    "CancelToken",
    "CancelTokenSource",
    "CiosAggregateError",
    "CiosCancelledError",
    "CiosDecodeError",
    "CiosError",
    "CiosHTTPError",
    "CiosNetworkError",
    "CiosTimeoutError",
    "CiosUnsupportedError",
    "CiosValidationError",
    "FormData",
    "HostThrottle",
    "HttpcoreTransport",
    "HttpxTransport",
    "InterceptorChain",
    "Interceptors",
    "Outcome",
    "ProgressEvent",
    "RequestDescriptor",
    "RequestOptions",
    "RequestPipeline",
    "ResponseType",
    "RetryController",
    "Transport",
    "gather_outcomes",
]
