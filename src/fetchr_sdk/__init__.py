"""CRUD data access with one API on the client and on the server."""

from .client import FetchrClient
from .context import AllowList, ContextKey, ContextPicker, Predicate
from .exceptions import (
    ErrorReason,
    FetchrAbortError,
    FetchrError,
    FetchrHTTPError,
    FetchrJSONError,
    FetchrNetworkError,
    FetchrStateError,
    FetchrTimeoutError,
    FetchrValidationError,
    InvalidResourceError,
    ServiceError,
    ServiceNotFoundError,
    ServiceNotImplementedError,
)
from .options import ClientOptions, RetryPolicy
from .request import Request
from .request_options import RequestConfig
from .results import Failure, Result, Success
from .server import Dispatcher, ServerFetchr, ServiceCall, ServiceRegistry, ServiceResult
from .stats import RequestStats

__all__ = [
    "AllowList",
    "ContextKey",
    "ClientOptions",
    "ContextPicker",
    "Dispatcher",
    "ErrorReason",
    "Failure",
    "FetchrAbortError",
    "FetchrClient",
    "FetchrError",
    "FetchrHTTPError",
    "FetchrJSONError",
    "FetchrNetworkError",
    "FetchrStateError",
    "FetchrTimeoutError",
    "FetchrValidationError",
    "InvalidResourceError",
    "Predicate",
    "Request",
    "RequestConfig",
    "RequestStats",
    "Result",
    "RetryPolicy",
    "ServerFetchr",
    "ServiceCall",
    "ServiceError",
    "ServiceNotFoundError",
    "ServiceNotImplementedError",
    "ServiceRegistry",
    "ServiceResult",
    "Success",
]

__version__ = "0.1.0"
