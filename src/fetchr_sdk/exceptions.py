"""SDK-specific exceptions and the failure taxonomy."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping


class ErrorReason(str, Enum):
    """Closed set of reasons a fetcher call can fail for."""

    BAD_HTTP_STATUS = "BAD_HTTP_STATUS"
    BAD_JSON = "BAD_JSON"
    TIMEOUT = "TIMEOUT"
    ABORT = "ABORT"
    UNKNOWN = "UNKNOWN"


class FetchrError(Exception):
    """Base exception for all fetcher failures."""

    reason: ErrorReason = ErrorReason.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        output: Any = None,
        meta: Mapping[str, Any] | None = None,
        body: object = None,
        timeout_ms: int | None = None,
        url: str | None = None,
        raw_request: Mapping[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.output = output
        self.meta = dict(meta) if meta is not None else None
        self.body = body
        self.timeout_ms = timeout_ms
        self.url = url
        self.raw_request = dict(raw_request) if raw_request is not None else None
        self.cause = cause

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        if self.status_code is None:
            return str(self.args[0])
        return f"{self.status_code} {self.reason.value}: {self.args[0]}"


class FetchrValidationError(FetchrError):
    """Raised when a request or option value is invalid."""


class InvalidResourceError(FetchrValidationError):
    """Raised when a request is built without a resource name."""


class FetchrStateError(FetchrError):
    """Raised when a request method is used at the wrong point of its lifecycle."""


class FetchrHTTPError(FetchrError):
    """Raised for non-2xx responses."""

    reason = ErrorReason.BAD_HTTP_STATUS


class FetchrJSONError(FetchrError):
    """Raised when a response body is not valid JSON."""

    reason = ErrorReason.BAD_JSON


class FetchrTimeoutError(FetchrError):
    """Raised when an attempt exceeds its timeout."""

    reason = ErrorReason.TIMEOUT


class FetchrAbortError(FetchrError):
    """Raised when the caller aborted the request."""

    reason = ErrorReason.ABORT


class FetchrNetworkError(FetchrError):
    """Raised for transport-level failures like DNS and TCP errors."""

    reason = ErrorReason.UNKNOWN


ERRORS_BY_REASON: dict[ErrorReason, type[FetchrError]] = {
    ErrorReason.BAD_HTTP_STATUS: FetchrHTTPError,
    ErrorReason.BAD_JSON: FetchrJSONError,
    ErrorReason.TIMEOUT: FetchrTimeoutError,
    ErrorReason.ABORT: FetchrAbortError,
    ErrorReason.UNKNOWN: FetchrNetworkError,
}


class ServiceError(Exception):
    """Raised by resource handlers to send a controlled error to the caller.

    Only ``message``, ``output``, ``status_code`` and ``meta`` ever reach the
    wire.
    """

    def __init__(
        self,
        message: str = "request failed",
        *,
        status_code: int = 500,
        output: Any = None,
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.output = output
        self.meta = dict(meta) if meta is not None else None


class ServiceNotImplementedError(ServiceError):
    """Raised when a resource handler does not define the requested operation."""

    def __init__(self, resource: str, operation: str) -> None:
        message = f'operation "{operation}" is not implemented on resource "{resource}"'
        super().__init__(message, status_code=501, output={"message": message})


class ServiceNotFoundError(ServiceError):
    """Raised when no handler is registered under the requested resource name."""

    def __init__(self, resource: str) -> None:
        message = f'resource "{resource}" is not registered'
        super().__init__(message, status_code=400, output={"message": message})
