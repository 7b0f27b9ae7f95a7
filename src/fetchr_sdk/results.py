"""Outcome values produced by every fetcher call."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union

from .exceptions import ERRORS_BY_REASON, ErrorReason, FetchrError

DEFAULT_ERROR_STATUS = 500


@dataclass(frozen=True)
class Success:
    data: Any = None
    meta: Mapping[str, Any] | None = None
    status_code: int = 200

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    reason: ErrorReason
    message: str = "request failed"
    status_code: int = DEFAULT_ERROR_STATUS
    output: Any = None
    meta: Mapping[str, Any] | None = None
    body: Any = None
    timeout_ms: int | None = None
    url: str | None = None
    raw_request: Mapping[str, Any] | None = None
    cause: BaseException | None = None

    @property
    def ok(self) -> bool:
        return False

    def to_error(self) -> FetchrError:
        """Build the exception raised at the awaiting boundary."""
        error_cls = ERRORS_BY_REASON[self.reason]
        return error_cls(
            self.message,
            status_code=self.status_code,
            output=self.output,
            meta=self.meta,
            body=self.body,
            timeout_ms=self.timeout_ms,
            url=self.url,
            raw_request=self.raw_request,
            cause=self.cause,
        )


Result = Union[Success, Failure]
