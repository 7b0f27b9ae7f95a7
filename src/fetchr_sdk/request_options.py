"""Per-request overrides for fetcher calls."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from .exceptions import FetchrValidationError
from .options import RetryPolicy


@dataclass(frozen=True)
class RequestConfig:
    timeout_ms: int | None = None
    headers: Mapping[str, str] | None = None
    retry: Mapping[str, Any] | RetryPolicy | None = None
    allow_unsafe_retry: bool | None = None
    cors: bool = False
    construct_get_uri: Callable[..., str | None] | None = None
    post_for_read: bool = False
    # forwarded to the server as the call's ``config``
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def coerce(cls, value: "RequestConfig | Mapping[str, Any] | None") -> "RequestConfig":
        if value is None:
            return cls()
        if isinstance(value, RequestConfig):
            return value
        try:
            return cls(**value)
        except TypeError as exc:
            raise FetchrValidationError(f"Invalid request config: {exc}") from exc
