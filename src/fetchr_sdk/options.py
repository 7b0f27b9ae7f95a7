"""Session-scoped client options and how updates merge into them."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import Any, Callable, Mapping

from .context import ContextPicker, coerce_pickers, merge_pickers
from .exceptions import FetchrValidationError

DEFAULT_BASE_PATH = "/api"
DEFAULT_TIMEOUT_MS = 3000


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    interval_ms: int = 200
    status_codes: frozenset[int] = frozenset({0, 408})
    retry_on_timeout: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise FetchrValidationError("max_retries must be non-negative")
        if self.interval_ms < 0:
            raise FetchrValidationError("interval_ms must be non-negative")
        object.__setattr__(self, "status_codes", frozenset(int(code) for code in self.status_codes))

    def merged(self, overrides: Mapping[str, Any] | "RetryPolicy" | None) -> "RetryPolicy":
        if overrides is None:
            return self
        if isinstance(overrides, RetryPolicy):
            return overrides
        return replace(self, **_retry_fields(overrides))


def _retry_fields(values: Mapping[str, Any]) -> dict[str, Any]:
    known = {f.name for f in fields(RetryPolicy)}
    unknown = set(values) - known
    if unknown:
        raise FetchrValidationError(f"Unknown retry option(s): {', '.join(sorted(unknown))}")
    return dict(values)


def coerce_retry_policy(value: Mapping[str, Any] | RetryPolicy | None) -> RetryPolicy | None:
    if value is None or isinstance(value, RetryPolicy):
        return value
    return RetryPolicy(**_retry_fields(value))


@dataclass(frozen=True)
class ClientOptions:
    base_path: str = DEFAULT_BASE_PATH
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    cors_base_path: str | None = None
    context: Mapping[str, Any] = field(default_factory=dict)
    context_picker: Mapping[str, ContextPicker] = field(default_factory=dict)
    retry_policy: RetryPolicy | None = None
    allow_unsafe_retry: bool = False
    headers: Mapping[str, str] = field(default_factory=dict)
    stats_collector: Callable[[Any], Any] | None = None
    # shared by reference with every request built from this snapshot
    service_meta: list[Mapping[str, Any]] = field(default_factory=list, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise FetchrValidationError("timeout_ms must be greater than 0")
        object.__setattr__(self, "base_path", self.base_path.rstrip("/"))
        object.__setattr__(self, "context", MappingProxyType(dict(self.context)))
        object.__setattr__(self, "headers", MappingProxyType({str(k): str(v) for k, v in self.headers.items()}))
        object.__setattr__(self, "context_picker", MappingProxyType(coerce_pickers(self.context_picker)))
        object.__setattr__(self, "retry_policy", coerce_retry_policy(self.retry_policy))
        object.__setattr__(self, "allow_unsafe_retry", bool(self.allow_unsafe_retry))


UPDATABLE_OPTIONS = frozenset(f.name for f in fields(ClientOptions)) - {"service_meta"}


def merge_options(current: ClientOptions, patch: Mapping[str, Any]) -> ClientOptions:
    """Return a new snapshot with ``patch`` merged into ``current``.

    ``context`` and ``headers`` are shallow-merged, ``context_picker`` is
    merged per HTTP method, and every other option is overwritten. Neither
    ``current`` nor ``patch`` is modified.
    """
    unknown = set(patch) - UPDATABLE_OPTIONS
    if unknown:
        raise FetchrValidationError(f"Unknown option(s): {', '.join(sorted(unknown))}")

    changes = {key: value for key, value in patch.items() if key not in ("context", "headers", "context_picker")}
    changes["context"] = _merged_mapping(current.context, patch.get("context"))
    changes["headers"] = _merged_mapping(current.headers, patch.get("headers"))
    changes["context_picker"] = merge_pickers(
        current.context_picker,
        coerce_pickers(patch.get("context_picker")),
    )
    return replace(current, **changes)


def _merged_mapping(current: Mapping[str, Any], update: Mapping[str, Any] | None) -> dict[str, Any]:
    merged = dict(current)
    if update:
        merged.update(update)
    return merged
