"""Checks on the URLs and names a fetcher builds requests from."""

from __future__ import annotations

from typing import Mapping
from urllib.parse import urlsplit

from .exceptions import FetchrValidationError, InvalidResourceError

REDACTED = "***"
# values that must never reach logs or ``raw_request`` diagnostics
SECRET_HEADERS = frozenset({"authorization", "cookie", "x-api-key", "x-csrf-token"})
LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})
RESOURCE_FORBIDDEN = ("/", "?", "#", "\x00")


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {name: REDACTED if name.lower() in SECRET_HEADERS else value for name, value in headers.items()}


def check_origin(url: str, *, allow_http: bool = False, option: str = "base_url") -> None:
    """Require an absolute ``http(s)`` origin, plain http only for loopback unless allowed."""
    if "\x00" in url:
        raise FetchrValidationError(f"{option} contains a NUL byte")
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise FetchrValidationError(f"{option} must be an absolute http(s) URL, got {url!r}")
    if parts.scheme == "http" and not allow_http and (parts.hostname or "").lower() not in LOOPBACK_HOSTS:
        raise FetchrValidationError(f"{option} uses plain http; pass allow_http=True to permit {url!r}")


def check_resource_name(resource: str) -> None:
    """A resource is a single path segment under the base path."""
    if any(char in resource for char in RESOURCE_FORBIDDEN):
        raise InvalidResourceError(f"Resource name must be a single path segment, got {resource!r}")
