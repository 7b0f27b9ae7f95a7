"""httpx-backed transport and translation of its outcomes into results."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import httpx
from pydantic import ValidationError

from .exceptions import ErrorReason
from .models import ErrorEnvelope, SuccessEnvelope
from .normalizer import TransportCall
from .results import Failure, Result, Success

NETWORK_STATUS = 0


@dataclass(frozen=True)
class TransportResponse:
    status: int
    text: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)


class Transport(Protocol):
    async def send(self, call: TransportCall) -> TransportResponse:
        ...


class HttpxTransport:
    """Send transport calls with an ``httpx.AsyncClient``.

    Cancelling the awaiting task aborts the in-flight request.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        httpx_client: httpx.AsyncClient | None = None,
        follow_redirects: bool = True,
    ) -> None:
        client_kwargs: dict[str, Any] = {
            "headers": {"Accept": "application/json", "User-Agent": "fetchr-python-sdk/0.1.0"},
            "follow_redirects": follow_redirects,
            "trust_env": False,
        }
        if base_url:
            client_kwargs["base_url"] = base_url
        self._owns_client = httpx_client is None
        self._httpx = httpx_client or httpx.AsyncClient(**client_kwargs)

    async def send(self, call: TransportCall) -> TransportResponse:
        response = await self._httpx.request(
            method=call.method,
            url=call.url,
            headers=dict(call.headers),
            json=call.body if call.method != "GET" else None,
            timeout=call.timeout_ms / 1000.0,
        )
        return TransportResponse(
            status=response.status_code,
            text=response.text,
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._httpx.aclose()


def _diagnostics(call: TransportCall) -> dict[str, Any]:
    return {"timeout_ms": call.timeout_ms, "url": call.url, "raw_request": call.raw_request()}


def failure_from_exception(call: TransportCall, exc: Exception) -> Failure:
    """Map a transport exception onto the failure taxonomy (status 0)."""
    if isinstance(exc, httpx.TimeoutException):
        return Failure(
            ErrorReason.TIMEOUT,
            message="Request timed out",
            status_code=NETWORK_STATUS,
            cause=exc,
            **_diagnostics(call),
        )
    return Failure(
        ErrorReason.UNKNOWN,
        message=str(exc) or "Network error",
        status_code=NETWORK_STATUS,
        cause=exc,
        **_diagnostics(call),
    )


def interpret_response(call: TransportCall, response: TransportResponse) -> Result:
    """Turn a received response into a ``Success`` or a ``Failure``."""
    if response.status == NETWORK_STATUS:
        return Failure(
            ErrorReason.UNKNOWN,
            message="Network error",
            status_code=NETWORK_STATUS,
            body=response.text or None,
            **_diagnostics(call),
        )

    parsed: Any = None
    parse_error: Exception | None = None
    if response.text:
        try:
            parsed = json.loads(response.text)
        except ValueError as exc:
            parse_error = exc

    if not 200 <= response.status < 300:
        envelope = ErrorEnvelope()
        if isinstance(parsed, Mapping):
            try:
                envelope = ErrorEnvelope.model_validate(parsed)
            except ValidationError:
                pass
        return Failure(
            ErrorReason.BAD_HTTP_STATUS,
            message=envelope.message,
            status_code=response.status,
            output=envelope.output,
            meta=envelope.meta,
            body=parsed if parsed is not None else response.text,
            **_diagnostics(call),
        )

    if parse_error is not None:
        return Failure(
            ErrorReason.BAD_JSON,
            message="Cannot parse response into a JSON object",
            status_code=response.status,
            body=response.text,
            cause=parse_error,
            **_diagnostics(call),
        )

    if parsed is None:
        return Success(data=None, meta=None, status_code=response.status)
    try:
        if not isinstance(parsed, Mapping):
            raise ValueError("Response body is not a JSON object")
        envelope = SuccessEnvelope.model_validate(parsed)
    except ValueError as exc:
        return Failure(
            ErrorReason.BAD_JSON,
            message=str(exc).splitlines()[0],
            status_code=response.status,
            body=parsed,
            cause=exc,
            **_diagnostics(call),
        )
    return Success(data=envelope.data, meta=envelope.meta, status_code=response.status)
