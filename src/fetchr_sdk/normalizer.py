"""Turn a fetcher request into the transport call that carries it."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping
from urllib.parse import quote, urlencode

from .context import pick_context
from .options import ClientOptions
from .request_options import RequestConfig
from .security import redact_headers

if TYPE_CHECKING:
    from .request import Request

logger = logging.getLogger(__name__)

MAX_URI_LEN = 2048


@dataclass(frozen=True)
class TransportCall:
    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    timeout_ms: int = 3000

    def raw_request(self) -> dict[str, Any]:
        return {"url": self.url, "method": self.method, "headers": redact_headers(self.headers)}


def jsonify_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), sort_keys=True, default=str)


def build_query(values: Mapping[str, Any]) -> str:
    items = [(str(key), jsonify_value(value)) for key, value in values.items() if value is not None]
    return urlencode(sorted(items), quote_via=quote)


def default_get_uri(base: str, resource: str, params: Mapping[str, Any], context: Mapping[str, Any]) -> str:
    """``{base}/{resource}?{query}``; params win over same-named context keys."""
    query = build_query({**context, **params})
    uri = f"{base}/{resource}"
    return f"{uri}?{query}" if query else uri


def resolve_base(options: ClientOptions, config: RequestConfig) -> str:
    if config.cors and options.cors_base_path:
        return options.cors_base_path.rstrip("/")
    return options.base_path


def build_headers(options: ClientOptions, config: RequestConfig, method: str) -> dict[str, str]:
    headers = dict(options.headers)
    if config.headers:
        headers.update({str(k): str(v) for k, v in config.headers.items()})
    if method == "POST":
        headers.setdefault("Content-Type", "application/json")
    if not config.cors:
        # cross-origin calls must stay "simple" to avoid a preflight
        headers.setdefault("X-Requested-With", "XMLHttpRequest")
    return headers


def resolve_timeout(options: ClientOptions, config: RequestConfig) -> int:
    return config.timeout_ms if config.timeout_ms is not None else options.timeout_ms


def build_get_uri(request: "Request") -> str:
    options = request.options
    config = request.config
    base = resolve_base(options, config)
    context = pick_context(options.context, options.context_picker.get("GET"))
    if config.construct_get_uri is not None:
        uri = config.construct_get_uri(base, request.resource, dict(request.call_params), config, context)
        if uri:
            return uri
    return default_get_uri(base, request.resource, request.call_params, context)


def build_post_call_body(request: "Request") -> dict[str, Any]:
    options = request.options
    return {
        "resource": request.resource,
        "operation": request.operation,
        "params": dict(request.call_params),
        "body": request.call_body,
        "config": dict(request.config.extra),
        "context": pick_context(options.context, options.context_picker.get("POST")),
    }


def normalize(request: "Request") -> TransportCall:
    """Build the transport call for ``request``.

    Reads go over GET unless the URI grows past ``MAX_URI_LEN`` or the
    request asks for ``post_for_read``; every other operation goes over POST
    with the operation named in the JSON body.
    """
    options = request.options
    config = request.config
    timeout_ms = resolve_timeout(options, config)

    if request.operation == "read" and not config.post_for_read:
        uri = build_get_uri(request)
        if len(uri) <= MAX_URI_LEN:
            return TransportCall(
                method="GET",
                url=uri,
                headers=build_headers(options, config, "GET"),
                timeout_ms=timeout_ms,
            )
        logger.debug("GET uri for %s exceeds %d characters, sending over POST", request.resource, MAX_URI_LEN)

    return TransportCall(
        method="POST",
        url=f"{resolve_base(options, config)}/{request.resource}",
        headers=build_headers(options, config, "POST"),
        body=build_post_call_body(request),
        timeout_ms=timeout_ms,
    )
