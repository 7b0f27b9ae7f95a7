"""CRUD fetchers: the HTTP client and the shared base the server fetcher builds on."""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Mapping

import httpx

from .options import DEFAULT_BASE_PATH, DEFAULT_TIMEOUT_MS, ClientOptions, RetryPolicy, merge_options
from .normalizer import normalize
from .request import Request
from .request_options import RequestConfig
from .results import Result
from .security import check_origin
from .transport import HttpxTransport, Transport, failure_from_exception, interpret_response

logger = logging.getLogger(__name__)

ConfigArg = RequestConfig | Mapping[str, Any] | None


class _BaseFetchr:
    """CRUD entry points shared by every fetcher.

    Subclasses implement ``_send_once``, which performs one attempt of a
    request and returns its result.
    """

    def __init__(self, options: ClientOptions) -> None:
        self.options = options

    async def _send_once(self, request: Request) -> Result:
        raise NotImplementedError

    def _request(
        self,
        operation: str,
        resource: str,
        params: Mapping[str, Any] | None,
        body: Any,
        config: ConfigArg,
        callback: Callable[..., Any] | None,
    ) -> Request:
        request = Request(
            operation,
            resource,
            self.options,
            self._send_once,
            params=params,
            body=body,
            config=config,
        )
        if callback is not None:
            request.end(callback)
        return request

    def create(
        self,
        resource: str,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        config: ConfigArg = None,
        callback: Callable[..., Any] | None = None,
    ) -> Request:
        return self._request("create", resource, params, body, config, callback)

    def read(
        self,
        resource: str,
        params: Mapping[str, Any] | None = None,
        config: ConfigArg = None,
        callback: Callable[..., Any] | None = None,
    ) -> Request:
        return self._request("read", resource, params, None, config, callback)

    def update(
        self,
        resource: str,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        config: ConfigArg = None,
        callback: Callable[..., Any] | None = None,
    ) -> Request:
        return self._request("update", resource, params, body, config, callback)

    def delete(
        self,
        resource: str,
        params: Mapping[str, Any] | None = None,
        config: ConfigArg = None,
        callback: Callable[..., Any] | None = None,
    ) -> Request:
        return self._request("delete", resource, params, None, config, callback)

    def update_options(self, patch: Mapping[str, Any]) -> ClientOptions:
        """Merge ``patch`` into the live options; requests already built keep their snapshot."""
        self.options = merge_options(self.options, patch)
        return self.options

    @property
    def service_meta(self) -> list[Mapping[str, Any]]:
        return self.options.service_meta

    def get_service_meta(self) -> list[Mapping[str, Any]]:
        return self.options.service_meta


class FetchrClient(_BaseFetchr):
    """Asynchronous HTTP fetcher."""

    default_base_url = "http://localhost"
    default_base_path = DEFAULT_BASE_PATH
    default_timeout_ms = DEFAULT_TIMEOUT_MS

    def __init__(
        self,
        *,
        base_url: str | None = None,
        base_path: str = default_base_path,
        timeout_ms: int = default_timeout_ms,
        cors_base_path: str | None = None,
        context: Mapping[str, Any] | None = None,
        context_picker: Mapping[str, Any] | None = None,
        retry_policy: RetryPolicy | Mapping[str, Any] | None = None,
        allow_unsafe_retry: bool = False,
        headers: Mapping[str, str] | None = None,
        stats_collector: Callable[[Any], Any] | None = None,
        httpx_client: httpx.AsyncClient | None = None,
        transport: Transport | None = None,
        follow_redirects: bool = True,
        allow_http: bool = False,
        base_url_env_var: str = "FETCHR_BASE_URL",
    ) -> None:
        self.base_url = (base_url or os.getenv(base_url_env_var) or self.default_base_url).rstrip("/")
        self.allow_http = allow_http
        check_origin(self.base_url, allow_http=allow_http)
        if cors_base_path:
            check_origin(cors_base_path, allow_http=allow_http, option="cors_base_path")

        super().__init__(
            ClientOptions(
                base_path=base_path,
                timeout_ms=timeout_ms,
                cors_base_path=cors_base_path,
                context=context or {},
                context_picker=context_picker or {},
                retry_policy=retry_policy,
                allow_unsafe_retry=allow_unsafe_retry,
                headers=headers or {},
                stats_collector=stats_collector,
            )
        )
        self._transport: Transport = transport or HttpxTransport(
            base_url=self.base_url,
            httpx_client=httpx_client,
            follow_redirects=follow_redirects,
        )

    async def __aenter__(self) -> "FetchrClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        aclose = getattr(self._transport, "aclose", None)
        if aclose is not None:
            await aclose()

    def update_options(self, patch: Mapping[str, Any]) -> ClientOptions:
        cors_base_path = patch.get("cors_base_path")
        if cors_base_path:
            check_origin(cors_base_path, allow_http=self.allow_http, option="cors_base_path")
        return super().update_options(patch)

    async def _send_once(self, request: Request) -> Result:
        call = normalize(request)
        logger.debug("%s %s (timeout %d ms)", call.method, call.url, call.timeout_ms)
        try:
            response = await self._transport.send(call)
        except httpx.TransportError as exc:
            return failure_from_exception(call, exc)
        except Exception as exc:
            logger.warning("%s %s raised %s", call.method, call.url, type(exc).__name__)
            return failure_from_exception(call, exc)
        return interpret_response(call, response)
