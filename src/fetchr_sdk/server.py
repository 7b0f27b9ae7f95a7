"""Server-side service registry, dispatcher and fetcher."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from .client import _BaseFetchr
from .exceptions import (
    ErrorReason,
    FetchrValidationError,
    ServiceError,
    ServiceNotFoundError,
    ServiceNotImplementedError,
)
from .models import OPERATIONS, ErrorEnvelope, PostPayload, SuccessEnvelope
from .options import ClientOptions, RetryPolicy
from .request import Request
from .results import Failure, Result, Success

logger = logging.getLogger(__name__)

ParamsProcessor = Callable[[Any, Mapping[str, str], dict[str, Any]], Mapping[str, Any]]
ResponseFormatter = Callable[[Any, Mapping[str, Any], Any], Any]


@dataclass(frozen=True)
class ServiceCall:
    """What a resource handler receives."""

    resource: str
    operation: str
    params: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None
    config: Mapping[str, Any] = field(default_factory=dict)
    context: Mapping[str, Any] = field(default_factory=dict)
    request_context: Any = None


@dataclass(frozen=True)
class ServiceResult:
    """Handler return value carrying metadata next to the data."""

    data: Any = None
    meta: Mapping[str, Any] | None = None


class ServiceRegistry:
    """Resource name to handler mapping.

    A handler is any object exposing a subset of ``create``, ``read``,
    ``update`` and ``delete``. Each takes a ``ServiceCall`` and returns the
    data, a ``ServiceResult``, or an awaitable of either.
    """

    def __init__(self) -> None:
        self._services: dict[str, Any] = {}

    def register(self, name: str, handler: Any) -> None:
        if not name:
            raise FetchrValidationError("Service name is required")
        if not any(callable(getattr(handler, op, None)) for op in OPERATIONS):
            raise FetchrValidationError(f'Service "{name}" must implement at least one of {", ".join(OPERATIONS)}')
        if name in self._services:
            logger.debug('Replacing service "%s"', name)
        self._services[name] = handler

    def unregister(self, name: str) -> None:
        self._services.pop(name, None)

    def get(self, name: str) -> Any | None:
        return self._services.get(name)

    def names(self) -> list[str]:
        return sorted(self._services)

    def __contains__(self, name: object) -> bool:
        return name in self._services

    def __len__(self) -> int:
        return len(self._services)

    def operation_for(self, resource: str, operation: str) -> Callable[[ServiceCall], Any]:
        handler = self._services.get(resource)
        if handler is None:
            raise ServiceNotFoundError(resource)
        method = getattr(handler, operation, None) if operation in OPERATIONS else None
        if not callable(method):
            raise ServiceNotImplementedError(resource, operation)
        return method


def decode_query_value(value: str) -> Any:
    """GET values arrive as text; objects and arrays were sent JSON encoded."""
    if value[:1] in ("{", "["):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def failure_from_service_error(exc: ServiceError) -> Failure:
    output = exc.output if exc.output is not None else {"message": exc.message}
    return Failure(
        ErrorReason.BAD_HTTP_STATUS,
        message=exc.message,
        status_code=exc.status_code or 500,
        output=output,
        meta=exc.meta,
    )


class Dispatcher:
    """Run decoded calls against the registry and encode the outcome for the wire."""

    def __init__(
        self,
        registry: ServiceRegistry,
        *,
        params_processor: ParamsProcessor | None = None,
        response_formatter: ResponseFormatter | None = None,
    ) -> None:
        self.registry = registry
        self.params_processor = params_processor
        self.response_formatter = response_formatter

    async def dispatch(self, call: ServiceCall) -> Result:
        try:
            method = self.registry.operation_for(call.resource, call.operation)
            if self.params_processor is not None:
                params = self.params_processor(
                    call.request_context,
                    {"resource": call.resource, "operation": call.operation},
                    dict(call.params),
                )
                call = replace(call, params=params)
            outcome = method(call)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return self._success(call, outcome)
        except ServiceError as exc:
            logger.debug("%s.%s failed with status %s", call.resource, call.operation, exc.status_code)
            return failure_from_service_error(exc)
        except Exception:
            logger.exception("%s.%s raised an unexpected error", call.resource, call.operation)
            return failure_from_service_error(ServiceError(output={"message": "request failed"}))

    def _success(self, call: ServiceCall, outcome: Any) -> Success:
        if isinstance(outcome, ServiceResult):
            data, meta = outcome.data, outcome.meta
        else:
            data, meta = outcome, None
        status_code = 200
        if meta and meta.get("statusCode") is not None:
            status_code = int(meta["statusCode"])

        if self.response_formatter is not None:
            response_context = {
                "resource": call.resource,
                "operation": call.operation,
                "status_code": status_code,
                "meta": meta,
            }
            data = self.response_formatter(call.request_context, response_context, data)
        return Success(data=data, meta=meta, status_code=status_code)

    async def handle_get(
        self,
        resource: str,
        query: Mapping[str, str],
        *,
        request_context: Any = None,
    ) -> tuple[int, dict[str, Any]]:
        params = {key: decode_query_value(value) for key, value in query.items()}
        call = ServiceCall(resource, "read", params=params, request_context=request_context)
        return self.serialize(await self.dispatch(call))

    async def handle_post(
        self,
        resource: str,
        payload: Any,
        *,
        request_context: Any = None,
    ) -> tuple[int, dict[str, Any]]:
        try:
            decoded = PostPayload.model_validate(payload)
        except ValidationError as exc:
            logger.debug("rejected payload for %s: %s", resource, exc)
            return self.serialize(failure_from_service_error(ServiceError("Invalid request payload", status_code=400)))
        if decoded.resource is not None and decoded.resource != resource:
            message = f'payload resource "{decoded.resource}" does not match "{resource}"'
            return self.serialize(failure_from_service_error(ServiceError(message, status_code=400)))

        call = ServiceCall(
            resource,
            decoded.operation,
            params=decoded.params,
            body=decoded.body,
            config=decoded.config,
            context=decoded.context,
            request_context=request_context,
        )
        return self.serialize(await self.dispatch(call))

    @staticmethod
    def serialize(result: Result) -> tuple[int, dict[str, Any]]:
        if isinstance(result, Success):
            payload = SuccessEnvelope(data=result.data, meta=_plain(result.meta)).model_dump()
        else:
            payload = ErrorEnvelope(
                message=result.message,
                output=result.output,
                status_code=result.status_code,
                meta=_plain(result.meta),
            ).model_dump(by_alias=True)
        if payload.get("meta") is None:
            payload.pop("meta", None)
        return result.status_code, payload


def _plain(meta: Mapping[str, Any] | None) -> dict[str, Any] | None:
    return dict(meta) if meta is not None else None


class ServerFetchr(_BaseFetchr):
    """Same CRUD API as ``FetchrClient``, dispatching to handlers in-process."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        request_context: Any = None,
        context: Mapping[str, Any] | None = None,
        retry_policy: RetryPolicy | Mapping[str, Any] | None = None,
        allow_unsafe_retry: bool = False,
        stats_collector: Callable[[Any], Any] | None = None,
    ) -> None:
        super().__init__(
            ClientOptions(
                context=context or {},
                retry_policy=retry_policy,
                allow_unsafe_retry=allow_unsafe_retry,
                stats_collector=stats_collector,
            )
        )
        self.dispatcher = dispatcher
        self.request_context = request_context

    async def _send_once(self, request: Request) -> Result:
        call = ServiceCall(
            request.resource,
            request.operation,
            params=dict(request.call_params),
            body=request.call_body,
            config=dict(request.config.extra),
            context=dict(request.options.context),
            request_context=self.request_context,
        )
        return await self.dispatcher.dispatch(call)
