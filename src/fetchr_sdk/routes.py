"""FastAPI router exposing a dispatcher over the fetcher wire protocol."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .exceptions import ServiceError
from .options import DEFAULT_BASE_PATH
from .server import Dispatcher, failure_from_service_error

logger = logging.getLogger(__name__)


def create_router(dispatcher: Dispatcher, *, prefix: str = DEFAULT_BASE_PATH) -> APIRouter:
    """Serve ``GET {prefix}/{resource}`` reads and ``POST {prefix}/{resource}`` calls.

    The Starlette request is handed to handlers as ``ServiceCall.request_context``.
    """
    router = APIRouter(prefix=prefix.rstrip("/"), tags=["fetchr"])

    @router.get("/{resource}")
    async def read_resource(resource: str, http_request: Request) -> JSONResponse:
        status_code, payload = await dispatcher.handle_get(
            resource,
            dict(http_request.query_params),
            request_context=http_request,
        )
        return JSONResponse(jsonable_encoder(payload), status_code=status_code)

    @router.post("/{resource}")
    async def call_resource(resource: str, http_request: Request) -> JSONResponse:
        try:
            body = await http_request.json()
        except ValueError:
            logger.debug("Invalid JSON body for %s", resource)
            status_code, payload = dispatcher.serialize(
                failure_from_service_error(ServiceError("Invalid JSON body", status_code=400))
            )
        else:
            status_code, payload = await dispatcher.handle_post(resource, body, request_context=http_request)
        return JSONResponse(jsonable_encoder(payload), status_code=status_code)

    return router
