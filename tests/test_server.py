from __future__ import annotations

import asyncio
from typing import Any

import pytest

from fetchr_sdk import (
    Dispatcher,
    ErrorReason,
    FetchrHTTPError,
    FetchrValidationError,
    RequestStats,
    ServerFetchr,
    ServiceCall,
    ServiceError,
    ServiceRegistry,
    ServiceResult,
)
from fetchr_sdk.server import decode_query_value


class WidgetService:
    def __init__(self) -> None:
        self.calls: list[ServiceCall] = []
        self.widgets = {1: {"id": 1, "name": "sprocket"}}

    async def read(self, call: ServiceCall) -> ServiceResult:
        self.calls.append(call)
        widget = self.widgets.get(int(call.params["id"]))
        if widget is None:
            raise ServiceError("Not found", status_code=404, output={"message": "Not found"}, meta={"miss": True})
        return ServiceResult(data=widget, meta={"source": "memory"})

    def create(self, call: ServiceCall) -> dict[str, Any]:
        self.calls.append(call)
        widget = {"id": len(self.widgets) + 1, **call.body}
        self.widgets[widget["id"]] = widget
        return widget


class BrokenService:
    def read(self, call: ServiceCall) -> Any:
        raise RuntimeError("database password is hunter2")


def _dispatcher(**kwargs) -> tuple[Dispatcher, WidgetService]:
    registry = ServiceRegistry()
    service = WidgetService()
    registry.register("widgets", service)
    registry.register("broken", BrokenService())
    return Dispatcher(registry, **kwargs), service


def test_registry_rejects_handlers_without_operations() -> None:
    registry = ServiceRegistry()
    with pytest.raises(FetchrValidationError, match="at least one"):
        registry.register("empty", object())
    with pytest.raises(FetchrValidationError, match="name is required"):
        registry.register("", WidgetService())


def test_registry_lookup() -> None:
    registry = ServiceRegistry()
    service = WidgetService()
    registry.register("widgets", service)
    assert "widgets" in registry
    assert len(registry) == 1
    assert registry.get("widgets") is service
    assert registry.names() == ["widgets"]
    registry.unregister("widgets")
    assert "widgets" not in registry


def test_dispatch_returns_data_and_meta() -> None:
    dispatcher, _ = _dispatcher()
    result = asyncio.run(dispatcher.dispatch(ServiceCall("widgets", "read", params={"id": 1})))
    assert result.ok
    assert result.data == {"id": 1, "name": "sprocket"}
    assert result.meta == {"source": "memory"}
    assert result.status_code == 200


def test_dispatch_accepts_sync_handlers_returning_plain_data() -> None:
    dispatcher, _ = _dispatcher()
    result = asyncio.run(dispatcher.dispatch(ServiceCall("widgets", "create", body={"name": "gear"})))
    assert result.data == {"id": 2, "name": "gear"}
    assert result.meta is None


def test_dispatch_missing_operation_is_not_implemented() -> None:
    dispatcher, _ = _dispatcher()
    result = asyncio.run(dispatcher.dispatch(ServiceCall("widgets", "delete")))
    assert not result.ok
    assert result.status_code == 501


def test_dispatch_unknown_resource_is_bad_request() -> None:
    dispatcher, _ = _dispatcher()
    result = asyncio.run(dispatcher.dispatch(ServiceCall("gadgets", "read")))
    assert result.status_code == 400
    assert "gadgets" in result.output["message"]


def test_dispatch_keeps_service_error_fields() -> None:
    dispatcher, _ = _dispatcher()
    result = asyncio.run(dispatcher.dispatch(ServiceCall("widgets", "read", params={"id": 9})))
    assert result.reason == ErrorReason.BAD_HTTP_STATUS
    assert result.status_code == 404
    assert result.output == {"message": "Not found"}
    assert result.meta == {"miss": True}


def test_dispatch_hides_unexpected_errors() -> None:
    dispatcher, _ = _dispatcher()
    result = asyncio.run(dispatcher.dispatch(ServiceCall("broken", "read")))
    status_code, payload = Dispatcher.serialize(result)
    assert status_code == 500
    assert payload == {"message": "request failed", "output": {"message": "request failed"}, "statusCode": 500}
    assert "hunter2" not in repr(payload)


def test_meta_status_code_overrides_success_status() -> None:
    class CreatedService:
        def create(self, call: ServiceCall) -> ServiceResult:
            return ServiceResult(data={"ok": True}, meta={"statusCode": 201})

    registry = ServiceRegistry()
    registry.register("things", CreatedService())
    status_code, payload = Dispatcher.serialize(
        asyncio.run(Dispatcher(registry).dispatch(ServiceCall("things", "create")))
    )
    assert status_code == 201
    assert payload == {"data": {"ok": True}, "meta": {"statusCode": 201}}


def test_params_processor_and_response_formatter() -> None:
    seen: dict[str, Any] = {}

    def params_processor(request_context, info, params):
        seen["info"] = info
        seen["request_context"] = request_context
        return {**params, "id": int(params["id"])}

    def response_formatter(request_context, response_context, data):
        seen["response_context"] = response_context
        return {**data, "formatted": True}

    dispatcher, service = _dispatcher(params_processor=params_processor, response_formatter=response_formatter)
    result = asyncio.run(
        dispatcher.dispatch(ServiceCall("widgets", "read", params={"id": "1"}, request_context="req"))
    )

    assert service.calls[0].params == {"id": 1}
    assert seen["info"] == {"resource": "widgets", "operation": "read"}
    assert seen["request_context"] == "req"
    assert seen["response_context"]["status_code"] == 200
    assert result.data == {"id": 1, "name": "sprocket", "formatted": True}


def test_failing_response_formatter_yields_error_envelope() -> None:
    def response_formatter(request_context, response_context, data):
        raise RuntimeError("formatter exploded")

    dispatcher, _ = _dispatcher(response_formatter=response_formatter)
    fetchr = ServerFetchr(dispatcher)

    async def scenario() -> FetchrHTTPError:
        with pytest.raises(FetchrHTTPError) as excinfo:
            await fetchr.read("widgets", {"id": 1})
        return excinfo.value

    error = asyncio.run(scenario())

    assert error.status_code == 500
    assert error.output == {"message": "request failed"}
    status_code, payload = asyncio.run(dispatcher.handle_get("widgets", {"id": "1"}))
    assert status_code == 500
    assert payload == {"message": "request failed", "output": {"message": "request failed"}, "statusCode": 500}


def test_malformed_meta_status_code_yields_error_envelope() -> None:
    class OddService:
        def read(self, call: ServiceCall) -> ServiceResult:
            return ServiceResult(data={}, meta={"statusCode": "created"})

    registry = ServiceRegistry()
    registry.register("odd", OddService())
    status_code, payload = Dispatcher.serialize(asyncio.run(Dispatcher(registry).dispatch(ServiceCall("odd", "read"))))
    assert status_code == 500
    assert payload["statusCode"] == 500


def test_handle_get_decodes_query_values() -> None:
    dispatcher, service = _dispatcher()
    status_code, payload = asyncio.run(dispatcher.handle_get("widgets", {"id": "1", "tags": '["a","b"]'}))
    assert status_code == 200
    assert payload == {"data": {"id": 1, "name": "sprocket"}, "meta": {"source": "memory"}}
    assert service.calls[0].params == {"id": "1", "tags": ["a", "b"]}


def test_handle_post_decodes_payload() -> None:
    dispatcher, service = _dispatcher()
    payload = {
        "resource": "widgets",
        "operation": "create",
        "params": {},
        "body": {"name": "gear"},
        "config": {"trace": True},
        "context": {"lang": "en"},
    }
    status_code, response = asyncio.run(dispatcher.handle_post("widgets", payload, request_context="req"))

    assert status_code == 200
    assert response == {"data": {"id": 2, "name": "gear"}}
    call = service.calls[0]
    assert call.config == {"trace": True}
    assert call.context == {"lang": "en"}
    assert call.request_context == "req"


@pytest.mark.parametrize(
    "payload",
    [
        {"operation": "explode"},
        {"params": {}},
        ["not", "an", "object"],
        {"resource": "gadgets", "operation": "read"},
    ],
)
def test_handle_post_rejects_invalid_payloads(payload) -> None:
    dispatcher, service = _dispatcher()
    status_code, response = asyncio.run(dispatcher.handle_post("widgets", payload))
    assert status_code == 400
    assert response["statusCode"] == 400
    assert service.calls == []


def test_decode_query_value_keeps_plain_text() -> None:
    assert decode_query_value("42") == "42"
    assert decode_query_value("{not json") == "{not json"
    assert decode_query_value('{"a":1}') == {"a": 1}


def test_server_fetchr_uses_the_same_api_without_network() -> None:
    dispatcher, service = _dispatcher()
    stats: list[RequestStats] = []
    fetchr = ServerFetchr(dispatcher, request_context="incoming", context={"lang": "en"}, stats_collector=stats.append)

    async def scenario() -> Any:
        found = await fetchr.read("widgets", {"id": 1})
        with pytest.raises(FetchrHTTPError) as excinfo:
            await fetchr.read("widgets", {"id": 5})
        return found, excinfo.value

    found, error = asyncio.run(scenario())

    assert found.data == {"id": 1, "name": "sprocket"}
    assert error.status_code == 404
    assert error.output == {"message": "Not found"}
    assert fetchr.get_service_meta() == [{"source": "memory"}, {"miss": True}]
    assert [s.status_code for s in stats] == [200, 404]
    assert service.calls[0].request_context == "incoming"
    assert service.calls[0].context == {"lang": "en"}
