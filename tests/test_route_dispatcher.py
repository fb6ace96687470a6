from __future__ import annotations

import asyncio

import pytest

from ocpi_cpo_gateway.api.dispatcher import OcpiRequest, RouteDispatcher, RouteTemplate
from ocpi_cpo_gateway.domain.envelope import ResponseEnvelope, success
from ocpi_cpo_gateway.domain.errors import RouteConflictError


def _dispatch(dispatcher: RouteDispatcher, request: OcpiRequest) -> ResponseEnvelope:
    return asyncio.run(dispatcher.dispatch(request))


async def _ok(request: OcpiRequest) -> ResponseEnvelope:
    return success(dict(request.path_params))


def test_template_match_extracts_named_segments() -> None:
    template = RouteTemplate.parse("/locations/{location_id}/{evse_uid}/")

    assert template.template == "locations/{location_id}/{evse_uid}"
    assert template.parameter_names == ("location_id", "evse_uid")
    assert template.match(("locations", "LOC1", "EVSE1")) == {
        "location_id": "LOC1",
        "evse_uid": "EVSE1",
    }
    assert template.match(("locations", "LOC1")) is None
    assert template.match(("tariffs", "LOC1", "EVSE1")) is None


def test_template_rejects_duplicate_and_malformed_parameters() -> None:
    with pytest.raises(ValueError):
        RouteTemplate.parse("tokens/{id}/{id}")
    with pytest.raises(ValueError):
        RouteTemplate.parse("tokens/x{id}")


def test_register_rejects_ambiguous_template_for_same_verb() -> None:
    dispatcher = RouteDispatcher()
    dispatcher.register("GET", "commands/{kind}", _ok)

    with pytest.raises(RouteConflictError):
        dispatcher.register("GET", "commands/START_SESSION", _ok)
    with pytest.raises(RouteConflictError):
        dispatcher.register("get", "commands/{other}", _ok)

    dispatcher.register("POST", "commands/{kind}", _ok)
    dispatcher.register("GET", "commands/{kind}/{extra}", _ok)


def test_register_rejects_options_and_unknown_verbs() -> None:
    dispatcher = RouteDispatcher()

    with pytest.raises(ValueError):
        dispatcher.register("OPTIONS", "locations", _ok)
    with pytest.raises(ValueError):
        dispatcher.register("TRACE", "locations", _ok)


def test_dispatch_passes_path_parameters_to_handler() -> None:
    dispatcher = RouteDispatcher()
    dispatcher.register("GET", "locations/{location_id}", _ok)

    envelope = _dispatch(dispatcher, OcpiRequest(method="GET", path="locations/LOC1"))

    assert envelope.transport_status == 200
    assert envelope.status_code == 1000
    assert envelope.data == {"location_id": "LOC1"}
    assert envelope.headers["Access-Control-Allow-Methods"] == "OPTIONS, GET"
    assert envelope.headers["Access-Control-Allow-Headers"] == "Authorization"


def test_unknown_path_returns_404_with_2003() -> None:
    dispatcher = RouteDispatcher()
    dispatcher.register("GET", "locations", _ok)

    envelope = _dispatch(dispatcher, OcpiRequest(method="GET", path="nowhere"))

    assert envelope.transport_status == 404
    assert envelope.status_code == 2003
    assert envelope.status_message == "Unknown URL path!"


def test_unregistered_verb_returns_405_with_allow_header() -> None:
    dispatcher = RouteDispatcher()
    dispatcher.register("GET", "tokens/{cc}/{pid}", _ok)
    dispatcher.register("DELETE", "tokens/{cc}/{pid}", _ok)

    envelope = _dispatch(dispatcher, OcpiRequest(method="POST", path="tokens/DE/ABC"))

    assert envelope.transport_status == 405
    assert envelope.status_code == 2001
    assert envelope.headers["Allow"] == "OPTIONS, GET, DELETE"


def test_options_lists_verbs_in_fixed_order_without_invoking_handlers() -> None:
    calls: list[str] = []

    async def record_call(request: OcpiRequest) -> ResponseEnvelope:
        calls.append(request.method)
        return success()

    dispatcher = RouteDispatcher()
    dispatcher.register("DELETE", "tokens/{cc}/{pid}/{uid}", record_call)
    dispatcher.register("PATCH", "tokens/{cc}/{pid}/{uid}", record_call)
    dispatcher.register("GET", "tokens/{cc}/{pid}/{uid}", record_call)
    dispatcher.register("PUT", "tokens/{cc}/{pid}/{uid}", record_call)

    request = OcpiRequest(method="OPTIONS", path="tokens/DE/ABC/123", request_id="req-1")
    first = _dispatch(dispatcher, request)
    second = _dispatch(dispatcher, request)

    assert calls == []
    assert first.transport_status == 200
    assert first.status_code == 1000
    assert first.headers["Allow"] == "OPTIONS, GET, PUT, PATCH, DELETE"
    assert first.headers["Access-Control-Allow-Methods"] == "OPTIONS, GET, PUT, PATCH, DELETE"
    assert first.headers["Access-Control-Allow-Headers"] == "Authorization"
    assert first.headers == second.headers


def test_handler_exception_becomes_server_error() -> None:
    async def explode(_: OcpiRequest) -> ResponseEnvelope:
        raise RuntimeError("boom")

    dispatcher = RouteDispatcher()
    dispatcher.register("GET", "sessions", explode)

    envelope = _dispatch(dispatcher, OcpiRequest(method="GET", path="sessions"))

    assert envelope.transport_status == 500
    assert envelope.status_code == 3000
    assert envelope.status_message == "Internal server error!"


def test_failing_middlewares_are_skipped() -> None:
    seen: list[str] = []

    async def broken_request_middleware(_: OcpiRequest) -> OcpiRequest:
        raise RuntimeError("broken")

    async def tag_request(request: OcpiRequest) -> None:
        seen.append(f"before:{request.path}")

    async def broken_response_middleware(_: OcpiRequest, __: ResponseEnvelope) -> None:
        raise RuntimeError("broken")

    async def tag_response(_: OcpiRequest, envelope: ResponseEnvelope) -> ResponseEnvelope:
        return envelope.with_headers({"X-Tagged": "yes"})

    dispatcher = RouteDispatcher()
    dispatcher.add_request_middleware(broken_request_middleware)
    dispatcher.add_response_middleware(broken_response_middleware)
    dispatcher.register(
        "GET",
        "cdrs",
        _ok,
        before=[tag_request],
        after=[tag_response],
    )

    envelope = _dispatch(dispatcher, OcpiRequest(method="GET", path="cdrs"))

    assert envelope.status_code == 1000
    assert envelope.headers["X-Tagged"] == "yes"
    assert seen == ["before:cdrs"]


def test_tracing_headers_are_attached() -> None:
    dispatcher = RouteDispatcher()
    dispatcher.register("GET", "tariffs", _ok)

    envelope = _dispatch(
        dispatcher,
        OcpiRequest(
            method="GET",
            path="tariffs",
            request_id="req-42",
            correlation_id="corr-7",
        ),
    )
    missing = _dispatch(dispatcher, OcpiRequest(method="GET", path="missing"))

    assert envelope.headers["X-Request-ID"] == "req-42"
    assert envelope.headers["X-Correlation-ID"] == "corr-7"
    assert "X-Request-ID" in missing.headers
    assert "X-Correlation-ID" not in missing.headers


def test_request_header_lookup_is_case_insensitive() -> None:
    request = OcpiRequest(method="GET", path="x", headers={"authorization": "Token abc"})

    assert request.header("Authorization") == "Token abc"
    assert request.header("X-Missing") is None
    with pytest.raises(ValueError):
        request.json_body()
