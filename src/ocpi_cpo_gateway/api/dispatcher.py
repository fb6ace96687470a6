"""Route table mapping (verb, path template) pairs to request handlers."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from ocpi_cpo_gateway.domain.access import Identity, RemoteParty
from ocpi_cpo_gateway.domain.envelope import (
    ALLOW_HEADERS,
    OcpiStatus,
    ResponseEnvelope,
    client_error,
    not_found,
    server_error,
    success,
)
from ocpi_cpo_gateway.domain.errors import RouteConflictError

HTTP_METHODS = ("OPTIONS", "GET", "POST", "PUT", "PATCH", "DELETE")

logger = logging.getLogger(__name__)


def split_path(path: str) -> tuple[str, ...]:
    """Split a URL path into non-empty segments."""

    return tuple(segment for segment in path.strip().split("/") if segment)


@dataclass(slots=True, frozen=True)
class RouteTemplate:
    """Path template such as `locations/{location_id}/{evse_uid}`."""

    template: str
    segments: tuple[str, ...]

    @classmethod
    def parse(cls, template: str) -> RouteTemplate:
        """Validate and split a template string."""

        segments = split_path(template)
        names: set[str] = set()
        for segment in segments:
            if segment.startswith("{") and segment.endswith("}"):
                name = segment[1:-1]
                if not name.isidentifier():
                    raise ValueError(f"Invalid path parameter '{segment}' in '{template}'.")
                if name in names:
                    raise ValueError(f"Duplicate path parameter '{name}' in '{template}'.")
                names.add(name)
            elif "{" in segment or "}" in segment:
                raise ValueError(f"Invalid path segment '{segment}' in '{template}'.")
        return cls(template="/".join(segments), segments=segments)

    @staticmethod
    def _is_variable(segment: str) -> bool:
        return segment.startswith("{")

    @property
    def parameter_names(self) -> tuple[str, ...]:
        """Names of the variable segments in order."""

        return tuple(segment[1:-1] for segment in self.segments if self._is_variable(segment))

    def match(self, path_segments: Sequence[str]) -> dict[str, str] | None:
        """Return extracted parameters, or `None` when the path does not match."""

        if len(path_segments) != len(self.segments):
            return None
        params: dict[str, str] = {}
        for pattern, value in zip(self.segments, path_segments, strict=True):
            if self._is_variable(pattern):
                params[pattern[1:-1]] = value
            elif pattern != value:
                return None
        return params

    def overlaps(self, other: RouteTemplate) -> bool:
        """Return whether some path would match both templates."""

        if len(self.segments) != len(other.segments):
            return False
        for mine, theirs in zip(self.segments, other.segments, strict=True):
            if self._is_variable(mine) or self._is_variable(theirs):
                continue
            if mine != theirs:
                return False
        return True


@dataclass(slots=True)
class OcpiRequest:
    """Transport-independent view of one inbound request."""

    method: str
    path: str
    query: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    path_params: dict[str, str] = field(default_factory=dict)
    identity: Identity | None = None
    remote_party: RemoteParty | None = None
    request_id: str = field(default_factory=lambda: str(uuid4()))
    correlation_id: str | None = None
    cancel_event: asyncio.Event | None = None

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""

        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    def json_body(self) -> Any:
        """Decode the body as JSON; raises `ValueError` on malformed input."""

        if not self.body:
            raise ValueError("The request body must not be empty!")
        return json.loads(self.body)


RequestHandler = Callable[[OcpiRequest], Awaitable[ResponseEnvelope]]
RequestMiddleware = Callable[[OcpiRequest], Awaitable[OcpiRequest | None]]
ResponseMiddleware = Callable[[OcpiRequest, ResponseEnvelope], Awaitable[ResponseEnvelope | None]]


@dataclass(slots=True, frozen=True)
class Route:
    """One registered (verb, template) pair."""

    method: str
    template: RouteTemplate
    handler: RequestHandler
    before: tuple[RequestMiddleware, ...] = ()
    after: tuple[ResponseMiddleware, ...] = ()


class RouteDispatcher:
    """Matches requests against registered templates and runs the middleware chain.

    Global request middlewares run before route matching, route `before`
    hooks after it; route `after` hooks run before the global response
    middlewares. A failing middleware is logged and skipped.
    """

    def __init__(self) -> None:
        self._routes: list[Route] = []
        self._request_middlewares: list[RequestMiddleware] = []
        self._response_middlewares: list[ResponseMiddleware] = []

    @property
    def routes(self) -> tuple[Route, ...]:
        """Registered routes in registration order."""

        return tuple(self._routes)

    def add_request_middleware(self, middleware: RequestMiddleware) -> None:
        """Append a `(request) -> request` transform."""

        self._request_middlewares.append(middleware)

    def add_response_middleware(self, middleware: ResponseMiddleware) -> None:
        """Append a `(request, envelope) -> envelope` transform."""

        self._response_middlewares.append(middleware)

    def register(
        self,
        method: str,
        template: str,
        handler: RequestHandler,
        *,
        before: Iterable[RequestMiddleware] = (),
        after: Iterable[ResponseMiddleware] = (),
    ) -> Route:
        """Add a route; an ambiguous template for the same verb is fatal."""

        normalized_method = method.upper()
        if normalized_method not in HTTP_METHODS or normalized_method == "OPTIONS":
            raise ValueError(f"Cannot register handlers for HTTP method '{method}'.")

        parsed = RouteTemplate.parse(template)
        for existing in self._routes:
            if existing.method == normalized_method and existing.template.overlaps(parsed):
                raise RouteConflictError(
                    f"{normalized_method} '{parsed.template}' overlaps "
                    f"{existing.method} '{existing.template.template}'."
                )

        route = Route(
            method=normalized_method,
            template=parsed,
            handler=handler,
            before=tuple(before),
            after=tuple(after),
        )
        self._routes.append(route)
        return route

    def allowed_methods(self, path: str | Sequence[str]) -> tuple[str, ...]:
        """Return the verbs available on `path`, OPTIONS included; empty when unknown."""

        segments = split_path(path) if isinstance(path, str) else tuple(path)
        methods = {route.method for route in self._routes if route.template.match(segments) is not None}
        if not methods:
            return ()
        methods.add("OPTIONS")
        return tuple(method for method in HTTP_METHODS if method in methods)

    async def dispatch(self, request: OcpiRequest) -> ResponseEnvelope:
        """Resolve and run the handler for `request`; always returns an envelope."""

        request = await self._apply_request_middlewares(request, self._request_middlewares)
        segments = split_path(request.path)
        allowed = self.allowed_methods(segments)
        method = request.method.upper()

        if not allowed:
            envelope = not_found("Unknown URL path!")
        elif method == "OPTIONS":
            envelope = self._options_envelope(allowed)
        else:
            envelope = await self._dispatch_route(request, segments, method, allowed)

        if allowed:
            envelope = envelope.with_headers(
                {
                    "Access-Control-Allow-Methods": ", ".join(allowed),
                    "Access-Control-Allow-Headers": ALLOW_HEADERS,
                },
                overwrite=False,
            )
        tracing = {"X-Request-ID": request.request_id}
        if request.correlation_id is not None:
            tracing["X-Correlation-ID"] = request.correlation_id
        envelope = envelope.with_headers(tracing)

        return await self._apply_response_middlewares(
            request, envelope, self._response_middlewares
        )

    async def _dispatch_route(
        self,
        request: OcpiRequest,
        segments: tuple[str, ...],
        method: str,
        allowed: tuple[str, ...],
    ) -> ResponseEnvelope:
        matched = self._find_route(method, segments)
        if matched is None:
            envelope = client_error(
                f"HTTP method '{method}' is not allowed on this path!",
                status_code=OcpiStatus.INVALID_PARAMETERS,
                transport_status=405,
            )
            return envelope.with_headers({"Allow": ", ".join(allowed)})

        route, params = matched
        request.path_params = params
        request = await self._apply_request_middlewares(request, route.before)
        try:
            envelope = await route.handler(request)
        except Exception:
            logger.exception(
                "Handler for %s '%s' failed on '%s'.",
                route.method,
                route.template.template,
                request.path,
            )
            envelope = server_error()
        return await self._apply_response_middlewares(request, envelope, route.after)

    def _find_route(
        self,
        method: str,
        segments: tuple[str, ...],
    ) -> tuple[Route, dict[str, str]] | None:
        for route in self._routes:
            if route.method != method:
                continue
            params = route.template.match(segments)
            if params is not None:
                return route, params
        return None

    def _options_envelope(self, allowed: tuple[str, ...]) -> ResponseEnvelope:
        methods = ", ".join(allowed)
        return success(
            headers={
                "Allow": methods,
                "Access-Control-Allow-Methods": methods,
                "Access-Control-Allow-Headers": ALLOW_HEADERS,
            }
        )

    async def _apply_request_middlewares(
        self,
        request: OcpiRequest,
        middlewares: Sequence[RequestMiddleware],
    ) -> OcpiRequest:
        for middleware in middlewares:
            try:
                updated = await middleware(request)
            except Exception:
                logger.exception("Request middleware %r failed; continuing.", middleware)
                continue
            if updated is not None:
                request = updated
        return request

    async def _apply_response_middlewares(
        self,
        request: OcpiRequest,
        envelope: ResponseEnvelope,
        middlewares: Sequence[ResponseMiddleware],
    ) -> ResponseEnvelope:
        for middleware in middlewares:
            try:
                updated = await middleware(request, envelope)
            except Exception:
                logger.exception("Response middleware %r failed; continuing.", middleware)
                continue
            if updated is not None:
                envelope = updated
        return envelope


__all__ = [
    "HTTP_METHODS",
    "OcpiRequest",
    "RequestHandler",
    "RequestMiddleware",
    "ResponseMiddleware",
    "Route",
    "RouteDispatcher",
    "RouteTemplate",
    "split_path",
]
