"""FastAPI bridge into the OCPI route dispatcher."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from uuid import uuid4

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ocpi_cpo_gateway.api.dependencies import get_gateway
from ocpi_cpo_gateway.api.dispatcher import HTTP_METHODS, OcpiRequest
from ocpi_cpo_gateway.api.routes.health import router as health_router
from ocpi_cpo_gateway.bootstrap import Gateway
from ocpi_cpo_gateway.domain.envelope import ResponseEnvelope

DISCONNECT_POLL_SECONDS = 0.5

logger = logging.getLogger(__name__)

ocpi_router = APIRouter(tags=["ocpi"])


async def _watch_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.debug("Client disconnected from %s %s.", request.method, request.url.path)
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


def to_response(envelope: ResponseEnvelope) -> JSONResponse:
    """Render an envelope as a JSON response."""

    return JSONResponse(
        status_code=envelope.transport_status,
        content=envelope.to_json(),
        headers=dict(envelope.headers),
    )


@ocpi_router.api_route("/{path:path}", methods=list(HTTP_METHODS), include_in_schema=False)
async def dispatch_ocpi_request(
    path: str,
    request: Request,
    gateway: Gateway = Depends(get_gateway),
) -> JSONResponse:
    """Hand every request below the API prefix to the route dispatcher."""

    body = await request.body()
    cancel_event = asyncio.Event()
    ocpi_request = OcpiRequest(
        method=request.method,
        path=path,
        query=dict(request.query_params),
        headers=dict(request.headers),
        body=body,
        request_id=request.headers.get("x-request-id") or str(uuid4()),
        correlation_id=request.headers.get("x-correlation-id"),
        cancel_event=cancel_event,
    )

    watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
    try:
        envelope = await gateway.route_dispatcher.dispatch(ocpi_request)
    finally:
        watcher.cancel()
        with suppress(asyncio.CancelledError):
            await watcher
    return to_response(envelope)


api_router = APIRouter()
api_router.include_router(health_router)

__all__ = ["api_router", "dispatch_ocpi_request", "ocpi_router", "to_response"]
