"""Health check routes."""

from fastapi import APIRouter, Depends

from ocpi_cpo_gateway.api.dependencies import get_gateway
from ocpi_cpo_gateway.bootstrap import Gateway

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz(gateway: Gateway = Depends(get_gateway)) -> dict[str, str | int]:
    """Liveness check."""

    return {"status": "ok", "routes": len(gateway.route_dispatcher.routes)}


__all__ = ["router"]
