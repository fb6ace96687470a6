"""FastAPI application entrypoint."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from ocpi_cpo_gateway import __version__
from ocpi_cpo_gateway.api.dependencies import get_gateway, get_settings
from ocpi_cpo_gateway.api.router import api_router, ocpi_router
from ocpi_cpo_gateway.logging_config import configure_logging


def create_app() -> FastAPI:
    """Build FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Build singleton dependencies at startup and close partner clients on shutdown."""

        gateway = app.dependency_overrides.get(get_gateway, get_gateway)()
        try:
            yield
        finally:
            await gateway.aclose()

    settings = get_settings()
    configure_logging(settings)
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(api_router)
    app.include_router(ocpi_router, prefix=settings.api_prefix)
    return app


app = create_app()


def run() -> None:
    """Run local development server."""

    settings = get_settings()
    uvicorn.run(
        "ocpi_cpo_gateway.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )


__all__ = ["app", "create_app", "run"]
