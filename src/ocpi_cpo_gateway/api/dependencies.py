"""Dependency providers for FastAPI routes."""

from functools import lru_cache

from ocpi_cpo_gateway.bootstrap import Gateway, build_gateway
from ocpi_cpo_gateway.config import Settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return singleton settings."""

    return Settings()


@lru_cache(maxsize=1)
def get_gateway() -> Gateway:
    """Return singleton service graph."""

    return build_gateway(get_settings())


__all__ = ["get_gateway", "get_settings"]
