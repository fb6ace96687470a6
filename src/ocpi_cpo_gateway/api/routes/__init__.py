"""Route modules public API."""

from ocpi_cpo_gateway.api.routes.cpo import CpoRouteOptions, CpoRoutes

__all__ = ["CpoRouteOptions", "CpoRoutes"]
