"""Outbound partner adapters."""

from ocpi_cpo_gateway.infrastructure.partners.client import (
    CommandResultRelay,
    PartnerClientCache,
    PartnerCommandClient,
)

__all__ = ["CommandResultRelay", "PartnerClientCache", "PartnerCommandClient"]
