"""Identity and partner lookup adapters."""

from ocpi_cpo_gateway.infrastructure.identity.in_memory_identity_resolver import (
    InMemoryIdentityResolver,
    InMemoryPartnerDirectory,
)

__all__ = ["InMemoryIdentityResolver", "InMemoryPartnerDirectory"]
