"""Resource registry adapters."""

from ocpi_cpo_gateway.infrastructure.registry.in_memory_resource_registry import (
    InMemoryResourceRegistry,
)

__all__ = ["InMemoryResourceRegistry"]
