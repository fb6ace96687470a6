"""Application services."""

from ocpi_cpo_gateway.application.access_gate import ALLOW, DENY, AccessDecision, AccessGate
from ocpi_cpo_gateway.application.command_dispatcher import CommandDispatcher

__all__ = ["ALLOW", "AccessDecision", "AccessGate", "CommandDispatcher", "DENY"]
