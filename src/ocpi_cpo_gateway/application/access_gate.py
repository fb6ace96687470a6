"""Bearer-token identity checks shared by every protected endpoint."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from ocpi_cpo_gateway.domain.access import AccessStatus, Identity, Role
from ocpi_cpo_gateway.domain.envelope import (
    ACCESS_DENIED_MESSAGE,
    OcpiStatus,
    ResponseEnvelope,
    access_denied,
)

PARTNER_ROLES = frozenset({Role.EMSP, Role.HUB})

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class AccessDecision:
    """ALLOW, or DENY with the OCPI status to report."""

    allowed: bool
    status_code: int = OcpiStatus.SUCCESS
    status_message: str = ""

    def envelope(self) -> ResponseEnvelope:
        """Return the 403 envelope for a denial."""

        if self.allowed:
            raise ValueError("An ALLOW decision has no denial envelope.")
        return access_denied()


ALLOW = AccessDecision(allowed=True)
DENY = AccessDecision(
    allowed=False,
    status_code=OcpiStatus.CLIENT_ERROR,
    status_message=ACCESS_DENIED_MESSAGE,
)


class AccessGate:
    """Authorizes identities against the roles required by an endpoint."""

    def __init__(self, required_roles: Iterable[Role] = PARTNER_ROLES) -> None:
        self._required_roles = frozenset(required_roles)

    @property
    def required_roles(self) -> frozenset[Role]:
        """Roles accepted by default."""

        return self._required_roles

    def authorize(
        self,
        identity: Identity | None,
        required_roles: Iterable[Role] | None = None,
        *,
        open_data: bool = False,
    ) -> AccessDecision:
        """Allow anonymous callers only in open-data mode; others need ALLOWED and a role."""

        roles = self._required_roles if required_roles is None else frozenset(required_roles)
        if identity is None:
            if open_data:
                return ALLOW
            logger.debug("Denied request without a resolvable access token.")
            return DENY
        if identity.status is not AccessStatus.ALLOWED:
            logger.debug("Denied request with access token in status %s.", identity.status)
            return DENY
        if not identity.has_any_role(roles):
            logger.debug(
                "Denied request: none of the roles %s in %s.",
                sorted(roles),
                sorted(str(party_role) for party_role in identity.roles),
            )
            return DENY
        return ALLOW

    @staticmethod
    def visible_parties(identity: Identity | None) -> frozenset[str] | None:
        """Return the `CC*PID` set a caller may see; `None` means no restriction."""

        if identity is None:
            return None
        if any(party_role.role is Role.HUB for party_role in identity.roles):
            return None
        return frozenset(
            f"{party_role.country_code}*{party_role.party_id}" for party_role in identity.roles
        )


__all__ = ["ALLOW", "AccessDecision", "AccessGate", "DENY", "PARTNER_ROLES"]
