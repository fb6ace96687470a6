"""Caller identities, roles and remote parties."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum


class AccessStatus(StrEnum):
    """Status of an access token or remote access descriptor."""

    ALLOWED = "ALLOWED"
    BLOCKED = "BLOCKED"
    PENDING = "PENDING"


class Role(StrEnum):
    """OCPI party roles."""

    CPO = "CPO"
    EMSP = "EMSP"
    HUB = "HUB"
    NSP = "NSP"
    OTHER = "OTHER"
    SCSP = "SCSP"


@dataclass(slots=True, frozen=True)
class PartyRole:
    """One (country code, party id, role) triple."""

    country_code: str
    party_id: str
    role: Role

    def __str__(self) -> str:
        return f"{self.country_code}*{self.party_id} ({self.role})"


@dataclass(slots=True, frozen=True)
class Identity:
    """Authenticated caller of one request."""

    status: AccessStatus
    roles: frozenset[PartyRole]
    remote_party_id: str | None = None

    def __post_init__(self) -> None:
        if not self.roles:
            raise ValueError("An identity needs at least one party role.")

    def has_any_role(self, required: Iterable[Role]) -> bool:
        """Return whether any of the identity's party roles is required."""

        wanted = frozenset(required)
        return any(party_role.role in wanted for party_role in self.roles)

    def first_role(self, required: Iterable[Role]) -> PartyRole | None:
        """Return the first party role matching the required roles."""

        wanted = frozenset(required)
        matching = sorted(
            (party_role for party_role in self.roles if party_role.role in wanted),
            key=lambda party_role: (party_role.country_code, party_role.party_id, party_role.role),
        )
        return matching[0] if matching else None


@dataclass(slots=True, frozen=True)
class RemoteAccessInfo:
    """Credentials used to reach a partner."""

    access_token: str
    versions_url: str
    status: AccessStatus = AccessStatus.ALLOWED


@dataclass(slots=True, frozen=True)
class RemoteParty:
    """Partner organization known to the gateway."""

    id: str
    roles: frozenset[PartyRole] = field(default_factory=frozenset)
    status: AccessStatus = AccessStatus.ALLOWED
    remote_access_infos: tuple[RemoteAccessInfo, ...] = ()

    def active_access_info(self) -> RemoteAccessInfo | None:
        """Return the first usable remote access descriptor."""

        for access_info in self.remote_access_infos:
            if access_info.status is AccessStatus.ALLOWED:
                return access_info
        return None


__all__ = [
    "AccessStatus",
    "Identity",
    "PartyRole",
    "RemoteAccessInfo",
    "RemoteParty",
    "Role",
]
