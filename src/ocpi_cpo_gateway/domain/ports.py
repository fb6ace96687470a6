"""Ports for the resource registry, identity resolution and partner lookup."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from ocpi_cpo_gateway.domain.access import Identity, PartyRole, RemoteParty
from ocpi_cpo_gateway.domain.commands import Command, CommandResponse
from ocpi_cpo_gateway.domain.records import ResourceKind, ResourceRecord, Token


@dataclass(slots=True, frozen=True)
class TokenUpdateResult:
    """Outcome of storing a token."""

    token: Token
    created: bool


class ResourceRegistry(Protocol):
    """Read and token-update port over the resources the gateway exposes."""

    async def list_records(
        self,
        kind: ResourceKind,
        parties: frozenset[str] | None = None,
    ) -> list[ResourceRecord]:
        """Return a snapshot of every record of `kind` visible to `parties` (`CC*PID`)."""

    async def get_record(self, kind: ResourceKind, record_id: str) -> ResourceRecord | None:
        """Return one record by id."""

    async def list_tokens(self, country_code: str, party_id: str) -> list[Token]:
        """Return a snapshot of the tokens of one eMSP party."""

    async def get_token(self, country_code: str, party_id: str, uid: str) -> Token | None:
        """Return one token."""

    async def put_token(self, token: Token, allow_downgrades: bool = False) -> TokenUpdateResult:
        """Create or replace a token."""

    async def patch_token(
        self,
        country_code: str,
        party_id: str,
        uid: str,
        patch: dict[str, Any],
        allow_downgrades: bool = False,
    ) -> Token:
        """Merge `patch` into a stored token."""

    async def delete_token(self, country_code: str, party_id: str, uid: str) -> Token | None:
        """Remove one token and return it."""

    async def delete_tokens(self, country_code: str, party_id: str) -> int:
        """Remove all tokens of one eMSP party."""


class IdentityResolver(Protocol):
    """Maps access tokens to caller identities."""

    async def resolve(self, access_token: str) -> Identity | None:
        """Return the identity behind `access_token`."""


class PartnerDirectory(Protocol):
    """Lookup of remote parties."""

    async def lookup(self, remote_party_id: str) -> RemoteParty | None:
        """Return a remote party by id."""


CommandHandler = Callable[
    [str, PartyRole, PartyRole, Command],
    Awaitable[CommandResponse | None],
]


__all__ = [
    "CommandHandler",
    "IdentityResolver",
    "PartnerDirectory",
    "ResourceRegistry",
    "TokenUpdateResult",
]
