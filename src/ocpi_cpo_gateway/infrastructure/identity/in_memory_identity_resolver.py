"""In-memory access token and remote party lookups."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping

from ocpi_cpo_gateway.domain.access import Identity, RemoteParty
from ocpi_cpo_gateway.domain.ports import IdentityResolver, PartnerDirectory


class InMemoryIdentityResolver(IdentityResolver):
    """Maps access tokens to identities."""

    def __init__(self, identities: Mapping[str, Identity] | None = None) -> None:
        self._identities: dict[str, Identity] = dict(identities or {})
        self._lock = threading.Lock()

    def add(self, access_token: str, identity: Identity) -> None:
        """Register or replace the identity behind `access_token`."""

        if not access_token:
            raise ValueError("Access tokens must not be empty.")
        with self._lock:
            self._identities[access_token] = identity

    def remove(self, access_token: str) -> Identity | None:
        """Forget `access_token`."""

        with self._lock:
            return self._identities.pop(access_token, None)

    async def resolve(self, access_token: str) -> Identity | None:
        """Return the identity behind `access_token`."""

        return self._identities.get(access_token)


class InMemoryPartnerDirectory(PartnerDirectory):
    """Remote parties keyed by id."""

    def __init__(self, parties: Iterable[RemoteParty] = ()) -> None:
        self._parties: dict[str, RemoteParty] = {party.id: party for party in parties}
        self._lock = threading.Lock()

    def add(self, party: RemoteParty) -> None:
        """Register or replace a remote party."""

        with self._lock:
            self._parties[party.id] = party

    async def lookup(self, remote_party_id: str) -> RemoteParty | None:
        """Return by id."""

        return self._parties.get(remote_party_id)


__all__ = ["InMemoryIdentityResolver", "InMemoryPartnerDirectory"]
