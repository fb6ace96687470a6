"""Application bootstrap/wiring."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

import httpx

from ocpi_cpo_gateway.api.dispatcher import OcpiRequest, RouteDispatcher
from ocpi_cpo_gateway.api.routes.cpo import CpoRouteOptions, CpoRoutes
from ocpi_cpo_gateway.application import AccessGate, CommandDispatcher
from ocpi_cpo_gateway.config import AccessTokenSeed, Settings
from ocpi_cpo_gateway.domain.access import (
    Identity,
    PartyRole,
    RemoteAccessInfo,
    RemoteParty,
)
from ocpi_cpo_gateway.domain.commands import CommandType
from ocpi_cpo_gateway.domain.envelope import ResponseEnvelope
from ocpi_cpo_gateway.domain.ports import CommandHandler, IdentityResolver, PartnerDirectory
from ocpi_cpo_gateway.infrastructure.identity import (
    InMemoryIdentityResolver,
    InMemoryPartnerDirectory,
)
from ocpi_cpo_gateway.infrastructure.partners import CommandResultRelay, PartnerClientCache
from ocpi_cpo_gateway.infrastructure.registry import InMemoryResourceRegistry

logger = logging.getLogger(__name__)

AUTHORIZATION_SCHEMES = ("token", "bearer")


@dataclass(slots=True, frozen=True)
class Gateway:
    """Singleton service graph behind the HTTP surface."""

    settings: Settings
    registry: InMemoryResourceRegistry
    identity_resolver: InMemoryIdentityResolver
    partner_directory: InMemoryPartnerDirectory
    access_gate: AccessGate
    command_dispatcher: CommandDispatcher
    route_dispatcher: RouteDispatcher
    relay: CommandResultRelay

    def register_command_handler(
        self,
        kind: CommandType,
        factory: Callable[[CommandResultRelay], CommandHandler],
    ) -> None:
        """Build a handler around the shared result relay and install it for `kind`.

        Handlers answer the command synchronously and later deliver the final
        `CommandResult` to the command's `response_url` through the relay.
        """

        self.command_dispatcher.register(kind, factory(self.relay))

    async def aclose(self) -> None:
        """Release outbound connections."""

        await self.relay.close()


def access_token_from_header(value: str | None) -> str | None:
    """Extract the token of a `Token <t>` or `Bearer <t>` authorization header."""

    if value is None:
        return None
    scheme, _, token = value.strip().partition(" ")
    if scheme.lower() not in AUTHORIZATION_SCHEMES:
        return None
    token = token.strip()
    return token or None


def identity_middleware(
    identity_resolver: IdentityResolver,
    partner_directory: PartnerDirectory,
):
    """Build the request middleware attaching the caller identity and remote party."""

    async def resolve_identity(request: OcpiRequest) -> OcpiRequest:
        access_token = access_token_from_header(request.header("Authorization"))
        if access_token is None:
            return request
        identity = await identity_resolver.resolve(access_token)
        request.identity = identity
        if identity is not None and identity.remote_party_id is not None:
            request.remote_party = await partner_directory.lookup(identity.remote_party_id)
        return request

    return resolve_identity


async def log_request(request: OcpiRequest) -> None:
    """Log the inbound request line."""

    logger.debug("%s %s", request.method, request.path)


async def log_response(request: OcpiRequest, envelope: ResponseEnvelope) -> None:
    """Log the transport and OCPI status of every response."""

    logger.info(
        "%s %s -> %s/%s",
        request.method,
        request.path,
        envelope.transport_status,
        int(envelope.status_code),
    )


def _seed_access_tokens(
    seeds: list[AccessTokenSeed],
    identity_resolver: InMemoryIdentityResolver,
    partner_directory: InMemoryPartnerDirectory,
) -> None:
    parties: dict[str, RemoteParty] = {}
    for seed in seeds:
        party_role = PartyRole(country_code=seed.country_code, party_id=seed.party_id, role=seed.role)
        remote_party_id = seed.remote_party_id or f"{seed.country_code}*{seed.party_id}"
        identity_resolver.add(
            seed.token,
            Identity(
                status=seed.status,
                roles=frozenset({party_role}),
                remote_party_id=remote_party_id,
            ),
        )

        access_infos: tuple[RemoteAccessInfo, ...] = ()
        if seed.remote_access_token and seed.versions_url:
            access_infos = (
                RemoteAccessInfo(
                    access_token=seed.remote_access_token,
                    versions_url=seed.versions_url,
                ),
            )
        existing = parties.get(remote_party_id)
        if existing is None:
            parties[remote_party_id] = RemoteParty(
                id=remote_party_id,
                roles=frozenset({party_role}),
                remote_access_infos=access_infos,
            )
        else:
            parties[remote_party_id] = RemoteParty(
                id=remote_party_id,
                roles=existing.roles | {party_role},
                status=existing.status,
                remote_access_infos=existing.remote_access_infos + access_infos,
            )

    for party in parties.values():
        partner_directory.add(party)
    if seeds:
        logger.info(
            "Seeded %s access token(s) for %s remote part(ies).", len(seeds), len(parties)
        )


def build_gateway(
    settings: Settings,
    partner_transport: httpx.AsyncBaseTransport | None = None,
) -> Gateway:
    """Wire registry, access gate, dispatchers and partner relay from settings."""

    registry = InMemoryResourceRegistry()
    identity_resolver = InMemoryIdentityResolver()
    partner_directory = InMemoryPartnerDirectory()
    _seed_access_tokens(settings.access_tokens, identity_resolver, partner_directory)

    access_gate = AccessGate()
    command_dispatcher = CommandDispatcher(
        fallback_timeout=timedelta(seconds=settings.command_response_timeout_seconds)
    )

    route_dispatcher = RouteDispatcher()
    route_dispatcher.add_request_middleware(log_request)
    route_dispatcher.add_request_middleware(
        identity_middleware(identity_resolver, partner_directory)
    )
    route_dispatcher.add_response_middleware(log_response)

    CpoRoutes(
        registry=registry,
        access_gate=access_gate,
        command_dispatcher=command_dispatcher,
        options=CpoRouteOptions(
            country_code=settings.country_code,
            party_id=settings.party_id,
            public_base_url=settings.public_base_url,
            api_prefix=settings.api_prefix,
            locations_as_open_data=settings.locations_as_open_data,
            tariffs_as_open_data=settings.tariffs_as_open_data,
            allow_downgrades=settings.allow_downgrades,
        ),
    ).register(route_dispatcher)

    relay = CommandResultRelay(
        partner_directory=partner_directory,
        client_cache=PartnerClientCache(max_size=settings.partner_client_cache_size),
        timeout_seconds=settings.partner_timeout_seconds,
        transport=partner_transport,
    )
    logger.info(
        "Gateway for %s*%s ready with %s route(s) under '%s'.",
        settings.country_code,
        settings.party_id,
        len(route_dispatcher.routes),
        settings.api_prefix or "/",
    )
    return Gateway(
        settings=settings,
        registry=registry,
        identity_resolver=identity_resolver,
        partner_directory=partner_directory,
        access_gate=access_gate,
        command_dispatcher=command_dispatcher,
        route_dispatcher=route_dispatcher,
        relay=relay,
    )


__all__ = [
    "Gateway",
    "access_token_from_header",
    "build_gateway",
    "identity_middleware",
    "log_request",
    "log_response",
]
