"""CPO module endpoints: locations, tariffs, sessions, CDRs, tokens and commands."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from pydantic import ValidationError

from ocpi_cpo_gateway.api.dispatcher import OcpiRequest, RouteDispatcher
from ocpi_cpo_gateway.application.access_gate import PARTNER_ROLES, AccessGate
from ocpi_cpo_gateway.application.command_dispatcher import CommandDispatcher
from ocpi_cpo_gateway.config import COUNTRY_CODE_PATTERN, PARTY_ID_PATTERN
from ocpi_cpo_gateway.domain.access import PartyRole, Role
from ocpi_cpo_gateway.domain.commands import CommandType, parse_command
from ocpi_cpo_gateway.domain.envelope import (
    LISTING_EXPOSE_HEADERS,
    OcpiStatus,
    ResponseEnvelope,
    access_denied,
    client_error,
    not_found,
    success,
)
from ocpi_cpo_gateway.domain.errors import (
    CommandParseError,
    ResourceNotFoundError,
    TokenDowngradeError,
    TokenPatchError,
)
from ocpi_cpo_gateway.domain.pagination import PaginationFilter, next_page_link, query_records
from ocpi_cpo_gateway.domain.ports import ResourceRegistry
from ocpi_cpo_gateway.domain.records import (
    Location,
    ResourceKind,
    ResourceRecord,
    Token,
    TokenType,
)

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown location!"
UNKNOWN_EVSE = "Unknown EVSE!"
UNKNOWN_CONNECTOR = "Unknown connector!"
UNKNOWN_TOKEN = "Unknown token identification!"
UNKNOWN_RECORD_MESSAGES = {
    ResourceKind.TARIFF: "Unknown tariff!",
    ResourceKind.SESSION: "Unknown session!",
    ResourceKind.CDR: "Unknown CDR!",
}


@dataclass(slots=True, frozen=True)
class CpoRouteOptions:
    """Per-deployment switches of the CPO endpoints."""

    country_code: str
    party_id: str
    public_base_url: str
    api_prefix: str = ""
    locations_as_open_data: bool = False
    tariffs_as_open_data: bool = False
    allow_downgrades: bool = False

    @property
    def own_party(self) -> PartyRole:
        """The gateway's own CPO party role."""

        return PartyRole(country_code=self.country_code, party_id=self.party_id, role=Role.CPO)


def _validation_detail(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )


class CpoRoutes:
    """Request handlers of the CPO interface."""

    def __init__(
        self,
        registry: ResourceRegistry,
        access_gate: AccessGate,
        command_dispatcher: CommandDispatcher,
        options: CpoRouteOptions,
    ) -> None:
        self._registry = registry
        self._access_gate = access_gate
        self._command_dispatcher = command_dispatcher
        self._options = options

    def register(self, dispatcher: RouteDispatcher) -> None:
        """Add every CPO route to `dispatcher`."""

        dispatcher.register("GET", "locations", self.list_locations)
        dispatcher.register("GET", "locations/{location_id}", self.get_location)
        dispatcher.register("GET", "locations/{location_id}/{evse_uid}", self.get_evse)
        dispatcher.register(
            "GET",
            "locations/{location_id}/{evse_uid}/{connector_id}",
            self.get_connector,
        )
        dispatcher.register("GET", "tariffs", self.list_tariffs)
        dispatcher.register("GET", "tariffs/{tariff_id}", self.get_tariff)
        dispatcher.register("GET", "sessions", self.list_sessions)
        dispatcher.register("GET", "sessions/{session_id}", self.get_session)
        dispatcher.register("GET", "cdrs", self.list_cdrs)
        dispatcher.register("GET", "cdrs/{cdr_id}", self.get_cdr)
        dispatcher.register("GET", "tokens/{country_code}/{party_id}", self.list_tokens)
        dispatcher.register("DELETE", "tokens/{country_code}/{party_id}", self.delete_tokens)
        dispatcher.register("GET", "tokens/{country_code}/{party_id}/{token_uid}", self.get_token)
        dispatcher.register("PUT", "tokens/{country_code}/{party_id}/{token_uid}", self.put_token)
        dispatcher.register(
            "PATCH", "tokens/{country_code}/{party_id}/{token_uid}", self.patch_token
        )
        dispatcher.register(
            "DELETE", "tokens/{country_code}/{party_id}/{token_uid}", self.delete_token
        )
        for kind in CommandType:
            dispatcher.register("POST", f"commands/{kind.value}", self.command_handler(kind))

    # Locations

    async def list_locations(self, request: OcpiRequest) -> ResponseEnvelope:
        """GET `locations`."""

        return await self._list(
            request, ResourceKind.LOCATION, open_data=self._options.locations_as_open_data
        )

    async def get_location(self, request: OcpiRequest) -> ResponseEnvelope:
        """GET `locations/{location_id}`."""

        denied = self._deny(request, open_data=self._options.locations_as_open_data)
        if denied is not None:
            return denied
        location = await self._visible_location(request)
        if location is None:
            return not_found(UNKNOWN_LOCATION)
        return success(location.to_json(), record=location)

    async def get_evse(self, request: OcpiRequest) -> ResponseEnvelope:
        """GET `locations/{location_id}/{evse_uid}`."""

        denied = self._deny(request, open_data=self._options.locations_as_open_data)
        if denied is not None:
            return denied
        location = await self._visible_location(request)
        if location is None:
            return not_found(UNKNOWN_LOCATION)
        evse = location.get_evse(request.path_params["evse_uid"])
        if evse is None:
            return not_found(UNKNOWN_EVSE)
        return success(evse.to_json(), record=evse)

    async def get_connector(self, request: OcpiRequest) -> ResponseEnvelope:
        """GET `locations/{location_id}/{evse_uid}/{connector_id}`."""

        denied = self._deny(request, open_data=self._options.locations_as_open_data)
        if denied is not None:
            return denied
        location = await self._visible_location(request)
        if location is None:
            return not_found(UNKNOWN_LOCATION)
        evse = location.get_evse(request.path_params["evse_uid"])
        if evse is None:
            return not_found(UNKNOWN_EVSE)
        connector = evse.get_connector(request.path_params["connector_id"])
        if connector is None:
            return not_found(UNKNOWN_CONNECTOR)
        return success(connector.to_json(), record=connector)

    # Tariffs, sessions and CDRs

    async def list_tariffs(self, request: OcpiRequest) -> ResponseEnvelope:
        """GET `tariffs`."""

        return await self._list(
            request, ResourceKind.TARIFF, open_data=self._options.tariffs_as_open_data
        )

    async def get_tariff(self, request: OcpiRequest) -> ResponseEnvelope:
        """GET `tariffs/{tariff_id}`."""

        return await self._get(
            request,
            ResourceKind.TARIFF,
            request.path_params["tariff_id"],
            open_data=self._options.tariffs_as_open_data,
        )

    async def list_sessions(self, request: OcpiRequest) -> ResponseEnvelope:
        """GET `sessions`."""

        return await self._list(request, ResourceKind.SESSION)

    async def get_session(self, request: OcpiRequest) -> ResponseEnvelope:
        """GET `sessions/{session_id}`."""

        return await self._get(request, ResourceKind.SESSION, request.path_params["session_id"])

    async def list_cdrs(self, request: OcpiRequest) -> ResponseEnvelope:
        """GET `cdrs`."""

        return await self._list(request, ResourceKind.CDR)

    async def get_cdr(self, request: OcpiRequest) -> ResponseEnvelope:
        """GET `cdrs/{cdr_id}`."""

        return await self._get(request, ResourceKind.CDR, request.path_params["cdr_id"])

    # Tokens

    async def list_tokens(self, request: OcpiRequest) -> ResponseEnvelope:
        """GET `tokens/{country_code}/{party_id}`."""

        rejected = self._check_token_party(request)
        if rejected is not None:
            return rejected
        tokens = await self._registry.list_tokens(
            request.path_params["country_code"], request.path_params["party_id"]
        )
        return self._page(request, tokens)

    async def delete_tokens(self, request: OcpiRequest) -> ResponseEnvelope:
        """DELETE `tokens/{country_code}/{party_id}`."""

        rejected = self._check_token_party(request)
        if rejected is not None:
            return rejected
        country_code = request.path_params["country_code"]
        party_id = request.path_params["party_id"]
        removed = await self._registry.delete_tokens(country_code, party_id)
        logger.info("Deleted %s token(s) of %s*%s.", removed, country_code, party_id)
        return success()

    async def get_token(self, request: OcpiRequest) -> ResponseEnvelope:
        """GET `tokens/{country_code}/{party_id}/{token_uid}`."""

        rejected = self._check_token_party(request)
        if rejected is not None:
            return rejected
        token_type = self._token_type(request)
        if token_type is None:
            return client_error("Invalid token type!")
        token = await self._registry.get_token(*self._token_key(request))
        if token is None or token.type is not token_type:
            return not_found(UNKNOWN_TOKEN, status_code=OcpiStatus.UNKNOWN_TOKEN)
        return success(token.to_json(), record=token)

    async def put_token(self, request: OcpiRequest) -> ResponseEnvelope:
        """PUT `tokens/{country_code}/{party_id}/{token_uid}`; 201 on create."""

        rejected = self._check_token_party(request)
        if rejected is not None:
            return rejected
        token_type = self._token_type(request)
        if token_type is None:
            return client_error("Invalid token type!")

        try:
            payload = request.json_body()
        except ValueError as exc:
            return client_error(f"Could not parse the given token JSON: {exc}")
        if not isinstance(payload, dict):
            return client_error("Could not parse the given token JSON: expected a JSON object.")

        country_code, party_id, uid = self._token_key(request)
        for field_name, expected in (
            ("country_code", country_code),
            ("party_id", party_id),
            ("uid", uid),
        ):
            value = payload.setdefault(field_name, expected)
            if value != expected:
                return client_error(f"The token '{field_name}' does not match the URL!")
        payload.setdefault("type", token_type.value)

        try:
            token = Token.model_validate(payload)
        except ValidationError as exc:
            return client_error(f"Could not parse the given token JSON: {_validation_detail(exc)}")

        try:
            result = await self._registry.put_token(
                token, allow_downgrades=self._allow_downgrades(request)
            )
        except TokenDowngradeError as exc:
            return client_error(str(exc), status_code=OcpiStatus.CLIENT_ERROR)

        return success(
            result.token.to_json(),
            transport_status=201 if result.created else 200,
            record=result.token,
        )

    async def patch_token(self, request: OcpiRequest) -> ResponseEnvelope:
        """PATCH `tokens/{country_code}/{party_id}/{token_uid}`."""

        rejected = self._check_token_party(request)
        if rejected is not None:
            return rejected

        try:
            patch = request.json_body()
        except ValueError as exc:
            return client_error(f"Could not parse the given token JSON: {exc}")
        if not isinstance(patch, dict):
            return client_error("Could not parse the given token JSON: expected a JSON object.")

        try:
            token = await self._registry.patch_token(
                *self._token_key(request),
                patch=patch,
                allow_downgrades=self._allow_downgrades(request),
            )
        except ResourceNotFoundError:
            return not_found(UNKNOWN_TOKEN, status_code=OcpiStatus.UNKNOWN_TOKEN)
        except TokenDowngradeError as exc:
            return client_error(str(exc), status_code=OcpiStatus.CLIENT_ERROR)
        except TokenPatchError as exc:
            return client_error(str(exc))
        return success(token.to_json(), record=token)

    async def delete_token(self, request: OcpiRequest) -> ResponseEnvelope:
        """DELETE `tokens/{country_code}/{party_id}/{token_uid}`."""

        rejected = self._check_token_party(request)
        if rejected is not None:
            return rejected
        token = await self._registry.delete_token(*self._token_key(request))
        if token is None:
            return not_found(UNKNOWN_TOKEN, status_code=OcpiStatus.UNKNOWN_TOKEN)
        return success(token.to_json())

    # Commands

    def command_handler(
        self,
        kind: CommandType,
    ) -> Callable[[OcpiRequest], Awaitable[ResponseEnvelope]]:
        """Build the POST handler of `commands/{kind}`."""

        async def handle(request: OcpiRequest) -> ResponseEnvelope:
            return await self.post_command(kind, request)

        handle.__name__ = f"post_{kind.value.lower()}"
        return handle

    async def post_command(self, kind: CommandType, request: OcpiRequest) -> ResponseEnvelope:
        """Parse the command body and forward it to the command dispatcher."""

        denied = self._deny(request)
        if denied is not None:
            return denied
        identity = request.identity
        from_party = None if identity is None else identity.first_role(PARTNER_ROLES)
        if identity is None or request.remote_party is None or from_party is None:
            logger.info("Rejected command '%s' from a caller without a remote party.", kind)
            return access_denied()

        try:
            try:
                payload = request.json_body()
            except ValueError as exc:
                raise CommandParseError(kind.value, str(exc)) from exc
            command = parse_command(kind, payload)
        except CommandParseError as exc:
            return client_error(str(exc))

        response = await self._command_dispatcher.dispatch(
            kind,
            request.remote_party.id,
            from_party,
            self._options.own_party,
            command,
            cancel_event=request.cancel_event,
        )
        return success(response.to_json())

    # Helpers

    def _deny(self, request: OcpiRequest, *, open_data: bool = False) -> ResponseEnvelope | None:
        decision = self._access_gate.authorize(request.identity, open_data=open_data)
        return None if decision.allowed else decision.envelope()

    async def _list(
        self,
        request: OcpiRequest,
        kind: ResourceKind,
        *,
        open_data: bool = False,
    ) -> ResponseEnvelope:
        denied = self._deny(request, open_data=open_data)
        if denied is not None:
            return denied
        records = await self._registry.list_records(
            kind, self._access_gate.visible_parties(request.identity)
        )
        return self._page(request, records)

    async def _get(
        self,
        request: OcpiRequest,
        kind: ResourceKind,
        record_id: str,
        *,
        open_data: bool = False,
    ) -> ResponseEnvelope:
        denied = self._deny(request, open_data=open_data)
        if denied is not None:
            return denied
        record = await self._registry.get_record(kind, record_id)
        if record is None or not record.is_visible_to(
            self._access_gate.visible_parties(request.identity)
        ):
            return not_found(UNKNOWN_RECORD_MESSAGES[kind])
        return success(record.to_json(), record=record)

    async def _visible_location(self, request: OcpiRequest) -> Location | None:
        record = await self._registry.get_record(
            ResourceKind.LOCATION, request.path_params["location_id"]
        )
        if not isinstance(record, Location):
            return None
        if not record.is_visible_to(self._access_gate.visible_parties(request.identity)):
            return None
        return record

    def _page(self, request: OcpiRequest, records: Iterable[ResourceRecord]) -> ResponseEnvelope:
        pagination = PaginationFilter.from_query(request.query)
        match = request.query.get("match") or None
        result = query_records(list(records), match, pagination)

        headers = {
            "X-Total-Count": str(result.total),
            "X-Filtered-Count": str(result.filtered_count),
            "X-Limit": str(result.limit),
            "Access-Control-Expose-Headers": LISTING_EXPOSE_HEADERS,
        }
        if result.next_offset is not None:
            headers["Link"] = next_page_link(
                f"{self._options.public_base_url}{self._options.api_prefix}",
                request.path,
                pagination,
                result.next_offset,
                match=match,
            )
        return success([record.to_json() for record in result.page], headers=headers)

    def _check_token_party(self, request: OcpiRequest) -> ResponseEnvelope | None:
        denied = self._deny(request)
        if denied is not None:
            return denied
        country_code = request.path_params["country_code"]
        party_id = request.path_params["party_id"]
        if not COUNTRY_CODE_PATTERN.match(country_code):
            return client_error("Invalid country code!")
        if not PARTY_ID_PATTERN.match(party_id):
            return client_error("Invalid party identification!")
        parties = self._access_gate.visible_parties(request.identity)
        if parties is not None and f"{country_code}*{party_id}" not in parties:
            logger.info("Rejected token access to %s*%s by another party.", country_code, party_id)
            return access_denied()
        return None

    @staticmethod
    def _token_key(request: OcpiRequest) -> tuple[str, str, str]:
        return (
            request.path_params["country_code"],
            request.path_params["party_id"],
            request.path_params["token_uid"],
        )

    @staticmethod
    def _token_type(request: OcpiRequest) -> TokenType | None:
        raw = request.query.get("type")
        if raw is None or not raw.strip():
            return TokenType.RFID
        try:
            return TokenType(raw.strip().upper())
        except ValueError:
            return None

    def _allow_downgrades(self, request: OcpiRequest) -> bool:
        force = request.query.get("forceDowngrade", "").strip().lower() == "true"
        return force or self._options.allow_downgrades


__all__ = ["CpoRouteOptions", "CpoRoutes"]
