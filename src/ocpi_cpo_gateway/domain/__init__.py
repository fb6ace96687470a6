"""Domain public API."""

from ocpi_cpo_gateway.domain.access import (
    AccessStatus,
    Identity,
    PartyRole,
    RemoteAccessInfo,
    RemoteParty,
    Role,
)
from ocpi_cpo_gateway.domain.commands import (
    Command,
    CommandResponse,
    CommandResponseType,
    CommandResult,
    CommandResultType,
    CommandType,
    parse_command,
)
from ocpi_cpo_gateway.domain.envelope import OcpiStatus, ResponseEnvelope
from ocpi_cpo_gateway.domain.errors import (
    CommandHandlerConflictError,
    CommandParseError,
    GatewayError,
    PartnerClientError,
    ResourceNotFoundError,
    RouteConflictError,
    TokenDowngradeError,
    TokenPatchError,
)
from ocpi_cpo_gateway.domain.pagination import PaginationFilter, QueryResult, query_records
from ocpi_cpo_gateway.domain.ports import (
    CommandHandler,
    IdentityResolver,
    PartnerDirectory,
    ResourceRegistry,
    TokenUpdateResult,
)
from ocpi_cpo_gateway.domain.records import (
    Cdr,
    Connector,
    EVSE,
    Location,
    ResourceKind,
    ResourceRecord,
    Session,
    Tariff,
    Token,
    TokenType,
)

__all__ = [
    "AccessStatus",
    "Cdr",
    "Command",
    "CommandHandler",
    "CommandHandlerConflictError",
    "CommandParseError",
    "CommandResponse",
    "CommandResponseType",
    "CommandResult",
    "CommandResultType",
    "CommandType",
    "Connector",
    "EVSE",
    "GatewayError",
    "Identity",
    "IdentityResolver",
    "Location",
    "OcpiStatus",
    "PaginationFilter",
    "PartnerClientError",
    "PartnerDirectory",
    "PartyRole",
    "QueryResult",
    "RemoteAccessInfo",
    "RemoteParty",
    "ResourceKind",
    "ResourceNotFoundError",
    "ResourceRecord",
    "ResourceRegistry",
    "ResponseEnvelope",
    "Role",
    "RouteConflictError",
    "Session",
    "Tariff",
    "Token",
    "TokenDowngradeError",
    "TokenPatchError",
    "TokenType",
    "TokenUpdateResult",
    "parse_command",
    "query_records",
]
