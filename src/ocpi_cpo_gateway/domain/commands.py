"""Remote command payloads and command responses."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ocpi_cpo_gateway.domain.errors import CommandParseError
from ocpi_cpo_gateway.domain.records import DisplayText, Token

DEFAULT_COMMAND_TIMEOUT = timedelta(seconds=15)
NOT_SUPPORTED_MESSAGE = "Not supported!"


class CommandType(StrEnum):
    """Commands accepted on `commands/{kind}`."""

    RESERVE_NOW = "RESERVE_NOW"
    CANCEL_RESERVATION = "CANCEL_RESERVATION"
    START_SESSION = "START_SESSION"
    STOP_SESSION = "STOP_SESSION"
    UNLOCK_CONNECTOR = "UNLOCK_CONNECTOR"


class CommandResponseType(StrEnum):
    """Result of a command as reported to the caller."""

    NOT_SUPPORTED = "NOT_SUPPORTED"
    REJECTED = "REJECTED"
    ACCEPTED = "ACCEPTED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_SESSION = "UNKNOWN_SESSION"


class CommandModel(BaseModel):
    """Base model for command bodies; unknown OCPI fields are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    response_url: str
    id: str | None = None
    request_id: str | None = None
    correlation_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("correlation_id", "correlation_Id"),
    )

    def to_json(self) -> dict[str, Any]:
        """Return the JSON-compatible representation."""

        return self.model_dump(mode="json", exclude_none=True)


class ReserveNowCommand(CommandModel):
    """RESERVE_NOW body."""

    token: Token
    expiry_date: datetime
    reservation_id: str = Field(min_length=1)
    location_id: str = Field(min_length=1)
    evse_uid: str | None = None


class CancelReservationCommand(CommandModel):
    """CANCEL_RESERVATION body."""

    reservation_id: str = Field(min_length=1)


class StartSessionCommand(CommandModel):
    """START_SESSION body."""

    token: Token
    location_id: str = Field(min_length=1)
    evse_uid: str | None = None


class StopSessionCommand(CommandModel):
    """STOP_SESSION body."""

    session_id: str = Field(min_length=1)


class UnlockConnectorCommand(CommandModel):
    """UNLOCK_CONNECTOR body."""

    location_id: str = Field(min_length=1)
    evse_uid: str = Field(min_length=1)
    connector_id: str = Field(min_length=1)


Command = (
    ReserveNowCommand
    | CancelReservationCommand
    | StartSessionCommand
    | StopSessionCommand
    | UnlockConnectorCommand
)

COMMAND_MODELS: dict[CommandType, type[CommandModel]] = {
    CommandType.RESERVE_NOW: ReserveNowCommand,
    CommandType.CANCEL_RESERVATION: CancelReservationCommand,
    CommandType.START_SESSION: StartSessionCommand,
    CommandType.STOP_SESSION: StopSessionCommand,
    CommandType.UNLOCK_CONNECTOR: UnlockConnectorCommand,
}


class CommandResponse(BaseModel):
    """Synchronous answer to a command request."""

    model_config = ConfigDict(frozen=True)

    result: CommandResponseType
    timeout: timedelta = DEFAULT_COMMAND_TIMEOUT
    message: tuple[DisplayText, ...] = ()

    @classmethod
    def not_supported(cls, timeout: timedelta = DEFAULT_COMMAND_TIMEOUT) -> CommandResponse:
        """Fallback used when no handler answers a command."""

        return cls(
            result=CommandResponseType.NOT_SUPPORTED,
            timeout=timeout,
            message=(DisplayText(language="en", text=NOT_SUPPORTED_MESSAGE),),
        )

    def to_json(self) -> dict[str, Any]:
        """Serialize with the timeout in whole seconds."""

        body: dict[str, Any] = {
            "result": self.result.value,
            "timeout": int(self.timeout.total_seconds()),
        }
        if self.message:
            body["message"] = [text.to_json() for text in self.message]
        return body


class CommandResultType(StrEnum):
    """Asynchronous outcome reported to a command's `response_url`."""

    ACCEPTED = "ACCEPTED"
    CANCELED_RESERVATION = "CANCELED_RESERVATION"
    EVSE_OCCUPIED = "EVSE_OCCUPIED"
    EVSE_INOPERATIVE = "EVSE_INOPERATIVE"
    FAILED = "FAILED"
    NOT_SUPPORTED = "NOT_SUPPORTED"
    REJECTED = "REJECTED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_RESERVATION = "UNKNOWN_RESERVATION"


class CommandResult(BaseModel):
    """Asynchronous command result sent back to the partner."""

    model_config = ConfigDict(frozen=True)

    result: CommandResultType
    message: tuple[DisplayText, ...] = ()

    def to_json(self) -> dict[str, Any]:
        """Return the JSON-compatible representation."""

        body: dict[str, Any] = {"result": self.result.value}
        if self.message:
            body["message"] = [text.to_json() for text in self.message]
        return body


def _format_validation_error(exc: ValidationError) -> str:
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        details.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(details)


def parse_command(kind: CommandType, payload: object) -> Command:
    """Validate a decoded JSON body against the model of `kind`."""

    if not isinstance(payload, dict):
        raise CommandParseError(kind.value, "The given JSON must be a JSON object!")
    if not payload:
        raise CommandParseError(kind.value, "The given JSON object must not be empty!")
    try:
        return COMMAND_MODELS[kind].model_validate(payload)  # type: ignore[return-value]
    except ValidationError as exc:
        raise CommandParseError(kind.value, _format_validation_error(exc)) from exc


__all__ = [
    "COMMAND_MODELS",
    "CancelReservationCommand",
    "Command",
    "CommandModel",
    "CommandResponse",
    "CommandResponseType",
    "CommandResult",
    "CommandResultType",
    "CommandType",
    "DEFAULT_COMMAND_TIMEOUT",
    "NOT_SUPPORTED_MESSAGE",
    "ReserveNowCommand",
    "StartSessionCommand",
    "StopSessionCommand",
    "UnlockConnectorCommand",
    "parse_command",
]
