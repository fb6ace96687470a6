from __future__ import annotations

import pytest

from ocpi_cpo_gateway.domain.commands import (
    CommandType,
    ReserveNowCommand,
    StopSessionCommand,
    UnlockConnectorCommand,
    parse_command,
)
from ocpi_cpo_gateway.domain.errors import CommandParseError

TOKEN = {
    "uid": "012345678",
    "type": "RFID",
    "auth_id": "DE8ACC12E46L89",
    "issuer": "TheNewMotion",
    "valid": True,
    "whitelist": "ALLOWED",
    "last_updated": "2024-03-01T12:00:00Z",
}


def test_parse_reserve_now() -> None:
    command = parse_command(
        CommandType.RESERVE_NOW,
        {
            "response_url": "https://emsp.example.com/commands/RESERVE_NOW/1",
            "token": TOKEN,
            "expiry_date": "2024-03-01T14:00:00Z",
            "reservation_id": "R1",
            "location_id": "LOC1",
        },
    )

    assert isinstance(command, ReserveNowCommand)
    assert command.token.uid == "012345678"
    assert command.evse_uid is None


def test_parse_unlock_connector() -> None:
    command = parse_command(
        CommandType.UNLOCK_CONNECTOR,
        {
            "response_url": "https://emsp.example.com/commands/UNLOCK_CONNECTOR/1",
            "location_id": "LOC1",
            "evse_uid": "EVSE1",
            "connector_id": "1",
        },
    )

    assert isinstance(command, UnlockConnectorCommand)
    assert command.to_json()["connector_id"] == "1"


@pytest.mark.parametrize(
    "payload",
    [
        [],
        "RESERVE_NOW",
        {},
        {"response_url": "https://emsp.example.com/r"},
        {
            "response_url": "https://emsp.example.com/r",
            "token": TOKEN,
            "expiry_date": "not a date",
            "reservation_id": "R1",
            "location_id": "LOC1",
        },
    ],
)
def test_invalid_reserve_now_payloads_raise_parse_error(payload: object) -> None:
    with pytest.raises(CommandParseError) as exc_info:
        parse_command(CommandType.RESERVE_NOW, payload)

    assert str(exc_info.value).startswith("Could not parse the given 'RESERVE_NOW' command JSON: ")
    assert exc_info.value.kind == "RESERVE_NOW"


def test_unknown_fields_are_ignored_and_optional_ids_are_kept() -> None:
    command = parse_command(
        CommandType.STOP_SESSION,
        {
            "response_url": "https://emsp.example.com/r",
            "session_id": "S1",
            "request_id": "R1",
            "correlation_Id": "C1",
            "vendor_extension": {"priority": 1},
        },
    )

    assert isinstance(command, StopSessionCommand)
    assert command.request_id == "R1"
    assert command.correlation_id == "C1"
    assert command.id is None
    assert "vendor_extension" not in command.to_json()


def test_unknown_fields_do_not_replace_required_ones() -> None:
    with pytest.raises(CommandParseError) as exc_info:
        parse_command(CommandType.STOP_SESSION, {"sessionId": "S1", "extra": 1})

    assert "response_url" in exc_info.value.detail
    assert "session_id" in exc_info.value.detail
