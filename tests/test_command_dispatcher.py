from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from ocpi_cpo_gateway.application import CommandDispatcher
from ocpi_cpo_gateway.domain.access import PartyRole, Role
from ocpi_cpo_gateway.domain.commands import (
    Command,
    CommandResponse,
    CommandResponseType,
    CommandType,
    StopSessionCommand,
)
from ocpi_cpo_gateway.domain.errors import CommandHandlerConflictError

EMSP = PartyRole(country_code="NL", party_id="EMS", role=Role.EMSP)
CPO = PartyRole(country_code="DE", party_id="GEF", role=Role.CPO)
STOP = StopSessionCommand(response_url="https://emsp.example.com/commands/1", session_id="S1")


def _dispatch(
    dispatcher: CommandDispatcher,
    cancel_event: asyncio.Event | None = None,
) -> CommandResponse:
    return asyncio.run(
        dispatcher.dispatch(CommandType.STOP_SESSION, "NL*EMS", EMSP, CPO, STOP, cancel_event)
    )


def test_missing_handler_answers_not_supported() -> None:
    response = _dispatch(CommandDispatcher())

    assert response.result is CommandResponseType.NOT_SUPPORTED
    assert response.timeout == timedelta(seconds=15)
    assert [text.text for text in response.message] == ["Not supported!"]
    assert response.message[0].language == "en"
    assert response.to_json() == {
        "result": "NOT_SUPPORTED",
        "timeout": 15,
        "message": [{"language": "en", "text": "Not supported!"}],
    }


def test_handler_receives_parties_and_command() -> None:
    received: list[tuple[str, PartyRole, PartyRole, Command]] = []

    async def accept(
        remote_party_id: str,
        from_party: PartyRole,
        to_party: PartyRole,
        command: Command,
    ) -> CommandResponse:
        received.append((remote_party_id, from_party, to_party, command))
        return CommandResponse(result=CommandResponseType.ACCEPTED, timeout=timedelta(seconds=30))

    dispatcher = CommandDispatcher()
    dispatcher.register(CommandType.STOP_SESSION, accept)

    response = _dispatch(dispatcher)

    assert response.result is CommandResponseType.ACCEPTED
    assert response.to_json() == {"result": "ACCEPTED", "timeout": 30}
    assert received == [("NL*EMS", EMSP, CPO, STOP)]


def test_handler_returning_none_falls_back() -> None:
    async def undecided(*_: object) -> None:
        return None

    dispatcher = CommandDispatcher(fallback_timeout=timedelta(seconds=5))
    dispatcher.register(CommandType.STOP_SESSION, undecided)

    response = _dispatch(dispatcher)

    assert response.result is CommandResponseType.NOT_SUPPORTED
    assert response.timeout == timedelta(seconds=5)


def test_second_registration_is_a_conflict_until_unregistered() -> None:
    async def first(*_: object) -> None:
        return None

    async def second(*_: object) -> None:
        return None

    dispatcher = CommandDispatcher()
    dispatcher.register(CommandType.STOP_SESSION, first)

    with pytest.raises(CommandHandlerConflictError):
        dispatcher.register(CommandType.STOP_SESSION, second)
    assert dispatcher.handler_for(CommandType.STOP_SESSION) is first

    assert dispatcher.unregister(CommandType.STOP_SESSION) is first
    dispatcher.register(CommandType.STOP_SESSION, second)
    assert dispatcher.handler_for(CommandType.STOP_SESSION) is second


def test_handler_exception_propagates() -> None:
    async def broken(*_: object) -> CommandResponse:
        raise RuntimeError("charger offline")

    dispatcher = CommandDispatcher()
    dispatcher.register(CommandType.STOP_SESSION, broken)

    with pytest.raises(RuntimeError, match="charger offline"):
        _dispatch(dispatcher)


def test_cancellation_before_answer_returns_fallback_and_cancels_handler() -> None:
    handler_cancelled = False

    async def slow(*_: object) -> CommandResponse:
        nonlocal handler_cancelled
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            handler_cancelled = True
            raise
        return CommandResponse(result=CommandResponseType.ACCEPTED)

    async def scenario() -> CommandResponse:
        dispatcher = CommandDispatcher()
        dispatcher.register(CommandType.STOP_SESSION, slow)
        cancel_event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel_event.set)
        return await dispatcher.dispatch(
            CommandType.STOP_SESSION, "NL*EMS", EMSP, CPO, STOP, cancel_event
        )

    response = asyncio.run(scenario())

    assert response.result is CommandResponseType.NOT_SUPPORTED
    assert handler_cancelled


def test_answer_before_cancellation_is_kept() -> None:
    async def quick(*_: object) -> CommandResponse:
        return CommandResponse(result=CommandResponseType.REJECTED)

    async def scenario() -> CommandResponse:
        dispatcher = CommandDispatcher()
        dispatcher.register(CommandType.STOP_SESSION, quick)
        return await dispatcher.dispatch(
            CommandType.STOP_SESSION, "NL*EMS", EMSP, CPO, STOP, asyncio.Event()
        )

    assert asyncio.run(scenario()).result is CommandResponseType.REJECTED
