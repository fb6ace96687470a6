"""Single-slot command handler registry with a deterministic fallback."""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import suppress
from datetime import timedelta

from ocpi_cpo_gateway.domain.access import PartyRole
from ocpi_cpo_gateway.domain.commands import (
    DEFAULT_COMMAND_TIMEOUT,
    Command,
    CommandResponse,
    CommandType,
)
from ocpi_cpo_gateway.domain.errors import CommandHandlerConflictError
from ocpi_cpo_gateway.domain.ports import CommandHandler

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Forwards parsed commands to at most one registered handler per kind.

    The `timeout` of the fallback response is advisory metadata for the
    caller; no deadline is enforced on handlers here.
    """

    def __init__(self, fallback_timeout: timedelta = DEFAULT_COMMAND_TIMEOUT) -> None:
        self._fallback_timeout = fallback_timeout
        self._handlers: dict[CommandType, CommandHandler] = {}
        self._lock = threading.Lock()

    def register(self, kind: CommandType, handler: CommandHandler) -> None:
        """Install the handler for `kind`; an occupied slot is a conflict."""

        with self._lock:
            if kind in self._handlers:
                raise CommandHandlerConflictError(
                    f"A handler for command '{kind}' is already registered."
                )
            self._handlers[kind] = handler
        logger.info("Registered handler for command '%s'.", kind)

    def unregister(self, kind: CommandType) -> CommandHandler | None:
        """Free the slot of `kind` and return the previous handler."""

        with self._lock:
            return self._handlers.pop(kind, None)

    def handler_for(self, kind: CommandType) -> CommandHandler | None:
        """Return the handler registered for `kind`, if any."""

        return self._handlers.get(kind)

    def fallback(self) -> CommandResponse:
        """NOT_SUPPORTED response used when no handler answers."""

        return CommandResponse.not_supported(self._fallback_timeout)

    async def dispatch(
        self,
        kind: CommandType,
        remote_party_id: str,
        from_party: PartyRole,
        to_party: PartyRole,
        command: Command,
        cancel_event: asyncio.Event | None = None,
    ) -> CommandResponse:
        """Invoke the handler of `kind` or synthesize the fallback."""

        handler = self.handler_for(kind)
        if handler is None:
            logger.info("No handler registered for command '%s'; answering NOT_SUPPORTED.", kind)
            return self.fallback()

        response = await self._invoke(
            kind, handler, remote_party_id, from_party, to_party, command, cancel_event
        )
        if response is None:
            logger.info("Handler for command '%s' gave no response; answering NOT_SUPPORTED.", kind)
            return self.fallback()
        return response

    async def _invoke(
        self,
        kind: CommandType,
        handler: CommandHandler,
        remote_party_id: str,
        from_party: PartyRole,
        to_party: PartyRole,
        command: Command,
        cancel_event: asyncio.Event | None,
    ) -> CommandResponse | None:
        handler_task = asyncio.ensure_future(
            handler(remote_party_id, from_party, to_party, command)
        )
        if cancel_event is None:
            return await self._await_handler(kind, handler_task)

        cancel_task = asyncio.create_task(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {handler_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            handler_task.cancel()
            raise
        finally:
            cancel_task.cancel()

        if handler_task in done:
            return await self._await_handler(kind, handler_task)

        handler_task.cancel()
        with suppress(asyncio.CancelledError):
            await handler_task
        logger.info("Command '%s' was cancelled before its handler answered.", kind)
        return None

    async def _await_handler(
        self,
        kind: CommandType,
        handler_task: asyncio.Future[CommandResponse | None],
    ) -> CommandResponse | None:
        try:
            return await handler_task
        except Exception:
            logger.exception("Handler for command '%s' failed.", kind)
            raise


__all__ = ["CommandDispatcher"]
