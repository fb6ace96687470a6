"""HTTP client relaying asynchronous command results to partners."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Callable

import httpx

from ocpi_cpo_gateway.domain.commands import CommandResult
from ocpi_cpo_gateway.domain.errors import PartnerClientError
from ocpi_cpo_gateway.domain.ports import PartnerDirectory

logger = logging.getLogger(__name__)


class PartnerCommandClient:
    """Keeps one pooled connection set per partner."""

    def __init__(
        self,
        access_token: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not access_token.strip():
            raise PartnerClientError("Partner access token cannot be empty.")
        self._http_client = httpx.AsyncClient(
            timeout=timeout_seconds,
            transport=transport,
            headers={"Authorization": f"Token {access_token.strip()}"},
        )

    @property
    def closed(self) -> bool:
        """Return whether the underlying HTTP client is closed."""

        return self._http_client.is_closed

    async def post_command_result(self, response_url: str, result: CommandResult) -> None:
        """POST a command result to the `response_url` given in the command."""

        try:
            response = await self._http_client.post(response_url, json=result.to_json())
        except httpx.HTTPError as exc:
            raise PartnerClientError(f"POST {response_url} failed: {exc}") from exc
        self._ensure_success(response)

    async def aclose(self) -> None:
        """Close pooled connections."""

        await self._http_client.aclose()

    def _ensure_success(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        message = self._detail_from_response(response)
        raise PartnerClientError(
            f"{response.request.method} {response.request.url} failed: "
            f"{response.status_code} {message}"
        )

    def _detail_from_response(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            text = response.text.strip()
            return text or "<no response body>"

        if isinstance(payload, dict):
            status_message = payload.get("status_message")
            if isinstance(status_message, str):
                return status_message
        return str(payload)


class PartnerClientCache:
    """Insert-if-absent cache of partner clients, bounded with LRU eviction."""

    def __init__(self, max_size: int = 64) -> None:
        if max_size < 1:
            raise ValueError("Partner client cache size must be >= 1.")
        self._max_size = max_size
        self._clients: OrderedDict[str, PartnerCommandClient] = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, partner_id: object) -> bool:
        return partner_id in self._clients

    async def get_or_create(
        self,
        partner_id: str,
        factory: Callable[[], PartnerCommandClient],
    ) -> PartnerCommandClient:
        """Return the cached client for `partner_id`, creating it once."""

        evicted: list[PartnerCommandClient] = []
        async with self._lock:
            client = self._clients.get(partner_id)
            if client is not None and not client.closed:
                self._clients.move_to_end(partner_id)
                return client
            client = factory()
            self._clients[partner_id] = client
            while len(self._clients) > self._max_size:
                evicted_id, evicted_client = self._clients.popitem(last=False)
                logger.debug("Evicting partner client '%s'.", evicted_id)
                evicted.append(evicted_client)
        for evicted_client in evicted:
            await evicted_client.aclose()
        return client

    async def close(self) -> None:
        """Close and forget every cached client."""

        async with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            await client.aclose()


class CommandResultRelay:
    """Sends command results to the partner that issued the command."""

    def __init__(
        self,
        partner_directory: PartnerDirectory,
        client_cache: PartnerClientCache,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._partner_directory = partner_directory
        self._client_cache = client_cache
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def relay(self, remote_party_id: str, response_url: str, result: CommandResult) -> None:
        """Deliver `result` using the partner's first usable credentials."""

        party = await self._partner_directory.lookup(remote_party_id)
        if party is None:
            raise PartnerClientError(f"Unknown remote party '{remote_party_id}'.")
        access_info = party.active_access_info()
        if access_info is None:
            raise PartnerClientError(
                f"Remote party '{remote_party_id}' has no usable remote access information."
            )

        client = await self._client_cache.get_or_create(
            remote_party_id,
            lambda: PartnerCommandClient(
                access_token=access_info.access_token,
                timeout_seconds=self._timeout_seconds,
                transport=self._transport,
            ),
        )
        try:
            await client.post_command_result(response_url, result)
        except PartnerClientError as exc:
            logger.warning(
                "Failed to relay command result to remote party '%s': %s",
                remote_party_id,
                exc,
            )
            raise

    async def close(self) -> None:
        """Release pooled partner connections."""

        await self._client_cache.close()


__all__ = ["CommandResultRelay", "PartnerClientCache", "PartnerCommandClient"]
