"""In-memory resource registry implementation."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from ocpi_cpo_gateway.domain.errors import (
    ResourceNotFoundError,
    TokenDowngradeError,
    TokenPatchError,
)
from ocpi_cpo_gateway.domain.ports import ResourceRegistry, TokenUpdateResult
from ocpi_cpo_gateway.domain.records import (
    RECORD_MODELS,
    ResourceKind,
    ResourceRecord,
    Token,
)

_TokenKey = tuple[str, str, str]
_IMMUTABLE_TOKEN_FIELDS = ("country_code", "party_id", "uid")


def _merge_patch(target: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Apply a JSON merge patch (RFC 7386)."""

    merged = dict(target)
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
        elif isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_patch(merged[key], value)
        else:
            merged[key] = value
    return merged


def _kind_of(record: ResourceRecord) -> ResourceKind:
    for kind, model in RECORD_MODELS.items():
        if isinstance(record, model):
            return kind
    raise TypeError(f"Unsupported record type {type(record).__name__}.")


class InMemoryResourceRegistry(ResourceRegistry):
    """Simple registry for local development and tests."""

    def __init__(self) -> None:
        self._records: dict[ResourceKind, dict[str, ResourceRecord]] = {
            kind: {} for kind in ResourceKind if kind is not ResourceKind.TOKEN
        }
        self._tokens: dict[_TokenKey, Token] = {}
        self._lock = asyncio.Lock()

    async def add(self, record: ResourceRecord) -> None:
        """Insert or replace a record; used for seeding."""

        if record.created is None:
            record = record.model_copy(update={"created": record.last_updated})
        async with self._lock:
            if isinstance(record, Token):
                self._tokens[self._token_key_of(record)] = record
            else:
                self._records[_kind_of(record)][record.record_id] = record

    async def list_records(
        self,
        kind: ResourceKind,
        parties: frozenset[str] | None = None,
    ) -> list[ResourceRecord]:
        """Return records of `kind` in insertion order."""

        async with self._lock:
            if kind is ResourceKind.TOKEN:
                snapshot: list[ResourceRecord] = list(self._tokens.values())
            else:
                snapshot = list(self._records[kind].values())
        return [record for record in snapshot if record.is_visible_to(parties)]

    async def get_record(self, kind: ResourceKind, record_id: str) -> ResourceRecord | None:
        """Return by id."""

        if kind is ResourceKind.TOKEN:
            async with self._lock:
                for token in self._tokens.values():
                    if token.uid == record_id:
                        return token
            return None
        async with self._lock:
            return self._records[kind].get(record_id)

    async def list_tokens(self, country_code: str, party_id: str) -> list[Token]:
        """Return the tokens of one party in insertion order."""

        async with self._lock:
            return [
                token
                for (token_country, token_party, _), token in self._tokens.items()
                if token_country == country_code and token_party == party_id
            ]

    async def get_token(self, country_code: str, party_id: str, uid: str) -> Token | None:
        """Return one token."""

        return self._tokens.get((country_code, party_id, uid))

    async def put_token(self, token: Token, allow_downgrades: bool = False) -> TokenUpdateResult:
        """Create or replace; older `last_updated` values are refused unless allowed."""

        key = self._token_key_of(token)
        async with self._lock:
            existing = self._tokens.get(key)
            if existing is None:
                stored = token.model_copy(
                    update={"created": token.created or datetime.now(tz=UTC)}
                )
                self._tokens[key] = stored
                return TokenUpdateResult(token=stored, created=True)

            if not allow_downgrades and token.last_updated <= existing.last_updated:
                raise TokenDowngradeError(
                    "The 'last_updated' timestamp of the new token must be newer "
                    "than the timestamp of the existing token!"
                )
            stored = token.model_copy(
                update={"created": existing.created, "visible_to": existing.visible_to}
            )
            self._tokens[key] = stored
            return TokenUpdateResult(token=stored, created=False)

    async def patch_token(
        self,
        country_code: str,
        party_id: str,
        uid: str,
        patch: dict[str, Any],
        allow_downgrades: bool = False,
    ) -> Token:
        """Merge `patch` into the stored token and bump `last_updated` when absent."""

        key = (country_code, party_id, uid)
        async with self._lock:
            existing = self._tokens.get(key)
            if existing is None:
                raise ResourceNotFoundError(f"Unknown token '{country_code}*{party_id}*{uid}'.")

            for field_name in _IMMUTABLE_TOKEN_FIELDS:
                if field_name in patch and patch[field_name] != getattr(existing, field_name):
                    raise TokenPatchError(f"The token field '{field_name}' must not be patched!")

            merged = _merge_patch(existing.to_json(), patch)
            if "last_updated" not in patch:
                merged["last_updated"] = datetime.now(tz=UTC).isoformat()
            try:
                patched = Token.model_validate(merged)
            except ValidationError as exc:
                raise TokenPatchError(f"Invalid token patch: {exc.error_count()} error(s).") from exc

            if (
                not allow_downgrades
                and "last_updated" in patch
                and patched.last_updated <= existing.last_updated
            ):
                raise TokenDowngradeError(
                    "The 'last_updated' timestamp of the patch must be newer "
                    "than the timestamp of the existing token!"
                )

            stored = patched.model_copy(
                update={"created": existing.created, "visible_to": existing.visible_to}
            )
            self._tokens[key] = stored
            return stored

    async def delete_token(self, country_code: str, party_id: str, uid: str) -> Token | None:
        """Remove one token."""

        async with self._lock:
            return self._tokens.pop((country_code, party_id, uid), None)

    async def delete_tokens(self, country_code: str, party_id: str) -> int:
        """Remove all tokens of one party."""

        async with self._lock:
            keys = [key for key in self._tokens if key[0] == country_code and key[1] == party_id]
            for key in keys:
                del self._tokens[key]
            return len(keys)

    def _token_key_of(self, token: Token) -> _TokenKey:
        if token.country_code is None or token.party_id is None:
            raise ValueError("Stored tokens need a country code and a party id.")
        return (token.country_code, token.party_id, token.uid)


__all__ = ["InMemoryResourceRegistry"]
