from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from ocpi_cpo_gateway.domain.errors import (
    ResourceNotFoundError,
    TokenDowngradeError,
    TokenPatchError,
)
from ocpi_cpo_gateway.domain.records import ResourceKind, Session, Token, TokenType
from ocpi_cpo_gateway.infrastructure.registry import InMemoryResourceRegistry

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


def _token(uid: str = "T1", *, minutes: int = 0, **overrides: object) -> Token:
    values: dict[str, object] = {
        "country_code": "NL",
        "party_id": "EMS",
        "uid": uid,
        "type": TokenType.RFID,
        "auth_id": f"AUTH-{uid}",
        "issuer": "Issuer",
        "valid": True,
        "whitelist": "ALLOWED",
        "last_updated": BASE_TIME + timedelta(minutes=minutes),
    }
    values.update(overrides)
    return Token.model_validate(values)


def _session(session_id: str, visible_to: frozenset[str] | None = None) -> Session:
    return Session(
        id=session_id,
        start_datetime=BASE_TIME,
        auth_id="AUTH-1",
        last_updated=BASE_TIME,
        visible_to=visible_to,
    )


def test_list_records_respects_visibility() -> None:
    registry = InMemoryResourceRegistry()

    async def scenario() -> tuple[list[str], list[str]]:
        await registry.add(_session("S1", frozenset({"NL*EMS"})))
        await registry.add(_session("S2", frozenset({"BE*OTH"})))
        await registry.add(_session("S3"))
        restricted = await registry.list_records(ResourceKind.SESSION, frozenset({"NL*EMS"}))
        everything = await registry.list_records(ResourceKind.SESSION)
        return [r.record_id for r in restricted], [r.record_id for r in everything]

    restricted, everything = asyncio.run(scenario())

    assert restricted == ["S1", "S3"]
    assert everything == ["S1", "S2", "S3"]


def test_add_defaults_created_to_last_updated() -> None:
    registry = InMemoryResourceRegistry()

    async def scenario() -> Session | None:
        await registry.add(_session("S1"))
        return await registry.get_record(ResourceKind.SESSION, "S1")  # type: ignore[return-value]

    stored = asyncio.run(scenario())

    assert stored is not None
    assert stored.created == BASE_TIME


def test_put_token_creates_then_replaces_newer_versions() -> None:
    registry = InMemoryResourceRegistry()

    async def scenario() -> None:
        created = await registry.put_token(_token())
        replaced = await registry.put_token(_token(minutes=5, valid=False))

        assert created.created
        assert not replaced.created
        assert replaced.token.valid is False
        assert replaced.token.created == created.token.created

        with pytest.raises(TokenDowngradeError):
            await registry.put_token(_token(minutes=5))
        forced = await registry.put_token(_token(minutes=1), allow_downgrades=True)
        assert forced.token.last_updated == BASE_TIME + timedelta(minutes=1)

    asyncio.run(scenario())


def test_patch_token_merges_and_bumps_last_updated() -> None:
    registry = InMemoryResourceRegistry()

    async def scenario() -> Token:
        await registry.put_token(_token())
        return await registry.patch_token("NL", "EMS", "T1", {"valid": False, "language": "de"})

    patched = asyncio.run(scenario())

    assert patched.valid is False
    assert patched.language == "de"
    assert patched.auth_id == "AUTH-T1"
    assert patched.last_updated > BASE_TIME


def test_patch_token_errors() -> None:
    registry = InMemoryResourceRegistry()

    async def scenario() -> None:
        await registry.put_token(_token(minutes=10))

        with pytest.raises(ResourceNotFoundError):
            await registry.patch_token("NL", "EMS", "missing", {"valid": False})
        with pytest.raises(TokenPatchError):
            await registry.patch_token("NL", "EMS", "T1", {"uid": "T2"})
        with pytest.raises(TokenPatchError):
            await registry.patch_token("NL", "EMS", "T1", {"valid": "maybe"})
        with pytest.raises(TokenDowngradeError):
            await registry.patch_token(
                "NL", "EMS", "T1", {"last_updated": BASE_TIME.isoformat()}
            )

    asyncio.run(scenario())


def test_delete_tokens_by_party() -> None:
    registry = InMemoryResourceRegistry()

    async def scenario() -> tuple[Token | None, Token | None, int, list[Token], list[Token]]:
        await registry.put_token(_token("T1"))
        await registry.put_token(_token("T2"))
        await registry.put_token(_token("T3", party_id="OTH"))
        deleted = await registry.delete_token("NL", "EMS", "T1")
        missing = await registry.delete_token("NL", "EMS", "T1")
        removed = await registry.delete_tokens("NL", "EMS")
        remaining = await registry.list_tokens("NL", "EMS")
        other = await registry.list_tokens("NL", "OTH")
        return deleted, missing, removed, remaining, other

    deleted, missing, removed, remaining, other = asyncio.run(scenario())

    assert deleted is not None and deleted.uid == "T1"
    assert missing is None
    assert removed == 1
    assert remaining == []
    assert [token.uid for token in other] == ["T3"]
