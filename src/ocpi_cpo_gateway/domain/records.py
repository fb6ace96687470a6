"""Pydantic models for the resources exposed to partners."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ResourceKind(StrEnum):
    """Resource classes held by the registry."""

    LOCATION = "locations"
    TARIFF = "tariffs"
    SESSION = "sessions"
    CDR = "cdrs"
    TOKEN = "tokens"


class TokenType(StrEnum):
    """Token types accepted in the `type` query parameter."""

    RFID = "RFID"
    OTHER = "OTHER"


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class OcpiModel(BaseModel):
    """Base model for OCPI JSON objects; unknown OCPI fields pass through."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        """Return the JSON-compatible representation."""

        return self.model_dump(mode="json", exclude_none=True)


class DisplayText(OcpiModel):
    """Localized text."""

    language: str
    text: str


class BusinessDetails(OcpiModel):
    """Operator, sub-operator or owner details."""

    name: str
    website: str | None = None


class ResourceRecord(OcpiModel):
    """Common fields of every registry record."""

    country_code: str | None = None
    party_id: str | None = None
    last_updated: datetime
    created: datetime | None = Field(default=None, exclude=True)
    visible_to: frozenset[str] | None = Field(default=None, exclude=True)

    @field_validator("last_updated", "created", mode="after")
    @classmethod
    def normalize_timestamp(cls, value: datetime | None) -> datetime | None:
        """Store timestamps as aware UTC datetimes."""

        return None if value is None else ensure_utc(value)

    @property
    def record_id(self) -> str:
        """Identifier used for registry lookups."""

        raise NotImplementedError

    @property
    def created_at(self) -> datetime:
        """Creation timestamp, falling back to the last update."""

        return self.created if self.created is not None else self.last_updated

    @property
    def etag(self) -> str:
        """SHA-256 of the canonical JSON representation in hex."""

        canonical = json.dumps(self.to_json(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def match_fields(self) -> Iterable[str | None]:
        """Fields searched by the free-text `match` query parameter."""

        return (self.record_id,)

    def matches(self, pattern: str) -> bool:
        """Case-sensitive substring test over `match_fields`."""

        return any(value is not None and pattern in value for value in self.match_fields())

    def is_visible_to(self, parties: Iterable[str] | None) -> bool:
        """Return whether one of the given `CC*PID` parties may see the record."""

        if self.visible_to is None or parties is None:
            return True
        return not self.visible_to.isdisjoint(parties)


class Connector(ResourceRecord):
    """Connector of an EVSE."""

    id: str
    standard: str
    format: str
    power_type: str
    voltage: int | None = None
    amperage: int | None = None
    tariff_id: str | None = None

    @property
    def record_id(self) -> str:
        return self.id


class EVSE(ResourceRecord):
    """EVSE of a location."""

    uid: str
    evse_id: str | None = None
    status: str = "UNKNOWN"
    connectors: list[Connector] = Field(default_factory=list)

    @property
    def record_id(self) -> str:
        return self.uid

    def get_connector(self, connector_id: str) -> Connector | None:
        """Return a connector by id."""

        for connector in self.connectors:
            if connector.id == connector_id:
                return connector
        return None


class Location(ResourceRecord):
    """Charging location."""

    id: str
    type: str = "UNKNOWN"
    name: str | None = None
    address: str
    city: str
    postal_code: str | None = None
    country: str
    coordinates: dict[str, str] | None = None
    evses: list[EVSE] = Field(default_factory=list)
    operator: BusinessDetails | None = None
    suboperator: BusinessDetails | None = None
    owner: BusinessDetails | None = None

    @property
    def record_id(self) -> str:
        return self.id

    def match_fields(self) -> Iterable[str | None]:
        yield self.id
        yield self.name
        yield self.address
        yield self.city
        for details in (self.operator, self.suboperator, self.owner):
            if details is not None:
                yield details.name
        for evse in self.evses:
            yield evse.uid
            yield evse.evse_id

    def get_evse(self, evse_uid: str) -> EVSE | None:
        """Return an EVSE by uid."""

        for evse in self.evses:
            if evse.uid == evse_uid:
                return evse
        return None


class Tariff(ResourceRecord):
    """Tariff."""

    id: str
    currency: str
    tariff_alt_text: list[DisplayText] = Field(default_factory=list)
    elements: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def record_id(self) -> str:
        return self.id

    def match_fields(self) -> Iterable[str | None]:
        yield self.id
        yield self.currency
        for text in self.tariff_alt_text:
            yield text.text


class Session(ResourceRecord):
    """Charging session."""

    id: str
    start_datetime: datetime
    end_datetime: datetime | None = None
    kwh: float = 0.0
    auth_id: str
    auth_method: str = "WHITELIST"
    location_id: str | None = None
    currency: str | None = None
    status: str = "ACTIVE"

    @property
    def record_id(self) -> str:
        return self.id

    def match_fields(self) -> Iterable[str | None]:
        return (self.id, self.location_id, self.auth_id)


class Cdr(ResourceRecord):
    """Charge detail record."""

    id: str
    start_date_time: datetime
    stop_date_time: datetime
    auth_id: str
    auth_method: str = "WHITELIST"
    location: dict[str, Any] | None = None
    currency: str
    total_cost: float = 0.0
    total_energy: float = 0.0

    @property
    def record_id(self) -> str:
        return self.id

    def match_fields(self) -> Iterable[str | None]:
        yield self.id
        yield self.auth_id
        if self.location is not None:
            for key in ("id", "name"):
                value = self.location.get(key)
                yield value if isinstance(value, str) else None


class Token(ResourceRecord):
    """Token issued by an eMSP."""

    uid: str
    type: TokenType = TokenType.RFID
    auth_id: str
    visual_number: str | None = None
    issuer: str
    valid: bool
    whitelist: str
    language: str | None = None

    @property
    def record_id(self) -> str:
        return self.uid

    def match_fields(self) -> Iterable[str | None]:
        return (self.uid, self.auth_id, self.issuer, self.visual_number)


RECORD_MODELS: dict[ResourceKind, type[ResourceRecord]] = {
    ResourceKind.LOCATION: Location,
    ResourceKind.TARIFF: Tariff,
    ResourceKind.SESSION: Session,
    ResourceKind.CDR: Cdr,
    ResourceKind.TOKEN: Token,
}


__all__ = [
    "BusinessDetails",
    "Cdr",
    "Connector",
    "DisplayText",
    "EVSE",
    "Location",
    "OcpiModel",
    "RECORD_MODELS",
    "ResourceKind",
    "ResourceRecord",
    "Session",
    "Tariff",
    "Token",
    "TokenType",
    "ensure_utc",
]
