"""OCPI response envelope and its builders."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any

from ocpi_cpo_gateway.domain.records import ResourceRecord

SUCCESS_MESSAGE = "Hello world!"
ACCESS_DENIED_MESSAGE = "Invalid or blocked access token!"
SERVER_ERROR_MESSAGE = "Internal server error!"
ALLOW_HEADERS = "Authorization"
LISTING_EXPOSE_HEADERS = (
    "X-Request-ID, X-Correlation-ID, Link, X-Total-Count, X-Filtered-Count, X-Limit"
)


class OcpiStatus(IntEnum):
    """OCPI status codes carried in every envelope."""

    SUCCESS = 1000
    CLIENT_ERROR = 2000
    INVALID_PARAMETERS = 2001
    NOT_ENOUGH_INFORMATION = 2002
    UNKNOWN_RESOURCE = 2003
    UNKNOWN_TOKEN = 2004
    SERVER_ERROR = 3000


def format_timestamp(value: datetime) -> str:
    """ISO 8601 in UTC with a `Z` suffix."""

    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


@dataclass(slots=True, frozen=True)
class ResponseEnvelope:
    """Terminal result of one dispatched request."""

    status_code: int
    status_message: str
    data: Any = None
    transport_status: int = 200
    headers: Mapping[str, str] = field(default_factory=dict)

    def with_headers(self, headers: Mapping[str, str], *, overwrite: bool = True) -> ResponseEnvelope:
        """Return a copy with additional headers."""

        merged = dict(self.headers)
        for name, value in headers.items():
            if overwrite or name not in merged:
                merged[name] = value
        return replace(self, headers=merged)

    def to_json(self, timestamp: datetime | None = None) -> dict[str, Any]:
        """Serialize the OCPI body; `data` is omitted when absent."""

        body: dict[str, Any] = {}
        if self.data is not None:
            body["data"] = self.data
        body["status_code"] = int(self.status_code)
        body["status_message"] = self.status_message
        body["timestamp"] = format_timestamp(timestamp or datetime.now(tz=UTC))
        return body


def success(
    data: Any = None,
    *,
    transport_status: int = 200,
    headers: Mapping[str, str] | None = None,
    record: ResourceRecord | None = None,
) -> ResponseEnvelope:
    """Build a 1000 envelope; records add `ETag` and `Last-Modified`."""

    merged = dict(headers or {})
    if record is not None:
        merged["ETag"] = f'"{record.etag}"'
        merged["Last-Modified"] = format_timestamp(record.last_updated)
    return ResponseEnvelope(
        status_code=OcpiStatus.SUCCESS,
        status_message=SUCCESS_MESSAGE,
        data=data,
        transport_status=transport_status,
        headers=merged,
    )


def access_denied() -> ResponseEnvelope:
    """403 / 2000 envelope used for every authorization failure."""

    return ResponseEnvelope(
        status_code=OcpiStatus.CLIENT_ERROR,
        status_message=ACCESS_DENIED_MESSAGE,
        transport_status=403,
        headers={"Access-Control-Allow-Headers": ALLOW_HEADERS},
    )


def client_error(
    message: str,
    *,
    status_code: int = OcpiStatus.INVALID_PARAMETERS,
    transport_status: int = 400,
    data: Any = None,
) -> ResponseEnvelope:
    """Envelope for malformed requests and rejected updates."""

    return ResponseEnvelope(
        status_code=status_code,
        status_message=message,
        data=data,
        transport_status=transport_status,
        headers={"Access-Control-Allow-Headers": ALLOW_HEADERS},
    )


def not_found(message: str, *, status_code: int = OcpiStatus.UNKNOWN_RESOURCE) -> ResponseEnvelope:
    """404 envelope for unknown resources."""

    return client_error(message, status_code=status_code, transport_status=404)


def server_error() -> ResponseEnvelope:
    """500 / 3000 envelope for unhandled handler failures."""

    return ResponseEnvelope(
        status_code=OcpiStatus.SERVER_ERROR,
        status_message=SERVER_ERROR_MESSAGE,
        transport_status=500,
    )


__all__ = [
    "ACCESS_DENIED_MESSAGE",
    "ALLOW_HEADERS",
    "LISTING_EXPOSE_HEADERS",
    "OcpiStatus",
    "ResponseEnvelope",
    "SERVER_ERROR_MESSAGE",
    "SUCCESS_MESSAGE",
    "access_denied",
    "client_error",
    "format_timestamp",
    "not_found",
    "server_error",
    "success",
]
