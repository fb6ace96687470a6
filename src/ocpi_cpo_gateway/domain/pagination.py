"""Match, date-window and offset/limit pipeline shared by all listing endpoints."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, TypeVar
from urllib.parse import urlencode

from ocpi_cpo_gateway.domain.records import ResourceRecord, ensure_utc

R = TypeVar("R", bound=ResourceRecord)


def _parse_timestamp(value: str | None) -> datetime | None:
    if value is None or not value.strip():
        return None
    # An unescaped '+' in a query string arrives as a space.
    normalized = value.strip().replace(" ", "+")
    try:
        return ensure_utc(datetime.fromisoformat(normalized))
    except ValueError:
        return None


def _parse_int(value: str | None, minimum: int) -> int | None:
    if value is None:
        return None
    try:
        parsed = int(value.strip())
    except ValueError:
        return None
    return parsed if parsed >= minimum else None


def _format_timestamp(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


@dataclass(slots=True, frozen=True)
class PaginationFilter:
    """Date window and page window of one listing request."""

    date_from: datetime | None = None
    date_to: datetime | None = None
    offset: int = 0
    limit: int | None = None

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> PaginationFilter:
        """Build from `date_from`, `date_to`, `offset` and `limit`; bad values are ignored."""

        return cls(
            date_from=_parse_timestamp(params.get("date_from")),
            date_to=_parse_timestamp(params.get("date_to")),
            offset=_parse_int(params.get("offset"), minimum=0) or 0,
            limit=_parse_int(params.get("limit"), minimum=1),
        )

    def in_window(self, last_updated: datetime) -> bool:
        """Exclusive lower bound, inclusive upper bound."""

        if self.date_from is not None and not last_updated > self.date_from:
            return False
        if self.date_to is not None and not last_updated <= self.date_to:
            return False
        return True


@dataclass(slots=True, frozen=True)
class QueryResult(Generic[R]):
    """One page plus the counters computed from the same snapshot.

    `limit` is the most records the server will return for the query, which is
    the snapshot size regardless of the requested page size.
    """

    page: list[R] = field(default_factory=list)
    total: int = 0
    filtered_count: int = 0
    limit: int = 0
    next_offset: int | None = None

    @property
    def has_next(self) -> bool:
        """Return whether a continuation link applies."""

        return self.next_offset is not None


def query_records(
    records: Sequence[R],
    match: str | None,
    pagination: PaginationFilter,
) -> QueryResult[R]:
    """Filter, order and paginate a registry snapshot."""

    snapshot = list(records)
    filtered = [
        record
        for record in snapshot
        if (not match or record.matches(match)) and pagination.in_window(record.last_updated)
    ]
    ordered = sorted(filtered, key=lambda record: record.created_at)

    offset = pagination.offset
    end = None if pagination.limit is None else offset + pagination.limit
    page = ordered[offset:end]

    next_offset: int | None = None
    if end is not None and end < len(filtered):
        next_offset = end

    return QueryResult(
        page=page,
        total=len(snapshot),
        filtered_count=len(filtered),
        limit=len(snapshot),
        next_offset=next_offset,
    )


def next_page_link(
    base_url: str,
    path: str,
    pagination: PaginationFilter,
    next_offset: int,
    match: str | None = None,
) -> str:
    """Build an RFC 5988 `Link` value pointing to the next page."""

    params: list[tuple[str, str]] = []
    if pagination.date_from is not None:
        params.append(("date_from", _format_timestamp(pagination.date_from)))
    if pagination.date_to is not None:
        params.append(("date_to", _format_timestamp(pagination.date_to)))
    if match:
        params.append(("match", match))
    params.append(("offset", str(next_offset)))
    if pagination.limit is not None:
        params.append(("limit", str(pagination.limit)))

    normalized_path = path if path.startswith("/") else f"/{path}"
    return f'<{base_url.rstrip("/")}{normalized_path}?{urlencode(params)}>; rel="next"'


__all__ = ["PaginationFilter", "QueryResult", "next_page_link", "query_records"]
