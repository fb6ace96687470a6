from __future__ import annotations

from datetime import UTC, datetime, timedelta

from ocpi_cpo_gateway.domain.pagination import PaginationFilter, next_page_link, query_records
from ocpi_cpo_gateway.domain.records import Location

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


def _location(
    location_id: str,
    *,
    minutes: int = 0,
    created_minutes: int | None = None,
    name: str | None = None,
) -> Location:
    last_updated = BASE_TIME + timedelta(minutes=minutes)
    created = last_updated if created_minutes is None else BASE_TIME + timedelta(minutes=created_minutes)
    return Location(
        id=location_id,
        name=name,
        address="Main Street 1",
        city="Berlin",
        country="DEU",
        last_updated=last_updated,
        created=created,
    )


def test_filter_from_query_parses_and_ignores_bad_values() -> None:
    pagination = PaginationFilter.from_query(
        {
            "date_from": "2024-03-01T12:00:00 00:00",
            "date_to": "2024-03-02T12:00:00Z",
            "offset": "-3",
            "limit": "abc",
        }
    )

    assert pagination.date_from == BASE_TIME
    assert pagination.date_to == BASE_TIME + timedelta(days=1)
    assert pagination.offset == 0
    assert pagination.limit is None

    assert PaginationFilter.from_query({"offset": "10", "limit": "0"}) == PaginationFilter(offset=10)


def test_date_window_is_exclusive_below_and_inclusive_above() -> None:
    records = [_location(f"LOC{minute}", minutes=minute) for minute in range(5)]
    pagination = PaginationFilter(
        date_from=BASE_TIME + timedelta(minutes=1),
        date_to=BASE_TIME + timedelta(minutes=3),
    )

    result = query_records(records, None, pagination)

    assert [record.id for record in result.page] == ["LOC2", "LOC3"]
    assert result.total == 5
    assert result.filtered_count == 2


def test_match_is_a_case_sensitive_substring() -> None:
    records = [
        _location("LOC1", name="Station Alpha"),
        _location("LOC2", name="station beta"),
        _location("ALPHA-3"),
    ]

    result = query_records(records, "Alpha", PaginationFilter())

    assert [record.id for record in result.page] == ["LOC1"]
    assert result.filtered_count == 1


def test_records_are_ordered_by_creation_and_ties_keep_input_order() -> None:
    records = [
        _location("late", created_minutes=30),
        _location("tie-a", created_minutes=10),
        _location("early", created_minutes=0),
        _location("tie-b", created_minutes=10),
    ]

    result = query_records(records, None, PaginationFilter())

    assert [record.id for record in result.page] == ["early", "tie-a", "tie-b", "late"]


def test_page_window_and_counts_for_150_records() -> None:
    records = [_location(f"LOC{index:03d}", created_minutes=index) for index in range(150)]

    first = query_records(records, None, PaginationFilter(offset=0, limit=50))
    last = query_records(records, None, PaginationFilter(offset=100, limit=50))

    assert len(first.page) == 50
    assert first.page[0].id == "LOC000"
    assert first.total == 150
    assert first.filtered_count == 150
    assert first.limit == 150
    assert first.next_offset == 50
    assert first.has_next

    assert [record.id for record in last.page][-1] == "LOC149"
    assert last.next_offset is None
    assert not last.has_next


def test_no_next_offset_when_page_reaches_filtered_count() -> None:
    records = [_location(f"LOC{index}", created_minutes=index) for index in range(10)]

    result = query_records(records, "LOC1", PaginationFilter(offset=0, limit=1))
    unlimited = query_records(records, None, PaginationFilter(offset=4))

    assert result.filtered_count == 1
    assert result.next_offset is None
    assert len(unlimited.page) == 6
    assert unlimited.limit == 10
    assert unlimited.next_offset is None


def test_next_page_link_carries_window_and_match() -> None:
    pagination = PaginationFilter(
        date_from=BASE_TIME,
        date_to=BASE_TIME + timedelta(days=1),
        offset=0,
        limit=50,
    )

    link = next_page_link(
        "https://cpo.example.com/ocpi/cpo/2.1.1",
        "locations",
        pagination,
        50,
        match="Berlin",
    )

    assert link == (
        "<https://cpo.example.com/ocpi/cpo/2.1.1/locations?"
        "date_from=2024-03-01T12%3A00%3A00Z&date_to=2024-03-02T12%3A00%3A00Z"
        "&match=Berlin&offset=50&limit=50>; rel=\"next\""
    )
