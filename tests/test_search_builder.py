import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, insert
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from caregate.errors import SearchError, UnknownFieldError, UnknownTableError
from caregate.search import (
    FilterGroup,
    FilterOperator,
    LogicalOperator,
    SearchConfig,
    SearchFilter,
    SearchQueryBuilder,
    SortOrder,
)


def run(coro):
    return asyncio.run(coro)


metadata = MetaData()
contacts = Table(
    "contacts",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(100)),
    Column("email", String(100)),
    Column("city", String(100)),
    Column("age", Integer),
    Column("created_at", DateTime),
)

PEOPLE = [
    {"name": "Ada Lovelace", "email": "ada@example.org", "city": "London", "age": 36},
    {"name": "Grace Hopper", "email": "grace@navy.mil", "city": "New York", "age": 85},
    {"name": "Alan Turing", "email": "alan@example.org", "city": "Wilmslow", "age": 41},
    {"name": "Katherine Johnson", "email": "kj@nasa.gov", "city": "Hampton", "age": 101},
    {"name": "Linus", "email": None, "city": "London", "age": 50},
]


async def _engine(rows):
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        base = datetime(2024, 1, 1)
        await conn.execute(
            insert(contacts),
            [
                {"id": i + 1, "created_at": base + timedelta(minutes=i), **row}
                for i, row in enumerate(rows)
            ],
        )
    return engine


def _search(rows, action):
    async def scenario():
        engine = await _engine(rows)
        try:
            return await action(SearchQueryBuilder(engine))
        finally:
            await engine.dispose()

    return run(scenario())


def test_pagination_metadata():
    rows = [{"name": f"person {i}", "email": None, "city": "x", "age": i} for i in range(120)]
    result = _search(
        rows,
        lambda b: b.execute_search(SearchConfig(table_name="contacts", limit=50, offset=0)),
    )
    assert result.count == 120
    assert len(result.data) == 50
    assert result.total_pages == 3
    assert result.current_page == 1
    assert result.has_more is True

    last = _search(
        rows,
        lambda b: b.execute_search(SearchConfig(table_name="contacts", limit=50, offset=100)),
    )
    assert len(last.data) == 20
    assert last.current_page == 3
    assert last.has_more is False


def test_operators_filter_rows():
    def names(filters, **kw):
        config = SearchConfig(table_name="contacts", filters=filters, sort_by="id", sort_order=SortOrder.ASC, **kw)
        result = _search(PEOPLE, lambda b: b.execute_search(config))
        return [r["name"] for r in result.data]

    assert names([SearchFilter(field="city", value="London")]) == ["Ada Lovelace", "Linus"]
    assert names([SearchFilter(field="age", operator=FilterOperator.GT, value=80)]) == [
        "Grace Hopper",
        "Katherine Johnson",
    ]
    assert names([SearchFilter(field="age", operator="lte", value=41)]) == [
        "Ada Lovelace",
        "Alan Turing",
    ]
    assert names([SearchFilter(field="email", operator="is", value="null")]) == ["Linus"]
    assert len(names([SearchFilter(field="email", operator="not.is", value=None)])) == 4
    assert names([SearchFilter(field="city", operator="in", value="(Hampton,Wilmslow)")]) == [
        "Alan Turing",
        "Katherine Johnson",
    ]
    assert names([SearchFilter(field="name", operator="ilike", value="%HOPPER%")]) == [
        "Grace Hopper"
    ]
    assert names([SearchFilter(field="city", operator="neq", value="London")]) == [
        "Grace Hopper",
        "Alan Turing",
        "Katherine Johnson",
    ]


def test_filters_fold_left_with_logical_operator():
    # (city = London OR city = Hampton) AND age > 40
    filters = [
        SearchFilter(field="city", value="London"),
        SearchFilter(field="city", value="Hampton", logicalOperator="or"),
        SearchFilter(field="age", operator="gt", value=40),
    ]
    config = SearchConfig(table_name="contacts", filters=filters, sort_by="id", sort_order="asc")
    result = _search(PEOPLE, lambda b: b.execute_search(config))
    assert [r["name"] for r in result.data] == ["Katherine Johnson", "Linus"]


def test_where_tree_is_combined_with_filters():
    where = FilterGroup(
        logical_operator=LogicalOperator.OR,
        conditions=[
            SearchFilter(field="age", operator="lt", value=40),
            FilterGroup(
                conditions=[
                    SearchFilter(field="city", value="London"),
                    SearchFilter(field="age", operator="gte", value=50),
                ]
            ),
        ],
    )
    config = SearchConfig(
        table_name="contacts",
        where=where,
        filters=[SearchFilter(field="email", operator="not.is", value=None)],
    )
    result = _search(PEOPLE, lambda b: b.execute_search(config))
    assert [r["name"] for r in result.data] == ["Ada Lovelace"]


def test_full_text_matches_any_field_by_default():
    config = SearchConfig(table_name="contacts", searchable_fields=["name", "email"])
    result = _search(
        PEOPLE,
        lambda b: b.execute_full_text_search("contacts", "example", config),
    )
    assert sorted(r["name"] for r in result.data) == ["Ada Lovelace", "Alan Turing"]


def test_full_text_match_all_requires_every_field():
    config = SearchConfig(table_name="contacts", searchable_fields=["name", "email"])
    any_field = _search(
        PEOPLE, lambda b: b.execute_full_text_search("contacts", "ada", config)
    )
    every_field = _search(
        PEOPLE,
        lambda b: b.execute_full_text_search("contacts", "ada", config, match_all=True),
    )
    assert any_field.count == 1
    assert every_field.count == 1

    grace = _search(
        PEOPLE,
        lambda b: b.execute_full_text_search("contacts", "navy", config, match_all=True),
    )
    assert grace.count == 0


def test_full_text_detects_text_columns_and_escapes_wildcards():
    result = _search(
        PEOPLE, lambda b: b.execute_full_text_search("contacts", "hampton")
    )
    assert [r["name"] for r in result.data] == ["Katherine Johnson"]

    literal = _search(PEOPLE, lambda b: b.execute_full_text_search("contacts", "%"))
    assert literal.count == 0


def test_blank_term_returns_unfiltered_page():
    result = _search(PEOPLE, lambda b: b.execute_full_text_search("contacts", "  "))
    assert result.count == len(PEOPLE)


def test_unknown_table_and_field_raise():
    with pytest.raises(UnknownTableError):
        _search(PEOPLE, lambda b: b.execute_search(SearchConfig(table_name="nope")))
    with pytest.raises(UnknownFieldError):
        _search(
            PEOPLE,
            lambda b: b.execute_search(
                SearchConfig(
                    table_name="contacts", filters=[SearchFilter(field="ssn", value="1")]
                )
            ),
        )
    with pytest.raises(UnknownFieldError):
        _search(
            PEOPLE,
            lambda b: b.execute_search(SearchConfig(table_name="contacts", sort_by="ssn")),
        )


def test_unknown_field_is_a_search_error():
    assert issubclass(UnknownFieldError, SearchError)


def test_in_operator_rejects_scalar_value():
    config = SearchConfig(
        table_name="contacts",
        filters=[SearchFilter(field="age", operator="in", value=5)],
    )
    with pytest.raises(SearchError, match="'in' needs a list"):
        _search(PEOPLE, lambda b: b.execute_search(config))

    config = SearchConfig(
        table_name="contacts",
        filters=[SearchFilter(field="age", operator="in", value=[36, 41])],
        sort_by="id",
        sort_order="asc",
    )
    result = _search(PEOPLE, lambda b: b.execute_search(config))
    assert [r["name"] for r in result.data] == ["Ada Lovelace", "Alan Turing"]
