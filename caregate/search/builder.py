"""
Declarative search over backend tables.

A ``SearchConfig`` names a table, a list of filters, an optional boolean
expression tree, a sort and a page window. The builder turns that into a
SQLAlchemy select, runs it together with an exact count and returns a
paginated ``SearchResult``. Errors propagate; nothing here retries.
"""

from __future__ import annotations

from math import ceil
from typing import Any, Callable, Dict, List, Optional, Union
import logging
import time

from sqlalchemy import Table, and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.sql.elements import ColumnElement

from ..errors import SearchError, SearchExecutionError, UnknownFieldError
from ..monitoring.metrics import search_duration, search_queries_total
from .catalog import SchemaCatalog
from .detector import SearchFieldDetector
from .models import (
    FilterGroup,
    FilterOperator,
    LogicalOperator,
    SearchConfig,
    SearchFilter,
    SearchResult,
    SortOrder,
)

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"


def _is_value(value: Any) -> Any:
    if isinstance(value, str):
        lowered = value.lower()
        if lowered == "null":
            return None
        if lowered in {"true", "false"}:
            return lowered == "true"
    return value


def _list_value(value: Any) -> List[Any]:
    if isinstance(value, str):
        return [v.strip() for v in value.strip("()").split(",") if v.strip()]
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    raise SearchError(f"'in' needs a list, got {type(value).__name__}")


OPERATORS: Dict[FilterOperator, Callable[[Any, Any], ColumnElement]] = {
    FilterOperator.EQ: lambda col, v: col == v,
    FilterOperator.NEQ: lambda col, v: col != v,
    FilterOperator.GT: lambda col, v: col > v,
    FilterOperator.GTE: lambda col, v: col >= v,
    FilterOperator.LT: lambda col, v: col < v,
    FilterOperator.LTE: lambda col, v: col <= v,
    FilterOperator.LIKE: lambda col, v: col.like(v, escape=LIKE_ESCAPE),
    FilterOperator.ILIKE: lambda col, v: col.ilike(v, escape=LIKE_ESCAPE),
    FilterOperator.IN: lambda col, v: col.in_(_list_value(v)),
    FilterOperator.IS: lambda col, v: col.is_(_is_value(v)),
    FilterOperator.NOT_IS: lambda col, v: col.is_not(_is_value(v)),
}


def escape_like(term: str) -> str:
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def _join(op: LogicalOperator, clauses: List[ColumnElement]) -> Optional[ColumnElement]:
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return or_(*clauses) if op == LogicalOperator.OR else and_(*clauses)


class SearchQueryBuilder:
    def __init__(
        self,
        engine: AsyncEngine,
        catalog: Optional[SchemaCatalog] = None,
        detector: Optional[SearchFieldDetector] = None,
    ):
        self.engine = engine
        self.catalog = catalog or SchemaCatalog(engine)
        self.detector = detector or SearchFieldDetector(self.catalog)

    # -- predicate composition -------------------------------------------

    @staticmethod
    def _column(table: Table, field: str):
        if field not in table.columns:
            raise UnknownFieldError(table.name, field)
        return table.columns[field]

    def _clause(self, table: Table, flt: SearchFilter) -> ColumnElement:
        column = self._column(table, flt.field)
        return OPERATORS[flt.operator](column, flt.value)

    def compose_filters(
        self, table: Table, filters: List[SearchFilter]
    ) -> Optional[ColumnElement]:
        """Fold the filter list left to right using each filter's logical operator."""
        expr: Optional[ColumnElement] = None
        for flt in filters:
            clause = self._clause(table, flt)
            if expr is None:
                expr = clause
            elif flt.logical_operator == LogicalOperator.OR:
                expr = or_(expr, clause)
            else:
                expr = and_(expr, clause)
        return expr

    def compose_group(
        self, table: Table, group: Union[FilterGroup, SearchFilter]
    ) -> Optional[ColumnElement]:
        if isinstance(group, SearchFilter):
            return self._clause(table, group)
        clauses = [
            c
            for c in (self.compose_group(table, item) for item in group.conditions)
            if c is not None
        ]
        return _join(group.logical_operator, clauses)

    def build_where(self, table: Table, config: SearchConfig) -> Optional[ColumnElement]:
        parts = [
            c
            for c in (
                self.compose_filters(table, config.filters),
                self.compose_group(table, config.where) if config.where else None,
            )
            if c is not None
        ]
        return _join(LogicalOperator.AND, parts)

    # -- execution --------------------------------------------------------

    async def execute_search(self, config: SearchConfig) -> SearchResult:
        table = await self.catalog.get_table(config.table_name)
        where = self.build_where(table, config)

        stmt = select(table)
        count_stmt = select(func.count()).select_from(table)
        if where is not None:
            stmt = stmt.where(where)
            count_stmt = count_stmt.where(where)
        if config.sort_by:
            column = self._column(table, config.sort_by)
            stmt = stmt.order_by(
                column.desc() if config.sort_order == SortOrder.DESC else column.asc()
            )
        stmt = stmt.limit(config.limit).offset(config.offset)

        started = time.perf_counter()
        try:
            async with self.engine.connect() as conn:
                count = (await conn.execute(count_stmt)).scalar_one()
                rows = (await conn.execute(stmt)).mappings().all()
        except SQLAlchemyError as e:
            search_queries_total.labels(table=config.table_name, result="error").inc()
            logger.error("Search on %s failed: %s", config.table_name, e)
            raise SearchExecutionError(str(e)) from e
        finally:
            search_duration.labels(table=config.table_name).observe(
                time.perf_counter() - started
            )

        search_queries_total.labels(table=config.table_name, result="ok").inc()
        logger.debug(
            "search table=%s filters=%d count=%d",
            config.table_name,
            len(config.filters),
            count,
        )
        return SearchResult(
            data=[dict(r) for r in rows],
            count=count,
            total_pages=ceil(count / config.limit) if count else 0,
            current_page=config.offset // config.limit + 1,
            has_more=config.offset + config.limit < count,
        )

    async def execute_full_text_search(
        self,
        table_name: str,
        term: str,
        config: Optional[SearchConfig] = None,
        match_all: bool = False,
    ) -> SearchResult:
        """Search ``term`` across the searchable fields.

        A row matches when any field contains the term, or when every field
        does if ``match_all`` is set.
        """
        if config is None:
            config = SearchConfig(table_name=table_name)
        elif config.table_name != table_name:
            config = config.model_copy(update={"table_name": table_name})

        term = (term or "").strip()
        if not term:
            return await self.execute_search(config)

        fields = config.searchable_fields or await self.detector.detect_from_catalog(
            table_name
        )
        if not fields:
            raise SearchError(f"No searchable fields for table {table_name}")

        pattern = f"%{escape_like(term)}%"
        text_group = FilterGroup(
            logical_operator=LogicalOperator.AND if match_all else LogicalOperator.OR,
            conditions=[
                SearchFilter(field=f, operator=FilterOperator.ILIKE, value=pattern)
                for f in fields
            ],
        )
        where = (
            FilterGroup(conditions=[config.where, text_group])
            if config.where
            else text_group
        )
        return await self.execute_search(config.model_copy(update={"where": where}))
