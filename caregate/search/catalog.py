"""
Schema catalog backed by database reflection.

Answers "which tables exist" and "which of their columns hold text" from
the live schema rather than from a hand-maintained list.
"""

from __future__ import annotations

from typing import Dict, List
import logging

from sqlalchemy import MetaData, String, Table, inspect
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..errors import SearchExecutionError, UnknownTableError

logger = logging.getLogger(__name__)


class SchemaCatalog:
    def __init__(self, engine: AsyncEngine, schema: str | None = None):
        self.engine = engine
        self.schema = schema
        self._metadata = MetaData(schema=schema)
        self._tables: Dict[str, Table] = {}

    async def table_names(self) -> List[str]:
        try:
            async with self.engine.connect() as conn:
                return await conn.run_sync(
                    lambda sync_conn: inspect(sync_conn).get_table_names(
                        schema=self.schema
                    )
                )
        except SQLAlchemyError as e:
            logger.error("Listing tables failed: %s", e)
            raise SearchExecutionError(str(e)) from e

    async def get_table(self, table_name: str) -> Table:
        cached = self._tables.get(table_name)
        if cached is not None:
            return cached
        try:
            async with self.engine.connect() as conn:
                table = await conn.run_sync(
                    lambda sync_conn: Table(
                        table_name, self._metadata, autoload_with=sync_conn
                    )
                )
        except NoSuchTableError as e:
            raise UnknownTableError(table_name) from e
        except SQLAlchemyError as e:
            logger.error("Reflecting %s failed: %s", table_name, e)
            raise SearchExecutionError(str(e)) from e
        self._tables[table_name] = table
        logger.debug("Reflected table %s (%d columns)", table_name, len(table.columns))
        return table

    async def text_columns(self, table_name: str) -> List[str]:
        """Text-typed columns in declaration order, excluding keys."""
        table = await self.get_table(table_name)
        return [
            col.name
            for col in table.columns
            if isinstance(col.type, String) and not col.primary_key and not col.foreign_keys
        ]

    async def has_column(self, table_name: str, column: str) -> bool:
        table = await self.get_table(table_name)
        return column in table.columns

    def invalidate(self, table_name: str | None = None) -> None:
        if table_name is None:
            self._tables.clear()
            self._metadata = MetaData(schema=self.schema)
            return
        table = self._tables.pop(table_name, None)
        if table is not None:
            self._metadata.remove(table)
