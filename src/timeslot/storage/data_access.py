"""
Data Access

Generic table + filter persistence interface consumed by the series core,
and its PostgreSQL implementation.

The core never writes SQL for entity tables itself: it reads and writes
rows through get_rows / insert_row / update_row / delete_row, and groups
writes with transaction().
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import asyncpg

from ..errors import ConstraintViolation, PersistenceError
from ..recurrence.ranges import TimeRange
from .base import BaseStorage

logger = logging.getLogger("timeslot.storage.data_access")


class FilterOp(str, Enum):
    """PostgREST-style filter operators"""
    EQ = "eq"
    NEQ = "neq"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    IN = "in"
    IS_NULL = "is_null"                                 # value: True / False
    OVERLAPS = "overlaps"                               # value: TimeRange


@dataclass(frozen=True)
class Filter:
    column: str
    op: FilterOp
    value: Any = None


def eq(column: str, value: Any) -> Filter:
    return Filter(column, FilterOp.EQ, value)


class DataAccess(ABC):
    """Row-level persistence interface"""

    @abstractmethod
    async def get_rows(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Rows matching all filters; order_by is "column" or "column.desc" """

    @abstractmethod
    async def insert_row(self, table: str, values: Dict[str, Any]) -> int:
        """Insert a row and return its id"""

    @abstractmethod
    async def update_row(self, table: str, row_id: int, values: Dict[str, Any]) -> bool:
        """Update a row by id; False if no such row"""

    @abstractmethod
    async def delete_row(self, table: str, row_id: int) -> bool:
        """Delete a row by id; False if no such row"""

    @abstractmethod
    def transaction(self) -> AsyncIterator[None]:
        """Async context manager: everything inside commits or rolls back together"""

    async def get_row(self, table: str, row_id: int) -> Optional[Dict[str, Any]]:
        rows = await self.get_rows(table, [eq("id", row_id)], limit=1)
        return rows[0] if rows else None


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_table(table: str) -> str:
    """Quote "schema.table"; bare names resolve to the public schema"""
    schema, _, name = table.rpartition(".")
    return f"{quote_ident(schema or 'public')}.{quote_ident(name)}"


def _encode(value: Any) -> Any:
    if isinstance(value, TimeRange):
        return asyncpg.Range(value.start, value.end, lower_inc=True, upper_inc=False)
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, asyncpg.Range) and value.lower is not None and value.upper is not None:
        return TimeRange(value.lower, value.upper)
    return value


@asynccontextmanager
async def database_errors(table: str, action: str):
    """Re-raise asyncpg and connection failures as PersistenceError"""
    try:
        yield
    except (asyncpg.UniqueViolationError, asyncpg.ExclusionViolationError) as e:
        logger.info(f"Constraint rejected {action} on {table}: {e}")
        raise ConstraintViolation(f"{action} on {table} rejected: {e}")
    except asyncpg.PostgresError as e:
        logger.error(f"Database error during {action} on {table}: {e}")
        raise PersistenceError(f"Database error during {action} on {table}: {e}")
    except (asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
        logger.error(f"Connection error during {action} on {table}: {e}")
        raise PersistenceError(f"Connection error during {action} on {table}: {e}")


class PostgresDataAccess(BaseStorage, DataAccess):
    """DataAccess over an asyncpg pool"""

    async def get_rows(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        args: List[Any] = []
        query = f"SELECT * FROM {quote_table(table)}"

        clauses = [self._clause(f, args) for f in filters]
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        if order_by:
            column, _, direction = order_by.partition(".")
            query += f" ORDER BY {quote_ident(column)} {'DESC' if direction == 'desc' else 'ASC'}"
        if limit is not None:
            query += f" LIMIT {int(limit)}"

        async with database_errors(table, "select"):
            rows = await self.fetch(query, *args)
        return [{k: _decode(v) for k, v in row.items()} for row in rows]

    async def insert_row(self, table: str, values: Dict[str, Any]) -> int:
        columns = list(values)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        query = (
            f"INSERT INTO {quote_table(table)} ({', '.join(quote_ident(c) for c in columns)}) "
            f"VALUES ({placeholders}) RETURNING id"
        )
        args = [_encode(values[c]) for c in columns]

        # Savepoint so a rejected insert does not abort the enclosing transaction
        async with database_errors(table, "insert"):
            async with self.transaction():
                return await self.fetchval(query, *args)

    async def update_row(self, table: str, row_id: int, values: Dict[str, Any]) -> bool:
        if not values:
            return True
        columns = list(values)
        assignments = ", ".join(f"{quote_ident(c)} = ${i}" for i, c in enumerate(columns, start=2))
        query = f"UPDATE {quote_table(table)} SET {assignments} WHERE id = $1"
        args = [row_id] + [_encode(values[c]) for c in columns]

        async with database_errors(table, "update"):
            async with self.transaction():
                result = await self.execute(query, *args)
        return result.endswith(" 1")

    async def delete_row(self, table: str, row_id: int) -> bool:
        query = f"DELETE FROM {quote_table(table)} WHERE id = $1"
        async with database_errors(table, "delete"):
            result = await self.execute(query, row_id)
        return result.endswith(" 1")

    @asynccontextmanager
    async def transaction(self):
        async with database_errors("transaction", "commit"):
            async with super().transaction():
                yield

    @staticmethod
    def _clause(f: Filter, args: List[Any]) -> str:
        column = quote_ident(f.column)
        if f.op is FilterOp.IS_NULL:
            return f"{column} IS NULL" if f.value else f"{column} IS NOT NULL"

        args.append(list(f.value) if f.op is FilterOp.IN else _encode(f.value))
        n = len(args)
        if f.op is FilterOp.IN:
            return f"{column} = ANY(${n})"
        if f.op is FilterOp.OVERLAPS:
            return f"{column} && ${n}"
        operator = {
            FilterOp.EQ: "=", FilterOp.NEQ: "<>", FilterOp.LT: "<",
            FilterOp.LTE: "<=", FilterOp.GT: ">", FilterOp.GTE: ">=",
        }[f.op]
        return f"{column} {operator} ${n}"
