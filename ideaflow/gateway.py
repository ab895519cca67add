"""
Persistence gateway: generic insert/select/update/delete over the app tables.

Filters are lists of Condition tuples combined with AND. Table and column
names are checked against a fixed set before they reach SQL; values are
always passed as query parameters.
"""
import re
import uuid
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

import asyncpg

from ideaflow.errors import PersistenceError

logger = logging.getLogger(__name__)

TABLES = {
    "ideas",
    "tasks",
    "messages",
    "user_integrations",
    "push_subscriptions",
    "user_preferences",
    "profiles",
}

OPERATORS = {"=", "!=", "<", "<=", ">", ">=", "in", "is null", "is not null"}

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")


class Condition(NamedTuple):
    column: str
    op: str
    value: Any = None


def eq(column: str, value: Any) -> Condition:
    return Condition(column, "=", value)


def lt(column: str, value: Any) -> Condition:
    return Condition(column, "<", value)


def lte(column: str, value: Any) -> Condition:
    return Condition(column, "<=", value)


def gte(column: str, value: Any) -> Condition:
    return Condition(column, ">=", value)


def is_in(column: str, values: Sequence[Any]) -> Condition:
    return Condition(column, "in", list(values))


def is_null(column: str) -> Condition:
    return Condition(column, "is null")


def not_null(column: str) -> Condition:
    return Condition(column, "is not null")


Where = Optional[List[Condition]]


class Gateway(ABC):
    """Create/read/update/delete interface over the relational store."""

    @abstractmethod
    async def insert(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Insert rows and return them as stored."""

    @abstractmethod
    async def select(
        self,
        table: str,
        where: Where = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return matching rows."""

    @abstractmethod
    async def update(self, table: str, values: Dict[str, Any], where: Where) -> List[Dict[str, Any]]:
        """Apply values to matching rows and return the updated rows."""

    @abstractmethod
    async def delete(self, table: str, where: Where) -> List[Dict[str, Any]]:
        """Delete matching rows and return them."""

    @abstractmethod
    def transaction(self):
        """Async context manager yielding a gateway whose writes commit or roll back together."""


def check_table(table: str) -> str:
    if table not in TABLES:
        raise ValueError(f"Unknown table: {table}")
    return table


def check_column(column: str) -> str:
    if not _IDENTIFIER.match(column):
        raise ValueError(f"Invalid column name: {column}")
    return column


def build_where(where: Where, start: int = 1) -> Tuple[str, List[Any]]:
    """Render conditions to a WHERE clause with $n placeholders starting at `start`."""
    if not where:
        return "", []

    clauses = []
    values = []
    param_num = start
    for cond in where:
        column = check_column(cond.column)
        if cond.op not in OPERATORS:
            raise ValueError(f"Unsupported operator: {cond.op}")
        if cond.op in ("is null", "is not null"):
            clauses.append(f"{column} {cond.op.upper()}")
        elif cond.op == "in":
            clauses.append(f"{column} = ANY(${param_num})")
            values.append(list(cond.value))
            param_num += 1
        else:
            clauses.append(f"{column} {cond.op} ${param_num}")
            values.append(cond.value)
            param_num += 1
    return " WHERE " + " AND ".join(clauses), values


def _row_to_dict(row) -> Dict[str, Any]:
    result = dict(row)
    for key, value in result.items():
        if isinstance(value, uuid.UUID):
            result[key] = str(value)
    return result


class PostgresGateway(Gateway):
    """Gateway over an asyncpg pool, or over a single connection inside a transaction."""

    def __init__(self, pool=None, conn=None):
        if pool is None and conn is None:
            raise ValueError("PostgresGateway needs a pool or a connection")
        self._pool = pool
        self._conn = conn

    @asynccontextmanager
    async def _acquire(self):
        if self._conn is not None:
            yield self._conn
        else:
            async with self._pool.acquire() as conn:
                yield conn

    async def _fetch(self, query: str, values: List[Any]) -> List[Dict[str, Any]]:
        try:
            async with self._acquire() as conn:
                rows = await conn.fetch(query, *values)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error(f"Database error: {type(e).__name__}: {e} (query: {query[:200]})")
            raise PersistenceError(f"Database error: {e}") from e
        return [_row_to_dict(row) for row in rows]

    async def insert(self, table, rows):
        check_table(table)
        if not rows:
            return []

        columns = [check_column(c) for c in rows[0].keys()]
        values = []
        groups = []
        param_num = 1
        for row in rows:
            if set(row.keys()) != set(columns):
                raise ValueError("All inserted rows must share the same columns")
            placeholders = []
            for column in columns:
                placeholders.append(f"${param_num}")
                values.append(row[column])
                param_num += 1
            groups.append(f"({', '.join(placeholders)})")

        query = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES {', '.join(groups)} RETURNING *"
        )
        return await self._fetch(query, values)

    async def select(self, table, where=None, order_by=None, descending=False, limit=None):
        check_table(table)
        where_sql, values = build_where(where)
        query = f"SELECT * FROM {table}{where_sql}"
        if order_by:
            query += f" ORDER BY {check_column(order_by)} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            query += f" LIMIT {int(limit)}"
        return await self._fetch(query, values)

    async def update(self, table, values, where):
        check_table(table)
        if not values:
            raise ValueError("No values to update")

        set_clauses = []
        params = []
        param_num = 1
        for column, value in values.items():
            set_clauses.append(f"{check_column(column)} = ${param_num}")
            params.append(value)
            param_num += 1

        where_sql, where_values = build_where(where, start=param_num)
        query = f"UPDATE {table} SET {', '.join(set_clauses)}{where_sql} RETURNING *"
        return await self._fetch(query, params + where_values)

    async def delete(self, table, where):
        check_table(table)
        where_sql, values = build_where(where)
        if not where_sql:
            raise ValueError("Refusing to delete without conditions")
        return await self._fetch(f"DELETE FROM {table}{where_sql} RETURNING *", values)

    @asynccontextmanager
    async def transaction(self):
        if self._conn is not None:
            async with self._conn.transaction():
                yield self
            return

        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    yield PostgresGateway(conn=conn)
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            logger.error(f"Transaction failed: {type(e).__name__}: {e}")
            raise PersistenceError(f"Database error: {e}") from e
