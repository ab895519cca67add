"""
SQL rendering for the Postgres gateway, checked against a fake asyncpg connection.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from ideaflow.errors import PersistenceError
from ideaflow.gateway import (
    PostgresGateway,
    build_where,
    check_column,
    check_table,
    eq,
    is_in,
    is_null,
    lt,
)


def fake_pool(rows=None, error=None):
    conn = MagicMock()
    conn.fetch = AsyncMock(return_value=rows or [], side_effect=error)
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    return pool, conn


def test_build_where():
    sql, values = build_where([eq("user_id", "u1"), lt("due_date", 5), is_null("completed_at"), is_in("id", ("a", "b"))])

    assert sql == " WHERE user_id = $1 AND due_date < $2 AND completed_at IS NULL AND id = ANY($3)"
    assert values == ["u1", 5, ["a", "b"]]


def test_build_where_empty():
    assert build_where(None) == ("", [])


def test_rejects_unknown_names():
    with pytest.raises(ValueError):
        check_table("pg_user")
    with pytest.raises(ValueError):
        check_column("id; DROP TABLE tasks")
    assert check_column("due_date") == "due_date"


@pytest.mark.asyncio
async def test_insert_multiple_rows():
    pool, conn = fake_pool(rows=[{"id": "1"}, {"id": "2"}])
    gateway = PostgresGateway(pool=pool)

    stored = await gateway.insert("tasks", [{"id": "1", "title": "A"}, {"id": "2", "title": "B"}])

    query, *values = conn.fetch.await_args.args
    assert query == "INSERT INTO tasks (id, title) VALUES ($1, $2), ($3, $4) RETURNING *"
    assert values == ["1", "A", "2", "B"]
    assert stored == [{"id": "1"}, {"id": "2"}]


@pytest.mark.asyncio
async def test_select_with_order_and_limit():
    pool, conn = fake_pool()
    await PostgresGateway(pool=pool).select("tasks", [eq("user_id", "u1")], order_by="created_at", descending=True, limit=5)

    query, *values = conn.fetch.await_args.args
    assert query == "SELECT * FROM tasks WHERE user_id = $1 ORDER BY created_at DESC LIMIT 5"
    assert values == ["u1"]


@pytest.mark.asyncio
async def test_update_numbers_where_after_set():
    pool, conn = fake_pool()
    await PostgresGateway(pool=pool).update("tasks", {"status": "completed"}, [eq("id", "t1"), eq("user_id", "u1")])

    query, *values = conn.fetch.await_args.args
    assert query == "UPDATE tasks SET status = $1 WHERE id = $2 AND user_id = $3 RETURNING *"
    assert values == ["completed", "t1", "u1"]


@pytest.mark.asyncio
async def test_delete_requires_conditions():
    pool, conn = fake_pool()
    with pytest.raises(ValueError):
        await PostgresGateway(pool=pool).delete("tasks", [])
    conn.fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_driver_errors_become_persistence_errors():
    pool, _ = fake_pool(error=ConnectionRefusedError("connection refused"))
    with pytest.raises(PersistenceError):
        await PostgresGateway(pool=pool).select("tasks")


@pytest.mark.asyncio
async def test_transaction_uses_one_connection():
    pool, conn = fake_pool(rows=[{"id": "1"}])
    gateway = PostgresGateway(pool=pool)

    async with gateway.transaction() as tx:
        await tx.insert("ideas", [{"id": "1"}])
        await tx.insert("tasks", [{"id": "2"}])

    assert pool.acquire.call_count == 1
    conn.transaction.assert_called_once()
    assert conn.fetch.await_count == 2
