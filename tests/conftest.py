"""
Shared fixtures: an in-memory gateway, a pending store, JSON builders for
model output and an authenticated TestClient with dependencies overridden.
"""
import copy
import json
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import jwt
import pytest
from fastapi.testclient import TestClient

from ideaflow import config
from ideaflow.errors import PersistenceError
from ideaflow.gateway import TABLES, Gateway, check_table
from ideaflow.pending import PendingStore

USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"

# Wednesday
NOW = datetime(2026, 10, 21, 15, 30, tzinfo=timezone.utc)


def _matches(row, cond):
    value = row.get(cond.column)
    if cond.op == "is null":
        return value is None
    if cond.op == "is not null":
        return value is not None
    if cond.op == "in":
        return value in cond.value
    if cond.op == "=":
        return value == cond.value
    if cond.op == "!=":
        return value != cond.value
    if value is None:
        return False
    if cond.op == "<":
        return value < cond.value
    if cond.op == "<=":
        return value <= cond.value
    if cond.op == ">":
        return value > cond.value
    if cond.op == ">=":
        return value >= cond.value
    raise ValueError(f"Unsupported operator: {cond.op}")


class InMemoryGateway(Gateway):
    def __init__(self):
        self.tables = {name: [] for name in TABLES}
        self.fail_inserts = set()

    def _filter(self, table, where):
        return [row for row in self.tables[check_table(table)] if all(_matches(row, c) for c in where or [])]

    async def insert(self, table, rows):
        check_table(table)
        if table in self.fail_inserts:
            raise PersistenceError(f"insert into {table} rejected")
        stored = []
        for row in rows:
            row = copy.deepcopy(row)
            row.setdefault("id", str(uuid.uuid4()))
            self.tables[table].append(row)
            stored.append(copy.deepcopy(row))
        return stored

    async def select(self, table, where=None, order_by=None, descending=False, limit=None):
        rows = self._filter(table, where)
        if order_by:
            present = [r for r in rows if r.get(order_by) is not None]
            missing = [r for r in rows if r.get(order_by) is None]
            rows = sorted(present, key=lambda r: r[order_by], reverse=descending) + missing
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def update(self, table, values, where):
        rows = self._filter(table, where)
        for row in rows:
            row.update(copy.deepcopy(values))
        return copy.deepcopy(rows)

    async def delete(self, table, where):
        doomed = self._filter(table, where)
        self.tables[table] = [row for row in self.tables[table] if row not in doomed]
        return copy.deepcopy(doomed)

    @asynccontextmanager
    async def transaction(self):
        snapshot = copy.deepcopy(self.tables)
        try:
            yield self
        except BaseException:
            self.tables = snapshot
            raise


def ai_task(**overrides):
    task = {
        "title": "Buy cake ingredients",
        "description": "Flour, eggs, sugar and chocolate",
        "priority": "high",
        "estimated_duration": "1h",
        "suggested_due_date": None,
        "needs_user_input": False,
        "timeline_question": None,
    }
    task.update(overrides)
    return task


def ai_json(tasks, message="Got it!", suggestions=None):
    body = {"message": message, "tasks": tasks}
    if suggestions is not None:
        body["suggestions"] = suggestions
    return json.dumps(body)


def make_token(user_id=USER_ID, secret=None, expires_in=timedelta(hours=1)):
    payload = {
        "sub": user_id,
        "aud": config.JWT_AUDIENCE,
        "email": "user@example.com",
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, secret or config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def store():
    return PendingStore(ttl=timedelta(minutes=60))


@pytest.fixture
def llm():
    return AsyncMock(return_value=ai_json([ai_task()]))


@pytest.fixture
def client(gateway, store, llm):
    from ideaflow.server import app, get_gateway, get_generate, get_pending_store

    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_generate] = lambda: llm
    app.dependency_overrides[get_pending_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def service_headers(monkeypatch):
    monkeypatch.setattr(config, "SERVICE_KEY", "test-service-key")
    return {"X-Service-Key": "test-service-key"}
