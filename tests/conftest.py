# tests/conftest.py

"""
Pytest configuration and shared fixtures for testing.
"""

import asyncio
from typing import Any, Callable, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

from core.permission_helpers import build_permission_services
from core.permission_store import PermissionStore
from dependencies.auth import CurrentUser, get_current_user
from main import create_app


UNIQUE_KEY = ("role", "resource", "action")


# ============================================================
# In-memory stand-in for the Supabase async query builder
# ============================================================

class FakeResult:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, table: "FakeTable", op: str, payload: Optional[Dict[str, Any]] = None):
        self.table = table
        self.op = op
        self.payload = payload
        self.filters: List[tuple] = []
        self._limit: Optional[int] = None

    def eq(self, column: str, value):
        self.filters.append((column, value))
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in self.filters)

    async def execute(self) -> FakeResult:
        self.table.client.calls.append((self.op, self.table.name, tuple(self.filters), self.payload))

        # Yield so concurrent writers actually interleave
        await asyncio.sleep(0)

        hook = self.table.client.before_execute
        if hook is not None:
            hook(self)

        rows = self.table.rows

        if self.op == "select":
            found = [dict(row) for row in rows if self._matches(row)]
            if self._limit is not None:
                found = found[: self._limit]
            return FakeResult(found)

        if self.op == "insert":
            key = tuple(self.payload.get(column) for column in UNIQUE_KEY)
            if any(tuple(row.get(column) for column in UNIQUE_KEY) == key for row in rows):
                raise APIError({
                    "code": "23505",
                    "message": 'duplicate key value violates unique constraint "permissions_role_resource_action_key"',
                })
            row = {"id": len(rows) + 1, **self.payload}
            rows.append(row)
            return FakeResult([dict(row)])

        if self.op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(self.payload)
                    updated.append(dict(row))
            return FakeResult(updated)

        raise AssertionError(f"Unsupported fake op {self.op}")


class FakeTable:
    def __init__(self, client: "FakeSupabaseClient", name: str):
        self.client = client
        self.name = name

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return self.client.tables.setdefault(self.name, [])

    def select(self, *columns):
        return FakeQuery(self, "select")

    def insert(self, payload: Dict[str, Any]):
        return FakeQuery(self, "insert", dict(payload))

    def update(self, payload: Dict[str, Any]):
        return FakeQuery(self, "update", dict(payload))


class FakeSupabaseClient:
    """
    Enough of supabase.AsyncClient for the permission store.

    `before_execute(query)` can raise to simulate outages or races.
    """

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {"permissions": list(rows or [])}
        self.calls: List[tuple] = []
        self.before_execute: Optional[Callable[[FakeQuery], None]] = None

    def table(self, name: str) -> FakeTable:
        return FakeTable(self, name)

    @property
    def permission_rows(self) -> List[Dict[str, Any]]:
        return self.tables["permissions"]

    def count(self, op: str) -> int:
        return sum(1 for call in self.calls if call[0] == op)


def permission_row(role: str, resource: str, action: str, allowed: bool = True) -> Dict[str, Any]:
    return {"role": role, "resource": resource, "action": action, "allowed": allowed}


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def fake_supabase() -> FakeSupabaseClient:
    return FakeSupabaseClient([
        permission_row("sales", "case", "view"),
        permission_row("sales", "case", "create"),
        permission_row("sales", "files", "upload", allowed=False),
        permission_row("it", "settings", "system"),
        permission_row("it", "settings", "email-config"),
        permission_row("it", "logs", "audit"),
        permission_row("it", "settings", "permission-matrix"),
        permission_row("driver", "delivery", "delivered-hospital"),
    ])


@pytest.fixture
def permission_store(fake_supabase) -> PermissionStore:
    return PermissionStore(client=fake_supabase, table="permissions")


@pytest.fixture
def permission_services(permission_store):
    return build_permission_services(store=permission_store, ttl_seconds=0)


@pytest.fixture(scope="function")
def app(permission_services):
    """Create a test FastAPI application instance."""
    return create_app(permission_services)


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI application."""
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def as_user(app, user: CurrentUser):
    """Bypass Supabase token validation for router tests."""
    app.dependency_overrides[get_current_user] = lambda: user


@pytest.fixture
def mock_admin_user():
    return CurrentUser(id="admin-user-id", email="admin@example.com", role="admin")


@pytest.fixture
def mock_it_user():
    return CurrentUser(id="it-user-id", email="it@example.com", role="it")


@pytest.fixture
def mock_sales_user():
    return CurrentUser(id="sales-user-id", email="sales@example.com", role="sales")
