"""
Shared test fixtures.

See STANDARDS_TESTING.md for patterns.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings require these at import time
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import pytest
from unittest.mock import patch
from copy import deepcopy
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Generator, Optional
from uuid import uuid4

from postgrest.exceptions import APIError


# ===================
# MOCK SUPABASE CLIENT
# ===================
#
# In-memory tables with real filtering, so conditional updates
# (update ... where status = X) behave like PostgREST: they return
# only the rows they actually changed.

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    return value


class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: Any = None, count: int = None):
        self.data = data if data is not None else []
        self.count = count if count is not None else (
            len(self.data) if isinstance(self.data, list) else 1
        )


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable methods."""

    def __init__(self, client: "MockSupabaseClient", table_name: str, action: str, payload: Any = None):
        self._client = client
        self._table_name = table_name
        self._action = action
        self._payload = payload
        self._filters: list[Callable[[dict], bool]] = []
        self._order: list[tuple[str, bool]] = []
        self._limit: Optional[int] = None
        self._is_single = False

    def select(self, *args, **kwargs):
        return self

    def eq(self, column, value):
        value = _plain(value)
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        value = _plain(value)
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        allowed = [_plain(v) for v in values]
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self._order.append((column, desc))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def single(self):
        self._is_single = True
        return self

    def execute(self) -> MockSupabaseResponse:
        self._client.check_failure(self._table_name, self._action)
        rows = self._client.rows(self._table_name)

        if self._action == "insert":
            data = self._insert(rows)
        elif self._action == "update":
            data = self._update(rows)
        elif self._action == "delete":
            data = [r for r in rows if self._matches(r)]
            rows[:] = [r for r in rows if not self._matches(r)]
        else:
            data = [r for r in rows if self._matches(r)]
            for column, desc in reversed(self._order):
                data.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
            if self._limit is not None:
                data = data[:self._limit]

        data = deepcopy(data)
        if self._is_single:
            return MockSupabaseResponse(data=data[0] if data else None)
        return MockSupabaseResponse(data=data, count=len(data))

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def _insert(self, rows: list[dict]) -> list[dict]:
        payload = self._payload if isinstance(self._payload, list) else [self._payload]
        inserted = []
        for item in payload:
            row = {k: _plain(v) for k, v in item.items()}
            row.setdefault("id", str(uuid4()))
            row.setdefault("created_at", _now())
            row.setdefault("updated_at", row["created_at"])
            rows.append(row)
            inserted.append(row)
        return inserted

    def _update(self, rows: list[dict]) -> list[dict]:
        changes = {k: _plain(v) for k, v in self._payload.items()}
        updated = []
        for row in rows:
            if self._matches(row):
                row.update(changes)
                row["updated_at"] = _now()
                updated.append(row)
        return updated


class MockSupabaseTable:
    """Mock Supabase table."""

    def __init__(self, client: "MockSupabaseClient", name: str):
        self._client = client
        self._name = name

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self._client, self._name, "select")

    def insert(self, data):
        return MockSupabaseQuery(self._client, self._name, "insert", data)

    def update(self, data):
        return MockSupabaseQuery(self._client, self._name, "update", data)

    def delete(self):
        return MockSupabaseQuery(self._client, self._name, "delete")


class MockRPCCall:
    """Deferred RPC call; the handler runs on execute()."""

    def __init__(self, handler: Callable[[dict], Any], params: dict):
        self._handler = handler
        self._params = params

    def execute(self) -> MockSupabaseResponse:
        return MockSupabaseResponse(data=self._handler(self._params))


class MockSupabaseClient:
    """Mock Supabase client backed by in-memory tables."""

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._rpc: dict[str, Callable[[dict], Any]] = {}
        self._failures: dict[tuple[str, str], Exception] = {}

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Configure mock data for a table."""
        self._tables[table_name] = [dict(row) for row in data]

    def rows(self, table_name: str) -> list[dict]:
        """Live rows of a table (mutations are visible to later queries)."""
        return self._tables.setdefault(table_name, [])

    def table(self, name: str) -> MockSupabaseTable:
        return MockSupabaseTable(self, name)

    def register_rpc(self, name: str, handler: Callable[[dict], Any]):
        self._rpc[name] = handler

    def rpc(self, name: str, params: dict = None) -> MockRPCCall:
        if name not in self._rpc:
            raise APIError({"message": f"function {name} does not exist", "code": "PGRST202"})
        return MockRPCCall(self._rpc[name], params or {})

    def fail_on(self, table_name: str, action: str, error: Exception):
        """Make every <action> on a table raise error."""
        self._failures[(table_name, action)] = error

    def check_failure(self, table_name: str, action: str):
        error = self._failures.get((table_name, action))
        if error is not None:
            raise error


class PriceChangeFunction:
    """
    In-memory apply_item_price_change.

    Updates the active price and appends one audit row per call.
    Item codes in `errors` raise the mapped exception instead.
    """

    def __init__(self, client: MockSupabaseClient):
        self.client = client
        self.errors: dict[str, Exception] = {}
        self.calls: list[dict] = []

    def reject(self, item_code: str, message: str = "new row violates check constraint"):
        self.errors[item_code] = APIError({"message": message, "code": "23514"})

    def __call__(self, params: dict) -> list[dict]:
        self.calls.append(params)
        code = params["p_item_code"]
        if code in self.errors:
            raise self.errors[code]

        prices = self.client.rows("item_pricing_master")
        active = [p for p in prices if p["item_code"] == code and p.get("is_active")]
        if active:
            active[0]["current_price"] = params["p_new_price"]
        else:
            prices.append({
                "id": str(uuid4()),
                "item_code": code,
                "current_price": params["p_new_price"],
                "is_active": True,
            })

        entry = {
            "id": str(uuid4()),
            "item_code": code,
            "old_price": params["p_old_price"],
            "new_price": params["p_new_price"],
            "change_reason": params["p_change_reason"],
            "changed_by": params["p_changed_by"],
            "changed_at": _now(),
            "effective_date": params["p_effective_date"],
            "price_source": params["p_price_source"],
            "bulk_operation_id": params["p_bulk_operation_id"],
        }
        self.client.rows("valuation_price_history").append(entry)
        return [dict(entry)]


# ===================
# FIXTURES
# ===================

SERVICE_MODULES = [
    "services.item_master_service",
    "services.pricing_upload_service",
    "services.pricing_review_service",
    "services.pricing_store_service",
    "services.bulk_operation_service",
]

SINGLETONS = [
    ("services.item_master_service", "_item_master_service"),
    ("services.pricing_upload_service", "_pricing_upload_service"),
    ("services.pricing_review_service", "_pricing_review_service"),
    ("services.pricing_store_service", "_pricing_store_service"),
    ("services.bulk_operation_service", "_bulk_operation_service"),
    ("services.pricing_commit_service", "_pricing_commit_service"),
    ("services.bulk_monitor_service", "_bulk_monitor_service"),
]


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("item_master", [
                {"item_code": "A1", "item_name": "Widget"}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def price_function(mock_supabase) -> PriceChangeFunction:
    """The apply_item_price_change RPC, registered on the mock client."""
    function = PriceChangeFunction(mock_supabase)
    mock_supabase.register_rpc("apply_item_price_change", function)
    return function


@pytest.fixture
def mock_db(mock_supabase, price_function) -> Generator:
    """
    Patch the database client with mock.

    Service singletons are reset so every test builds fresh services
    on top of its own mock client.

    Usage:
        def test_something(mock_db):
            mock_db.set_table_data("item_master", [...])
            # Now any code using get_supabase_client() gets the mock
    """
    patches = [patch("config.database.get_supabase_client", return_value=mock_supabase)]
    patches += [
        patch(f"{module}.get_supabase_client", return_value=mock_supabase)
        for module in SERVICE_MODULES
    ]
    patches.append(patch("services.pricing_store_service.get_admin_client", return_value=None))
    patches += [patch(f"{module}.{name}", None) for module, name in SINGLETONS]

    for p in patches:
        p.start()
    try:
        yield mock_supabase
    finally:
        for p in reversed(patches):
            p.stop()


@pytest.fixture
def priced_items(mock_db) -> MockSupabaseClient:
    """
    Item master with prices:
        A1 = 100.00, B2 = 80.00, C3 = 0 (zero price), D4 = unpriced
    """
    from tests.factories import ItemFactory

    ItemFactory.seed(mock_db, {
        "A1": Decimal("100.00"),
        "B2": Decimal("80.00"),
        "C3": Decimal("0"),
        "D4": None,
    })
    return mock_db


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    Create FastAPI test client with mocked database.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_db):
            mock_db.set_table_data("item_master", [...])
            response = test_client_with_mock_db.get("/api/pricing-uploads")
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)
