"""Pytest configuration and fixtures."""

import json
from datetime import datetime, timezone
from typing import Callable, Generator, Iterable, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from qrmenu.core.config import Settings, get_settings
from qrmenu.main import app
from qrmenu.services.catalog import CatalogProvider, reset_catalog
from qrmenu.services.orders import (
    EphemeralOrderStore,
    RemoteOrderStore,
    SchemaAdaptiveOrderStore,
    reset_order_store,
)
from qrmenu.services.ordering import OrderService, get_order_service, reset_order_service


LEGACY_COLUMNS = ("id", "qr_id", "menu_id", "timestamp")
FULL_COLUMNS = LEGACY_COLUMNS + (
    "table_id", "price", "paid", "paid_at", "served", "served_at",
)
COLUMN_DEFAULTS = {"paid": False, "served": False, "price": 0}
RESERVED_PARAMS = {"select", "order", "limit", "columns", "on_conflict"}


class FakePostgrest:
    """
    Minimal PostgREST table behind httpx.MockTransport.

    Only the columns passed in exist. Naming any other column in a select,
    filter or body gets the same error a real Supabase project returns.
    """

    def __init__(self, columns: Iterable[str] = FULL_COLUMNS, table: str = "orders"):
        self.columns = set(columns)
        self.table = table
        self.rows: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.fail_with: Optional[httpx.Response] = None
        self.fail_next: list[httpx.Response] = []
        self._next_id = 1

    # -- test helpers ---------------------------------------------------------

    def seed(self, **row) -> dict:
        record = {"id": self._next_id, "timestamp": _now()}
        record.update({c: v for c, v in COLUMN_DEFAULTS.items() if c in self.columns})
        record.update(row)
        self._next_id += 1
        self.rows.append(record)
        return record

    def add_columns(self, *columns: str) -> None:
        self.columns.update(columns)

    # -- transport ------------------------------------------------------------

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_next:
            return self.fail_next.pop(0)
        if self.fail_with is not None:
            return self.fail_with
        if request.url.path != f"/rest/v1/{self.table}":
            return _error(404, "42P01", f'relation "public.{request.url.path}" does not exist')

        params = request.url.params
        select = [c for c in params.get("select", "*").split(",") if c]
        filters = {k: v for k, v in params.items() if k not in RESERVED_PARAMS}
        body = json.loads(request.content) if request.content else None

        for column in [c for c in select if c != "*"] + list(filters):
            if column not in self.columns:
                return _error(400, "42703", f"column {self.table}.{column} does not exist")
        for column in _body_columns(body):
            if column not in self.columns:
                return _error(
                    400,
                    "PGRST204",
                    f"Could not find the '{column}' column of '{self.table}' in the schema cache",
                )

        if request.method == "GET":
            rows = self._filter(filters)
            total = len(rows)
            if "order" in params:
                rows.sort(key=lambda r: (r["timestamp"], r["id"]), reverse=True)
            if "limit" in params:
                rows = rows[: int(params["limit"])]
            headers = {}
            if "count=exact" in request.headers.get("prefer", ""):
                headers["Content-Range"] = f"0-{len(rows) - 1}/{total}" if rows else f"*/{total}"
            return httpx.Response(200, json=[_project(r, select) for r in rows], headers=headers)

        if request.method == "POST":
            created = [self.seed(**row) for row in (body if isinstance(body, list) else [body])]
            return httpx.Response(201, json=[_project(r, select) for r in created])

        if request.method == "PATCH":
            rows = self._filter(filters)
            for row in rows:
                row.update(body)
            return httpx.Response(200, json=[_project(r, select) for r in rows])

        if request.method == "DELETE":
            rows = self._filter(filters)
            self.rows = [r for r in self.rows if r not in rows]
            return httpx.Response(200, json=[_project(r, select) for r in rows])

        return _error(405, "PGRST100", f"Unsupported method {request.method}")

    def _filter(self, filters: dict) -> list[dict]:
        return [r for r in self.rows if all(_matches(r.get(c), f) for c, f in filters.items())]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status: int, code: str, message: str) -> httpx.Response:
    return httpx.Response(status, json={"code": code, "message": message, "details": None, "hint": None})


def _body_columns(body) -> set:
    if isinstance(body, list):
        return {k for row in body for k in row}
    if isinstance(body, dict):
        return set(body)
    return set()


def _matches(value, condition: str) -> bool:
    if condition.startswith("eq."):
        return value is not None and str(value) == condition[3:]
    if condition == "not.is.true":
        return value is not True
    raise AssertionError(f"Unsupported filter {condition}")


def _project(row: dict, select: list) -> dict:
    if "*" in select:
        return dict(row)
    return {c: row.get(c) for c in select}


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def reset_services():
    """Drop the process-wide singletons built by the app lifespan."""
    yield
    reset_order_service()
    reset_order_store()
    reset_catalog()


@pytest.fixture
def catalog() -> CatalogProvider:
    """Catalog backed by the built-in menu."""
    return CatalogProvider(None)


@pytest.fixture
def memory_store() -> EphemeralOrderStore:
    return EphemeralOrderStore()


@pytest.fixture
def service(memory_store, catalog) -> OrderService:
    return OrderService(store=memory_store, catalog=catalog)


@pytest.fixture
def postgrest_factory(catalog) -> Callable[..., tuple]:
    """Build (fake table, remote store, adaptive store) for a given column set."""
    def factory(columns: Iterable[str] = FULL_COLUMNS):
        fake = FakePostgrest(columns)
        remote = RemoteOrderStore(
            url="https://test-project.supabase.co",
            api_key="test-anon-key",
            transport=httpx.MockTransport(fake),
        )
        adaptive = SchemaAdaptiveOrderStore(remote, price_lookup=catalog.price_for)
        return fake, remote, adaptive

    return factory


@pytest.fixture
def make_client() -> Generator[Callable[..., TestClient], None, None]:
    """
    Create test clients around a given service (and optionally settings).

    Server exceptions are not raised so error status codes can be asserted.
    """
    clients = []

    def factory(service: OrderService, settings: Optional[Settings] = None) -> TestClient:
        app.dependency_overrides[get_order_service] = lambda: service
        if settings is not None:
            app.dependency_overrides[get_settings] = lambda: settings
        test_client = TestClient(app, raise_server_exceptions=False)
        test_client.__enter__()
        clients.append(test_client)
        return test_client

    yield factory

    for test_client in clients:
        test_client.__exit__(None, None, None)
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client, service) -> TestClient:
    """Test client over an in-memory store."""
    return make_client(service)
