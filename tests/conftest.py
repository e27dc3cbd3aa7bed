"""
Shared test fixtures.

The forecast engine is tested against in-memory collaborators; the
Supabase-backed services against a chainable mock client.
"""

import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import pytest
from unittest.mock import patch
from typing import Generator, Optional

from config.settings import Settings
from services.forecast_service import ForecastService
from services.forecast_store import InMemoryForecastStore
from tests.factories import EXAMPLE_SERIES, FakeConsumptionService


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable methods. Filters are ignored."""

    def __init__(self, data: list = None, error: Optional[Exception] = None, calls: list = None):
        self._data = data or []
        self._error = error
        self.calls = calls if calls is not None else []

    def _record(self, name, *args):
        self.calls.append((name, *args))
        return self

    def select(self, *args, **kwargs):
        return self._record("select", *args)

    def upsert(self, data, **kwargs):
        self._data = [data] if isinstance(data, dict) else data
        return self._record("upsert", kwargs.get("on_conflict"))

    def eq(self, column, value):
        return self._record("eq", column, value)

    def gte(self, column, value):
        return self._record("gte", column, value)

    def order(self, column, **kwargs):
        return self._record("order", column)

    def limit(self, count):
        return self._record("limit", count)

    def execute(self) -> MockSupabaseResponse:
        if self._error is not None:
            raise self._error
        return MockSupabaseResponse(data=self._data)


class MockSupabaseTable:
    """Mock Supabase table with configurable responses."""

    def __init__(self, data: list = None, error: Optional[Exception] = None, calls: list = None):
        self._data = data or []
        self._error = error
        self._calls = calls

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self._data.copy(), self._error, self._calls).select(*args)

    def upsert(self, data, **kwargs):
        return MockSupabaseQuery([], self._error, self._calls).upsert(data, **kwargs)


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables = {}
        self.calls: dict[str, list] = {}

    def set_table_data(self, table_name: str, data: list):
        """Configure mock data for a table."""
        self._tables[table_name] = {"data": data, "error": None}

    def set_table_error(self, table_name: str, error: Exception):
        """Make every query on a table raise."""
        self._tables[table_name] = {"data": [], "error": error}

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        config = self._tables.get(name, {"data": [], "error": None})
        return MockSupabaseTable(config["data"], config["error"], self.calls.setdefault(name, []))


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("products", [{"id": "1"}])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database clients with the mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("stock_history", [...])
            # Now ConsumptionService() and SupabaseForecastStore() use the mock
    """
    with patch("services.consumption_service.get_supabase_client", return_value=mock_supabase):
        with patch("services.forecast_store.get_supabase_client", return_value=mock_supabase):
            with patch("services.forecast_store.get_admin_client", return_value=None):
                yield mock_supabase


@pytest.fixture
def test_settings() -> Settings:
    """Settings with defaults and a short collaborator timeout."""
    return Settings(collaborator_timeout_seconds=2.0, forecast_max_workers=3)


@pytest.fixture
def fake_consumption() -> FakeConsumptionService:
    """History for one product matching the worked example."""
    return FakeConsumptionService(
        series={"prod-1": list(EXAMPLE_SERIES)},
        stock={"prod-1": 100}
    )


@pytest.fixture
def memory_store() -> InMemoryForecastStore:
    return InMemoryForecastStore()


@pytest.fixture
def forecast_service(fake_consumption, memory_store, test_settings) -> ForecastService:
    """
    ForecastService wired to in-memory collaborators.

    Usage:
        def test_something(forecast_service, fake_consumption):
            fake_consumption.series["prod-2"] = [5, 5, 5]
            result = forecast_service.compute_forecast("prod-2", "month")
    """
    return ForecastService(
        consumption_service=fake_consumption,
        store=memory_store,
        config=test_settings
    )


@pytest.fixture(autouse=True)
def reset_batch_runs():
    """Each test starts with an empty run registry."""
    from services import batch_run_service
    batch_run_service.clear_runs()
    yield
    batch_run_service.clear_runs()


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(forecast_service):
    """
    FastAPI test client whose routes use the in-memory forecast service.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/api/forecasts/product/prod-1/calculate")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    with patch("routes.forecasts.get_forecast_service", return_value=forecast_service):
        yield TestClient(app)
