"""
API tests for the forecast routes.

Routes run against ForecastService with in-memory collaborators.

Run: pytest tests/unit/test_forecast_routes.py -v
"""

from models.forecast import ForecastPeriod
from tests.factories import EXAMPLE_SERIES

BASE = "/api/forecasts"


class TestCalculateEndpoint:

    def test_calculate_example(self, test_client):
        response = test_client.get(f"{BASE}/product/prod-1/calculate", params={"period": "month"})

        assert response.status_code == 200
        body = response.json()
        assert body["algorithm_used"] == "weighted_moving_average"
        assert body["predicted_quantity"] == 379
        assert body["recommended_safety_stock"] == 76
        assert body["confidence_level"] == 50
        assert len(body["methodology"]) == 6

    def test_default_period_is_month(self, test_client):
        response = test_client.get(f"{BASE}/product/prod-1/calculate")

        assert response.json()["period"] == "month"

    def test_invalid_period_is_rejected(self, test_client):
        response = test_client.get(f"{BASE}/product/prod-1/calculate", params={"period": "weekly"})

        assert response.status_code == 422

    def test_unavailable_history_is_503(self, test_client, fake_consumption):
        fake_consumption.failing.add("prod-1")

        response = test_client.get(f"{BASE}/product/prod-1/calculate")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "DATA_UNAVAILABLE"


class TestStoredForecastEndpoints:

    def test_generate_then_read(self, test_client):
        generated = test_client.post(f"{BASE}/product/prod-1/generate")
        stored = test_client.get(f"{BASE}/product/prod-1")

        assert generated.status_code == 200
        assert [f["period"] for f in generated.json()] == ["month", "quarter", "year"]
        assert stored.status_code == 200
        month = stored.json()[0]
        assert month["forecast"]["predicted_quantity"] == 379
        assert month["recommendation"]["reorder_quantity"] == 355

    def test_generate_for_area(self, test_client, memory_store):
        response = test_client.post(f"{BASE}/product/prod-1/generate", json={"area_id": "icu"})

        assert response.status_code == 200
        assert all(f["area_id"] == "icu" for f in response.json())
        assert memory_store.load("prod-1", ForecastPeriod.MONTH, area_id="icu") is not None

    def test_no_stored_forecasts(self, test_client):
        response = test_client.get(f"{BASE}/product/prod-1")

        assert response.status_code == 200
        assert response.json() == []

    def test_summary(self, test_client):
        test_client.post(f"{BASE}/product/prod-1/generate")

        response = test_client.get(f"{BASE}/summary", params={"period": "month"})

        assert response.status_code == 200
        body = response.json()
        assert body["total_forecasts"] == 1
        assert body["total_predicted_quantity"] == 379
        assert body["total_deficit"] == 279
        assert body["medium_confidence_count"] == 1


class TestBulkRunEndpoints:

    def test_generate_all_runs_in_background(self, test_client, fake_consumption):
        fake_consumption.series["prod-2"] = list(EXAMPLE_SERIES)
        fake_consumption.catalog = ["prod-1", "prod-2", "prod-empty"]

        started = test_client.post(f"{BASE}/generate-all", json={"period": "month"})

        assert started.status_code == 202
        run_id = started.json()["run_id"]

        # TestClient runs background tasks before returning
        polled = test_client.get(f"{BASE}/runs/{run_id}")

        assert polled.status_code == 200
        body = polled.json()
        assert body["progress"]["status"] == "completed"
        assert body["report"]["total_attempted"] == 3
        assert len(body["report"]["succeeded"]) == 2
        assert body["report"]["failed"][0]["product_id"] == "prod-empty"

    def test_generate_all_catalog_failure_marks_run_failed(self, test_client, fake_consumption):
        fake_consumption.catalog_error = RuntimeError("timeout")

        started = test_client.post(f"{BASE}/generate-all")
        polled = test_client.get(f"{BASE}/runs/{started.json()['run_id']}")

        assert polled.json()["progress"]["status"] == "failed"
        assert polled.json()["report"] is None

    def test_unknown_run_is_404(self, test_client):
        response = test_client.get(f"{BASE}/runs/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "BATCH_RUN_NOT_FOUND"

    def test_cancel_run(self, test_client):
        from services import batch_run_service
        run = batch_run_service.start_run()

        response = test_client.post(f"{BASE}/runs/{run.run_id}/cancel")

        assert response.status_code == 200
        assert run.cancel_requested is True


class TestHealthEndpoints:

    def test_root(self, test_client):
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["endpoints"]["forecasts"] == "/api/forecasts"
