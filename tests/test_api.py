"""
Tests for the FastAPI surface in main.py.
"""
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import main
from utils.metrics import metrics


@pytest.fixture
def client(source, monkeypatch):
    monkeypatch.setattr(main, "APP_SECRET_KEY", None)
    main.app.dependency_overrides[main.get_data_source] = lambda: source
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


class TestForecastEndpoints:

    def test_list_forecasts(self, client, henry_hub):
        response = client.get("/forecasts")
        assert response.status_code == 200
        assert response.json() == [{"id": 1, "template_id": 1, "name": "Henry Hub Natural Gas"}]
        assert "X-Request-ID" in response.headers

    def test_list_vintages(self, client, henry_hub):
        response = client.get("/forecasts/Henry Hub Natural Gas/vintages")
        assert response.status_code == 200
        body = response.json()
        assert [v["title"] for v in body] == ["FY19 Budget", "FY18 Strategic PSP"]
        assert body[1]["source"] == {"table": "ForecastArchive", "record_id": 1}
        assert body[0]["upload_date"] == "Jan 10 2019  9:15AM"

    def test_unknown_forecast_is_404(self, client, henry_hub):
        assert client.get("/forecasts/Nonexistent Fuel/vintages").status_code == 404
        assert client.get("/forecasts/Nonexistent Fuel/data").status_code == 404


class TestSlashInForecastName:
    """Forecast names may contain unit labels such as $/MMBtu."""

    @pytest.fixture
    def coal(self, seeder):
        seeder.add_forecast(4, "Coal PRB $/MMBtu", "Year::|Price::|")
        seeder.add_vintage(4, "FY19 Budget", "Jan 10 2019 9:15AM", [{"Year": "2019", "Price": "1.95"}])
        return seeder

    def test_vintages(self, client, coal):
        response = client.get("/forecasts/Coal PRB $/MMBtu/vintages")
        assert response.status_code == 200
        assert [v["title"] for v in response.json()] == ["FY19 Budget"]

    def test_data(self, client, coal):
        response = client.get("/forecasts/Coal PRB $/MMBtu/data")
        assert response.status_code == 200
        body = response.json()
        assert body["forecast"] == "Coal PRB $/MMBtu"
        assert body["rows"] == [{"Year": "2019", "Price": "1.95"}]


class TestDataEndpoint:

    def test_latest_vintage(self, client, henry_hub):
        response = client.get("/forecasts/Henry Hub Natural Gas/data")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["vintage"] == "FY19 Budget"
        assert body["columns"] == ["Year", "Month", "Price____MMBtu_"]
        assert body["rows"][0] == {"Year": "2019", "Month": "1", "Price____MMBtu_": "3.10"}

    def test_named_vintage(self, client, henry_hub):
        response = client.get("/forecasts/Henry Hub Natural Gas/data", params={"vintage": "FY18 Strategic PSP"})
        assert response.json()["rows"] == [{"Year": "2018", "Month": "6", "Price____MMBtu_": "2.95"}]

    def test_vintage_miss_is_tagged(self, client, henry_hub):
        response = client.get("/forecasts/Henry Hub Natural Gas/data", params={"vintage": "FY99 Nothing"})
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "vintage_not_found"
        assert body["vintage"] is None
        assert body["rows"] == []
        assert body["message"]

    def test_missing_values_are_null(self, client, seeder):
        seeder.add_forecast(3, "Unit Heat Rates", "Unit::|HeatRate::|")
        seeder.add_vintage(3, "FY19 Budget", "Jan 10 2019 9:15AM", [{"Unit": "CT2"}])
        body = client.get("/forecasts/Unit Heat Rates/data").json()
        assert body["rows"] == [{"Unit": "CT2", "HeatRate": None}]

    def test_bad_upload_date_is_500(self, client, henry_hub):
        henry_hub.add_vintage(1, "Broken", "not a date")
        assert client.get("/forecasts/Henry Hub Natural Gas/data").status_code == 500

    def test_database_failure_is_503(self, client, engine, henry_hub):
        with engine.begin() as raw:
            raw.exec_driver_sql("DROP TABLE ForecastData")
        assert client.get("/forecasts/Henry Hub Natural Gas/data").status_code == 503


class TestAppKey:

    def test_key_required_when_configured(self, client, henry_hub, monkeypatch):
        monkeypatch.setattr(main, "APP_SECRET_KEY", "s3cret")
        assert client.get("/forecasts").status_code == 401
        assert client.get("/forecasts", headers={"X-App-Key": "s3cret"}).status_code == 200


class TestShutdown:

    def test_pool_disposed_on_shutdown(self, monkeypatch):
        fake = MagicMock()
        monkeypatch.setattr(main.CPRDataSource, "from_env", classmethod(lambda cls: fake))
        main.get_data_source.cache_clear()
        assert main.get_data_source() is fake

        with TestClient(main.app):
            pass

        fake.dispose.assert_called_once()
        assert main.get_data_source.cache_info().currsize == 0

    def test_no_pool_no_dispose(self, monkeypatch):
        fake = MagicMock()
        monkeypatch.setattr(main.CPRDataSource, "from_env", classmethod(lambda cls: fake))
        main.get_data_source.cache_clear()

        with TestClient(main.app):
            pass

        fake.dispose.assert_not_called()


class TestMetricsEndpoint:

    def test_counts_operations(self, client, henry_hub):
        before = metrics.get_stats()
        client.get("/forecasts/Henry Hub Natural Gas/data", params={"vintage": "FY99 Nothing"})
        after = client.get("/metrics").json()
        assert after["operations"] == before["operations"] + 1
        assert after["vintage_misses"] == before["vintage_misses"] + 1
        assert after["sql_queries"] > before["sql_queries"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
