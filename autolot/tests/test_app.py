"""Tests for app wiring: health, error envelope, configuration checks."""

import pytest
from fastapi.testclient import TestClient

from autolot.api.app import create_app
from autolot.config.settings import Settings


class TestApp:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_unknown_route_uses_error_envelope(self, client):
        resp = client.get("/api/v1/nothing-here")
        assert resp.status_code == 404
        assert resp.json() == {"status": "error", "code": "NOT_FOUND", "message": "Not Found"}

    def test_malformed_json(self, client):
        resp = client.post(
            "/api/v1/inventory/vehicle",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    def test_lifespan_creates_sqlite_schema(self, settings, database, blob_store):
        app = create_app(settings=settings, database=database, blob_store=blob_store)
        with TestClient(app) as c:
            assert c.get("/api/v1/services").status_code == 200


class TestSettings:
    def test_production_requires_blob_storage(self):
        settings = Settings(environment="production", database_url="postgresql://u:p@db/autolot")
        with pytest.raises(ValueError, match="AZURE_BLOB_CONN_STRING"):
            settings.validate_production()

    def test_production_rejects_sqlite(self):
        settings = Settings(
            environment="production",
            azure_blob_conn_string="DefaultEndpointsProtocol=https;AccountName=x;AccountKey=eA==",
            database_url="sqlite:///./prod.db",
        )
        with pytest.raises(ValueError, match="PostgreSQL"):
            settings.validate_production()

    def test_development_defaults_pass(self):
        Settings(environment="development").validate_production()
