"""Shared test configuration."""

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

# Ensure the project root is in the path so imports work
project_root = Path(__file__).parent.parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from autolot.config.settings import Settings  # noqa: E402
from autolot.database.db import Database  # noqa: E402
from autolot.services.blob_store import MemoryBlobStore  # noqa: E402


_SAMPLE_VEHICLE = {
    "make": "Toyota",
    "model": "Camry",
    "year": 2022,
    "price": 24500,
    "mileage": 18000,
    "vin": "4T1BF1FK5CU123456",
    "exterior_color": "Silver",
    "interior_color": "Black",
    "transmission": "automatic",
    "fuel_type": "gasoline",
    "engine": "2.5L I4",
    "body_type": "sedan",
    "condition": "used",
    "description": "One owner, clean history",
}


@pytest.fixture
def sample_vehicle():
    """A valid create payload; tests mutate their own copy."""
    return dict(_SAMPLE_VEHICLE)


@pytest.fixture
def database():
    db = Database(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def session(database):
    s = database.session()
    yield s
    s.close()


@pytest.fixture
def blob_store():
    return MemoryBlobStore(upload_attempts=1)


@pytest.fixture
def settings():
    return Settings(database_url="sqlite:///:memory:", azure_blob_conn_string="", environment="test")


@pytest.fixture
def client(settings, database, blob_store):
    from autolot.api.app import create_app
    app = create_app(settings=settings, database=database, blob_store=blob_store)
    return TestClient(app)
