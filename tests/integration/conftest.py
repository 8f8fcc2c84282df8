"""Integration test fixtures: a real SQLite file, fake quote providers, no network."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from folio_tracker.api.app import create_app
from folio_tracker.core.config import APIConfig, MonitoringConfig, StorageConfig, TrackerConfig


def _make_config(tmp_path: Path, api_key: str | None = None, **monitoring) -> TrackerConfig:
    return TrackerConfig(
        storage=StorageConfig(sqlite_path=str(tmp_path / "integration.db")),
        monitoring=MonitoringConfig(**{"enabled": False, **monitoring}),
        api=APIConfig(api_key=api_key),
    )


@pytest.fixture
def integration_config(tmp_path: Path) -> TrackerConfig:
    return _make_config(tmp_path)


@pytest.fixture
def quotes(fake_provider):
    """Primary and backup providers; tests mutate ``.prices`` to script outcomes."""
    return [fake_provider("primary"), fake_provider("backup")]


@pytest.fixture
def client(integration_config, quotes):
    app = create_app(config=integration_config, providers=quotes)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def add_holding(client):
    """POST a holding and return the response body."""

    def _add(**overrides) -> dict:
        payload = dict(symbol="AAPL", name="Apple Inc.", quantity=10, average_buy_price=100.0)
        payload.update(overrides)
        response = client.post("/api/holdings", json=payload)
        assert response.status_code == 201, response.text
        return response.json()

    return _add


@pytest.fixture
def make_config(tmp_path: Path):
    """Factory for configs sharing this test's database file."""

    def _make(**kwargs) -> TrackerConfig:
        return _make_config(tmp_path, **kwargs)

    return _make
