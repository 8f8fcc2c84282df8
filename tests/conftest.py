"""Shared pytest fixtures for folio-tracker."""

from datetime import UTC, datetime

import pytest

from folio_tracker.core.config import StorageConfig
from folio_tracker.core.models import Holding, HoldingType
from folio_tracker.storage.store import SqliteHoldingStore


class FakeProvider:
    """In-memory quote provider that records every call."""

    requires_api_key = False

    def __init__(
        self,
        name: str,
        prices: dict | None = None,
        batch_size: int = 10,
        batch_delay_ms: int = 0,
        error: Exception | None = None,
    ):
        self.name = name
        self.display_name = name.title()
        self.batch_size = batch_size
        self.batch_delay_ms = batch_delay_ms
        self.prices = dict(prices or {})
        self.error = error
        self.calls: list[list[str]] = []

    @property
    def has_api_key(self) -> bool:
        return True

    async def fetch_prices(self, symbols):
        self.calls.append(list(symbols))
        if self.error is not None:
            raise self.error
        return {s: self.prices.get(s) for s in symbols}


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep developer environment variables out of config resolution."""
    import os

    for key in list(os.environ):
        if key.startswith("FOLIO_TRACKER_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("FMP_API_KEY", raising=False)
    monkeypatch.delenv("ALPHA_VANTAGE_API_KEY", raising=False)


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def make_holding():
    """Factory for Holding with overridable defaults."""

    def _make(**overrides) -> Holding:
        defaults = dict(
            id="hold-aapl",
            symbol="AAPL",
            name="Apple Inc.",
            holding_type=HoldingType.STOCK,
            quantity=10,
            average_buy_price=150.0,
            current_price=100.0,
            sector="Technology",
            created_at=datetime(2024, 1, 15, 10, 30, tzinfo=UTC),
            updated_at=datetime(2024, 1, 15, 10, 30, tzinfo=UTC),
        )
        defaults.update(overrides)
        return Holding(**defaults)

    return _make


@pytest.fixture
def sample_holdings(make_holding) -> list[Holding]:
    return [
        make_holding(),
        make_holding(
            id="hold-msft",
            symbol="MSFT",
            name="Microsoft Corp.",
            quantity=5,
            average_buy_price=300.0,
            current_price=280.0,
        ),
        make_holding(
            id="hold-xom",
            symbol="XOM",
            name="Exxon Mobil",
            quantity=20,
            average_buy_price=100.0,
            current_price=110.0,
            sector="Energy",
        ),
        make_holding(
            id="hold-fd",
            symbol=None,
            name="SBI Fixed Deposit",
            holding_type=HoldingType.FIXED_DEPOSIT,
            quantity=1,
            average_buy_price=50000.0,
            current_price=50000.0,
            sector=None,
        ),
    ]


@pytest.fixture
async def store():
    """An initialized in-memory SqliteHoldingStore."""
    s = SqliteHoldingStore(StorageConfig(sqlite_path=":memory:"))
    await s.initialize()
    yield s
    await s.close()
