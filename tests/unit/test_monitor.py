"""Tests for PriceMonitor: ticks, alerts, manual refresh, loop lifecycle."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from folio_tracker.core.config import MonitoringConfig
from folio_tracker.core.exceptions import MonitorError, RefreshError
from folio_tracker.core.models import HoldingCreate, Severity
from folio_tracker.monitoring.health import UpdateHealthTracker
from folio_tracker.monitoring.monitor import PriceMonitor, price_change_percent
from folio_tracker.monitoring.notify import CollectingNotifier
from folio_tracker.portfolio.state import PortfolioState
from folio_tracker.prices.orchestrator import PriceFetchOrchestrator


async def _add(store, symbol="AAPL", price=100.0, **kwargs):
    return await store.create_holding(
        HoldingCreate(
            symbol=symbol,
            name=kwargs.pop("name", f"{symbol} Inc."),
            quantity=kwargs.pop("quantity", 10),
            average_buy_price=kwargs.pop("average_buy_price", 90.0),
            current_price=price,
            **kwargs,
        )
    )


@pytest.fixture
def notifier():
    return CollectingNotifier()


@pytest.fixture
def make_monitor(store, notifier):
    def _make(*providers, threshold_pct=5.0, **kwargs):
        return PriceMonitor(
            PriceFetchOrchestrator(list(providers)),
            store,
            state=PortfolioState(),
            notifier=notifier,
            threshold_pct=threshold_pct,
            **kwargs,
        )

    return _make


def test_price_change_percent():
    assert price_change_percent(100.0, 106.0) == pytest.approx(6.0)
    assert price_change_percent(100.0, 94.0) == pytest.approx(-6.0)
    assert price_change_percent(0.0, 10.0) is None
    assert price_change_percent(None, 10.0) is None


def test_invalid_threshold():
    with pytest.raises(MonitorError):
        PriceMonitor(PriceFetchOrchestrator([]), MagicMock(), threshold_pct=0)


def test_from_config():
    config = MonitoringConfig(threshold=2.5, refresh_interval_ms=60_000)
    monitor = PriceMonitor.from_config(config, PriceFetchOrchestrator([]), MagicMock())
    assert monitor.threshold_pct == 2.5
    assert monitor.refresh_interval_ms == 60_000


class TestTick:
    async def test_rise_beyond_threshold_alerts(self, store, notifier, make_monitor, fake_provider):
        holding = await _add(store, "AAPL", 100.0)
        monitor = make_monitor(fake_provider("p1", prices={"AAPL": 106.0}))
        result = await monitor.tick()

        assert result.updated == ["AAPL"]
        assert len(result.alerts) == 1
        alert = result.alerts[0]
        assert alert.change_percent == pytest.approx(6.0)
        assert alert.severity == Severity.WARNING
        assert notifier.messages == [(alert.message, Severity.WARNING)]
        saved = await store.get_holding(holding.id)
        assert saved.current_price == 106.0
        assert saved.last_updated is not None
        assert monitor.state.get(holding.id).current_price == 106.0

    async def test_move_within_threshold_is_silent(self, store, notifier, make_monitor, fake_provider):
        holding = await _add(store, "AAPL", 100.0)
        monitor = make_monitor(fake_provider("p1", prices={"AAPL": 104.0}))
        result = await monitor.tick()

        assert result.alerts == []
        assert notifier.messages == []
        assert (await store.get_holding(holding.id)).current_price == 104.0

    async def test_exact_threshold_is_silent(self, store, make_monitor, fake_provider):
        await _add(store, "AAPL", 100.0)
        monitor = make_monitor(fake_provider("p1", prices={"AAPL": 105.0}))
        assert (await monitor.tick()).alerts == []

    async def test_large_drop_is_critical(self, store, make_monitor, fake_provider):
        await _add(store, "AAPL", 100.0)
        monitor = make_monitor(fake_provider("p1", prices={"AAPL": 85.0}))
        (alert,) = (await monitor.tick()).alerts
        assert alert.severity == Severity.CRITICAL
        assert "decreased" in alert.message
        assert monitor.recent_alerts() == [alert]

    async def test_zero_previous_price_never_alerts(self, store, make_monitor, fake_provider):
        await _add(store, "AAPL", 0.0, average_buy_price=0.0)
        monitor = make_monitor(fake_provider("p1", prices={"AAPL": 50.0}))
        result = await monitor.tick()
        assert result.updated == ["AAPL"]
        assert result.alerts == []

    async def test_unresolved_symbol_stays_stale(self, store, make_monitor, fake_provider):
        msft = await _add(store, "MSFT", 300.0)
        await _add(store, "AAPL", 100.0)
        monitor = make_monitor(fake_provider("p1", prices={"AAPL": 101.0}))
        result = await monitor.tick()

        assert result.failed == ["MSFT"]
        assert (await store.get_holding(msft.id)).current_price == 300.0

    async def test_holdings_without_symbol_are_ignored(self, store, make_monitor, fake_provider):
        await store.create_holding(
            HoldingCreate(name="Savings", holding_type="savings", quantity=1, average_buy_price=1000)
        )
        provider = fake_provider("p1")
        result = await make_monitor(provider).tick()
        assert result.requested == []
        assert provider.calls == []

    async def test_total_outage_is_logged_and_skipped(self, store, make_monitor, fake_provider):
        holding = await _add(store, "AAPL", 100.0)
        monitor = make_monitor(fake_provider("p1", error=RuntimeError("down")))
        result = await monitor.tick()

        assert result.updated == []
        assert (await store.get_holding(holding.id)).current_price == 100.0
        assert monitor.health.consecutive_failures == 1

    async def test_fetch_exception_returns_none(self, store, make_monitor):
        await _add(store, "AAPL", 100.0)
        monitor = make_monitor()

        async def broken_fetch(symbols, force_refresh=False):
            raise RuntimeError("orchestrator exploded")

        monitor.orchestrator.fetch = broken_fetch
        assert await monitor.tick() is None
        assert monitor.health.failed_updates == 1

    async def test_store_failure_is_recorded(self, store, make_monitor, monkeypatch):
        monitor = make_monitor()

        async def locked():
            raise RuntimeError("db locked")

        monkeypatch.setattr(store, "get_holdings", locked)
        assert await monitor.tick() is None
        assert monitor.last_result.error == "db locked"
        assert monitor.health.failed_updates == 1
        assert not monitor.in_flight

    async def test_in_flight_tick_is_skipped(self, store, make_monitor, fake_provider):
        await _add(store, "AAPL", 100.0)
        gate = asyncio.Event()
        provider = fake_provider("p1", prices={"AAPL": 101.0})
        original = provider.fetch_prices

        async def slow_fetch(symbols):
            await gate.wait()
            return await original(symbols)

        provider.fetch_prices = slow_fetch
        monitor = make_monitor(provider)

        first = asyncio.create_task(monitor.tick())
        await asyncio.sleep(0)
        assert monitor.in_flight
        assert await monitor.tick() is None
        gate.set()
        assert (await first).updated == ["AAPL"]
        assert not monitor.in_flight

    async def test_tick_records_health(self, store, make_monitor, fake_provider):
        await _add(store, "AAPL", 100.0)
        health = UpdateHealthTracker()
        monitor = make_monitor(fake_provider("p1", prices={"AAPL": 100.5}), health=health)
        await monitor.tick()
        assert health.successful_updates == 1
        assert health.providers["p1"].successful_requests == 1
        assert monitor.last_result.updated == ["AAPL"]


class TestRefreshNow:
    async def test_refresh_subset(self, store, make_monitor, fake_provider):
        await _add(store, "AAPL", 100.0)
        await _add(store, "MSFT", 300.0)
        provider = fake_provider("p1", prices={"AAPL": 101.0, "MSFT": 301.0})
        result = await make_monitor(provider).refresh_now(["aapl"])

        assert result.requested == ["AAPL"]
        assert result.updated == ["AAPL"]
        assert provider.calls == [["AAPL"]]

    async def test_unknown_symbol_is_failed(self, store, make_monitor, fake_provider):
        await _add(store, "AAPL", 100.0)
        provider = fake_provider("p1", prices={"AAPL": 101.0, "TSLA": 200.0})
        result = await make_monitor(provider).refresh_now(["AAPL", "TSLA"])
        assert result.updated == ["AAPL"]
        assert result.failed == ["TSLA"]

    async def test_total_failure_notifies_and_raises(self, store, notifier, make_monitor, fake_provider):
        await _add(store, "AAPL", 100.0)
        monitor = make_monitor(fake_provider("p1"))
        with pytest.raises(RefreshError) as exc_info:
            await monitor.refresh_now()
        assert exc_info.value.context["failed"] == ["AAPL"]
        assert notifier.messages[-1][1] == Severity.ERROR

    async def test_fetch_exception_becomes_refresh_error(self, store, notifier, make_monitor):
        await _add(store, "AAPL", 100.0)
        monitor = make_monitor()

        async def broken_fetch(symbols, force_refresh=False):
            raise RuntimeError("network gone")

        monitor.orchestrator.fetch = broken_fetch
        with pytest.raises(RefreshError, match="network gone"):
            await monitor.refresh_now()
        assert notifier.messages[-1][1] == Severity.ERROR

    async def test_store_failure_reports_this_call(
        self, store, notifier, make_monitor, fake_provider, monkeypatch
    ):
        await _add(store, "AAPL", 100.0)
        monitor = make_monitor(fake_provider("p1", prices={"AAPL": 101.0}))
        assert (await monitor.refresh_now(["AAPL"])).updated == ["AAPL"]

        async def locked():
            raise RuntimeError("db locked")

        monkeypatch.setattr(store, "get_holdings", locked)
        with pytest.raises(RefreshError, match="db locked") as exc_info:
            await monitor.refresh_now(["AAPL"])

        failed = exc_info.value.result
        assert failed is monitor.last_result
        assert failed.error == "db locked"
        assert failed.updated == []
        assert failed.failed == ["AAPL"]
        assert not failed.success
        assert monitor.health.consecutive_failures == 1
        assert notifier.messages[-1] == ("Price refresh failed: db locked", Severity.ERROR)

    async def test_no_update_error_carries_result(self, store, make_monitor, fake_provider):
        await _add(store, "AAPL", 100.0)
        monitor = make_monitor(fake_provider("p1"))
        with pytest.raises(RefreshError) as exc_info:
            await monitor.refresh_now(["AAPL"])
        assert exc_info.value.result.requested == ["AAPL"]
        assert exc_info.value.result.error is None

    async def test_bypasses_cache(self, store, notifier, fake_provider):
        await _add(store, "AAPL", 100.0)
        provider = fake_provider("p1", prices={"AAPL": 101.0})
        monitor = PriceMonitor(
            PriceFetchOrchestrator([provider], cache_ttl_seconds=300), store, notifier=notifier
        )
        await monitor.tick()
        await monitor.tick()
        assert len(provider.calls) == 1
        await monitor.refresh_now()
        assert len(provider.calls) == 2


class TestLifecycle:
    async def test_start_and_dispose(self, store, make_monitor, fake_provider):
        await _add(store, "AAPL", 100.0)
        provider = fake_provider("p1", prices={"AAPL": 100.0})
        monitor = make_monitor(provider, refresh_interval_ms=60_000)

        stop = monitor.start()
        assert monitor.running
        for _ in range(20):
            if provider.calls:
                break
            await asyncio.sleep(0.01)
        assert provider.calls == [["AAPL"]]

        await stop()
        assert not monitor.running

    async def test_double_start_raises(self, store, make_monitor):
        monitor = make_monitor(refresh_interval_ms=60_000)
        stop = monitor.start()
        try:
            with pytest.raises(MonitorError, match="already running"):
                monitor.start()
        finally:
            await stop()

    async def test_restart_after_dispose(self, store, make_monitor):
        monitor = make_monitor(refresh_interval_ms=60_000)
        stop = monitor.start()
        await stop()
        stop_again = monitor.start()
        assert monitor.running
        await stop_again()
