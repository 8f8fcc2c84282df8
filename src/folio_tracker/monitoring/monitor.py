"""Interval-driven price monitoring and manual refresh."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime

from folio_tracker.core.config import MonitoringConfig
from folio_tracker.core.exceptions import HoldingNotFoundError, MonitorError, RefreshError
from folio_tracker.core.models import (
    Holding,
    PriceAlert,
    ProviderAttempt,
    QuoteResult,
    RefreshResult,
    Severity,
)
from folio_tracker.monitoring.health import UpdateHealthTracker
from folio_tracker.monitoring.notify import LoggingNotifier, Notifier
from folio_tracker.portfolio.state import PortfolioState
from folio_tracker.prices.orchestrator import PriceFetchOrchestrator
from folio_tracker.storage.store import HoldingStore

logger = logging.getLogger(__name__)

MAX_PRICE_ALERTS = 100


def price_change_percent(previous: float | None, new: float) -> float | None:
    """Percent move from ``previous`` to ``new``; None without a usable baseline."""
    if not previous:
        return None
    return (new - previous) / previous * 100


class PriceMonitor:
    """Refreshes holding prices on an interval and raises threshold alerts.

    Each pass reads the holdings that carry a symbol, fetches quotes through
    the orchestrator, persists every resolved price with ``save_holding``,
    mirrors it into the portfolio state, and notifies when a price moved by
    more than ``threshold_pct`` percent. Holdings whose symbol could not be
    priced keep their stale price.

    The background loop is silent: failures are logged and the next tick is
    the retry. ``refresh_now`` shares the same update path but reports total
    failure to the caller with ``RefreshError``.
    """

    def __init__(
        self,
        orchestrator: PriceFetchOrchestrator,
        store: HoldingStore,
        state: PortfolioState | None = None,
        notifier: Notifier | None = None,
        threshold_pct: float = 5.0,
        refresh_interval_ms: int = 300_000,
        health: UpdateHealthTracker | None = None,
    ) -> None:
        if threshold_pct <= 0:
            raise MonitorError(
                "threshold_pct must be > 0", context={"threshold_pct": threshold_pct}
            )
        self.orchestrator = orchestrator
        self.store = store
        self.state = state if state is not None else PortfolioState()
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.threshold_pct = threshold_pct
        self.refresh_interval_ms = refresh_interval_ms
        self.health = health if health is not None else UpdateHealthTracker()
        self.last_result: RefreshResult | None = None
        self._alerts: deque[PriceAlert] = deque(maxlen=MAX_PRICE_ALERTS)
        self._task: asyncio.Task | None = None
        self._in_flight = False

    @classmethod
    def from_config(
        cls,
        config: MonitoringConfig,
        orchestrator: PriceFetchOrchestrator,
        store: HoldingStore,
        **kwargs,
    ) -> PriceMonitor:
        return cls(
            orchestrator,
            store,
            threshold_pct=config.threshold,
            refresh_interval_ms=config.refresh_interval_ms,
            **kwargs,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    # --- Loop lifecycle ---

    def start(self) -> Callable[[], Awaitable[None]]:
        """Launch the background loop and return an async disposer.

        The first tick runs immediately, then one every
        ``refresh_interval_ms``. Must be called from a running event loop.

        Raises:
            MonitorError: If the loop is already running.
        """
        if self.running:
            raise MonitorError("Price monitor is already running")

        task = asyncio.create_task(self._run(), name="folio-tracker-price-monitor")
        self._task = task
        logger.info(
            "Price monitor started (interval=%dms, threshold=%.2f%%)",
            self.refresh_interval_ms,
            self.threshold_pct,
        )

        async def stop() -> None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            if self._task is task:
                self._task = None
            logger.info("Price monitor stopped")

        return stop

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self.refresh_interval_ms / 1000)

    async def tick(self) -> RefreshResult | None:
        """Run one monitoring pass. Returns None when skipped or failed."""
        if self._in_flight:
            logger.debug("Previous tick still in flight, skipping")
            return None

        self._in_flight = True
        try:
            result = await self._update(symbols=None, force_refresh=False)
        finally:
            self._in_flight = False

        if result.error is not None:
            return None
        if result.requested and not result.updated:
            logger.warning("Monitoring tick resolved no prices; will retry next tick")
        return result

    async def refresh_now(self, symbols: Iterable[str] | None = None) -> RefreshResult:
        """Refresh prices immediately, bypassing the quote cache.

        Not serialized against a concurrently running tick; whichever write
        lands last wins.

        Raises:
            RefreshError: When the pass broke, or symbols were requested but
                none were updated. ``result`` holds this call's outcome.
        """
        result = await self._update(symbols=symbols, force_refresh=True)

        if result.error is not None:
            self.notifier.notify(f"Price refresh failed: {result.error}", Severity.ERROR)
            raise RefreshError(
                f"Price refresh failed: {result.error}",
                context={"symbols": result.requested, "failed": result.failed},
                result=result,
            )

        if result.requested and not result.updated:
            self.notifier.notify(
                f"Could not refresh prices for {', '.join(result.requested)}", Severity.ERROR
            )
            raise RefreshError(
                "No prices could be refreshed",
                context={"symbols": result.requested, "failed": result.failed},
                result=result,
            )
        return result

    # --- Update path ---

    async def _update(
        self, symbols: Iterable[str] | None, force_refresh: bool
    ) -> RefreshResult:
        """Run one update pass. Never raises; a broken pass sets ``error``."""
        started_at = datetime.now(UTC)
        t0 = time.monotonic()
        requested: list[str] = []
        if symbols is not None:
            requested = list(dict.fromkeys(s.strip().upper() for s in symbols if s.strip()))

        quotes: QuoteResult = {}
        attempts: list[ProviderAttempt] = []
        updated: list[str] = []
        alerts: list[PriceAlert] = []
        error: str | None = None
        try:
            holdings = [h for h in await self.store.get_holdings() if h.symbol]
            if symbols is not None:
                wanted = set(requested)
                holdings = [h for h in holdings if h.symbol in wanted]
            else:
                requested = list(dict.fromkeys(h.symbol for h in holdings))

            if not requested:
                logger.info("No holdings with symbols to refresh")
                return RefreshResult(requested=[], started_at=started_at)

            quotes = await self.orchestrator.fetch(requested, force_refresh=force_refresh)
            attempts = self.orchestrator.last_attempts

            for holding in holdings:
                price = quotes.get(holding.symbol)
                if price is None:
                    logger.warning(
                        "No price for %s, keeping %.2f", holding.symbol, holding.current_price
                    )
                    continue

                alert = self._evaluate(holding, price, started_at)
                try:
                    saved = await self.store.save_holding(holding.id, price, started_at)
                except HoldingNotFoundError:
                    logger.warning("Holding %s disappeared during refresh", holding.id)
                    continue
                self.state.upsert(saved)
                if holding.symbol not in updated:
                    updated.append(holding.symbol)
                if alert is not None:
                    alerts.append(alert)
                    self._alerts.append(alert)
                    self.notifier.notify(alert.message, alert.severity)
        except Exception as e:
            logger.error("Price update failed: %s", e)
            error = str(e) or type(e).__name__

        result = RefreshResult(
            requested=requested,
            updated=updated,
            failed=[s for s in requested if s not in updated],
            prices={s: quotes.get(s) for s in requested},
            alerts=alerts,
            attempts=attempts,
            started_at=started_at,
            duration_ms=(time.monotonic() - t0) * 1000,
            error=error,
        )
        self._record(result)
        logger.info(
            "Refreshed %d/%d symbols, %d alerts", len(updated), len(requested), len(alerts)
        )
        return result

    def _record(self, result: RefreshResult) -> None:
        self.last_result = result
        self.health.record(result)

    def _evaluate(self, holding: Holding, new_price: float, now: datetime) -> PriceAlert | None:
        """Build an alert when the move is strictly beyond the threshold."""
        change = price_change_percent(holding.current_price, new_price)
        if change is None or abs(change) <= self.threshold_pct:
            return None

        severity = Severity.CRITICAL if abs(change) > 2 * self.threshold_pct else Severity.WARNING
        direction = "increased" if change > 0 else "decreased"
        return PriceAlert(
            symbol=holding.symbol,
            previous_price=holding.current_price,
            new_price=new_price,
            change_percent=change,
            severity=severity,
            message=(
                f"{holding.name} ({holding.symbol}) has {direction} by {abs(change):.2f}% "
                f"({holding.current_price:.2f} -> {new_price:.2f})"
            ),
            triggered_at=now,
        )

    def recent_alerts(self, limit: int = 20) -> list[PriceAlert]:
        """Most recent price alerts first."""
        if limit <= 0:
            return []
        return list(self._alerts)[-limit:][::-1]
