"""Health tracking for the price update pipeline.

Every monitoring tick and manual refresh is recorded here. The tracker keeps
running totals, per-provider and per-symbol statistics, and raises
operational alerts (repeated failures, low success rate, slow updates,
rate-limited providers) that are distinct from price-movement alerts.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict

from folio_tracker.core.models import HealthStatus, RefreshResult, Severity
from folio_tracker.monitoring.notify import Notifier

logger = logging.getLogger(__name__)

MAX_ALERTS = 100


@dataclass(frozen=True)
class HealthThresholds:
    """Limits that turn metrics into alerts and health status."""

    max_consecutive_failures: int = 3
    max_time_since_last_update: timedelta = timedelta(hours=24)
    max_time_since_last_success: timedelta = timedelta(hours=12)
    max_average_update_ms: float = 5 * 60 * 1000
    min_success_rate: float = 0.8
    min_samples: int = 10
    min_provider_samples: int = 5
    min_provider_success_rate: float = 0.5
    max_rate_limit_rate: float = 0.3


@dataclass
class ProviderStats:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rate_limit_errors: int = 0
    timeout_errors: int = 0
    last_used: datetime | None = None
    average_response_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        return self.successful_requests / self.total_requests if self.total_requests else 0.0


@dataclass
class SymbolStats:
    total_updates: int = 0
    successful_updates: int = 0
    consecutive_failures: int = 0
    last_update: datetime | None = None
    last_successful_update: datetime | None = None

    @property
    def success_rate(self) -> float:
        return self.successful_updates / self.total_updates if self.total_updates else 0.0


class HealthAlert(BaseModel):
    """An operational alert about the update pipeline itself."""

    model_config = ConfigDict(frozen=True)

    type: str
    severity: Severity
    message: str
    timestamp: datetime
    data: dict[str, Any] = {}


def _is_rate_limit(error: str) -> bool:
    lowered = error.lower()
    return "429" in lowered or "rate limit" in lowered


def _is_timeout(error: str) -> bool:
    lowered = error.lower()
    return "timeout" in lowered or "timed out" in lowered


def _alert_key(alert: HealthAlert) -> tuple[str, str | None]:
    return alert.type, alert.data.get("provider")


class UpdateHealthTracker:
    """Accumulates refresh outcomes and derives a health status.

    Parameters
    ----------
    thresholds : HealthThresholds | None
        Alerting limits; defaults match a five-minute refresh cadence.
    notifier : Notifier | None
        Receives each new operational alert.
    clock : Callable[[], datetime] | None
        Source of "now"; injectable for tests.
    """

    def __init__(
        self,
        thresholds: HealthThresholds | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.thresholds = thresholds or HealthThresholds()
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now(UTC))
        self.reset()

    def reset(self) -> None:
        self.total_updates = 0
        self.successful_updates = 0
        self.failed_updates = 0
        self.consecutive_failures = 0
        self.average_update_ms = 0.0
        self.last_update_time: datetime | None = None
        self.last_successful_update: datetime | None = None
        self.providers: dict[str, ProviderStats] = {}
        self.symbols: dict[str, SymbolStats] = {}
        self._alerts: deque[HealthAlert] = deque(maxlen=MAX_ALERTS)
        self._active: set[tuple[str, str | None]] = set()

    @property
    def success_rate(self) -> float:
        return self.successful_updates / self.total_updates if self.total_updates else 0.0

    # --- Recording ---

    def record(self, result: RefreshResult) -> list[HealthAlert]:
        """Record one tick or refresh. Returns the alerts that started with it."""
        now = self._clock()
        self.total_updates += 1
        self.last_update_time = now

        if result.success:
            self.successful_updates += 1
            self.last_successful_update = now
            self.consecutive_failures = 0
        else:
            self.failed_updates += 1
            self.consecutive_failures += 1

        if result.duration_ms:
            self.average_update_ms += (result.duration_ms - self.average_update_ms) / (
                self.total_updates
            )

        for attempt in result.attempts:
            stats = self.providers.setdefault(attempt.provider, ProviderStats())
            stats.total_requests += 1
            stats.last_used = now
            if attempt.success:
                stats.successful_requests += 1
            else:
                stats.failed_requests += 1
            failures = list(attempt.errors.values())
            if attempt.error:
                failures.append(attempt.error)
            if any(_is_rate_limit(f) for f in failures):
                stats.rate_limit_errors += 1
            if any(_is_timeout(f) for f in failures):
                stats.timeout_errors += 1
            stats.average_response_ms += (
                attempt.duration_ms - stats.average_response_ms
            ) / stats.total_requests

        updated = set(result.updated)
        for symbol in result.requested:
            sym = self.symbols.setdefault(symbol, SymbolStats())
            sym.total_updates += 1
            sym.last_update = now
            if symbol in updated:
                sym.successful_updates += 1
                sym.last_successful_update = now
                sym.consecutive_failures = 0
            else:
                sym.consecutive_failures += 1

        return self._check_alerts(now)

    def _check_alerts(self, now: datetime) -> list[HealthAlert]:
        t = self.thresholds
        current: list[HealthAlert] = []

        def raise_alert(kind: str, severity: Severity, message: str, **data: Any) -> None:
            current.append(
                HealthAlert(
                    type=kind, severity=severity, message=message, timestamp=now, data=data
                )
            )

        if self.consecutive_failures >= t.max_consecutive_failures:
            raise_alert(
                "consecutive_failures",
                Severity.ERROR,
                f"{self.consecutive_failures} consecutive update failures",
                consecutive_failures=self.consecutive_failures,
            )

        if self.last_successful_update is not None:
            since_success = now - self.last_successful_update
            if since_success > t.max_time_since_last_success:
                raise_alert(
                    "no_successful_updates",
                    Severity.CRITICAL,
                    f"No successful updates for {int(since_success.total_seconds() // 3600)} hours",
                    seconds=since_success.total_seconds(),
                )

        if self.total_updates >= t.min_samples and self.success_rate < t.min_success_rate:
            raise_alert(
                "low_success_rate",
                Severity.WARNING,
                f"Success rate is {self.success_rate * 100:.1f}% "
                f"(threshold: {t.min_success_rate * 100:.0f}%)",
                success_rate=self.success_rate,
            )

        if self.average_update_ms > t.max_average_update_ms:
            raise_alert(
                "slow_updates",
                Severity.INFO,
                f"Average update time is {int(self.average_update_ms // 1000)} seconds",
                average_update_ms=self.average_update_ms,
            )

        for name, stats in self.providers.items():
            if stats.total_requests < t.min_provider_samples:
                continue
            if stats.success_rate < t.min_provider_success_rate:
                raise_alert(
                    "provider_issues",
                    Severity.WARNING,
                    f"Provider {name} has low success rate: {stats.success_rate * 100:.1f}%",
                    provider=name,
                    success_rate=stats.success_rate,
                )
            rate_limited = stats.rate_limit_errors / stats.total_requests
            if rate_limited > t.max_rate_limit_rate:
                raise_alert(
                    "rate_limiting",
                    Severity.WARNING,
                    f"Provider {name} is frequently rate limited "
                    f"({rate_limited * 100:.1f}% of requests)",
                    provider=name,
                    rate_limit_rate=rate_limited,
                )

        # An alert fires once when its condition starts and again only after it clears
        active = {_alert_key(a) for a in current}
        new = [a for a in current if _alert_key(a) not in self._active]
        self._active = active

        for alert in new:
            self._alerts.append(alert)
            logger.warning("Health alert [%s] %s: %s", alert.severity, alert.type, alert.message)
            if self._notifier is not None:
                self._notifier.notify(alert.message, alert.severity)
        return new

    # --- Reporting ---

    def get_alerts(self, limit: int = 20) -> list[HealthAlert]:
        """Most recent alerts first."""
        if limit <= 0:
            return []
        return list(self._alerts)[-limit:][::-1]

    def get_health_status(self) -> dict[str, Any]:
        """Summarize health as ``{status, issues, metrics, recent_alerts}``."""
        now = self._clock()
        t = self.thresholds
        status = HealthStatus.HEALTHY
        issues: list[str] = []

        if self.consecutive_failures >= t.max_consecutive_failures:
            status = HealthStatus.CRITICAL
            issues.append(f"{self.consecutive_failures} consecutive failures")

        if self.last_successful_update is not None:
            since_success = now - self.last_successful_update
            if since_success > t.max_time_since_last_success:
                status = HealthStatus.CRITICAL
                issues.append(
                    f"No successful updates for {int(since_success.total_seconds() // 3600)} hours"
                )

        if status == HealthStatus.HEALTHY:
            if self.total_updates >= t.min_samples and self.success_rate < t.min_success_rate:
                status = HealthStatus.WARNING
                issues.append(f"Low success rate: {self.success_rate * 100:.1f}%")
            if self.last_update_time is not None:
                since_update = now - self.last_update_time
                if since_update > t.max_time_since_last_update * 0.8:
                    status = HealthStatus.WARNING
                    issues.append(
                        f"Updates may be stale ({int(since_update.total_seconds() // 3600)} "
                        "hours since last update)"
                    )

        return {
            "status": status,
            "issues": issues,
            "metrics": {
                "total_updates": self.total_updates,
                "success_rate": self.success_rate,
                "consecutive_failures": self.consecutive_failures,
                "last_update_time": self.last_update_time,
                "last_successful_update": self.last_successful_update,
                "average_update_ms": self.average_update_ms,
            },
            "recent_alerts": self.get_alerts(5),
        }

    def metrics(self) -> dict[str, Any]:
        """Full metrics snapshot, including per-provider and per-symbol stats."""
        return {
            "total_updates": self.total_updates,
            "successful_updates": self.successful_updates,
            "failed_updates": self.failed_updates,
            "success_rate": self.success_rate,
            "consecutive_failures": self.consecutive_failures,
            "average_update_ms": self.average_update_ms,
            "last_update_time": self.last_update_time,
            "last_successful_update": self.last_successful_update,
            "providers": {
                name: {**asdict(s), "success_rate": s.success_rate}
                for name, s in self.providers.items()
            },
            "symbols": {
                name: {**asdict(s), "success_rate": s.success_rate}
                for name, s in self.symbols.items()
            },
        }

    def top_failing_symbols(self, limit: int = 10) -> list[dict[str, Any]]:
        """Symbols that are failing now or rarely succeed, worst first."""
        failing = [
            {
                "symbol": symbol,
                "consecutive_failures": s.consecutive_failures,
                "success_rate": s.success_rate,
                "last_successful_update": s.last_successful_update,
            }
            for symbol, s in self.symbols.items()
            if s.consecutive_failures > 0 or s.success_rate < 0.8
        ]
        failing.sort(key=lambda row: row["consecutive_failures"], reverse=True)
        return failing[:limit]
