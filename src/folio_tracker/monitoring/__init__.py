"""Price monitoring: the refresh loop, notifications, and pipeline health."""

from folio_tracker.monitoring.health import HealthAlert, HealthThresholds, UpdateHealthTracker
from folio_tracker.monitoring.monitor import PriceMonitor, price_change_percent
from folio_tracker.monitoring.notify import (
    CollectingNotifier,
    FanOutNotifier,
    LoggingNotifier,
    Notifier,
)

__all__ = [
    "PriceMonitor",
    "price_change_percent",
    "UpdateHealthTracker",
    "HealthThresholds",
    "HealthAlert",
    "Notifier",
    "LoggingNotifier",
    "CollectingNotifier",
    "FanOutNotifier",
]
