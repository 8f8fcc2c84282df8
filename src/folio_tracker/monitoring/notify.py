"""Notification side-effect interface for price alerts and refresh failures."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from folio_tracker.core.models import Severity

logger = logging.getLogger(__name__)

_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


@runtime_checkable
class Notifier(Protocol):
    """Anything that can surface a message to the user."""

    def notify(self, message: str, severity: Severity) -> None: ...


class LoggingNotifier:
    """Writes notifications to the log at a level matching the severity."""

    def __init__(self, name: str = "folio_tracker.alerts") -> None:
        self._logger = logging.getLogger(name)

    def notify(self, message: str, severity: Severity) -> None:
        self._logger.log(_LEVELS.get(Severity(severity), logging.INFO), "%s", message)


class CollectingNotifier:
    """Keeps notifications in memory, newest last.

    The API serves these from ``/monitor/notifications``.
    """

    def __init__(self, maxlen: int = 100) -> None:
        self._maxlen = maxlen
        self.messages: list[tuple[str, Severity]] = []

    def notify(self, message: str, severity: Severity) -> None:
        self.messages.append((message, Severity(severity)))
        if len(self.messages) > self._maxlen:
            del self.messages[: len(self.messages) - self._maxlen]

    def clear(self) -> None:
        self.messages.clear()


class FanOutNotifier:
    """Delivers each notification to several notifiers.

    A failing notifier is logged and does not stop delivery to the rest.
    """

    def __init__(self, *notifiers: Notifier) -> None:
        self._notifiers = list(notifiers)

    def notify(self, message: str, severity: Severity) -> None:
        for notifier in self._notifiers:
            try:
                notifier.notify(message, severity)
            except Exception:
                logger.exception("Notifier %s failed", type(notifier).__name__)
