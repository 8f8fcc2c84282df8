"""Custom exception hierarchy for folio-tracker."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from folio_tracker.core.models import RefreshResult


class FolioTrackerError(Exception):
    """Base exception for all folio-tracker errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(FolioTrackerError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field (str): the config field that failed validation
        value (Any): the invalid value (redacted for secrets)
    """


class ProviderError(FolioTrackerError):
    """A quote provider returned an error or an unusable response.

    Policy: caught at the adapter boundary. The affected symbols resolve
    to None and the orchestrator moves on to the next provider.

    Context keys:
        provider (str): provider name ("fmp", "yahoo", "alpha_vantage")
        symbol (str | None): the symbol being fetched, if per-symbol
        status_code (int | None): HTTP status code if applicable
    """


class RateLimitError(ProviderError):
    """Provider refused the request because of its rate limit.

    Policy: treated like any other provider failure. The next monitoring
    tick is the only retry.

    Context keys:
        retry_after (int | None): seconds to wait, when the vendor says
    """


class StorageError(FolioTrackerError):
    """Database operation failed.

    Policy: raise immediately. Holdings data must not be silently lost.

    Context keys:
        operation (str): "insert", "query", "update", "migrate", etc.
        table (str): the table involved
    """


class HoldingNotFoundError(StorageError):
    """A holding id does not exist.

    Context keys:
        id (str): the id that was looked up
    """


class FamilyMemberNotFoundError(StorageError):
    """A family member id does not exist.

    Context keys:
        id (str): the id that was looked up
    """


class MonitorError(FolioTrackerError):
    """Price monitor misuse, e.g. starting a loop that is already running."""


class RefreshError(MonitorError):
    """A manual price refresh could not update any holding.

    Policy: surfaced to the user (API 503, CLI non-zero exit). The silent
    monitoring loop never raises this.

    Context keys:
        symbols (list[str]): the symbols that were requested
        failed (list[str]): the symbols that could not be refreshed

    ``result`` is the failed pass, when one was recorded.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        result: "RefreshResult | None" = None,
    ):
        super().__init__(message, context)
        self.result = result
