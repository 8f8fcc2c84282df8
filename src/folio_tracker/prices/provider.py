"""Quote provider and adapter protocols: the source-agnostic interface layer.

Architecture
------------
The quote system uses an adapter pattern to decouple vendors from consumers:

    Vendor HTTP API → QuoteAdapter → QuoteResult → QuoteProvider → Orchestrator

- **QuoteProvider** is the orchestrator-facing protocol. It owns request
  shaping, API key injection, and batching style (one call for N symbols
  or one call per symbol), and always answers with an entry for every
  symbol it was asked about.

- **QuoteAdapter** turns one vendor's raw JSON into ``{symbol: price}``.
  Adapters are pure and never touch the network.

Failures are per symbol: a provider maps anything it cannot price to
``None`` instead of raising. Built-in providers also keep ``last_errors``,
a ``{symbol: label}`` map of the failures seen by their most recent call,
which the orchestrator copies into each ``ProviderAttempt``.
"""

from __future__ import annotations

import math
from typing import Any, Protocol, runtime_checkable

import httpx

from folio_tracker.core.exceptions import RateLimitError
from folio_tracker.core.models import QuoteResult


@runtime_checkable
class QuoteAdapter(Protocol):
    """Transforms one vendor's raw response into a QuoteResult.

    Parameters
    ----------
    raw_data : Any
        The decoded JSON body returned by the vendor.
    symbols : list[str]
        The symbols that were requested in that call.

    Returns
    -------
    QuoteResult
        One entry per requested symbol; ``None`` where the body had no
        usable price.
    """

    def adapt(self, raw_data: Any, symbols: list[str]) -> QuoteResult: ...


@runtime_checkable
class QuoteProvider(Protocol):
    """Orchestrator-facing interface for one external quote source.

    Attributes
    ----------
    name : str
        Registry key, e.g. ``"fmp"``.
    display_name : str
        Human-readable vendor name.
    batch_size : int
        Maximum symbols the orchestrator passes per ``fetch_prices`` call.
    batch_delay_ms : int
        Pause the orchestrator inserts between consecutive calls.
    requires_api_key : bool
        Whether the vendor refuses anonymous requests.
    """

    name: str
    display_name: str
    batch_size: int
    batch_delay_ms: int
    requires_api_key: bool

    @property
    def has_api_key(self) -> bool: ...

    async def fetch_prices(self, symbols: list[str]) -> QuoteResult:
        """Fetch the latest price for each symbol.

        Returns
        -------
        QuoteResult
            A key for every input symbol; ``None`` marks a symbol this
            provider could not price. Must not raise for vendor failures.
        """
        ...


def empty_result(symbols: list[str]) -> QuoteResult:
    """Return a QuoteResult with every symbol unresolved."""
    return {symbol: None for symbol in symbols}


def parse_price(value: Any) -> float | None:
    """Coerce a vendor price field (number or numeric string) to float.

    Returns None for missing, non-numeric, or non-finite values.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price):
        return None
    return price


def describe_failure(error: BaseException) -> str:
    """Label a provider failure so health tracking can classify it.

    Rate limits are prefixed ``rate limit:`` and timeouts ``timeout:``,
    whether raised directly or chained as the ``__cause__``.
    """
    message = str(error) or type(error).__name__
    if isinstance(error, RateLimitError):
        return f"rate limit: {message}"
    if isinstance(error, httpx.TimeoutException) or isinstance(
        error.__cause__, httpx.TimeoutException
    ):
        return f"timeout: {message}"
    return message
