"""Yahoo Finance quote provider: direct HTTP implementation.

Uses the unauthenticated ``/v8/finance/chart/`` endpoint via httpx and
reads ``meta.regularMarketPrice``. The endpoint prices one symbol per
request, and Yahoo throttles aggressively, so the defaults are a batch of
one with a long pause between batches.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from folio_tracker.core.exceptions import ProviderError, RateLimitError
from folio_tracker.core.models import QuoteResult
from folio_tracker.prices.provider import describe_failure, parse_price

logger = logging.getLogger(__name__)

_BASE_URL = "https://query1.finance.yahoo.com"
_CHART_PATH = "/v8/finance/chart"
_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "application/json,text/html;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://finance.yahoo.com/",
}

DEFAULT_BATCH_SIZE = 1
DEFAULT_BATCH_DELAY_MS = 60_000


class YahooQuoteAdapter:
    """Extracts the last market price from a Yahoo Finance chart response."""

    def adapt(self, raw_data: Any, symbols: list[str]) -> QuoteResult:
        """Parse a chart response for a single symbol.

        Parameters
        ----------
        raw_data : dict
            The full decoded chart response (``{"chart": {...}}``).
        symbols : list[str]
            Exactly one symbol since the chart endpoint is per-symbol.
        """
        result: QuoteResult = {symbol: None for symbol in symbols}
        if not symbols or not isinstance(raw_data, dict):
            return result

        chart = raw_data.get("chart")
        results = chart.get("result") if isinstance(chart, dict) else None
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            return result

        meta = results[0].get("meta")
        if not isinstance(meta, dict):
            return result
        price = parse_price(meta.get("regularMarketPrice"))
        if price is not None:
            result[symbols[0]] = price
        return result


class YahooQuoteProvider:
    """Fetches last prices from Yahoo Finance's chart API.

    Parameters
    ----------
    batch_size : int
        Symbols the orchestrator passes per call. Default: 1.
    batch_delay_ms : int
        Delay the orchestrator waits between calls. Default: 60000.
    symbol_delay_ms : int
        Pause between symbols inside one call. Default: 0.
    timeout : float
        HTTP request timeout in seconds. Default: 15.0.
    base_url : str
        Override base URL (useful for testing).
    """

    name = "yahoo"
    display_name = "Yahoo Finance"
    requires_api_key = False

    def __init__(
        self,
        api_key: str | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_ms: int = DEFAULT_BATCH_DELAY_MS,
        symbol_delay_ms: int = 0,
        timeout: float = 15.0,
        base_url: str = _BASE_URL,
        adapter: YahooQuoteAdapter | None = None,
    ) -> None:
        # Yahoo needs no key; the parameter keeps the factory signature uniform
        del api_key
        self.batch_size = batch_size
        self.batch_delay_ms = batch_delay_ms
        self._symbol_delay = symbol_delay_ms / 1000
        self._timeout = timeout
        self._base_url = base_url
        self._adapter = adapter or YahooQuoteAdapter()
        self.last_errors: dict[str, str] = {}

    @property
    def has_api_key(self) -> bool:
        return True

    async def _fetch_chart(self, client: httpx.AsyncClient, symbol: str) -> dict:
        """Fetch the raw chart body for one symbol.

        Raises:
            RateLimitError: On HTTP 429.
            ProviderError: On any other HTTP, transport, or API-level error.
        """
        url = f"{self._base_url}{_CHART_PATH}/{symbol}"
        try:
            resp = await client.get(url, params={"interval": "1d"})
        except httpx.RequestError as e:
            raise ProviderError(
                f"Yahoo Finance request error: {e}",
                context={"provider": self.name, "symbol": symbol},
            ) from e

        if resp.status_code == 429:
            raise RateLimitError(
                "Yahoo Finance rate limit reached",
                context={
                    "provider": self.name,
                    "symbol": symbol,
                    "status_code": 429,
                    "retry_after": resp.headers.get("Retry-After"),
                },
            )
        if resp.status_code != 200:
            raise ProviderError(
                f"Yahoo Finance HTTP {resp.status_code}: {resp.text[:200]}",
                context={"provider": self.name, "symbol": symbol, "status_code": resp.status_code},
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(
                "Yahoo Finance returned invalid JSON",
                context={"provider": self.name, "symbol": symbol},
            ) from e

        chart = data.get("chart") if isinstance(data, dict) else None
        err = chart.get("error") if isinstance(chart, dict) else None
        if err:
            if isinstance(err, dict):
                err = f"{err.get('code')} - {err.get('description')}"
            raise ProviderError(
                f"Yahoo Finance API error: {err}",
                context={"provider": self.name, "symbol": symbol},
            )
        return data

    async def fetch_prices(self, symbols: list[str]) -> QuoteResult:
        """Fetch one chart per symbol. Failed symbols resolve to None."""
        result: QuoteResult = {}
        self.last_errors = {}
        async with httpx.AsyncClient(timeout=self._timeout, headers=_HEADERS) as client:
            for i, symbol in enumerate(symbols):
                if i > 0 and self._symbol_delay > 0:
                    await asyncio.sleep(self._symbol_delay)
                try:
                    raw = await self._fetch_chart(client, symbol)
                except RateLimitError as e:
                    logger.warning("Yahoo Finance rate limited for %s", symbol)
                    self.last_errors[symbol] = describe_failure(e)
                    result[symbol] = None
                    continue
                except ProviderError as e:
                    logger.error("Failed to fetch %s from Yahoo Finance: %s", symbol, e)
                    self.last_errors[symbol] = describe_failure(e)
                    result[symbol] = None
                    continue

                try:
                    price = self._adapter.adapt(raw, [symbol]).get(symbol)
                except (AttributeError, KeyError, TypeError, ValueError) as e:
                    logger.error("Unparseable Yahoo Finance chart for %s: %s", symbol, e)
                    self.last_errors[symbol] = describe_failure(e)
                    price = None
                if price is None:
                    logger.info("No price data found for %s from Yahoo Finance", symbol)
                result[symbol] = price
        return result
