"""Alpha Vantage quote provider (``GLOBAL_QUOTE`` function, one symbol per call)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from folio_tracker.core.exceptions import ProviderError, RateLimitError
from folio_tracker.core.models import QuoteResult
from folio_tracker.prices.provider import describe_failure, empty_result, parse_price

logger = logging.getLogger(__name__)

_BASE_URL = "https://www.alphavantage.co"
_QUERY_PATH = "/query"

DEFAULT_BATCH_SIZE = 5
DEFAULT_BATCH_DELAY_MS = 15_000


class AlphaVantageQuoteAdapter:
    """Reads ``"Global Quote"."05. price"`` from a GLOBAL_QUOTE response.

    Alpha Vantage answers throttled or demo-key requests with HTTP 200 and
    an ``Information`` or ``Note`` message instead of a quote.
    """

    def adapt(self, raw_data: Any, symbols: list[str]) -> QuoteResult:
        result = empty_result(symbols)
        if not symbols or not isinstance(raw_data, dict):
            return result

        if "Note" in raw_data or "Information" in raw_data:
            raise RateLimitError(
                str(raw_data.get("Note") or raw_data.get("Information"))[:200],
                context={"provider": "alpha_vantage", "symbol": symbols[0]},
            )

        quote = raw_data.get("Global Quote")
        if isinstance(quote, dict):
            result[symbols[0]] = parse_price(quote.get("05. price"))
        return result


class AlphaVantageQuoteProvider:
    """Fetches quotes from Alpha Vantage, one request per symbol.

    Parameters
    ----------
    api_key : str | None
        Alpha Vantage API key. Without one every symbol resolves to None.
    batch_size : int
        Symbols the orchestrator passes per call. Default: 5.
    batch_delay_ms : int
        Delay the orchestrator waits between calls. Default: 15000.
    timeout : float
        HTTP request timeout in seconds.
    base_url : str
        Override base URL (useful for testing).
    """

    name = "alpha_vantage"
    display_name = "Alpha Vantage"
    requires_api_key = True

    def __init__(
        self,
        api_key: str | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_ms: int = DEFAULT_BATCH_DELAY_MS,
        timeout: float = 15.0,
        base_url: str = _BASE_URL,
        adapter: AlphaVantageQuoteAdapter | None = None,
    ) -> None:
        self._api_key = api_key
        self.batch_size = batch_size
        self.batch_delay_ms = batch_delay_ms
        self._timeout = timeout
        self._base_url = base_url
        self._adapter = adapter or AlphaVantageQuoteAdapter()
        self.last_errors: dict[str, str] = {}

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    async def _fetch_quote(self, client: httpx.AsyncClient, symbol: str) -> float | None:
        params = {"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self._api_key}
        try:
            resp = await client.get(f"{self._base_url}{_QUERY_PATH}", params=params)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            error_cls = RateLimitError if e.response.status_code == 429 else ProviderError
            raise error_cls(
                f"Alpha Vantage HTTP {e.response.status_code}",
                context={
                    "provider": self.name,
                    "symbol": symbol,
                    "status_code": e.response.status_code,
                },
            ) from e
        except (httpx.RequestError, ValueError) as e:
            raise ProviderError(
                f"Alpha Vantage request failed: {e}",
                context={"provider": self.name, "symbol": symbol},
            ) from e

        return self._adapter.adapt(data, [symbol])[symbol]

    async def fetch_prices(self, symbols: list[str]) -> QuoteResult:
        self.last_errors = {}
        if not self._api_key:
            logger.error("Alpha Vantage API key not configured")
            return empty_result(symbols)

        result: QuoteResult = {}
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            for symbol in symbols:
                try:
                    result[symbol] = await self._fetch_quote(client, symbol)
                except RateLimitError as e:
                    logger.warning("Alpha Vantage limit reached for %s: %s", symbol, e)
                    self.last_errors[symbol] = describe_failure(e)
                    result[symbol] = None
                except ProviderError as e:
                    logger.error("Failed to fetch %s from Alpha Vantage: %s", symbol, e)
                    self.last_errors[symbol] = describe_failure(e)
                    result[symbol] = None
                else:
                    if result[symbol] is None:
                        logger.info("No price data found for %s from Alpha Vantage", symbol)
        return result
