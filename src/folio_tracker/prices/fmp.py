"""Financial Modeling Prep quote provider.

FMP accepts a comma-joined batch of symbols in one request, so this is the
only built-in provider that prices several symbols per HTTP call.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from folio_tracker.core.exceptions import RateLimitError
from folio_tracker.core.models import QuoteResult
from folio_tracker.prices.provider import describe_failure, empty_result, parse_price

logger = logging.getLogger(__name__)

_BASE_URL = "https://financialmodelingprep.com"
_QUOTE_PATH = "/api/v3/quote"

DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_DELAY_MS = 5_000


class FMPQuoteAdapter:
    """Parses the ``/api/v3/quote`` array into a QuoteResult."""

    def adapt(self, raw_data: Any, symbols: list[str]) -> QuoteResult:
        result = empty_result(symbols)
        if not isinstance(raw_data, list):
            logger.warning("FMP returned a non-list body: %s", str(raw_data)[:200])
            return result

        for item in raw_data:
            if not isinstance(item, dict):
                continue
            symbol = item.get("symbol")
            if symbol not in result:
                continue
            price = parse_price(item.get("price"))
            # FMP reports unknown listings with price 0
            result[symbol] = price if price else None

        return result


class FMPQuoteProvider:
    """Fetches batch quotes from Financial Modeling Prep.

    Parameters
    ----------
    api_key : str | None
        FMP API key. Without one every symbol resolves to None.
    batch_size : int
        Symbols per request. Default: 10.
    batch_delay_ms : int
        Delay the orchestrator waits between batches. Default: 5000.
    timeout : float
        HTTP request timeout in seconds.
    base_url : str
        Override base URL (useful for testing).
    """

    name = "fmp"
    display_name = "Financial Modeling Prep"
    requires_api_key = True

    def __init__(
        self,
        api_key: str | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_ms: int = DEFAULT_BATCH_DELAY_MS,
        timeout: float = 15.0,
        base_url: str = _BASE_URL,
        adapter: FMPQuoteAdapter | None = None,
    ) -> None:
        self._api_key = api_key
        self.batch_size = batch_size
        self.batch_delay_ms = batch_delay_ms
        self._timeout = timeout
        self._base_url = base_url
        self._adapter = adapter or FMPQuoteAdapter()
        self.last_errors: dict[str, str] = {}

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    async def fetch_prices(self, symbols: list[str]) -> QuoteResult:
        self.last_errors = {}
        if not symbols:
            return {}
        if not self._api_key:
            logger.error("Financial Modeling Prep API key not configured")
            return empty_result(symbols)

        url = f"{self._base_url}{_QUOTE_PATH}/{','.join(symbols)}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url, params={"apikey": self._api_key})
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "FMP HTTP error for %s: %s %s",
                ",".join(symbols),
                e.response.status_code,
                e.response.text[:200],
            )
            error: BaseException = e
            if e.response.status_code == 429:
                error = RateLimitError(
                    "FMP rate limit reached",
                    context={"provider": self.name, "status_code": 429},
                )
            return self._fail_all(symbols, error)
        except httpx.RequestError as e:
            logger.error("FMP request error for %s: %s", ",".join(symbols), e)
            return self._fail_all(symbols, e)
        except ValueError as e:
            logger.error("FMP returned invalid JSON for %s: %s", ",".join(symbols), e)
            return self._fail_all(symbols, e)

        return self._adapter.adapt(data, symbols)

    def _fail_all(self, symbols: list[str], error: BaseException) -> QuoteResult:
        label = describe_failure(error)
        self.last_errors = {symbol: label for symbol in symbols}
        return empty_result(symbols)
