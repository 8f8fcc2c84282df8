"""Multi-provider price fetching with batching and ordered fallback."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Sequence

from cachetools import TTLCache

from folio_tracker.core.models import ProviderAttempt, QuoteResult
from folio_tracker.prices.provider import QuoteProvider, describe_failure
from folio_tracker.prices.symbols import to_provider_symbol

logger = logging.getLogger(__name__)

# Prices outside this band are treated as vendor garbage
MIN_VALID_PRICE = 0.0
MAX_VALID_PRICE = 1_000_000.0


def is_valid_price(price: float | None) -> bool:
    """True for a finite price in (0, 1_000_000]."""
    if price is None:
        return False
    return MIN_VALID_PRICE < price <= MAX_VALID_PRICE


def chunked(symbols: Sequence[str], size: int) -> list[list[str]]:
    size = max(1, size)
    return [list(symbols[i : i + size]) for i in range(0, len(symbols), size)]


class PriceFetchOrchestrator:
    """Resolves prices by walking an ordered chain of quote providers.

    For each provider, the still-unresolved symbols are split into chunks
    of ``provider.batch_size`` and fetched sequentially, sleeping
    ``provider.batch_delay_ms`` between chunks. Only symbols that remain
    unresolved are handed to the next provider, so a symbol is never
    priced by more than one provider per fetch.

    The result always has exactly one key per requested symbol. Provider
    exceptions are logged and treated as "no data"; ``fetch`` itself does
    not raise for provider failures.

    Parameters
    ----------
    providers : Sequence[QuoteProvider]
        Fallback chain, highest priority first.
    cache_ttl_seconds : int
        Lifetime of cached prices. 0 disables the cache.
    """

    def __init__(
        self,
        providers: Sequence[QuoteProvider],
        cache_ttl_seconds: int = 0,
    ) -> None:
        self._providers = list(providers)
        self._cache: TTLCache | None = (
            TTLCache(maxsize=4096, ttl=cache_ttl_seconds) if cache_ttl_seconds > 0 else None
        )
        self.last_attempts: list[ProviderAttempt] = []

    @property
    def providers(self) -> list[QuoteProvider]:
        return list(self._providers)

    def clear_cache(self) -> None:
        if self._cache is not None:
            self._cache.clear()

    async def fetch(self, symbols: Iterable[str], force_refresh: bool = False) -> QuoteResult:
        """Fetch the latest price for every symbol.

        Parameters
        ----------
        symbols : Iterable[str]
            Symbols to price. Duplicates are collapsed.
        force_refresh : bool
            Ignore cached prices.

        Returns
        -------
        QuoteResult
            Every requested symbol mapped to a price, or None when no
            provider could price it.
        """
        requested = list(dict.fromkeys(symbols))
        result: QuoteResult = {symbol: None for symbol in requested}
        attempts: list[ProviderAttempt] = []

        remaining: list[str] = []
        for symbol in requested:
            cached = None if force_refresh or self._cache is None else self._cache.get(symbol)
            if cached is not None:
                result[symbol] = cached
            else:
                remaining.append(symbol)

        if len(remaining) < len(requested):
            logger.debug("%d prices served from cache", len(requested) - len(remaining))

        for provider in self._providers:
            if not remaining:
                break
            await self._fetch_from_provider(provider, remaining, result, attempts)
            remaining = [s for s in remaining if result[s] is None]

        resolved = len(requested) - len(remaining)
        logger.info("Resolved %d/%d prices", resolved, len(requested))
        if remaining:
            logger.warning("No provider could price: %s", ", ".join(remaining))

        self.last_attempts = attempts
        return result

    async def _fetch_from_provider(
        self,
        provider: QuoteProvider,
        symbols: list[str],
        result: QuoteResult,
        attempts: list[ProviderAttempt],
    ) -> None:
        """Run one provider's pass over ``symbols``, merging into ``result``."""
        chunks = chunked(symbols, provider.batch_size)
        for index, chunk in enumerate(chunks):
            if index > 0 and provider.batch_delay_ms > 0:
                logger.debug(
                    "[%s] waiting %dms before batch %d/%d",
                    provider.name,
                    provider.batch_delay_ms,
                    index + 1,
                    len(chunks),
                )
                await asyncio.sleep(provider.batch_delay_ms / 1000)

            api_symbols = [to_provider_symbol(s) for s in chunk]
            started = time.monotonic()
            try:
                prices = await provider.fetch_prices(api_symbols)
            except Exception as e:
                logger.error("[%s] batch %s failed: %s", provider.name, chunk, e)
                attempts.append(
                    ProviderAttempt(
                        provider=provider.name,
                        symbols=chunk,
                        error=describe_failure(e),
                        duration_ms=(time.monotonic() - started) * 1000,
                    )
                )
                continue

            resolved: list[str] = []
            for symbol, api_symbol in zip(chunk, api_symbols):
                price = prices.get(api_symbol)
                if price is None:
                    continue
                if not is_valid_price(price):
                    logger.warning("[%s] rejected price %r for %s", provider.name, price, symbol)
                    continue
                result[symbol] = price
                resolved.append(symbol)
                if self._cache is not None:
                    self._cache[symbol] = price

            reported = getattr(provider, "last_errors", None) or {}
            errors = {
                symbol: reported[api_symbol]
                for symbol, api_symbol in zip(chunk, api_symbols)
                if api_symbol in reported and symbol not in resolved
            }
            attempts.append(
                ProviderAttempt(
                    provider=provider.name,
                    symbols=chunk,
                    resolved=resolved,
                    errors=errors,
                    duration_ms=(time.monotonic() - started) * 1000,
                )
            )
            logger.debug("[%s] resolved %d/%d", provider.name, len(resolved), len(chunk))
