"""Multi-provider quote fetching.

Architecture
------------
Uses the adapter pattern to decouple quote vendors from consumers:

    Vendor API → QuoteAdapter → QuoteResult → QuoteProvider → PriceFetchOrchestrator

Key abstractions:

- ``QuoteProvider``: One vendor, with its own batch size and delay.
- ``QuoteAdapter``: Parses a vendor's JSON into ``{symbol: price | None}``.
- ``ProviderRegistry``: Builds providers by name; config decides the order.
- ``PriceFetchOrchestrator``: Walks the chain until every symbol is priced.

Built-in providers: Financial Modeling Prep (``fmp``), Yahoo Finance
(``yahoo``), Alpha Vantage (``alpha_vantage``).

Adding a new quote source:
1. Write a provider with ``name``, ``batch_size``, ``batch_delay_ms`` and
   an async ``fetch_prices(symbols)``.
2. Register a factory for it on the registry.
3. Add its name to ``providers.order`` in the config.
"""

from folio_tracker.prices.alpha_vantage import AlphaVantageQuoteAdapter, AlphaVantageQuoteProvider
from folio_tracker.prices.fmp import FMPQuoteAdapter, FMPQuoteProvider
from folio_tracker.prices.orchestrator import PriceFetchOrchestrator, is_valid_price
from folio_tracker.prices.provider import QuoteAdapter, QuoteProvider
from folio_tracker.prices.registry import ProviderRegistry, ProviderSettings, default_registry
from folio_tracker.prices.symbols import to_provider_symbol
from folio_tracker.prices.yahoo import YahooQuoteAdapter, YahooQuoteProvider

__all__ = [
    # Protocols
    "QuoteAdapter",
    "QuoteProvider",
    # Providers
    "FMPQuoteAdapter",
    "FMPQuoteProvider",
    "YahooQuoteAdapter",
    "YahooQuoteProvider",
    "AlphaVantageQuoteAdapter",
    "AlphaVantageQuoteProvider",
    # Registry
    "ProviderRegistry",
    "ProviderSettings",
    "default_registry",
    # Orchestration
    "PriceFetchOrchestrator",
    "is_valid_price",
    "to_provider_symbol",
]
