"""Named registry of quote providers and fallback-chain construction."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from folio_tracker.core.config import ProvidersConfig
from folio_tracker.core.exceptions import ConfigError
from folio_tracker.prices.alpha_vantage import AlphaVantageQuoteProvider
from folio_tracker.prices.fmp import FMPQuoteProvider
from folio_tracker.prices.provider import QuoteProvider
from folio_tracker.prices.yahoo import YahooQuoteProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderSettings:
    """Construction arguments handed to a provider factory."""

    api_key: str | None = None
    timeout: float = 15.0
    batch_size: int | None = None
    batch_delay_ms: int | None = None

    def as_kwargs(self) -> dict:
        kwargs: dict = {"api_key": self.api_key, "timeout": self.timeout}
        if self.batch_size is not None:
            kwargs["batch_size"] = self.batch_size
        if self.batch_delay_ms is not None:
            kwargs["batch_delay_ms"] = self.batch_delay_ms
        return kwargs


ProviderFactory = Callable[[ProviderSettings], QuoteProvider]


class ProviderRegistry:
    """Maps provider names to factories.

    The fallback order lives in configuration; the registry only knows how
    to build each provider by name.
    """

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        key = name.strip().lower()
        if key in self._factories:
            logger.debug("Replacing provider factory %r", key)
        self._factories[key] = factory

    def names(self) -> list[str]:
        return list(self._factories)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._factories

    def create(self, name: str, settings: ProviderSettings | None = None) -> QuoteProvider:
        """Instantiate a provider by name.

        Raises:
            ConfigError: If no provider is registered under ``name``.
        """
        key = name.strip().lower()
        factory = self._factories.get(key)
        if factory is None:
            raise ConfigError(
                f"Unknown quote provider: {name!r}",
                context={"field": "providers.order", "value": name, "known": self.names()},
            )
        return factory(settings or ProviderSettings())

    def build_chain(self, config: ProvidersConfig) -> list[QuoteProvider]:
        """Build the ordered fallback chain described by ``config``.

        Providers disabled through ``config.overrides`` are left out.
        """
        chain: list[QuoteProvider] = []
        for name in config.order:
            override = config.override_for(name)
            if not override.enabled:
                logger.info("Quote provider %s disabled by config", name)
                continue
            settings = ProviderSettings(
                api_key=config.api_key_for(name),
                timeout=config.request_timeout,
                batch_size=override.batch_size,
                batch_delay_ms=override.batch_delay_ms,
            )
            chain.append(self.create(name, settings))

        if not chain:
            raise ConfigError(
                "Every quote provider is disabled",
                context={"field": "providers.overrides"},
            )
        return chain


def default_registry() -> ProviderRegistry:
    """Return a registry with the built-in providers registered."""
    registry = ProviderRegistry()
    registry.register("fmp", lambda s: FMPQuoteProvider(**s.as_kwargs()))
    registry.register("yahoo", lambda s: YahooQuoteProvider(**s.as_kwargs()))
    registry.register("alpha_vantage", lambda s: AlphaVantageQuoteProvider(**s.as_kwargs()))
    return registry
