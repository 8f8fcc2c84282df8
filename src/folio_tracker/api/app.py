"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from folio_tracker.api.deps import AppState, api_key_middleware
from folio_tracker.api.routes import router
from folio_tracker.core.config import TrackerConfig, load_config
from folio_tracker.core.exceptions import (
    ConfigError,
    FamilyMemberNotFoundError,
    FolioTrackerError,
    HoldingNotFoundError,
    MonitorError,
    RefreshError,
    StorageError,
)
from folio_tracker.monitoring.health import UpdateHealthTracker
from folio_tracker.monitoring.monitor import PriceMonitor
from folio_tracker.monitoring.notify import CollectingNotifier, FanOutNotifier, LoggingNotifier
from folio_tracker.portfolio.state import PortfolioState
from folio_tracker.portfolio.view import use_system_collation
from folio_tracker.prices.orchestrator import PriceFetchOrchestrator
from folio_tracker.prices.provider import QuoteProvider
from folio_tracker.prices.registry import default_registry
from folio_tracker.storage.store import create_store

logger = logging.getLogger(__name__)

# Most specific first
_STATUS_MAP: list[tuple[type[FolioTrackerError], int]] = [
    (HoldingNotFoundError, 404),
    (FamilyMemberNotFoundError, 404),
    (RefreshError, 503),
    (MonitorError, 409),
    (ConfigError, 400),
    (StorageError, 500),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()
    providers = app.state._pending_providers
    if providers is None:
        providers = default_registry().build_chain(config.providers)

    use_system_collation()
    store = await create_store(config.storage)
    portfolio = PortfolioState()
    await portfolio.load(store)

    notifications = CollectingNotifier()
    notifier = FanOutNotifier(LoggingNotifier(), notifications)
    orchestrator = PriceFetchOrchestrator(
        providers, cache_ttl_seconds=config.providers.cache_ttl_seconds
    )
    monitor = PriceMonitor.from_config(
        config.monitoring,
        orchestrator,
        store,
        state=portfolio,
        notifier=notifier,
        health=UpdateHealthTracker(notifier=notifier),
    )

    app.state.app_state = AppState(
        config=config,
        store=store,
        portfolio=portfolio,
        orchestrator=orchestrator,
        monitor=monitor,
        notifications=notifications,
    )
    if config.monitoring.enabled:
        app.state.app_state.stop_monitor = monitor.start()

    yield

    if app.state.app_state.stop_monitor is not None:
        await app.state.app_state.stop_monitor()
    await store.close()


def create_app(
    config: TrackerConfig | None = None,
    providers: Sequence[QuoteProvider] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``providers`` replaces the configured fallback chain when given.
    """
    import folio_tracker

    app = FastAPI(
        title="folio-tracker API",
        description="Household holdings with multi-provider price refresh",
        version=folio_tracker.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config
    app.state._pending_providers = providers

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Optional API key middleware
    if config and config.api.api_key:
        app.middleware("http")(api_key_middleware)

    app.include_router(router, prefix="/api")

    # Exception handlers
    @app.exception_handler(FolioTrackerError)
    async def tracker_exception_handler(request: Request, exc: FolioTrackerError):
        status = next((code for cls, code in _STATUS_MAP if isinstance(exc, cls)), 500)
        if status >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
