"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse

from folio_tracker.core.config import TrackerConfig
from folio_tracker.monitoring.monitor import PriceMonitor
from folio_tracker.monitoring.notify import CollectingNotifier
from folio_tracker.portfolio.state import PortfolioState
from folio_tracker.prices.orchestrator import PriceFetchOrchestrator
from folio_tracker.storage.store import SqliteHoldingStore


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: TrackerConfig
    store: SqliteHoldingStore
    portfolio: PortfolioState
    orchestrator: PriceFetchOrchestrator
    monitor: PriceMonitor
    notifications: CollectingNotifier
    stop_monitor: Callable[[], Awaitable[None]] | None = None


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_store(request: Request) -> SqliteHoldingStore:
    """Dependency: retrieve storage backend."""
    return request.app.state.app_state.store


def get_portfolio(request: Request) -> PortfolioState:
    return request.app.state.app_state.portfolio


def get_monitor(request: Request) -> PriceMonitor:
    return request.app.state.app_state.monitor


EXEMPT_PATHS = {"/api/health"}


async def api_key_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware: validate X-API-Key header when authentication is enabled."""
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    config = request.app.state.app_state.config
    if config.api.api_key:
        api_key = request.headers.get("X-API-Key")
        if api_key != config.api.api_key:
            return JSONResponse(
                status_code=401,
                content={"error": "Unauthorized", "detail": "Invalid or missing API key"},
            )
    return await call_next(request)
