"""FastAPI route definitions for the folio-tracker API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

import folio_tracker
from folio_tracker.api.deps import (
    AppState,
    get_app_state,
    get_monitor,
    get_portfolio,
    get_store,
)
from folio_tracker.api.schemas import (
    FamilyMemberCreateRequest,
    HealthResponse,
    HoldingListResponse,
    HoldingResponse,
    MonitorStatusResponse,
    NotificationResponse,
    PortfolioSummary,
    ProviderInfo,
    QuoteResponse,
    RefreshRequest,
    RefreshResponse,
)
from folio_tracker.core.exceptions import RefreshError
from folio_tracker.core.models import (
    FamilyMember,
    HoldingCreate,
    HoldingType,
    HoldingUpdate,
    PriceAlert,
    SortDirection,
)
from folio_tracker.monitoring.monitor import PriceMonitor
from folio_tracker.portfolio.state import PortfolioState
from folio_tracker.portfolio.view import (
    SORT_KEYS,
    FilterState,
    NumericRange,
    Performance,
    SortState,
    build_view,
    summarize,
)
from folio_tracker.prices.orchestrator import PriceFetchOrchestrator
from folio_tracker.storage.store import SqliteHoldingStore

logger = logging.getLogger(__name__)

router = APIRouter()

_SORT_PATTERN = f"^({'|'.join(SORT_KEYS)})$"


def _provider_info(orchestrator: PriceFetchOrchestrator) -> list[ProviderInfo]:
    return [
        ProviderInfo(
            name=p.name,
            display_name=getattr(p, "display_name", p.name),
            has_api_key=getattr(p, "has_api_key", True),
            batch_size=p.batch_size,
            batch_delay_ms=p.batch_delay_ms,
        )
        for p in orchestrator.providers
    ]


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(state: AppState = Depends(get_app_state)):
    """System health and basic statistics."""
    stats = await state.store.get_statistics()
    return HealthResponse(
        status="ok",
        version=folio_tracker.__version__,
        total_holdings=stats["total_holdings"],
        monitor_running=state.monitor.running,
        monitor_health=state.monitor.health.get_health_status()["status"],
    )


# -- Holdings --


@router.get("/holdings", response_model=HoldingListResponse)
async def list_holdings(
    search: str | None = Query(None, description="Substring of symbol or name"),
    sector: str | None = Query(None),
    family_member_id: str | None = Query(None),
    holding_type: HoldingType | None = Query(None),
    min_price: float | None = Query(None, ge=0),
    max_price: float | None = Query(None, ge=0),
    min_value: float | None = Query(None, ge=0),
    max_value: float | None = Query(None, ge=0),
    sectors: list[str] = Query([]),
    performance: Performance | None = Query(None),
    sort_by: str | None = Query(None, pattern=_SORT_PATTERN),
    sort_dir: SortDirection = Query(SortDirection.ASC),
    portfolio: PortfolioState = Depends(get_portfolio),
):
    """List holdings through the portfolio view model."""
    try:
        filters = FilterState(
            search=search,
            sector=sector,
            family_member_id=family_member_id,
            holding_type=holding_type,
            price_range=(
                NumericRange(min=min_price, max=max_price)
                if min_price is not None or max_price is not None
                else None
            ),
            value_range=(
                NumericRange(min=min_value, max=max_value)
                if min_value is not None or max_value is not None
                else None
            ),
            sectors=tuple(sectors),
            performance=performance,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    sort = SortState(key=sort_by, direction=sort_dir if sort_by else None)
    view = build_view(portfolio.holdings, filters, sort)
    return HoldingListResponse(
        total=len(view),
        summary=PortfolioSummary(**summarize(view)),
        items=[
            HoldingResponse.from_holding(h, portfolio.member_name(h.family_member_id))
            for h in view
        ],
    )


@router.get("/holdings/{holding_id}", response_model=HoldingResponse)
async def get_holding(
    holding_id: str,
    store: SqliteHoldingStore = Depends(get_store),
    portfolio: PortfolioState = Depends(get_portfolio),
):
    holding = await store.get_holding(holding_id)
    if holding is None:
        raise HTTPException(status_code=404, detail=f"Holding '{holding_id}' not found")
    return HoldingResponse.from_holding(holding, portfolio.member_name(holding.family_member_id))


@router.post("/holdings", response_model=HoldingResponse, status_code=201)
async def create_holding(
    request: HoldingCreate,
    store: SqliteHoldingStore = Depends(get_store),
    portfolio: PortfolioState = Depends(get_portfolio),
):
    holding = await store.create_holding(request)
    portfolio.upsert(holding)
    return HoldingResponse.from_holding(holding, portfolio.member_name(holding.family_member_id))


@router.patch("/holdings/{holding_id}", response_model=HoldingResponse)
async def update_holding(
    holding_id: str,
    request: HoldingUpdate,
    store: SqliteHoldingStore = Depends(get_store),
    portfolio: PortfolioState = Depends(get_portfolio),
):
    holding = await store.update_holding(holding_id, request)
    portfolio.upsert(holding)
    return HoldingResponse.from_holding(holding, portfolio.member_name(holding.family_member_id))


@router.delete("/holdings/{holding_id}", status_code=204)
async def delete_holding(
    holding_id: str,
    store: SqliteHoldingStore = Depends(get_store),
    portfolio: PortfolioState = Depends(get_portfolio),
):
    await store.delete_holding(holding_id)
    portfolio.remove(holding_id)
    return Response(status_code=204)


# -- Family members --


@router.get("/family-members", response_model=list[FamilyMember])
async def list_family_members(store: SqliteHoldingStore = Depends(get_store)):
    return await store.list_family_members()


@router.post("/family-members", response_model=FamilyMember, status_code=201)
async def create_family_member(
    request: FamilyMemberCreateRequest,
    store: SqliteHoldingStore = Depends(get_store),
    portfolio: PortfolioState = Depends(get_portfolio),
):
    member = await store.create_family_member(request.name, request.relationship)
    portfolio.add_family_member(member)
    return member


@router.delete("/family-members/{member_id}", status_code=204)
async def delete_family_member(
    member_id: str,
    store: SqliteHoldingStore = Depends(get_store),
    portfolio: PortfolioState = Depends(get_portfolio),
):
    """Delete a member; their holdings keep the reference and show as Unknown."""
    await store.delete_family_member(member_id)
    portfolio.remove_family_member(member_id)
    return Response(status_code=204)


# -- Prices --


@router.get("/quotes", response_model=QuoteResponse)
async def get_quotes(
    symbols: list[str] = Query(...),
    state: AppState = Depends(get_app_state),
):
    """Fetch quotes without touching holdings."""
    requested = [s.strip().upper() for s in symbols if s.strip()]
    prices = await state.orchestrator.fetch(requested)
    return QuoteResponse(
        prices=prices,
        resolved=sum(1 for p in prices.values() if p is not None),
        total=len(prices),
    )


@router.post("/stocks/refresh-prices", response_model=RefreshResponse)
async def refresh_prices(
    request: RefreshRequest,
    state: AppState = Depends(get_app_state),
):
    """Refresh the given symbols now.

    200 when every symbol was updated, 207 on partial success, 503 when
    nothing could be updated or the refresh itself broke. Only the outcome
    of this call is reported.
    """
    symbols = [s for s in request.symbols if s.strip()]
    if not symbols:
        raise HTTPException(status_code=400, detail="Valid stock symbols array is required")

    monitor = state.monitor
    try:
        result = await monitor.refresh_now(symbols)
    except RefreshError as e:
        logger.error("Manual refresh failed: %s", e)
        result = e.result

    if result is None or not result.requested:
        requested, updated, failed = symbols, 0, symbols
        prices = {s: None for s in symbols}
    else:
        requested, updated, failed = result.requested, len(result.updated), result.failed
        prices = result.prices

    if result is not None and result.error is not None:
        status = 503
        message = f"Stock price refresh failed: {result.error}"
    elif updated == 0:
        status = 503
        message = "All stock price updates failed. API services may be unavailable."
    elif failed:
        status = 207
        message = (
            f"Updated {updated} of {len(requested)} stock prices. "
            "Some symbols could not be updated."
        )
    else:
        status = 200
        message = f"Updated {updated} of {len(requested)} stock prices"

    body = RefreshResponse(
        success=status != 503,
        message=message,
        updated=updated,
        total=len(requested),
        prices=prices,
        failed_symbols=failed or None,
        providers=_provider_info(state.orchestrator),
    )
    return JSONResponse(status_code=status, content=body.model_dump(mode="json"))


@router.get("/providers", response_model=list[ProviderInfo])
async def list_providers(state: AppState = Depends(get_app_state)):
    """Configured fallback chain, highest priority first."""
    return _provider_info(state.orchestrator)


# -- Monitor --


@router.get("/monitor/status", response_model=MonitorStatusResponse)
async def monitor_status(monitor: PriceMonitor = Depends(get_monitor)):
    health = monitor.health.get_health_status()
    return MonitorStatusResponse(
        running=monitor.running,
        in_flight=monitor.in_flight,
        threshold_pct=monitor.threshold_pct,
        refresh_interval_ms=monitor.refresh_interval_ms,
        status=health["status"],
        issues=health["issues"],
        metrics=monitor.health.metrics(),
        recent_alerts=health["recent_alerts"],
        last_refresh=monitor.last_result.started_at if monitor.last_result else None,
    )


@router.get("/monitor/alerts", response_model=list[PriceAlert])
async def monitor_alerts(
    limit: int = Query(20, ge=1, le=100),
    monitor: PriceMonitor = Depends(get_monitor),
):
    """Recent price-movement alerts, newest first."""
    return monitor.recent_alerts(limit)


@router.get("/monitor/notifications", response_model=list[NotificationResponse])
async def monitor_notifications(
    limit: int = Query(20, ge=1, le=100),
    state: AppState = Depends(get_app_state),
):
    """Notifications sent by the monitor (alerts and refresh failures), newest first."""
    recent = state.notifications.messages[-limit:][::-1]
    return [NotificationResponse(message=m, severity=s) for m, s in recent]
