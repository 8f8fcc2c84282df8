"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from folio_tracker.core.models import HealthStatus, Holding, HoldingType, Severity
from folio_tracker.monitoring.health import HealthAlert


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Health --


class HealthResponse(BaseModel):
    status: str
    version: str
    total_holdings: int
    monitor_running: bool
    monitor_health: HealthStatus


# -- Holdings --


class HoldingResponse(BaseModel):
    """Holding plus derived values and the resolved owner name."""

    id: str
    symbol: str | None
    name: str
    holding_type: HoldingType
    quantity: float
    average_buy_price: float
    current_price: float
    sector: str | None
    family_member_id: str | None
    family_member_name: str | None
    notes: str | None
    value: float
    cost_basis: float
    gain: float
    gain_percent: float
    created_at: datetime
    updated_at: datetime
    last_updated: datetime | None

    @classmethod
    def from_holding(cls, holding: Holding, member_name: str | None) -> HoldingResponse:
        return cls(
            **holding.model_dump(),
            family_member_name=member_name,
            value=holding.value,
            cost_basis=holding.cost_basis,
            gain=holding.gain,
            gain_percent=holding.gain_percent,
        )


class PortfolioSummary(BaseModel):
    count: int
    total_value: float
    total_cost: float
    total_gain: float
    total_gain_percent: float


class HoldingListResponse(BaseModel):
    total: int
    summary: PortfolioSummary
    items: list[HoldingResponse]


# -- Family members --


class FamilyMemberCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    relationship: str | None = None


# -- Prices --


class ProviderInfo(BaseModel):
    name: str
    display_name: str
    has_api_key: bool
    batch_size: int
    batch_delay_ms: int


class QuoteResponse(BaseModel):
    prices: dict[str, float | None]
    resolved: int
    total: int


class RefreshRequest(BaseModel):
    symbols: list[str] = []


class RefreshResponse(BaseModel):
    """Body of POST /stocks/refresh-prices for every outcome."""

    success: bool
    message: str
    updated: int
    total: int
    prices: dict[str, float | None]
    failed_symbols: list[str] | None = None
    providers: list[ProviderInfo]


# -- Monitor --


class MonitorStatusResponse(BaseModel):
    running: bool
    in_flight: bool
    threshold_pct: float
    refresh_interval_ms: int
    status: HealthStatus
    issues: list[str]
    metrics: dict[str, Any]
    recent_alerts: list[HealthAlert]
    last_refresh: datetime | None = None


class NotificationResponse(BaseModel):
    message: str
    severity: Severity
