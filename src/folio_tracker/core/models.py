"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

import math
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Type Aliases ---

Symbol = str
HoldingId = str
FamilyMemberId = str
QuoteResult = dict[Symbol, float | None]

# --- Enumerations ---


class HoldingType(StrEnum):
    """Asset classes tracked by folio-tracker."""

    STOCK = "stock"
    FIXED_DEPOSIT = "fixed_deposit"
    SIP = "sip"
    GOLD = "gold"
    PROVIDENT_FUND = "provident_fund"
    SAVINGS = "savings"
    INSURANCE = "insurance"


class Severity(StrEnum):
    """Notification severities, lowest to highest."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class SortDirection(StrEnum):
    """Table sort directions. ``None`` (no sort) is represented by Python None."""

    ASC = "asc"
    DESC = "desc"


class HealthStatus(StrEnum):
    """Overall health of the price update pipeline."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


# --- Holdings ---


class Holding(BaseModel):
    """A single financial asset owned by the user or a family member.

    ``family_member_id`` is a soft reference: deleting the member leaves
    the id in place, and display code resolves it to "Unknown".
    """

    model_config = ConfigDict(frozen=True)

    id: HoldingId
    symbol: Symbol | None = None
    name: str
    holding_type: HoldingType = HoldingType.STOCK
    quantity: float
    average_buy_price: float
    current_price: float
    sector: str | None = None
    family_member_id: FamilyMemberId | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
    last_updated: datetime | None = None

    @field_validator("symbol")
    @classmethod
    def symbol_upper(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().upper()
        return v or None

    @field_validator("quantity", "average_buy_price", "current_price")
    @classmethod
    def non_negative(cls, v: float) -> float:
        if v < 0 or not math.isfinite(v):
            raise ValueError(f"must be a finite number >= 0, got {v}")
        return v

    @property
    def value(self) -> float:
        """Current market value."""
        return self.quantity * self.current_price

    @property
    def cost_basis(self) -> float:
        return self.quantity * self.average_buy_price

    @property
    def gain(self) -> float:
        return self.value - self.cost_basis

    @property
    def gain_percent(self) -> float:
        """Percent change of the current price over the average buy price."""
        if self.average_buy_price == 0:
            return 0.0
        return (self.current_price - self.average_buy_price) / self.average_buy_price * 100


class HoldingCreate(BaseModel):
    """Fields accepted when creating a holding."""

    symbol: Symbol | None = None
    name: str
    holding_type: HoldingType = HoldingType.STOCK
    quantity: float = Field(ge=0)
    average_buy_price: float = Field(ge=0)
    current_price: float | None = Field(default=None, ge=0)
    sector: str | None = None
    family_member_id: FamilyMemberId | None = None
    notes: str | None = None


class HoldingUpdate(BaseModel):
    """Partial update; unset fields are left unchanged."""

    symbol: Symbol | None = None
    name: str | None = None
    holding_type: HoldingType | None = None
    quantity: float | None = Field(default=None, ge=0)
    average_buy_price: float | None = Field(default=None, ge=0)
    current_price: float | None = Field(default=None, ge=0)
    sector: str | None = None
    family_member_id: FamilyMemberId | None = None
    notes: str | None = None


class FamilyMember(BaseModel):
    """A household member who can own holdings."""

    model_config = ConfigDict(frozen=True)

    id: FamilyMemberId
    name: str
    relationship: str | None = None
    created_at: datetime


# --- Price / Monitoring Models ---


class PriceAlert(BaseModel):
    """A price move that crossed the configured threshold."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    previous_price: float
    new_price: float
    change_percent: float
    severity: Severity
    message: str
    triggered_at: datetime


class ProviderAttempt(BaseModel):
    """One adapter invocation made by the orchestrator."""

    model_config = ConfigDict(frozen=True)

    provider: str
    symbols: list[Symbol]
    resolved: list[Symbol] = []
    error: str | None = None
    # Per-symbol failures the provider reported without raising
    errors: dict[Symbol, str] = {}
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None and bool(self.resolved)


class RefreshResult(BaseModel):
    """Outcome of one monitoring tick or manual refresh.

    ``error`` is set when the pass itself broke (storage or orchestrator
    failure) rather than providers merely returning no prices.
    """

    requested: list[Symbol]
    updated: list[Symbol] = []
    failed: list[Symbol] = []
    prices: QuoteResult = {}
    alerts: list[PriceAlert] = []
    attempts: list[ProviderAttempt] = []
    started_at: datetime
    duration_ms: float = 0.0
    error: str | None = None

    @property
    def success(self) -> bool:
        if self.error is not None:
            return False
        return bool(self.updated) or not self.requested
