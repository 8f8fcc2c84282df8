"""Portfolio view model: pure filter and sort over holdings.

Nothing here mutates its input; every function returns a new list, so the
same holdings, filters and sort always produce the same view.

Text sort keys collate with the process ``LC_COLLATE``. Entry points call
``use_system_collation`` so names sort the way the user's locale expects;
without it Python stays in the C locale and sorts by code point.
"""

from __future__ import annotations

import locale
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

from folio_tracker.core.models import Holding, HoldingType, SortDirection

logger = logging.getLogger(__name__)


def use_system_collation() -> str | None:
    """Adopt the environment's collation for text sort keys.

    Returns the locale now in effect, or None when the environment names
    one that is not installed (the C locale is kept).
    """
    try:
        return locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as e:
        logger.warning("Falling back to C collation: %s", e)
        return None


class Performance(StrEnum):
    GAINERS = "gainers"
    LOSERS = "losers"


class NumericRange(BaseModel):
    """Inclusive range; either bound may be omitted."""

    model_config = ConfigDict(frozen=True)

    min: float | None = None
    max: float | None = None

    @model_validator(mode="after")
    def bounds_ordered(self) -> NumericRange:
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"range min {self.min} is greater than max {self.max}")
        return self

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


class FilterState(BaseModel):
    """Active table filters. Unset fields place no constraint."""

    model_config = ConfigDict(frozen=True)

    search: str | None = None
    sector: str | None = None
    family_member_id: str | None = None
    holding_type: HoldingType | None = None
    price_range: NumericRange | None = None
    value_range: NumericRange | None = None
    sectors: tuple[str, ...] = ()
    performance: Performance | None = None


class SortState(BaseModel):
    """Current sort column and direction. ``direction=None`` means unsorted."""

    model_config = ConfigDict(frozen=True)

    key: str | None = None
    direction: SortDirection | None = None

    @property
    def active(self) -> bool:
        return self.key is not None and self.direction is not None


# Sortable keys and the type their missing values coerce to
SORT_KEYS: dict[str, type] = {
    "symbol": str,
    "name": str,
    "holding_type": str,
    "sector": str,
    "family_member_id": str,
    "notes": str,
    "quantity": float,
    "average_buy_price": float,
    "current_price": float,
    "value": float,
    "cost_basis": float,
    "gain": float,
    "gain_percent": float,
    "created_at": datetime,
    "updated_at": datetime,
    "last_updated": datetime,
}

_EPOCH = datetime.min.replace(tzinfo=UTC)


def cycle_sort(state: SortState, key: str) -> SortState:
    """Advance the sort after a click on ``key``.

    The same key cycles asc -> desc -> unsorted; a different key starts
    again at asc.
    """
    if state.key != key or state.direction is None:
        return SortState(key=key, direction=SortDirection.ASC)
    if state.direction == SortDirection.ASC:
        return SortState(key=key, direction=SortDirection.DESC)
    return SortState(key=None, direction=None)


def _matches(holding: Holding, filters: FilterState) -> bool:
    if filters.search and filters.search.strip():
        needle = filters.search.strip().casefold()
        haystacks = ((holding.symbol or "").casefold(), holding.name.casefold())
        if not any(needle in h for h in haystacks):
            return False
    if filters.sector is not None and holding.sector != filters.sector:
        return False
    if filters.family_member_id is not None and holding.family_member_id != filters.family_member_id:
        return False
    if filters.holding_type is not None and holding.holding_type != filters.holding_type:
        return False
    if filters.price_range is not None and not filters.price_range.contains(holding.current_price):
        return False
    if filters.value_range is not None and not filters.value_range.contains(holding.value):
        return False
    if filters.sectors and holding.sector not in filters.sectors:
        return False
    if filters.performance == Performance.GAINERS and not holding.gain_percent > 0:
        return False
    if filters.performance == Performance.LOSERS and not holding.gain_percent < 0:
        return False
    return True


def apply_filters(holdings: Sequence[Holding], filters: FilterState) -> list[Holding]:
    """Keep holdings that satisfy every active filter."""
    return [h for h in holdings if _matches(h, filters)]


def _sort_key(key: str) -> Callable[[Holding], Any]:
    kind = SORT_KEYS.get(key)
    if kind is None:
        raise ValueError(f"Cannot sort by {key!r}; expected one of {sorted(SORT_KEYS)}")

    if kind is str:

        def text_key(h: Holding) -> str:
            value = getattr(h, key)
            return locale.strxfrm(str(value or "").casefold())

        return text_key

    if kind is datetime:

        def date_key(h: Holding) -> datetime:
            return getattr(h, key) or _EPOCH

        return date_key

    def number_key(h: Holding) -> float:
        return getattr(h, key) or 0.0

    return number_key


def sort_holdings(holdings: Sequence[Holding], sort: SortState) -> list[Holding]:
    """Stable sort; an inactive sort returns the input order."""
    if not sort.active:
        return list(holdings)
    return sorted(
        holdings,
        key=_sort_key(sort.key),
        reverse=sort.direction == SortDirection.DESC,
    )


def build_view(
    holdings: Sequence[Holding],
    filters: FilterState | None = None,
    sort: SortState | None = None,
) -> list[Holding]:
    """Filter, then sort."""
    filtered = apply_filters(holdings, filters or FilterState())
    return sort_holdings(filtered, sort or SortState())


def summarize(holdings: Sequence[Holding]) -> dict[str, float | int]:
    """Totals for a view: count, value, cost basis, gain and gain percent."""
    value = sum(h.value for h in holdings)
    cost = sum(h.cost_basis for h in holdings)
    gain = value - cost
    return {
        "count": len(holdings),
        "total_value": value,
        "total_cost": cost,
        "total_gain": gain,
        "total_gain_percent": (gain / cost * 100) if cost else 0.0,
    }
