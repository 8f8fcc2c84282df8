"""Portfolio state and the filter/sort view model."""

from folio_tracker.portfolio.state import UNKNOWN_MEMBER, PortfolioState
from folio_tracker.portfolio.view import (
    FilterState,
    NumericRange,
    Performance,
    SortState,
    apply_filters,
    build_view,
    cycle_sort,
    sort_holdings,
    summarize,
    use_system_collation,
)

__all__ = [
    "PortfolioState",
    "UNKNOWN_MEMBER",
    "FilterState",
    "NumericRange",
    "Performance",
    "SortState",
    "apply_filters",
    "build_view",
    "cycle_sort",
    "sort_holdings",
    "summarize",
    "use_system_collation",
]
