"""Tests for the portfolio view model (filters, sort cycling, build_view)."""

import locale

import pytest
from pydantic import ValidationError

from folio_tracker.core.models import HoldingType, SortDirection
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


def _ids(holdings):
    return [h.id for h in holdings]


class TestNumericRange:
    def test_inclusive_bounds(self):
        r = NumericRange(min=10, max=20)
        assert r.contains(10) and r.contains(20)
        assert not r.contains(9.99)

    def test_open_bounds(self):
        assert NumericRange(min=5).contains(1e9)
        assert NumericRange(max=5).contains(0)

    def test_inverted_bounds_rejected(self):
        with pytest.raises(ValidationError, match="greater than max"):
            NumericRange(min=10, max=1)


class TestFilters:
    def test_no_filters_keeps_everything(self, sample_holdings):
        assert _ids(apply_filters(sample_holdings, FilterState())) == _ids(sample_holdings)

    def test_sector_and_search_combine(self, sample_holdings):
        view = apply_filters(sample_holdings, FilterState(sector="Technology", search="AAP"))
        assert _ids(view) == ["hold-aapl"]

    def test_search_is_case_insensitive_over_symbol_and_name(self, sample_holdings):
        assert _ids(apply_filters(sample_holdings, FilterState(search="msft"))) == ["hold-msft"]
        assert _ids(apply_filters(sample_holdings, FilterState(search="exxon"))) == ["hold-xom"]
        assert _ids(apply_filters(sample_holdings, FilterState(search="fixed"))) == ["hold-fd"]

    def test_blank_search_ignored(self, sample_holdings):
        assert len(apply_filters(sample_holdings, FilterState(search="   "))) == 4

    def test_family_member(self, sample_holdings, make_holding):
        mine = make_holding(id="hold-mine", family_member_id="fam-1")
        view = apply_filters([*sample_holdings, mine], FilterState(family_member_id="fam-1"))
        assert _ids(view) == ["hold-mine"]

    def test_holding_type(self, sample_holdings):
        view = apply_filters(sample_holdings, FilterState(holding_type=HoldingType.FIXED_DEPOSIT))
        assert _ids(view) == ["hold-fd"]

    def test_price_range(self, sample_holdings):
        view = apply_filters(sample_holdings, FilterState(price_range=NumericRange(min=100, max=280)))
        assert _ids(view) == ["hold-aapl", "hold-msft", "hold-xom"]

    def test_value_range(self, sample_holdings):
        # values: AAPL 1000, MSFT 1400, XOM 2200, FD 50000
        view = apply_filters(sample_holdings, FilterState(value_range=NumericRange(min=1400, max=2200)))
        assert _ids(view) == ["hold-msft", "hold-xom"]

    def test_selected_sectors(self, sample_holdings):
        view = apply_filters(sample_holdings, FilterState(sectors=("Energy", "Utilities")))
        assert _ids(view) == ["hold-xom"]

    def test_performance(self, sample_holdings):
        gainers = apply_filters(sample_holdings, FilterState(performance=Performance.GAINERS))
        losers = apply_filters(sample_holdings, FilterState(performance=Performance.LOSERS))
        assert _ids(gainers) == ["hold-xom"]
        assert _ids(losers) == ["hold-aapl", "hold-msft"]

    def test_input_not_mutated(self, sample_holdings):
        before = list(sample_holdings)
        apply_filters(sample_holdings, FilterState(sector="Energy"))
        assert sample_holdings == before


class TestCycleSort:
    def test_new_key_starts_ascending(self):
        assert cycle_sort(SortState(), "value") == SortState(key="value", direction=SortDirection.ASC)

    def test_same_key_cycles(self):
        s1 = cycle_sort(SortState(), "value")
        s2 = cycle_sort(s1, "value")
        s3 = cycle_sort(s2, "value")
        assert s2.direction == SortDirection.DESC
        assert s3 == SortState()

    def test_switching_key_restarts(self):
        s = SortState(key="value", direction=SortDirection.DESC)
        assert cycle_sort(s, "name") == SortState(key="name", direction=SortDirection.ASC)


class TestSort:
    def test_numeric_sort(self, sample_holdings):
        asc = sort_holdings(sample_holdings, SortState(key="value", direction=SortDirection.ASC))
        desc = sort_holdings(sample_holdings, SortState(key="value", direction=SortDirection.DESC))
        assert _ids(asc) == ["hold-aapl", "hold-msft", "hold-xom", "hold-fd"]
        assert _ids(desc) == ["hold-fd", "hold-xom", "hold-msft", "hold-aapl"]

    def test_string_sort_ignores_case(self, make_holding):
        holdings = [
            make_holding(id="1", name="zeta"),
            make_holding(id="2", name="Alpha"),
            make_holding(id="3", name="beta"),
        ]
        view = sort_holdings(holdings, SortState(key="name", direction=SortDirection.ASC))
        assert _ids(view) == ["2", "3", "1"]

    def test_missing_values_sort_as_empty(self, sample_holdings):
        view = sort_holdings(sample_holdings, SortState(key="symbol", direction=SortDirection.ASC))
        assert _ids(view)[0] == "hold-fd"

    def test_derived_gain_percent(self, sample_holdings):
        view = sort_holdings(sample_holdings, SortState(key="gain_percent", direction=SortDirection.DESC))
        assert _ids(view)[0] == "hold-xom"

    def test_stable_for_ties(self, make_holding):
        holdings = [make_holding(id=str(i), sector="Same") for i in range(5)]
        for direction in (SortDirection.ASC, SortDirection.DESC):
            view = sort_holdings(holdings, SortState(key="sector", direction=direction))
            assert _ids(view) == ["0", "1", "2", "3", "4"]

    def test_unknown_key_raises(self, sample_holdings):
        with pytest.raises(ValueError, match="Cannot sort by"):
            sort_holdings(sample_holdings, SortState(key="colour", direction=SortDirection.ASC))

    def test_inactive_sort_keeps_order(self, sample_holdings):
        assert _ids(sort_holdings(sample_holdings, SortState(key="value"))) == _ids(sample_holdings)


class TestBuildView:
    def test_three_clicks_restore_original_order(self, sample_holdings):
        sort = SortState()
        for _ in range(3):
            sort = cycle_sort(sort, "current_price")
        assert _ids(build_view(sample_holdings, FilterState(), sort)) == _ids(sample_holdings)

    def test_idempotent(self, sample_holdings):
        filters = FilterState(sectors=("Technology", "Energy"))
        sort = SortState(key="gain", direction=SortDirection.DESC)
        once = build_view(sample_holdings, filters, sort)
        assert build_view(once, filters, sort) == once
        assert build_view(sample_holdings, filters, sort) == once

    def test_defaults(self, sample_holdings):
        assert build_view(sample_holdings) == sample_holdings


def test_summarize(sample_holdings):
    totals = summarize(sample_holdings[:3])
    assert totals["count"] == 3
    assert totals["total_value"] == pytest.approx(1000 + 1400 + 2200)
    assert totals["total_cost"] == pytest.approx(1500 + 1500 + 2000)
    assert totals["total_gain"] == pytest.approx(-400)


def test_summarize_empty():
    assert summarize([])["total_gain_percent"] == 0.0


class TestCollation:
    def test_uses_environment_locale(self, monkeypatch):
        calls = []

        def fake_setlocale(category, value=None):
            calls.append((category, value))
            return "en_IN.UTF-8"

        monkeypatch.setattr(locale, "setlocale", fake_setlocale)
        assert use_system_collation() == "en_IN.UTF-8"
        assert calls == [(locale.LC_COLLATE, "")]

    def test_unknown_locale_keeps_c_order(self, monkeypatch, caplog):
        def broken(category, value=None):
            raise locale.Error("unsupported locale setting")

        monkeypatch.setattr(locale, "setlocale", broken)
        assert use_system_collation() is None
        assert "C collation" in caplog.text
