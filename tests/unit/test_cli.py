"""Tests for the CLI module."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from folio_tracker.cli import cli
from folio_tracker.prices import PriceFetchOrchestrator


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("FOLIO_TRACKER_STORAGE__SQLITE_PATH", str(tmp_path / "cli.db"))
    return CliRunner()


def _patch_orchestrator(*providers):
    return patch(
        "folio_tracker.cli._build_orchestrator",
        return_value=PriceFetchOrchestrator(list(providers)),
    )


def _add(runner, *args) -> str:
    result = runner.invoke(cli, ["holdings", "add", *args])
    assert result.exit_code == 0, result.output
    return result.output.strip().splitlines()[-1]


def _list_json(runner, *args) -> list[dict]:
    result = runner.invoke(cli, ["holdings", "list", "--format", "json", *args])
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


# ---------------------------------------------------------------------------
# Group
# ---------------------------------------------------------------------------


class TestGroup:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("quote", "holdings", "refresh", "monitor", "providers", "serve", "status"):
            assert command in result.output

    def test_missing_config_file(self, runner):
        result = runner.invoke(cli, ["--config", "nope.yml", "status"])
        assert result.exit_code == 2

    def test_invalid_config_exits_2(self, runner, tmp_path):
        bad = tmp_path / "bad.yml"
        bad.write_text("monitoring:\n  threshold: -1\n")
        result = runner.invoke(cli, ["--config", str(bad), "status"])
        assert result.exit_code == 2
        assert "Configuration error" in result.output

    def test_adopts_system_collation(self, runner):
        with patch("folio_tracker.portfolio.view.use_system_collation") as collation:
            result = runner.invoke(cli, ["providers"])
        assert result.exit_code == 0
        collation.assert_called_once_with()


# ---------------------------------------------------------------------------
# holdings
# ---------------------------------------------------------------------------


class TestHoldings:
    def test_add_and_list(self, runner):
        holding_id = _add(
            runner, "--name", "Apple Inc.", "--symbol", "aapl", "-q", "10",
            "--buy-price", "150", "--current-price", "180", "--sector", "Technology",
        )
        assert holding_id.startswith("hold-")

        rows = _list_json(runner)
        assert len(rows) == 1
        row = rows[0]
        assert row["id"] == holding_id
        assert row["symbol"] == "AAPL"
        assert row["value"] == pytest.approx(1800)
        assert row["gain_percent"] == pytest.approx(20)
        assert row["family_member_name"] is None

    def test_add_rejects_negative_quantity(self, runner):
        result = runner.invoke(
            cli, ["holdings", "add", "--name", "X", "-q", "-1", "--buy-price", "1"]
        )
        assert result.exit_code == 2

    def test_filters_and_sort(self, runner):
        _add(runner, "--name", "Apple", "--symbol", "AAPL", "-q", "10", "--buy-price", "100",
             "--current-price", "110", "--sector", "Technology")
        _add(runner, "--name", "Microsoft", "--symbol", "MSFT", "-q", "5", "--buy-price", "300",
             "--current-price", "280", "--sector", "Technology")
        _add(runner, "--name", "Exxon", "--symbol", "XOM", "-q", "20", "--buy-price", "100",
             "--current-price", "120", "--sector", "Energy")

        tech = _list_json(runner, "--sector", "Technology", "--search", "aap")
        assert [r["symbol"] for r in tech] == ["AAPL"]

        by_value = _list_json(runner, "--sort-by", "value", "--desc")
        assert [r["symbol"] for r in by_value] == ["XOM", "MSFT", "AAPL"]

        losers = _list_json(runner, "--performance", "losers")
        assert [r["symbol"] for r in losers] == ["MSFT"]

        energy_or_utilities = _list_json(runner, "--sectors", "Energy, Utilities")
        assert [r["symbol"] for r in energy_or_utilities] == ["XOM"]

    def test_unknown_sort_key(self, runner):
        result = runner.invoke(cli, ["holdings", "list", "--sort-by", "colour"])
        assert result.exit_code == 2
        assert "Cannot sort by" in result.output

    def test_inverted_range(self, runner):
        result = runner.invoke(cli, ["holdings", "list", "--min-price", "10", "--max-price", "1"])
        assert result.exit_code == 2

    def test_csv_output(self, runner):
        _add(runner, "--name", "Gold ETF", "--type", "gold", "-q", "2", "--buy-price", "5000")
        result = runner.invoke(cli, ["holdings", "list", "--format", "csv"])
        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert lines[0].startswith("id,symbol,name")
        assert "Gold ETF" in lines[1]

    def test_empty_table(self, runner):
        result = runner.invoke(cli, ["holdings", "list"])
        assert result.exit_code == 0
        assert "No holdings match" in result.output

    def test_remove(self, runner):
        holding_id = _add(runner, "--name", "Apple", "--symbol", "AAPL", "-q", "1", "--buy-price", "1")
        result = runner.invoke(cli, ["holdings", "remove", holding_id])
        assert result.exit_code == 0
        assert _list_json(runner) == []

    def test_remove_missing(self, runner):
        result = runner.invoke(cli, ["holdings", "remove", "hold-nope"])
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# quote / refresh / monitor
# ---------------------------------------------------------------------------


class TestPrices:
    def test_quote_json(self, runner, fake_provider):
        provider = fake_provider("p1", prices={"AAPL": 175.5})
        with _patch_orchestrator(provider):
            result = runner.invoke(cli, ["quote", "aapl", "MSFT", "--format", "json"])
        assert result.exit_code == 0
        assert json.loads(result.output) == {"AAPL": 175.5, "MSFT": None}

    def test_quote_table(self, runner, fake_provider):
        provider = fake_provider("p1", prices={"AAPL": 175.5})
        with _patch_orchestrator(provider):
            result = runner.invoke(cli, ["quote", "AAPL"])
        assert result.exit_code == 0
        assert "175.50" in result.output

    def test_quote_all_missing_exits_1(self, runner, fake_provider):
        with _patch_orchestrator(fake_provider("p1")):
            result = runner.invoke(cli, ["quote", "AAPL"])
        assert result.exit_code == 1

    def test_refresh_updates_prices(self, runner, fake_provider):
        _add(runner, "--name", "Apple", "--symbol", "AAPL", "-q", "10", "--buy-price", "100")
        with _patch_orchestrator(fake_provider("p1", prices={"AAPL": 120.0})):
            result = runner.invoke(cli, ["refresh"])
        assert result.exit_code == 0, result.output
        assert "Updated" in result.output
        (row,) = _list_json(runner)
        assert row["current_price"] == 120.0
        assert row["last_updated"] is not None

    def test_refresh_nothing_to_do(self, runner, fake_provider):
        with _patch_orchestrator(fake_provider("p1")):
            result = runner.invoke(cli, ["refresh"])
        assert result.exit_code == 0
        assert "No holdings with symbols" in result.output

    def test_refresh_failure_exits_1(self, runner, fake_provider):
        _add(runner, "--name", "Apple", "--symbol", "AAPL", "-q", "10", "--buy-price", "100")
        with _patch_orchestrator(fake_provider("p1", error=RuntimeError("down"))):
            result = runner.invoke(cli, ["refresh"])
        assert result.exit_code == 1
        assert "Refresh failed" in result.output

    def test_monitor_ticks(self, runner, fake_provider):
        _add(runner, "--name", "Apple", "--symbol", "AAPL", "-q", "10", "--buy-price", "100")
        with _patch_orchestrator(fake_provider("p1", prices={"AAPL": 150.0})):
            result = runner.invoke(cli, ["monitor", "--ticks", "1"])
        assert result.exit_code == 0, result.output
        assert "1/1 updated, 1 alerts" in result.output


# ---------------------------------------------------------------------------
# providers / status
# ---------------------------------------------------------------------------


class TestInfo:
    def test_providers(self, runner, fake_provider):
        with _patch_orchestrator(fake_provider("alpha"), fake_provider("beta")):
            result = runner.invoke(cli, ["providers"])
        assert result.exit_code == 0
        assert "alpha" in result.output and "beta" in result.output

    def test_status(self, runner):
        _add(runner, "--name", "Apple", "--symbol", "AAPL", "-q", "10", "--buy-price", "100")
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 0
        assert "Holdings" in result.output
        assert "never" in result.output
