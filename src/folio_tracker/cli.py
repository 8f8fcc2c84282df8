"""Click-based CLI for folio-tracker.

Thin wrapper around library modules. Every operation delegates to the
prices, monitoring, portfolio, or storage packages.
"""

from __future__ import annotations

import asyncio
import csv
import json
import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

console = Console(stderr=True)

_SEVERITY_STYLES = {
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
    "critical": "bold red",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from folio_tracker.core import ConfigError, load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as e:
            console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
            raise SystemExit(2) from e
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from folio_tracker.storage import create_store

    return await create_store(config.storage)


def _build_orchestrator(config):
    """Build the fallback chain and orchestrator described by config."""
    from folio_tracker.prices import PriceFetchOrchestrator, default_registry

    providers = default_registry().build_chain(config.providers)
    return PriceFetchOrchestrator(providers, cache_ttl_seconds=config.providers.cache_ttl_seconds)


class ConsoleNotifier:
    """Prints notifications to the terminal, coloured by severity."""

    def notify(self, message: str, severity) -> None:
        style = _SEVERITY_STYLES.get(str(severity), "white")
        console.print(f"[{style}]{str(severity).upper()}[/{style}] {escape(message)}")


async def _build_monitor(config, store):
    from folio_tracker.monitoring import PriceMonitor, UpdateHealthTracker
    from folio_tracker.portfolio import PortfolioState

    notifier = ConsoleNotifier()
    state = PortfolioState()
    await state.load(store)
    return PriceMonitor.from_config(
        config.monitoring,
        _build_orchestrator(config),
        store,
        state=state,
        notifier=notifier,
        health=UpdateHealthTracker(notifier=notifier),
    )


def _format_price(price: float | None) -> str:
    return f"{price:,.2f}" if price is not None else "[dim]n/a[/dim]"


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="FOLIO_TRACKER_CONFIG",
    default=None,
    help="Path to folio-tracker.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="folio-tracker")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """folio-tracker: household holdings with live price refresh."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    from folio_tracker.portfolio.view import use_system_collation

    use_system_collation()


# ---------------------------------------------------------------------------
# quote
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("symbols", nargs=-1, required=True)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def quote(ctx: click.Context, symbols: tuple[str, ...], output_format: str) -> None:
    """Fetch current prices for SYMBOLS through the provider chain."""
    config = _load_config(ctx)
    requested = [s.strip().upper() for s in symbols if s.strip()]

    async def _run():
        orchestrator = _build_orchestrator(config)
        prices = await orchestrator.fetch(requested)
        return prices, orchestrator.last_attempts

    prices, attempts = _run_async(_run())

    if output_format == "json":
        click.echo(json.dumps(prices, indent=2))
    else:
        resolved_by = {s: a.provider for a in attempts for s in a.resolved}
        table = Table(title="Quotes")
        table.add_column("Symbol", style="bold")
        table.add_column("Price", justify="right")
        table.add_column("Provider")
        for symbol, price in prices.items():
            table.add_row(symbol, _format_price(price), resolved_by.get(symbol, "-"))
        console.print(table)

    if all(p is None for p in prices.values()):
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# holdings
# ---------------------------------------------------------------------------


@cli.group()
def holdings() -> None:
    """List, add, and remove holdings."""


@holdings.command("list")
@click.option("--search", "-s", default=None, help="Substring of symbol or name.")
@click.option("--sector", default=None, help="Exact sector.")
@click.option("--sectors", default=None, help="Comma-separated sectors (any of).")
@click.option("--member", "family_member_id", default=None, help="Family member id.")
@click.option(
    "--type",
    "holding_type",
    type=click.Choice(["stock", "fixed_deposit", "sip", "gold", "provident_fund", "savings", "insurance"]),
    default=None,
)
@click.option("--min-price", type=float, default=None)
@click.option("--max-price", type=float, default=None)
@click.option("--min-value", type=float, default=None)
@click.option("--max-value", type=float, default=None)
@click.option(
    "--performance",
    type=click.Choice(["gainers", "losers"], case_sensitive=False),
    default=None,
)
@click.option("--sort-by", default=None, help="Field to sort by (e.g. value, gain_percent).")
@click.option("--desc", is_flag=True, default=False, help="Sort descending.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json", "csv"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def list_holdings(
    ctx: click.Context,
    search: str | None,
    sector: str | None,
    sectors: str | None,
    family_member_id: str | None,
    holding_type: str | None,
    min_price: float | None,
    max_price: float | None,
    min_value: float | None,
    max_value: float | None,
    performance: str | None,
    sort_by: str | None,
    desc: bool,
    output_format: str,
) -> None:
    """Show holdings, filtered and sorted."""
    from folio_tracker.core import SortDirection
    from folio_tracker.portfolio import (
        FilterState,
        NumericRange,
        PortfolioState,
        SortState,
        build_view,
        summarize,
    )
    from folio_tracker.portfolio.view import SORT_KEYS

    if sort_by is not None and sort_by not in SORT_KEYS:
        raise click.UsageError(f"Cannot sort by '{sort_by}'. Choose from: {', '.join(SORT_KEYS)}")

    try:
        filters = FilterState(
            search=search,
            sector=sector,
            sectors=tuple(s.strip() for s in sectors.split(",") if s.strip()) if sectors else (),
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
            performance=performance,
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    sort = SortState(
        key=sort_by,
        direction=(SortDirection.DESC if desc else SortDirection.ASC) if sort_by else None,
    )

    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            state = PortfolioState()
            await state.load(store)
            return state
        finally:
            await store.close()

    state = _run_async(_run())
    view = build_view(state.holdings, filters, sort)

    if output_format == "json":
        click.echo(
            json.dumps(
                [
                    {
                        **h.model_dump(mode="json"),
                        "family_member_name": state.member_name(h.family_member_id),
                        "value": h.value,
                        "gain": h.gain,
                        "gain_percent": h.gain_percent,
                    }
                    for h in view
                ],
                indent=2,
            )
        )
        return

    if output_format == "csv":
        writer = csv.writer(sys.stdout)
        writer.writerow(
            ["id", "symbol", "name", "type", "quantity", "avg_buy_price",
             "current_price", "value", "gain_percent", "sector", "member"]
        )
        for h in view:
            writer.writerow(
                [h.id, h.symbol or "", h.name, h.holding_type, h.quantity,
                 h.average_buy_price, h.current_price, f"{h.value:.2f}",
                 f"{h.gain_percent:.2f}", h.sector or "",
                 state.member_name(h.family_member_id) or ""]
            )
        return

    if not view:
        console.print("[yellow]No holdings match.[/yellow]")
        return

    table = Table(title="Holdings")
    table.add_column("ID", style="dim")
    table.add_column("Symbol", style="bold")
    table.add_column("Name")
    table.add_column("Qty", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Value", justify="right")
    table.add_column("Gain %", justify="right")
    table.add_column("Sector")
    table.add_column("Member")
    for h in view:
        colour = "green" if h.gain_percent > 0 else "red" if h.gain_percent < 0 else "white"
        table.add_row(
            h.id,
            h.symbol or "-",
            h.name,
            f"{h.quantity:g}",
            f"{h.current_price:,.2f}",
            f"{h.value:,.2f}",
            f"[{colour}]{h.gain_percent:+.2f}%[/{colour}]",
            h.sector or "-",
            state.member_name(h.family_member_id) or "-",
        )
    totals = summarize(view)
    table.add_section()
    table.add_row(
        "", "", f"{totals['count']} holdings", "", "",
        f"{totals['total_value']:,.2f}", f"{totals['total_gain_percent']:+.2f}%", "", "",
    )
    console.print(table)


@holdings.command("add")
@click.option("--name", required=True, help="Display name.")
@click.option("--symbol", default=None, help="Ticker symbol (omit for non-market assets).")
@click.option(
    "--type",
    "holding_type",
    type=click.Choice(["stock", "fixed_deposit", "sip", "gold", "provident_fund", "savings", "insurance"]),
    default="stock",
)
@click.option("--quantity", "-q", type=float, required=True)
@click.option("--buy-price", type=float, required=True, help="Average buy price.")
@click.option("--current-price", type=float, default=None, help="Defaults to the buy price.")
@click.option("--sector", default=None)
@click.option("--member", "family_member_id", default=None, help="Family member id.")
@click.option("--notes", default=None)
@click.pass_context
def add_holding(
    ctx: click.Context,
    name: str,
    symbol: str | None,
    holding_type: str,
    quantity: float,
    buy_price: float,
    current_price: float | None,
    sector: str | None,
    family_member_id: str | None,
    notes: str | None,
) -> None:
    """Add a holding."""
    from pydantic import ValidationError

    from folio_tracker.core import HoldingCreate

    try:
        data = HoldingCreate(
            symbol=symbol,
            name=name,
            holding_type=holding_type,
            quantity=quantity,
            average_buy_price=buy_price,
            current_price=current_price,
            sector=sector,
            family_member_id=family_member_id,
            notes=notes,
        )
    except ValidationError as e:
        raise click.UsageError(str(e)) from e

    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            return await store.create_holding(data)
        finally:
            await store.close()

    holding = _run_async(_run())
    console.print(f"[green]Added[/green] {holding.symbol or holding.name} as [bold]{holding.id}[/bold]")
    click.echo(holding.id)


@holdings.command("remove")
@click.argument("holding_id")
@click.pass_context
def remove_holding(ctx: click.Context, holding_id: str) -> None:
    """Remove the holding HOLDING_ID."""
    from folio_tracker.core import HoldingNotFoundError

    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            await store.delete_holding(holding_id)
        finally:
            await store.close()

    try:
        _run_async(_run())
    except HoldingNotFoundError:
        console.print(f"[red]No holding with id {holding_id}[/red]")
        raise SystemExit(1)
    console.print(f"[green]Removed[/green] {holding_id}")


# ---------------------------------------------------------------------------
# refresh
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("symbols", nargs=-1)
@click.pass_context
def refresh(ctx: click.Context, symbols: tuple[str, ...]) -> None:
    """Refresh prices now (all held symbols, or just SYMBOLS)."""
    from folio_tracker.core import RefreshError

    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            monitor = await _build_monitor(config, store)
            return await monitor.refresh_now(list(symbols) if symbols else None)
        finally:
            await store.close()

    try:
        result = _run_async(_run())
    except RefreshError as e:
        console.print(f"[red]Refresh failed: {escape(str(e))}[/red]")
        raise SystemExit(1)

    if not result.requested:
        console.print("[yellow]No holdings with symbols to refresh.[/yellow]")
        return

    console.print(
        f"Updated [bold]{len(result.updated)}[/bold] of {len(result.requested)} symbols "
        f"in {result.duration_ms:.0f}ms"
    )
    if result.failed:
        console.print(f"[yellow]Could not refresh: {', '.join(result.failed)}[/yellow]")


# ---------------------------------------------------------------------------
# monitor
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--ticks", type=int, default=0, help="Stop after N ticks (0 = run until Ctrl+C).")
@click.option("--interval-ms", type=int, default=None, help="Override refresh_interval_ms.")
@click.pass_context
def monitor(ctx: click.Context, ticks: int, interval_ms: int | None) -> None:
    """Run the price monitoring loop in the foreground."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            price_monitor = await _build_monitor(config, store)
            if interval_ms is not None:
                price_monitor.refresh_interval_ms = interval_ms
            console.print(
                f"Monitoring every {price_monitor.refresh_interval_ms / 1000:g}s, "
                f"alert threshold {price_monitor.threshold_pct:g}%"
            )

            if ticks > 0:
                for i in range(ticks):
                    if i:
                        await asyncio.sleep(price_monitor.refresh_interval_ms / 1000)
                    result = await price_monitor.tick()
                    if result is not None:
                        console.print(
                            f"Tick {i + 1}: {len(result.updated)}/{len(result.requested)} updated, "
                            f"{len(result.alerts)} alerts"
                        )
                return

            stop = price_monitor.start()
            try:
                await asyncio.Event().wait()
            finally:
                await stop()
        finally:
            await store.close()

    try:
        _run_async(_run())
    except KeyboardInterrupt:
        console.print("Stopped.")


# ---------------------------------------------------------------------------
# providers
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def providers(ctx: click.Context) -> None:
    """Show the configured quote provider chain."""
    config = _load_config(ctx)
    chain = _build_orchestrator(config).providers

    table = Table(title="Quote Providers (fallback order)")
    table.add_column("#", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Provider")
    table.add_column("API key")
    table.add_column("Batch", justify="right")
    table.add_column("Delay (ms)", justify="right")
    for position, provider in enumerate(chain, start=1):
        has_key = getattr(provider, "has_api_key", True)
        table.add_row(
            str(position),
            provider.name,
            getattr(provider, "display_name", provider.name),
            "[green]yes[/green]" if has_key else "[red]missing[/red]",
            str(provider.batch_size),
            str(provider.batch_delay_ms),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default from config).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default from config).")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the REST API server."""
    import uvicorn

    from folio_tracker.api.app import create_app

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Starting folio-tracker API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(create_app(config), host=host, port=port)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show portfolio and configuration status."""
    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            stats = await store.get_statistics()

            table = Table(title="folio-tracker Status")
            table.add_column("Metric", style="bold")
            table.add_column("Value", justify="right")

            table.add_row("Database path", config.storage.sqlite_path)
            table.add_row("Provider order", " → ".join(config.providers.order))
            table.add_row("Alert threshold", f"{config.monitoring.threshold:g}%")
            table.add_row("Refresh interval", f"{config.monitoring.refresh_interval_ms / 1000:g}s")
            table.add_section()
            table.add_row("Holdings", str(stats["total_holdings"]))
            table.add_row("Unique symbols", str(stats["unique_symbols"]))
            table.add_row("Family members", str(stats["family_members"]))
            table.add_row("Last price refresh", stats["latest_refresh"] or "never")

            console.print(table)
        finally:
            await store.close()

    _run_async(_run())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
