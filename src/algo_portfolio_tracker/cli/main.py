"""CLI for the Algorand portfolio tracker."""

import json
import logging
from decimal import Decimal
from enum import StrEnum
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table
from rich.traceback import install

# Import all DeFi adapters to trigger auto-registration
from algo_portfolio_tracker import protocols  # noqa: F401
from algo_portfolio_tracker.config import get_settings
from algo_portfolio_tracker.core import PortfolioAggregator, build_history_for_snapshot
from algo_portfolio_tracker.core.daily_prices import choose_best_daily_prices
from algo_portfolio_tracker.core.days import enumerate_day_keys, utc_day_key
from algo_portfolio_tracker.core.models import (
    AlignedSeries,
    DailyPriceEntry,
    HistoryPoint,
    LatestAssetState,
    PortfolioSnapshot,
    PriceQuote,
)
from algo_portfolio_tracker.core.registry import AdapterRegistry
from algo_portfolio_tracker.core.wallet_series import (
    align_series_by_timestamp,
    build_per_wallet_value_series,
    normalize_series_to_utc_daily_close,
    sum_aligned_series,
    wallet_transactions_from_snapshot,
)
from algo_portfolio_tracker.ledger import IndexerClient
from algo_portfolio_tracker.pricing import PriceService

# Install rich traceback handler
install(show_locals=True)

app = typer.Typer(
    name="algo-portfolio-tracker",
    help="Track Algorand wallet balances, FIFO cost basis, P&L and value history",
    add_completion=False,
)

console = Console()
logger = logging.getLogger(__name__)


class OutputFormat(StrEnum):
    """Output format options."""

    TABLE = "table"
    JSON = "json"


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=debug)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def _usd(value: Decimal | None) -> str:
    return f"${value:,.2f}" if value is not None else "-"


def _compute_snapshot(wallets: list[str], prices: PriceService, debug: bool) -> PortfolioSnapshot:
    settings = get_settings()
    ledger = IndexerClient.from_settings(settings)
    aggregator = PortfolioAggregator(ledger=ledger, prices=prices, settings=settings)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=not debug,
        ) as progress:
            task = progress.add_task(f"Computing snapshot for {len(wallets)} wallet(s)...", total=100)
            snapshot = aggregator.compute_portfolio_snapshot(wallets, progress=progress, task_id=task)
    finally:
        ledger.close()

    return snapshot


@app.command()
def snapshot(
    wallets: list[str] = typer.Argument(..., help="Wallet addresses"),
    format: OutputFormat = typer.Option(OutputFormat.TABLE, "--format", "-f", help="Output format"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output"),
) -> None:
    """
    Compute a portfolio snapshot across wallets.

    Examples:

        # Table output
        algo-portfolio-tracker snapshot ADDR1 ADDR2

        # Output as JSON
        algo-portfolio-tracker snapshot ADDR1 --format json
    """
    _configure_logging(debug)

    try:
        with PriceService() as prices:
            result = _compute_snapshot(wallets, prices, debug)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        if debug:
            raise
        raise typer.Exit(1)

    if format == OutputFormat.JSON:
        _output_json(result)
    else:
        _output_snapshot_table(result)


@app.command()
def history(
    wallets: list[str] = typer.Argument(..., help="Wallet addresses"),
    format: OutputFormat = typer.Option(OutputFormat.TABLE, "--format", "-f", help="Output format"),
    per_wallet: bool = typer.Option(False, "--per-wallet", help="Show daily value per wallet instead"),
    prices_file: Path | None = typer.Option(
        None, "--prices-file", help="JSON file of stored daily prices, updated with fetched prices"
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output"),
) -> None:
    """
    Reconstruct the daily portfolio value history.

    Examples:

        # Portfolio value per day
        algo-portfolio-tracker history ADDR1 ADDR2

        # Daily close per wallet with an aggregate column
        algo-portfolio-tracker history ADDR1 ADDR2 --per-wallet

        # Reuse and extend stored daily prices
        algo-portfolio-tracker history ADDR1 --prices-file prices.json
    """
    _configure_logging(debug)

    if per_wallet:
        try:
            with PriceService() as prices:
                result = _compute_snapshot(wallets, prices, debug)
        except Exception as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            if debug:
                raise
            raise typer.Exit(1)

        series = build_per_wallet_value_series(
            wallet_transactions_from_snapshot(result),
            [w.wallet for w in result.wallets],
            {w.wallet: w.total_value_usd for w in result.wallets},
            result.computed_at,
        )
        aligned = align_series_by_timestamp(normalize_series_to_utc_daily_close(series))

        if format == OutputFormat.JSON:
            console.print(json.dumps(aligned.model_dump(mode="json"), indent=2))
        else:
            _output_wallet_series_table(aligned)
        return

    try:
        with PriceService() as prices:
            result = _compute_snapshot(wallets, prices, debug)
            daily_prices = []
            if result.transactions:
                first_day = utc_day_key(min(row.ts for row in result.transactions))
                days = enumerate_day_keys(first_day, utc_day_key(result.computed_at.timestamp()))
                keys = [row.asset_key for row in result.assets if row.balance > 0]
                daily_prices = prices.get_daily_prices(keys, days)

        if prices_file is not None:
            stored = _load_daily_prices(prices_file)
            states = [
                LatestAssetState(asset_key=row.asset_key, balance=row.balance, price_usd=row.price_usd)
                for row in result.assets
            ]
            daily_prices = choose_best_daily_prices(stored, daily_prices, states)
            _save_daily_prices(prices_file, daily_prices)

        points = build_history_for_snapshot(result, daily_prices)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        if debug:
            raise
        raise typer.Exit(1)

    if format == OutputFormat.JSON:
        console.print(json.dumps([p.model_dump(mode="json") for p in points], indent=2))
    else:
        _output_history_table(points)


@app.command()
def prices(
    asset_ids: list[str] = typer.Argument(..., help="ASA ids, or ALGO for the native currency"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output"),
) -> None:
    """Show spot price quotes with their source and confidence."""
    _configure_logging(debug)

    try:
        with PriceService() as service:
            quotes = service.get_spot_price_quotes(asset_ids)
    except ValueError as e:
        console.print(f"[bold red]Invalid asset id:[/bold red] {e}")
        raise typer.Exit(1)

    _output_quotes_table(quotes)


@app.command()
def list_adapters() -> None:
    """List all registered DeFi adapters."""
    table = Table(title="DeFi Adapters", show_header=True, header_style="bold magenta")
    table.add_column("Adapter", style="cyan")
    table.add_column("Protocol", style="green")

    for adapter_class in AdapterRegistry.get_all_adapters():
        table.add_row(adapter_class.name, adapter_class.protocol)

    console.print(table)


def _output_snapshot_table(result: PortfolioSnapshot) -> None:
    """Output snapshot as rich tables."""
    if not result.assets:
        console.print("\n[yellow]No assets found[/yellow]")
        return

    table = Table(title="Assets", show_header=True, header_style="bold magenta")
    table.add_column("Asset", style="cyan")
    table.add_column("Balance", style="white", justify="right")
    table.add_column("Price", style="yellow", justify="right")
    table.add_column("Value", style="bold green", justify="right")
    table.add_column("Cost Basis", justify="right")
    table.add_column("Realized", justify="right")
    table.add_column("Unrealized", justify="right")

    for row in result.assets:
        table.add_row(
            f"{row.asset_name} [dim]({row.asset_key})[/dim]",
            f"{row.balance:,.4f}",
            f"${row.price_usd:,.4f}" if row.price_usd is not None else "-",
            _usd(row.value_usd),
            _usd(row.cost_basis_usd),
            _usd(row.realized_pnl_usd),
            _usd(row.unrealized_pnl_usd),
        )

    console.print("\n")
    console.print(table)

    if len(result.wallets) > 1:
        wallet_table = Table(title="Wallets", show_header=True, header_style="bold magenta")
        wallet_table.add_column("Wallet", style="cyan")
        wallet_table.add_column("Value", style="bold green", justify="right")
        wallet_table.add_column("Cost Basis", justify="right")
        wallet_table.add_column("Unrealized", justify="right")
        for wallet in result.wallets:
            wallet_table.add_row(
                f"{wallet.wallet[:8]}...{wallet.wallet[-6:]}",
                _usd(wallet.total_value_usd),
                _usd(wallet.total_cost_basis_usd),
                _usd(wallet.total_unrealized_pnl_usd),
            )
        console.print(wallet_table)

    if result.defi_positions:
        defi_table = Table(title="DeFi Positions", show_header=True, header_style="bold magenta")
        defi_table.add_column("Protocol", style="cyan")
        defi_table.add_column("Wallet", style="blue")
        defi_table.add_column("Type", style="yellow")
        defi_table.add_column("Value", style="bold green", justify="right")
        for position in result.defi_positions:
            defi_table.add_row(
                position.protocol,
                f"{position.wallet[:8]}...",
                position.position_type.value,
                _usd(position.value_usd),
            )
        console.print(defi_table)

    summary_table = Table(show_header=False, box=None)
    summary_table.add_column("Label", style="bold")
    summary_table.add_column("Value", style="bold green")
    summary_table.add_row("Total Value:", _usd(result.totals.value_usd))
    summary_table.add_row("Cost Basis:", _usd(result.totals.cost_basis_usd))
    summary_table.add_row("Realized P&L:", _usd(result.totals.realized_pnl_usd))
    summary_table.add_row("Unrealized P&L:", _usd(result.totals.unrealized_pnl_usd))
    summary_table.add_row("Transactions:", str(len(result.transactions)))
    if result.yield_estimate.estimated_apr_pct is not None:
        summary_table.add_row("Estimated APR:", f"{result.yield_estimate.estimated_apr_pct}%")

    console.print("\n")
    console.print(summary_table)
    console.print("\n")


def _output_history_table(points: list[HistoryPoint]) -> None:
    """Output history as a rich table."""
    if not points:
        console.print("\n[yellow]No history available[/yellow]")
        return

    table = Table(title="Portfolio Value History", show_header=True, header_style="bold magenta")
    table.add_column("Date", style="cyan")
    table.add_column("Value", style="bold green", justify="right")
    for point in points:
        table.add_row(point.ts[:10], _usd(point.value_usd))
    console.print(table)


def _output_wallet_series_table(aligned: AlignedSeries) -> None:
    """Output aligned per-wallet series with an aggregate column."""
    if not aligned.timestamps:
        console.print("\n[yellow]No history available[/yellow]")
        return

    aggregate = sum_aligned_series(aligned)

    table = Table(title="Wallet Value History", show_header=True, header_style="bold magenta")
    table.add_column("Date", style="cyan")
    for s in aligned.series:
        table.add_column(f"{s.label[:8]}...", justify="right")
    table.add_column(aggregate.label, style="bold green", justify="right")

    for i, ts in enumerate(aligned.timestamps):
        table.add_row(ts[:10], *(_usd(s.values[i]) for s in aligned.series), _usd(aggregate.points[i].value))
    console.print(table)


def _output_quotes_table(quotes: dict[str, PriceQuote]) -> None:
    """Output price quotes as a rich table."""
    table = Table(title="Spot Prices", show_header=True, header_style="bold magenta")
    table.add_column("Asset", style="cyan")
    table.add_column("USD", style="bold green", justify="right")
    table.add_column("Source", style="yellow")
    table.add_column("Confidence")

    for key, quote in quotes.items():
        table.add_row(key, f"${quote.usd:,.6f}" if quote.usd is not None else "-", quote.source, quote.confidence)
    console.print(table)


def _load_daily_prices(path: Path) -> list[DailyPriceEntry]:
    if not path.exists():
        return []
    with open(path, encoding="utf-8") as f:
        return [DailyPriceEntry.model_validate(row) for row in json.load(f)]


def _save_daily_prices(path: Path, rows: list[DailyPriceEntry]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump([row.model_dump(mode="json") for row in rows], f, indent=2)


def _output_json(result: PortfolioSnapshot) -> None:
    """Output snapshot as JSON."""
    data = result.model_dump(mode="json")
    console.print(json.dumps(data, indent=2))


if __name__ == "__main__":
    app()
