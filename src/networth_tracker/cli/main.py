"""CLI for the net worth tracker."""

import json
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from pathlib import Path
from typing import NoReturn

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.traceback import install

from networth_tracker.config import Settings
from networth_tracker.core.classifier import load_taxonomy
from networth_tracker.core.errors import TrackerError
from networth_tracker.core.models import AssetClass, ExposureSummary, NetWorthSummary, Principal
from networth_tracker.core.service import PortfolioService
from networth_tracker.integrations import MoralisClient, PlaidClient
from networth_tracker.logging_config import configure_logging
from networth_tracker.pricing import CoinGeckoPricing, PriceCache
from networth_tracker.store import MemoryStore, SQLiteStore

# Install rich traceback handler
install(show_locals=False)

app = typer.Typer(
    name="networth",
    help="Track net worth and risk exposure across manual entries, wallets and brokerage accounts",
    add_completion=False,
)

console = Console()


class OutputFormat(StrEnum):
    """Output format options."""

    TABLE = "table"
    JSON = "json"


class CliState:
    """
    Service and principal shared by all commands of one invocation.

    Tests pass a prepared instance through ``CliRunner.invoke(..., obj=state)``.

    """

    def __init__(self, service: PortfolioService, principal: Principal, debug: bool = False) -> None:
        self.service = service
        self.principal = principal
        self.debug = debug


def build_service(settings: Settings) -> tuple[PortfolioService, list]:
    """
    Wire store, provider clients and taxonomy from settings.

    Parameters
    ----------
    settings : Settings
        Runtime settings

    Returns
    -------
    tuple[PortfolioService, list]
        The service and the resources to close when the command finishes

    """
    closeables: list = []

    if settings.db_path:
        store = SQLiteStore(settings.db_path).initialize()
        closeables.append(store)
    else:
        store = MemoryStore()

    pricing = CoinGeckoPricing(base_url=settings.coingecko_base_url, cache=PriceCache(ttl=settings.price_cache_ttl))
    closeables.append(pricing)

    wallets = None
    if settings.moralis_api_key:
        wallets = MoralisClient(api_key=settings.moralis_api_key)
        closeables.append(wallets)

    brokerage = None
    if settings.plaid_configured:
        brokerage = PlaidClient(settings.plaid_client_id, settings.plaid_secret, environment=settings.plaid_env)
        closeables.append(brokerage)

    service = PortfolioService(
        store,
        wallet_source=wallets,
        brokerage_source=brokerage,
        price_source=pricing,
        taxonomy=load_taxonomy(settings.taxonomy_path),
    )
    return service, closeables


@app.callback()
def main(
    ctx: typer.Context,
    db: Path | None = typer.Option(None, "--db", help="SQLite database file (overrides NETWORTH_DB_PATH)"),
    user: str | None = typer.Option(None, "--user", "-u", help="User id (overrides NETWORTH_USER_ID)"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output"),
) -> None:
    """Net worth and exposure tracker."""
    if isinstance(ctx.obj, CliState):
        return

    try:
        settings = Settings.from_env()
    except TrackerError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        raise typer.Exit(1) from e
    if db is not None:
        settings = settings.model_copy(update={"db_path": db})
    if user:
        settings = settings.model_copy(update={"user_id": user})

    configure_logging("DEBUG" if debug else settings.log_level, json_output=settings.log_json)

    try:
        service, closeables = build_service(settings)
    except (TrackerError, ValueError, OSError) as e:
        console.print(f"[bold red]Startup failed:[/bold red] {e}")
        raise typer.Exit(1) from e

    for resource in closeables:
        ctx.call_on_close(resource.close)
    ctx.obj = CliState(service, Principal(user_id=settings.user_id), debug=debug)


def _fail(state: CliState, error: TrackerError) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {error}")
    if state.debug:
        # Rich traceback will handle this
        raise error
    raise typer.Exit(1) from error


def _money(value: Decimal | None) -> str:
    return f"${value:,.2f}" if value is not None else "-"


def _print_json(data: BaseModel | list[BaseModel] | dict) -> None:
    """Print pydantic models as JSON; Decimals are rendered as strings."""
    if isinstance(data, BaseModel):
        payload = data.model_dump(mode="json")
    elif isinstance(data, list):
        payload = [item.model_dump(mode="json") for item in data]
    else:
        payload = data
    console.print_json(json.dumps(payload))


# Summaries


@app.command()
def summary(
    ctx: typer.Context,
    format: OutputFormat = typer.Option(OutputFormat.TABLE, "--format", "-f", help="Output format"),
) -> None:
    """Show net worth: holdings plus real estate, minus liabilities."""
    state: CliState = ctx.obj
    try:
        result = state.service.net_worth_summary(state.principal)
    except TrackerError as e:
        _fail(state, e)

    if format == OutputFormat.JSON:
        _print_json(result)
    else:
        _output_net_worth(result)


@app.command()
def exposure(
    ctx: typer.Context,
    format: OutputFormat = typer.Option(OutputFormat.TABLE, "--format", "-f", help="Output format"),
) -> None:
    """Show exposure by bucket and the crypto breakdown over positive-value holdings."""
    state: CliState = ctx.obj
    try:
        result = state.service.exposure_summary(state.principal)
    except TrackerError as e:
        _fail(state, e)

    if format == OutputFormat.JSON:
        _print_json(result)
    else:
        _output_exposure(result)


@app.command()
def holdings(
    ctx: typer.Context,
    format: OutputFormat = typer.Option(OutputFormat.TABLE, "--format", "-f", help="Output format"),
) -> None:
    """List holdings, highest value first."""
    state: CliState = ctx.obj
    try:
        rows = state.service.list_holdings(state.principal)
        total = state.service.holdings_total(state.principal)
    except TrackerError as e:
        _fail(state, e)

    if format == OutputFormat.JSON:
        _print_json(rows)
        return

    if not rows:
        console.print("\n[yellow]No holdings found[/yellow]")
        return

    table = Table(title="Holdings", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Symbol", style="green")
    table.add_column("Class", style="yellow")
    table.add_column("Account", style="cyan")
    table.add_column("Quantity", style="white", justify="right")
    table.add_column("Price", style="white", justify="right")
    table.add_column("USD Value", style="bold green", justify="right")

    for row in rows:
        table.add_row(
            str(row.id),
            row.symbol,
            row.asset_class.value,
            row.account_name,
            f"{row.quantity:,.4f}",
            _money(row.price_usd),
            _money(row.value_usd),
        )

    console.print(table)
    console.print(f"[bold]Total Holdings:[/bold] {_money(total)}")


@app.command()
def liabilities(
    ctx: typer.Context,
    format: OutputFormat = typer.Option(OutputFormat.TABLE, "--format", "-f", help="Output format"),
) -> None:
    """List liabilities, newest first."""
    state: CliState = ctx.obj
    try:
        rows = state.service.list_liabilities(state.principal)
    except TrackerError as e:
        _fail(state, e)

    if format == OutputFormat.JSON:
        _print_json(rows)
        return

    table = Table(title="Liabilities", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="yellow")
    table.add_column("Balance", style="bold red", justify="right")
    for row in rows:
        table.add_row(str(row.id), row.name, row.type, _money(row.balance_usd))
    console.print(table)


@app.command()
def properties(
    ctx: typer.Context,
    format: OutputFormat = typer.Option(OutputFormat.TABLE, "--format", "-f", help="Output format"),
) -> None:
    """List real estate properties, newest first."""
    state: CliState = ctx.obj
    try:
        rows = state.service.list_properties(state.principal)
    except TrackerError as e:
        _fail(state, e)

    if format == OutputFormat.JSON:
        _print_json(rows)
        return

    table = Table(title="Real Estate", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Location", style="blue")
    table.add_column("Value", style="bold green", justify="right")
    for row in rows:
        location = ", ".join(part for part in (row.city, row.state) if part)
        table.add_row(str(row.id), row.name, location or "-", _money(row.current_value_usd))
    console.print(table)


# Mutations


@app.command("add-holding")
def add_holding(
    ctx: typer.Context,
    symbol: str = typer.Argument(..., help="Ticker or token symbol"),
    quantity: str = typer.Argument(..., help="Units held"),
    price: str = typer.Argument(..., help="Unit price in USD"),
    asset_class: AssetClass = typer.Option(AssetClass.EQUITY, "--asset-class", "-a", help="Asset class"),
    account: str | None = typer.Option(None, "--account", help="Manual account name"),
    effective_date: datetime | None = typer.Option(
        None, "--effective-date", formats=["%Y-%m-%d"], help="First date counted in snapshots"
    ),
) -> None:
    """
    Add a manually entered holding.

    Examples:

        networth add-holding IBIT 100 52.30 --asset-class equity

        networth add-holding BTC 0.5 60000 --asset-class crypto --account "Cold storage"
    """
    state: CliState = ctx.obj
    try:
        holding = state.service.add_manual_holding(
            state.principal,
            symbol,
            quantity,
            price,
            asset_class,
            account_name=account,
            effective_date=effective_date.date() if effective_date else None,
        )
    except TrackerError as e:
        _fail(state, e)

    console.print(f"[green]✓[/green] Added holding {holding.id}: {holding.quantity} {holding.symbol} ({_money(holding.value_usd)})")


@app.command("delete-holding")
def delete_holding(
    ctx: typer.Context,
    holding_id: int = typer.Argument(..., help="Holding id"),
) -> None:
    """Delete a holding."""
    state: CliState = ctx.obj
    try:
        state.service.delete_holding(state.principal, holding_id)
    except TrackerError as e:
        _fail(state, e)
    console.print(f"[green]✓[/green] Deleted holding {holding_id}")


@app.command("add-liability")
def add_liability(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Liability name"),
    type: str = typer.Argument(..., help="Liability type (e.g., mortgage, credit_card)"),
    balance: str | None = typer.Option(None, "--balance", help="Outstanding balance in USD"),
    credit_limit: str | None = typer.Option(None, "--credit-limit", help="Credit limit in USD"),
    interest_rate: str | None = typer.Option(None, "--rate", help="Interest rate in percent"),
    min_payment: str | None = typer.Option(None, "--min-payment", help="Minimum payment in USD"),
    notes: str | None = typer.Option(None, "--notes"),
) -> None:
    """Add a liability."""
    state: CliState = ctx.obj
    try:
        liability = state.service.add_liability(
            state.principal,
            name,
            type,
            balance_usd=balance,
            credit_limit_usd=credit_limit,
            interest_rate=interest_rate,
            min_payment_usd=min_payment,
            notes=notes,
        )
    except TrackerError as e:
        _fail(state, e)
    console.print(f"[green]✓[/green] Added liability {liability.id}: {liability.name} ({_money(liability.balance_usd)})")


@app.command("add-property")
def add_property(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Property name"),
    value: str | None = typer.Option(None, "--value", help="Current value in USD"),
    property_type: str | None = typer.Option(None, "--type", help="Property type"),
    city: str | None = typer.Option(None, "--city"),
    state_code: str | None = typer.Option(None, "--state"),
    purchase_price: str | None = typer.Option(None, "--purchase-price", help="Purchase price in USD"),
    notes: str | None = typer.Option(None, "--notes"),
) -> None:
    """Add a directly held real estate property."""
    state: CliState = ctx.obj
    try:
        prop = state.service.add_property(
            state.principal,
            name,
            current_value_usd=value,
            property_type=property_type,
            city=city,
            state=state_code,
            purchase_price_usd=purchase_price,
            notes=notes,
        )
    except TrackerError as e:
        _fail(state, e)
    console.print(f"[green]✓[/green] Added property {prop.id}: {prop.name} ({_money(prop.current_value_usd)})")


@app.command("add-wallet")
def add_wallet(
    ctx: typer.Context,
    address: str = typer.Argument(..., help="Wallet address"),
    chain: str = typer.Option("eth", "--chain", "-c", help="Chain name"),
    nickname: str | None = typer.Option(None, "--nickname", "-n", help="Display name"),
) -> None:
    """Register a wallet; its holdings arrive on the next refresh."""
    state: CliState = ctx.obj
    try:
        connection = state.service.add_wallet(state.principal, address, chain, nickname)
    except TrackerError as e:
        _fail(state, e)
    console.print(f"[green]✓[/green] Added wallet {connection.id}: {connection.identifier} on {connection.chain}")


@app.command()
def wallets(
    ctx: typer.Context,
    format: OutputFormat = typer.Option(OutputFormat.TABLE, "--format", "-f", help="Output format"),
) -> None:
    """List registered wallets."""
    state: CliState = ctx.obj
    try:
        rows = state.service.list_wallets(state.principal)
    except TrackerError as e:
        _fail(state, e)

    if format == OutputFormat.JSON:
        _print_json(rows)
        return

    table = Table(title="Wallets", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Address", style="cyan")
    table.add_column("Chain", style="blue")
    table.add_column("Nickname", style="green")
    for row in rows:
        table.add_row(str(row.id), row.identifier, row.chain or "-", row.nickname or "-")
    console.print(table)


@app.command("refresh-wallets")
def refresh_wallets(ctx: typer.Context) -> None:
    """Rebuild every wallet's holdings from the wallet-data provider."""
    state: CliState = ctx.obj
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("Refreshing wallets...", total=None)
        try:
            result = state.service.refresh_wallets(state.principal)
        except TrackerError as e:
            progress.stop()
            _fail(state, e)

    console.print(
        f"[green]✓[/green] {result.synced} synced, {result.failed} failed, {result.skipped} skipped "
        f"({result.holdings_written} holdings written)"
    )
    if result.failed_connection_ids:
        ids = ", ".join(str(i) for i in result.failed_connection_ids)
        console.print(f"[yellow]Failed wallets:[/yellow] {ids}")


@app.command("refresh-prices")
def refresh_prices(ctx: typer.Context) -> None:
    """Re-price holdings from the spot-price provider."""
    state: CliState = ctx.obj
    try:
        updated = state.service.refresh_prices(state.principal)
    except TrackerError as e:
        _fail(state, e)
    console.print(f"[green]✓[/green] Updated {updated} holdings")


@app.command()
def snapshot(ctx: typer.Context) -> None:
    """Record a net worth snapshot now."""
    state: CliState = ctx.obj
    try:
        snap = state.service.write_snapshot(state.principal)
    except TrackerError as e:
        _fail(state, e)
    console.print(f"[green]✓[/green] Snapshot {snap.id}: net worth {_money(snap.total_net_worth_usd)}")


@app.command()
def snapshots(
    ctx: typer.Context,
    format: OutputFormat = typer.Option(OutputFormat.TABLE, "--format", "-f", help="Output format"),
) -> None:
    """Show the snapshot history, oldest first."""
    state: CliState = ctx.obj
    try:
        rows = state.service.list_snapshots(state.principal)
    except TrackerError as e:
        _fail(state, e)

    if format == OutputFormat.JSON:
        _print_json(rows)
        return

    table = Table(title="Net Worth History", show_header=True, header_style="bold magenta")
    table.add_column("Taken At", style="cyan")
    table.add_column("Source", style="yellow")
    table.add_column("Crypto", style="white", justify="right")
    table.add_column("TradFi", style="white", justify="right")
    table.add_column("Liabilities", style="red", justify="right")
    table.add_column("Net Worth", style="bold green", justify="right")
    for row in rows:
        table.add_row(
            row.taken_at.strftime("%Y-%m-%d %H:%M"),
            row.source.value,
            _money(row.total_crypto_usd),
            _money(row.total_tradfi_usd),
            _money(row.total_liabilities_usd),
            _money(row.total_net_worth_usd),
        )
    console.print(table)


@app.command()
def taxonomy(ctx: typer.Context) -> None:
    """Show the classification taxonomy version and equity rule order."""
    state: CliState = ctx.obj
    console.print(f"[bold cyan]Taxonomy version:[/bold cyan] {state.service.taxonomy.version}")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Rule", style="cyan")
    table.add_column("Bucket / Subtype", style="yellow")
    table.add_column("Symbols", style="green", justify="right")
    for rule in state.service.taxonomy.equity_rules:
        table.add_row(rule.name, f"{rule.bucket} / {rule.subtype}", str(len(rule.symbols)))
    console.print(table)


# Brokerage link


@app.command("plaid-link-token")
def plaid_link_token(ctx: typer.Context) -> None:
    """Create a Link token for connecting a brokerage account."""
    state: CliState = ctx.obj
    try:
        token = state.service.create_link_token(state.principal)
    except TrackerError as e:
        _fail(state, e)
    console.print(token)


@app.command("plaid-exchange")
def plaid_exchange(
    ctx: typer.Context,
    public_token: str = typer.Argument(..., help="Public token returned by Link"),
) -> None:
    """Exchange a Link public token and store the brokerage connection."""
    state: CliState = ctx.obj
    try:
        connection = state.service.exchange_public_token(state.principal, public_token)
    except TrackerError as e:
        _fail(state, e)
    console.print(f"[green]✓[/green] Linked brokerage connection {connection.id}")


@app.command("plaid-sync")
def plaid_sync(
    ctx: typer.Context,
    connection_id: int = typer.Argument(..., help="Brokerage connection id"),
) -> None:
    """Import holdings from a linked brokerage connection."""
    state: CliState = ctx.obj
    try:
        written = state.service.sync_brokerage(state.principal, connection_id)
    except TrackerError as e:
        _fail(state, e)
    console.print(f"[green]✓[/green] Imported {len(written)} holdings")


# Output


def _output_net_worth(result: NetWorthSummary) -> None:
    """Output net worth as a rich table."""
    table = Table(title="Net Worth", show_header=False, header_style="bold magenta")
    table.add_column("Label", style="bold")
    table.add_column("Value", style="bold green", justify="right")

    table.add_row("Crypto", _money(result.total_crypto_usd))
    table.add_row("TradFi (incl. real estate)", _money(result.total_tradfi_usd))
    table.add_row("Real Estate", _money(result.total_real_estate_usd))
    table.add_row("Total Assets", _money(result.total_assets_usd))
    table.add_row("Liabilities", f"[red]{_money(result.total_liabilities_usd)}[/red]")
    table.add_row("Net Worth", _money(result.total_net_worth_usd))

    console.print(table)


def _output_exposure(result: ExposureSummary) -> None:
    """Output exposure buckets and the crypto breakdown as rich tables."""
    if not result.exposures_by_bucket:
        console.print("\n[yellow]No positive-value holdings[/yellow]")
        return

    table = Table(title="Exposure by Bucket", show_header=True, header_style="bold magenta")
    table.add_column("Bucket", style="cyan")
    table.add_column("USD", style="bold green", justify="right")
    table.add_column("% of Holdings", style="yellow", justify="right")
    for item in result.exposures_by_bucket:
        table.add_row(item.bucket, _money(item.exposure_usd), f"{item.pct_of_net_worth:.2f}%")
    console.print(table)

    breakdown = result.crypto_breakdown
    crypto_table = Table(title="Crypto Breakdown", show_header=False, box=None)
    crypto_table.add_column("Label", style="bold")
    crypto_table.add_column("Value", style="bold green", justify="right")
    crypto_table.add_row("Spot on-chain", _money(breakdown.spot_on_chain_usd))
    crypto_table.add_row("Spot custodial", _money(breakdown.spot_custodial_usd))
    crypto_table.add_row("Stablecoins", _money(breakdown.stablecoin_usd))
    crypto_table.add_row("Crypto ETFs", _money(breakdown.crypto_etf_usd))
    crypto_table.add_row("Crypto equities", _money(breakdown.crypto_equity_usd))
    crypto_table.add_row("Other", _money(breakdown.other_crypto_usd))
    crypto_table.add_row("Total crypto exposure", _money(breakdown.total_crypto_exposure_usd))
    console.print(crypto_table)

    console.print(
        f"[bold]Holdings total:[/bold] {_money(result.total_net_worth_usd)}  "
        f"[bold]TradFi exposure:[/bold] {_money(result.total_tradfi_exposure_usd)}"
    )


if __name__ == "__main__":
    app()
