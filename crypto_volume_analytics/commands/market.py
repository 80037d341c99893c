"""CLI commands for market data lookups."""

import click
from rich.table import Table
from rich import box

from ..core.cli_base import ContextAwareGroup, ContextAwareCommand
from ..data.models import MarketSnapshot
from ..data.service import open_data_service
from .base import (
    async_command,
    console,
    dry_run,
    emit,
    format_change,
    format_usd,
    get_config,
    output_option,
    summary_lines,
)


@click.group(cls=ContextAwareGroup)
def market():
    """Market overview, coin details, search and trending coins."""
    pass


@market.command(name='list', cls=ContextAwareCommand)
@click.option('--page', '-p', type=int, default=1, help='Page number')
@click.option('--per-page', type=int, default=50, help='Coins per page (max 250)')
@output_option
@async_command
async def list_coins(page: int, per_page: int, output_format: str):
    """List coins by market cap with their volume comparison."""
    if dry_run(f"list page {page} of the market"):
        return

    async with open_data_service(get_config()) as service:
        data = await service.get_market_data(per_page=per_page, page=page)

    emit(data, output_format, _display_market)


@market.command(cls=ContextAwareCommand)
@click.argument('coin_id')
@output_option
@async_command
async def coin(coin_id: str, output_format: str):
    """Show market data of one coin."""
    if dry_run(f"fetch market data for {coin_id}"):
        return

    async with open_data_service(get_config()) as service:
        data = await service.get_coin_data(coin_id)
        currency = service.client.currency

    emit(data, output_format, lambda detail: _display_coin(detail, currency))


@market.command(cls=ContextAwareCommand)
@click.argument('query')
@output_option
@async_command
async def search(query: str, output_format: str):
    """Search coins by name or symbol."""
    if dry_run(f"search coins matching '{query}'"):
        return

    async with open_data_service(get_config()) as service:
        data = await service.search_coins(query)

    emit(data, output_format, _display_search)


@market.command(cls=ContextAwareCommand)
@output_option
@async_command
async def trending(output_format: str):
    """Show trending coins with their volume data."""
    if dry_run("fetch trending coins"):
        return

    async with open_data_service(get_config()) as service:
        data = await service.get_trending_coins()

    emit(data, output_format, _display_trending)


def _display_market(data):
    pagination = data['pagination']
    table = Table(title=f"Market (page {pagination['page']}, {pagination['per_page']} per page)",
                  box=box.ROUNDED)
    table.add_column("#", justify="right")
    table.add_column("Coin", style="cyan")
    table.add_column("Price", style="green", justify="right")
    table.add_column("Market Cap", style="blue", justify="right")
    table.add_column("Volume 24h", style="yellow", justify="right")
    table.add_column("24h", justify="right")
    table.add_column("Liquidity", justify="right")

    for row in data['coins']:
        table.add_row(
            str(row['market_cap_rank'] or "-"),
            f"{row['name']} ({str(row['symbol']).upper()})",
            f"${row['current_price']:,.8f}".rstrip('0').rstrip('.'),
            format_usd(row['market_cap']),
            format_usd(row['volume_24h']),
            format_change(row['price_change_24h']),
            str(row['liquidity_score']),
        )

    console.print(table)


def _display_coin(detail, currency: str):
    snapshot = MarketSnapshot.from_coin_detail(detail, currency)
    console.print(f"[bold]{snapshot.name} ({snapshot.symbol.upper()})[/bold]")
    summary_lines("Market", {
        'price': snapshot.current_price,
        'market_cap': snapshot.market_cap,
        'market_cap_rank': snapshot.market_cap_rank,
        'volume_24h': snapshot.total_volume,
        'circulating_supply': snapshot.circulating_supply,
        'last_updated': snapshot.last_updated,
    })
    summary_lines("Price changes", snapshot.price_changes)


def _display_search(data):
    table = Table(title=f"Search: {data['query']}", box=box.ROUNDED)
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Symbol")
    table.add_column("Rank", justify="right")

    for result in data['coins']:
        rank = result.get('market_cap_rank')
        table.add_row(result.get('id', ''), result.get('name', ''),
                      str(result.get('symbol', '')), str(rank) if rank else "-")

    console.print(table)


def _display_trending(data):
    table = Table(title="Trending Coins", box=box.ROUNDED)
    table.add_column("Coin", style="cyan")
    table.add_column("Rank", justify="right")
    table.add_column("Volume 24h", style="yellow", justify="right")
    table.add_column("Liquidity", justify="right")

    for item in data['trending_coins']:
        volume_data = item.get('volume_data') or {}
        rank = item.get('market_cap_rank')
        table.add_row(
            f"{item.get('name', '')} ({item.get('symbol', '')})",
            str(rank) if rank else "-",
            format_usd(volume_data.get('volume_24h')),
            str(volume_data.get('liquidity_score', '-')),
        )

    console.print(table)
