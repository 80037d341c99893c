"""CLI commands for volume tracking and volume analytics."""

import click
from rich.table import Table
from rich import box

from ..core.cli_base import ContextAwareGroup, ContextAwareCommand
from ..data.service import open_data_service
from .base import (
    async_command,
    console,
    dry_run,
    emit,
    format_change,
    format_ratio,
    format_usd,
    get_config,
    output_option,
    summary_lines,
)


@click.group(cls=ContextAwareGroup)
def volume():
    """Daily volume tracking, spike detection and volume comparison."""
    pass


@volume.command(cls=ContextAwareCommand)
@click.argument('coin_id')
@click.option('--days', '-d', type=int, default=30, help='Days of history (clamped to 7-365)')
@output_option
@async_command
async def track(coin_id: str, days: int, output_format: str):
    """Track daily volume of a coin with spikes and statistics.

    Examples:
        crypto-volume volume track bitcoin --days 90
    """
    if dry_run(f"track {days} days of volume for {coin_id}"):
        return

    async with open_data_service(get_config()) as service:
        data = await service.get_daily_volume_tracking(coin_id, days)

    emit(data, output_format, _display_tracking)


@volume.command(cls=ContextAwareCommand)
@click.argument('coin_id')
@click.option('--days', '-d', type=int, default=30, help='Days of history (clamped to 7-365)')
@click.option('--intensity', type=click.Choice(['moderate', 'high', 'extreme']), default='moderate',
              help='Minimum spike intensity')
@output_option
@async_command
async def spikes(coin_id: str, days: int, intensity: str, output_format: str):
    """List volume spikes of a coin.

    Examples:
        crypto-volume volume spikes ethereum --intensity high
    """
    if dry_run(f"detect {intensity} volume spikes for {coin_id}"):
        return

    async with open_data_service(get_config()) as service:
        data = await service.get_volume_spikes(coin_id, days, intensity)

    emit(data, output_format, _display_spikes)


@volume.command(cls=ContextAwareCommand)
@click.argument('coin_id')
@click.option('--days', '-d', type=int, default=30, help='Days of history (clamped to 7-365)')
@output_option
@async_command
async def heatmap(coin_id: str, days: int, output_format: str):
    """Show a calendar heatmap of daily volume."""
    if dry_run(f"build a {days} day volume heatmap for {coin_id}"):
        return

    async with open_data_service(get_config()) as service:
        data = await service.get_volume_heatmap(coin_id, days)

    emit(data, output_format, _display_heatmap)


@volume.command(cls=ContextAwareCommand)
@click.argument('coin_id', required=False)
@click.option('--limit', '-l', type=int, default=100, help='Coins to compare when no coin is given')
@output_option
@async_command
async def compare(coin_id: str, limit: int, output_format: str):
    """Compare 7d and 30d volume for one coin or the top of the market.

    Examples:
        crypto-volume volume compare bitcoin
        crypto-volume volume compare --limit 20
    """
    target = coin_id or f"the top {limit} coins"
    if dry_run(f"compare volume for {target}"):
        return

    async with open_data_service(get_config()) as service:
        if coin_id:
            data = await service.get_coin_volume_comparison(coin_id)
        else:
            data = await service.get_volume_comparison(limit)

    emit(data, output_format, _display_coin_comparison if coin_id else _display_comparisons)


@volume.command(cls=ContextAwareCommand)
@click.option('--type', 'leader_type', type=click.Choice(['gainers', 'losers']), default='gainers',
              help='Sort by largest gain or largest loss of volume')
@click.option('--limit', '-l', type=int, default=10, help='Number of coins')
@output_option
@async_command
async def leaders(leader_type: str, limit: int, output_format: str):
    """Show the volume change leaders of the market."""
    if dry_run(f"rank the top {limit} volume {leader_type}"):
        return

    async with open_data_service(get_config()) as service:
        data = await service.get_volume_leaders(leader_type, limit)

    emit(data, output_format, _display_comparisons)


@volume.command(cls=ContextAwareCommand)
@output_option
@async_command
async def overview(output_format: str):
    """Market-wide volume and liquidity overview."""
    if dry_run("summarize market volume"):
        return

    async with open_data_service(get_config()) as service:
        data = await service.get_volume_analytics()

    emit(data, output_format, _display_overview)


@volume.command(cls=ContextAwareCommand)
@click.argument('coin_ids')
@output_option
@async_command
async def detailed(coin_ids: str, output_format: str):
    """Latest volume change of several coins (comma separated ids).

    Examples:
        crypto-volume volume detailed bitcoin,ethereum,solana
    """
    if dry_run(f"analyse volume for {coin_ids}"):
        return

    async with open_data_service(get_config()) as service:
        data = await service.get_detailed_volume_analysis(coin_ids)

    emit(data, output_format, _display_detailed)


@volume.command(cls=ContextAwareCommand)
@click.argument('coin_ids')
@click.option('--days', '-d', type=int, default=7, help='Days of history (clamped to 7-30)')
@output_option
@async_command
async def multi(coin_ids: str, days: int, output_format: str):
    """Track daily volume of several coins at once (comma separated ids)."""
    if dry_run(f"track volume for {coin_ids}"):
        return

    async with open_data_service(get_config()) as service:
        data = await service.get_multiple_volume_tracking(coin_ids, days)

    emit(data, output_format, _display_multi)


def _display_tracking(data):
    table = Table(title=f"Daily Volume: {data['coin_id']} ({data['period_days']} days)", box=box.ROUNDED)
    table.add_column("Date", style="cyan")
    table.add_column("Volume", style="yellow", justify="right")
    table.add_column("Spike", justify="center")

    spike_dates = {spike['date']: spike for spike in data['volume_spikes']}
    for day in data['daily_volumes']:
        spike = spike_dates.get(day['date'])
        marker = f"[red]{spike['spike_intensity']}[/red]" if spike else ""
        table.add_row(day['formatted_date'], format_usd(day['volume']), marker)

    console.print(table)

    stats = dict(data['statistics'])
    stats.pop('weekly_averages', None)
    summary_lines("Statistics", stats)


def _display_spikes(data):
    table = Table(title=f"Volume Spikes: {data['coin_id']} ({data['intensity_filter']}+)", box=box.ROUNDED)
    table.add_column("Date", style="cyan")
    table.add_column("Volume", style="yellow", justify="right")
    table.add_column("Z-Score", justify="right")
    table.add_column("Intensity")
    table.add_column("vs Previous", justify="right")
    table.add_column("vs Mean", justify="right")

    for spike in data['spikes']:
        table.add_row(
            spike['formatted_date'],
            format_usd(spike['volume']),
            f"{spike['z_score']:.2f}",
            spike['spike_intensity'],
            format_change(spike['percentage_change_from_previous']),
            format_change(spike['deviation_from_mean']),
        )

    console.print(table)
    summary_lines("Summary", data['summary'])


_HEAT_STYLES = {0: "dim", 1: "yellow", 2: "orange3", 3: "red", 4: "bold red"}


def _display_heatmap(data):
    table = Table(title=f"Volume Heatmap: {data['coin_id']}", box=box.SIMPLE)
    table.add_column("Week", style="cyan")
    for day in ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"):
        table.add_column(day, justify="center")

    for week, cells in data['weekly_data'].items():
        row = [""] * 7
        for cell in cells:
            style = _HEAT_STYLES.get(cell['intensity'], "")
            row[cell['day_of_week']] = f"[{style}]{cell['intensity']}[/{style}]"
        table.add_row(week, *row)

    console.print(table)
    legend = ", ".join(f"{level}={label}" for level, label in data['intensity_legend'].items())
    console.print(f"[dim]{legend}[/dim]")


def _display_comparisons(data):
    title = "Volume Leaders" if 'type' in data else "Volume Comparison"
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Coin", style="cyan")
    table.add_column("Volume 24h", style="yellow", justify="right")
    table.add_column("7d vs 30d", justify="right")
    table.add_column("Vol/MCap", justify="right")
    table.add_column("Liquidity", justify="right")
    table.add_column("24h Price", justify="right")

    for coin in data['coins']:
        table.add_row(
            f"{coin['name']} ({str(coin['symbol']).upper()})",
            format_usd(coin['volume_24h']),
            format_change(coin['volume_change_7d_to_30d']),
            format_ratio(coin['volume_to_mcap_ratio']),
            str(coin['liquidity_score']),
            format_change(coin['price_change_24h']),
        )

    console.print(table)


def _display_coin_comparison(data):
    coin = data['coin']
    console.print(f"[bold]{coin['name']} ({str(coin['symbol']).upper()})[/bold] rank {coin['market_cap_rank']}")

    volume_data = {key: value for key, value in data['volume_data'].items()
                   if not key.startswith('volume_metrics')}
    summary_lines("Volume", volume_data)
    summary_lines("Price changes", data['price_changes'])


def _display_overview(data):
    summary_lines("Market summary", data['market_summary'])
    summary_lines("Volume distribution", data['volume_distribution'])
    summary_lines("Liquidity distribution", data['liquidity_distribution'])
    _display_comparisons({'coins': data['highest_volume_24h']})


def _display_detailed(data):
    table = Table(title="Detailed Volume Analysis", box=box.ROUNDED)
    table.add_column("Coin", style="cyan")
    table.add_column("Current 24h", style="yellow", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("7d Average", justify="right")
    table.add_column("Rank", justify="right")
    table.add_column("Liquidity", justify="right")

    for coin in data['coins']:
        table.add_row(
            coin['id'],
            format_usd(coin['volume_24h_current']),
            format_change(coin['volume_24h_change_percentage']),
            format_usd(coin['volume_7d_average']),
            str(coin['volume_rank']),
            str(coin['liquidity_score']),
        )

    console.print(table)
    for error in data.get('errors', []):
        console.print(f"[red]{error['coin_id']}: {error['error']}[/red]")


def _display_multi(data):
    table = Table(title=f"Volume Tracking ({data['period_days']} days)", box=box.ROUNDED)
    table.add_column("Coin", style="cyan")
    table.add_column("Mean", style="yellow", justify="right")
    table.add_column("Volatility", justify="right")
    table.add_column("Trend")
    table.add_column("Spikes", justify="right")

    for coin in data['coins']:
        stats = coin['statistics']
        table.add_row(
            coin['coin_id'],
            format_usd(stats['mean']),
            format_ratio(stats['volatility_percentage']),
            stats['trend'],
            str(len(coin['volume_spikes'])),
        )

    console.print(table)
    console.print(f"{data['successful_coins']} of {data['total_coins_requested']} coins tracked")
    for error in data['errors']:
        console.print(f"[red]{error['coin_id']}: {error['error']}[/red]")
