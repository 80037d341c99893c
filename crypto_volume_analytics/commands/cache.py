"""CLI commands for inspecting and managing the cache."""

import click
from rich.table import Table
from rich import box

from ..core.cli_base import ContextAwareGroup, ContextAwareCommand
from ..data.service import open_data_service
from .base import async_command, console, dry_run, emit, get_config, output_option, summary_lines


@click.group(cls=ContextAwareGroup)
def cache():
    """Cache status, key listing and invalidation."""
    pass


@cache.command(cls=ContextAwareCommand)
@output_option
@async_command
async def status(output_format: str):
    """Show cache health, hit rate and backend info."""
    async with open_data_service(get_config()) as service:
        data = await service.store.status()

    emit(data, output_format, _display_status)


@cache.command(cls=ContextAwareCommand)
@click.option('--pattern', default='*', help='Glob pattern of keys to list')
@click.option('--limit', '-l', type=int, default=50, help='Maximum keys shown')
@output_option
@async_command
async def keys(pattern: str, limit: int, output_format: str):
    """List cached keys with their remaining TTL."""
    async with open_data_service(get_config()) as service:
        data = await service.store.keys(pattern, limit)

    if data is None:
        raise click.ClickException("Cache is not available")

    emit(data, output_format, _display_keys)


@cache.command(cls=ContextAwareCommand)
@click.confirmation_option(prompt='Remove every cached entry?')
@async_command
async def flush():
    """Remove every cached entry."""
    if dry_run("flush the cache"):
        return

    async with open_data_service(get_config()) as service:
        flushed = await service.store.flush_all()

    if not flushed:
        raise click.ClickException("Failed to flush cache")
    console.print("[green]Cache flushed successfully[/green]")


@cache.command(cls=ContextAwareCommand)
@click.argument('key')
@async_command
async def delete(key: str):
    """Delete one cached key."""
    if dry_run(f"delete cache key {key}"):
        return

    async with open_data_service(get_config()) as service:
        deleted = await service.store.delete(key)

    if not deleted:
        raise click.ClickException(f"Failed to delete cache key {key}")
    console.print(f"[green]Deleted cache key {key}[/green]")


@cache.command(name='test', cls=ContextAwareCommand)
@output_option
@async_command
async def self_test(output_format: str):
    """Round-trip a test value through the cache."""
    async with open_data_service(get_config()) as service:
        data = await service.store.self_test()

    emit(data, output_format, _display_self_test)
    if not data['success']:
        raise click.ClickException("Cache test failed")


def _display_status(data):
    health = "[green]healthy[/green]" if data['is_healthy'] else "[red]unavailable[/red]"
    console.print(f"[bold]{data['backend']}[/bold] cache is {health}")
    summary_lines("Statistics", data['stats'])
    if 'backend_info' in data:
        summary_lines("Backend", data['backend_info'])


def _display_keys(data):
    table = Table(title=f"Cache keys matching '{data['pattern']}'", box=box.ROUNDED)
    table.add_column("Key", style="cyan")
    table.add_column("TTL (s)", justify="right")

    for entry in data['keys']:
        table.add_row(entry['key'], str(entry.get('ttl', entry.get('error'))))

    console.print(table)
    console.print(f"Showing {data['showing']} of {data['total_keys']} keys")


def _display_self_test(data):
    for name, passed in data['tests'].items():
        mark = "[green]pass[/green]" if passed else "[red]fail[/red]"
        console.print(f"  {name}: {mark}")
