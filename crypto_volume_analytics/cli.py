"""
Main CLI module with hierarchical command tree and context inheritance.

This module provides the ``crypto-volume`` entry point. The root command loads
configuration once and stores it on the application context, subcommands open
a VolumeDataService from it for the duration of one call.
"""

import asyncio
import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from crypto_volume_analytics.core.context import AppContext, get_current_context, set_context
from crypto_volume_analytics.core.config import ConfigManager
from crypto_volume_analytics.core.logging import setup_logging as setup_structured_logging, capture_exception

# Global instances
console = Console()
logger = logging.getLogger(__name__)


from .core.cli_base import ContextAwareGroup, ContextAwareCommand


def setup_logging(debug: bool = False, verbose: bool = False) -> None:
    """Set up interactive logging."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)]
    )

    logging.getLogger("crypto_volume_analytics").setLevel(level)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


async def initialize_app(config_file: Optional[str] = None) -> None:
    """Load configuration and attach it to the current application context."""
    app_ctx = get_current_context()

    config_manager = ConfigManager(config_file=config_file)
    await config_manager.initialize()
    app_ctx.config = config_manager.get_all()
    app_ctx.components['config_manager'] = config_manager

    # Console output stays with the rich handler; add file and Sentry handlers only
    structured_config = config_manager.get_all()
    structured_config['logging']['handlers']['console']['enabled'] = False
    structured_config['logging']['level'] = logging.getLevelName(
        logging.getLogger("crypto_volume_analytics").getEffectiveLevel())
    setup_structured_logging(structured_config)

    logger.debug("Application initialized")


@click.group(cls=ContextAwareGroup, invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config', '-c', type=click.Path(exists=True), help='Configuration file path')
@click.option('--dry-run', is_flag=True, help='Show what would be done without executing')
@click.pass_context
def main(ctx: click.Context, debug: bool, verbose: bool, config: Optional[str], dry_run: bool) -> None:
    """
    Crypto Volume Analytics - trading volume tracking for cryptocurrencies.

    Track daily volume, detect volume spikes, compare volume and liquidity
    across the market, and manage the Redis cache behind it.
    """
    setup_logging(debug, verbose)

    app_ctx = AppContext(debug=debug, verbose=verbose, dry_run=dry_run,
                         command_stack=list(get_current_context().command_stack))
    if config:
        app_ctx.metadata['config_file'] = config

    set_context(app_ctx)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    try:
        asyncio.run(initialize_app(config))
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Application failed: {e}")
        capture_exception(e, {"context": "app_initialization"})
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command(cls=ContextAwareCommand)
def version() -> None:
    """Show version information."""
    from crypto_volume_analytics import __version__

    console.print(f"[bold]Crypto Volume Analytics[/bold] v{__version__}")

    app_ctx = get_current_context()
    if app_ctx.verbose:
        config_manager = app_ctx.components.get('config_manager')
        if config_manager:
            console.print(f"Cache backend: {config_manager.get('cache.backend')}")
            console.print(f"Upstream: {config_manager.get('coingecko.base_url')}")


def register_commands():
    """Register all command groups with the main CLI."""
    from crypto_volume_analytics.commands.volume import volume
    from crypto_volume_analytics.commands.market import market
    from crypto_volume_analytics.commands.cache import cache

    main.add_command(volume)
    main.add_command(market)
    main.add_command(cache)

# Register commands when module is imported
register_commands()


if __name__ == '__main__':
    main()
