"""Shared helpers for the CLI command groups."""

import asyncio
import functools
import json
import sys
from typing import Any, Callable, Dict, Optional

import click
from rich.console import Console

from ..core.config import ConfigError
from ..core.context import get_current_context
from ..core.logging import capture_exception
from ..data.errors import describe_error

console = Console()


def async_command(f):
    """Run an async click callback, reporting failures and exiting with status 1."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return asyncio.run(f(*args, **kwargs))
        except click.ClickException:
            raise
        except Exception as e:
            report_error(e)
            sys.exit(1)
    return wrapper


def report_error(error: BaseException) -> None:
    app_ctx = get_current_context()
    report = describe_error(error, debug=app_ctx.debug)

    if report.status >= 500:
        capture_exception(error, {'command': ' '.join(app_ctx.command_stack)})

    console.print(f"[red]{report.error} ({report.status}): {report.message}[/red]")
    if app_ctx.debug:
        console.print(f"[dim]{type(error).__name__}: {error}[/dim]")


def output_option(f):
    """Add the ``--format`` option shared by all read commands."""
    return click.option('--format', 'output_format', type=click.Choice(['table', 'json']),
                        default='table', help='Output format')(f)


def get_config():
    """The ConfigManager loaded by the root command."""
    config = get_current_context().components.get('config_manager')
    if config is None:
        raise ConfigError("Configuration not loaded")
    return config


def dry_run(message: str) -> bool:
    """Print the planned action and return True when running with --dry-run."""
    if get_current_context().dry_run:
        console.print(f"[yellow]DRY RUN: Would {message}[/yellow]")
        return True
    return False


def emit(data: Any, output_format: str, render: Optional[Callable[[Any], None]] = None) -> None:
    """Print ``data`` as JSON or through its table renderer."""
    if output_format == 'json' or render is None:
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        render(data)


def format_usd(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"${value:,.0f}"


def format_change(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    color = "green" if value >= 0 else "red"
    return f"[{color}]{value:+.2f}%[/{color}]"


def format_ratio(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value:.2f}%"


def summary_lines(title: str, values: Dict[str, Any]) -> None:
    console.print(f"[bold]{title}[/bold]")
    for key, value in values.items():
        label = key.replace('_', ' ').capitalize()
        if isinstance(value, float):
            value = f"{value:,.2f}"
        console.print(f"  {label}: {value}")
