"""Context-aware click base classes, kept apart from cli.py to avoid circular imports."""

import click
from typing import Any

from .context import app_context, get_current_context, inherit_context, set_context, AppContext


class ContextAwareGroup(click.Group):
    """
    Click Group that records itself on the application command stack.

    Subcommands see the group in ``command_stack`` while they run.
    """

    def invoke(self, ctx: click.Context) -> Any:
        """Invoke the group with context inheritance."""
        try:
            app_ctx = get_current_context()
        except ValueError:
            app_ctx = AppContext()
            set_context(app_ctx)

        app_ctx.push_command(ctx.info_name)

        try:
            return super().invoke(ctx)
        finally:
            app_ctx.pop_command()


class ContextAwareCommand(click.Command):
    """
    Click Command that runs in a copy of its parent's context.

    Changes a command makes to the context are discarded when it returns.
    """

    def invoke(self, ctx: click.Context) -> Any:
        """Invoke the command with inherited context."""
        app_ctx = inherit_context()
        app_ctx.push_command(ctx.info_name)
        app_ctx.metadata['click_context'] = ctx

        token = app_context.set(app_ctx)
        try:
            return super().invoke(ctx)
        finally:
            app_context.reset(token)
