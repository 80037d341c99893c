"""
Application context management using ContextVar for hierarchical command inheritance.

Subcommands inherit the parent's flags and components while keeping their
own command stack.
"""

from contextvars import ContextVar as StdContextVar
from typing import Any, Dict, Optional, TypeVar, Generic
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class AppContext:
    """
    Application context that holds CLI flags, configuration and shared components.
    """
    config: Dict[str, Any] = field(default_factory=dict)
    components: Dict[str, Any] = field(default_factory=dict)
    debug: bool = False
    verbose: bool = False
    dry_run: bool = False
    output_format: str = "table"
    command_stack: list = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def copy(self) -> 'AppContext':
        """Create a copy of the context for inheritance."""
        return AppContext(
            config=self.config.copy(),
            components=self.components.copy(),
            debug=self.debug,
            verbose=self.verbose,
            dry_run=self.dry_run,
            output_format=self.output_format,
            command_stack=self.command_stack.copy(),
            metadata=self.metadata.copy()
        )

    def push_command(self, command_name: str) -> None:
        """Push a command onto the command stack."""
        self.command_stack.append(command_name)
        logger.debug(f"Command stack: {' -> '.join(self.command_stack)}")

    def pop_command(self) -> Optional[str]:
        """Pop the last command from the stack."""
        if self.command_stack:
            return self.command_stack.pop()
        return None


class EnhancedContextVar(Generic[T]):
    """
    ContextVar wrapper that falls back to a default instead of raising LookupError.
    """

    def __init__(self, name: str, default: Optional[T] = None):
        self._var: StdContextVar[T] = StdContextVar(name)
        self._name = name
        self._default = default

    def get(self, default: Optional[T] = None) -> T:
        """Get the current context value with optional default."""
        try:
            return self._var.get()
        except LookupError:
            result = default if default is not None else self._default
            if result is None:
                raise ValueError(f"No value set for context variable '{self._name}' and no default provided")
            return result

    def set(self, value: T):
        """Set the context value and return the reset token."""
        return self._var.set(value)

    def reset(self, token) -> None:
        """Reset the context to a previous state."""
        self._var.reset(token)


# Global application context
app_context: EnhancedContextVar[AppContext] = EnhancedContextVar('app_context', AppContext())


def get_current_context() -> AppContext:
    """Get the current application context."""
    return app_context.get()


def set_context(context: AppContext):
    """Set the application context."""
    return app_context.set(context)


def inherit_context() -> AppContext:
    """
    Create a new context that inherits from the current context.

    Returns:
        New context that inherits from current context
    """
    try:
        return get_current_context().copy()
    except ValueError:
        logger.debug("No current context found, creating new context")
        return AppContext()
