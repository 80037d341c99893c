"""
Structured logging with dynamic sampling and optional Sentry integration.

JSON structured records go to a rotating log file, console output stays
human readable unless ``logging.structured`` is set, and ERROR records are
forwarded to Sentry when ``sentry-sdk`` is installed and a DSN is configured.
"""

import json
import logging
import logging.handlers
import random
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
import traceback

try:
    import sentry_sdk
    from sentry_sdk.integrations.logging import LoggingIntegration
    SENTRY_AVAILABLE = True
except ImportError:
    SENTRY_AVAILABLE = False

_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName',
})


class StructuredFormatter(logging.Formatter):
    """
    Formatter for structured JSON logging.

    One JSON object per record, with exception details and any ``extra``
    fields attached to the record.
    """

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process_id": record.process,
            "thread_name": record.threadName,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        if self.include_extra:
            extra_fields = {}
            for key, value in record.__dict__.items():
                if key in _RESERVED_ATTRS:
                    continue
                try:
                    # Only include JSON-serializable values
                    json.dumps(value)
                    extra_fields[key] = value
                except (TypeError, ValueError):
                    extra_fields[key] = str(value)

            if extra_fields:
                log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)


class SamplingFilter(logging.Filter):
    """
    Let through only a fraction of DEBUG records.

    Cache hit/miss tracing is logged at DEBUG on every lookup; sampling keeps
    it usable on busy deployments.
    """

    def __init__(self, sample_rate: float = 0.01):
        super().__init__()
        self.sample_rate = sample_rate

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter log records based on sampling rate."""
        if record.levelno > logging.DEBUG:
            return True

        return random.random() < self.sample_rate


class ContextFilter(logging.Filter):
    """Add the current command path and CLI flags to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        from crypto_volume_analytics.core.context import get_current_context

        app_ctx = get_current_context()

        if app_ctx.command_stack:
            record.command_stack = " -> ".join(app_ctx.command_stack)
            record.current_command = app_ctx.command_stack[-1]

        record.debug_mode = app_ctx.debug
        record.dry_run_mode = app_ctx.dry_run

        return True


class LoggingManager:
    """
    Logging management system.

    Handles setup of console, rotating file and Sentry handlers from the
    ``logging`` section of the configuration.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.handlers: List[logging.Handler] = []
        self.sentry_initialized = False

    def setup_logging(self) -> None:
        """Set up the complete logging system."""
        log_config = self.config.get('logging', {})

        level = getattr(logging, str(log_config.get('level', 'INFO')).upper())
        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        for handler in self.handlers:
            root_logger.removeHandler(handler)
        self.handlers = []

        self._setup_console_handler(log_config)
        self._setup_file_handler(log_config)
        self._setup_sentry(log_config)

        context_filter = ContextFilter()
        for handler in self.handlers:
            handler.addFilter(context_filter)

        sampling_rate = float(log_config.get('sampling_rate', 1.0))
        if sampling_rate < 1.0:
            sampling_filter = SamplingFilter(sampling_rate)
            for handler in self.handlers:
                if handler.level <= logging.DEBUG:
                    handler.addFilter(sampling_filter)

        for handler in self.handlers:
            root_logger.addHandler(handler)

        logging.getLogger('crypto_volume_analytics').setLevel(level)
        logging.getLogger('aiohttp').setLevel(logging.WARNING)
        logging.getLogger('asyncio').setLevel(logging.WARNING)

    def _setup_console_handler(self, log_config: Dict[str, Any]) -> None:
        console_config = log_config.get('handlers', {}).get('console', {})

        if not console_config.get('enabled', True):
            return

        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(getattr(logging, str(console_config.get('level', 'INFO')).upper()))

        if log_config.get('structured', False):
            formatter = StructuredFormatter()
        else:
            format_str = log_config.get('format',
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            formatter = logging.Formatter(format_str)

        handler.setFormatter(formatter)
        self.handlers.append(handler)

    def _setup_file_handler(self, log_config: Dict[str, Any]) -> None:
        """Set up file logging handler with rotation."""
        file_config = log_config.get('handlers', {}).get('file', {})

        if not file_config.get('enabled', False):
            return

        log_file = Path(file_config.get('filename', 'logs/crypto_volume.log'))
        log_file.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=int(file_config.get('max_bytes', 10 * 1024 * 1024)),
            backupCount=int(file_config.get('backup_count', 5))
        )
        handler.setLevel(getattr(logging, str(file_config.get('level', 'DEBUG')).upper()))

        # Always use structured logging for file output
        handler.setFormatter(StructuredFormatter())
        self.handlers.append(handler)

    def _setup_sentry(self, log_config: Dict[str, Any]) -> None:
        """Set up Sentry error reporting."""
        if not SENTRY_AVAILABLE:
            return

        sentry_config = log_config.get('handlers', {}).get('sentry', {})
        dsn = sentry_config.get('dsn')

        if not sentry_config.get('enabled', False) or not dsn:
            return

        sentry_logging = LoggingIntegration(
            level=logging.INFO,
            event_level=logging.ERROR
        )

        try:
            sentry_sdk.init(
                dsn=dsn,
                environment=sentry_config.get('environment', 'development'),
                integrations=[sentry_logging],
                traces_sample_rate=sentry_config.get('traces_sample_rate', 0.0),
                attach_stacktrace=True,
                send_default_pii=False,
            )
        except Exception as e:
            logging.getLogger(__name__).warning(f"Failed to initialize Sentry: {e}")
            return

        self.sentry_initialized = True
        logging.getLogger(__name__).info("Sentry error reporting initialized")

    def capture_exception(self, exception: BaseException, extra: Optional[Dict[str, Any]] = None) -> None:
        """Capture an exception with Sentry."""
        if not self.sentry_initialized:
            return

        with sentry_sdk.new_scope() as scope:
            for key, value in (extra or {}).items():
                scope.set_extra(key, value)
            sentry_sdk.capture_exception(exception)


# Global logging manager instance
_logging_manager: Optional[LoggingManager] = None


def get_logging_manager() -> LoggingManager:
    """Get the global logging manager instance."""
    global _logging_manager
    if _logging_manager is None:
        _logging_manager = LoggingManager()
    return _logging_manager


def setup_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """Set up the global logging system."""
    manager = get_logging_manager()
    if config:
        manager.config = config
    manager.setup_logging()


def capture_exception(exception: BaseException, extra: Optional[Dict[str, Any]] = None) -> None:
    """Capture an exception for error reporting."""
    get_logging_manager().capture_exception(exception, extra)
