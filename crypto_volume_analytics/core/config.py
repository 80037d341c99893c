"""
Layered configuration with built-in defaults, YAML files and environment overrides.

Values are resolved in order: the defaults below, then ``default.yaml``,
``config.yaml`` and ``<ENVIRONMENT>.yaml`` from the config directory, then
environment variables (a ``.env`` file is loaded first with python-dotenv).
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional
import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Configuration-related errors."""
    pass


DEFAULT_CONFIG: Dict[str, Any] = {
    'cache': {
        'backend': 'redis',
        'operation_timeout': 2.0,
        'reconnect_interval': 30.0,
        'max_size': 1000,
        'coalesce': False,
    },
    'redis': {
        'url': 'redis://localhost:6379',
        'password': None,
    },
    'coingecko': {
        'base_url': 'https://api.coingecko.com/api/v3',
        'api_key': None,
        'timeout': 10,
        'max_retries': 2,
        'currency': 'usd',
    },
    'tracking': {
        'min_days': 7,
        'max_days': 365,
        'batch_max_days': 30,
        'batch_max_coins': 10,
    },
    'logging': {
        'level': 'INFO',
        'structured': False,
        'sampling_rate': 1.0,
        'handlers': {
            'console': {'enabled': True, 'level': 'INFO'},
            'file': {
                'enabled': False,
                'level': 'DEBUG',
                'filename': 'logs/crypto_volume.log',
                'max_bytes': 10 * 1024 * 1024,
                'backup_count': 5,
            },
            'sentry': {'enabled': False, 'dsn': None, 'environment': 'development'},
        },
    },
}

# Deployment variables honoured without the prefix
ENV_ALIASES = {
    'REDIS_URL': 'redis.url',
    'REDIS_PASSWORD': 'redis.password',
    'COINGECKO_API_KEY': 'coingecko.api_key',
}


class ConfigManager:
    """
    Configuration management system.

    Supports hierarchical configuration loading from YAML files and
    environment variable overrides on top of built-in defaults.
    """

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        env_prefix: str = "CRYPTO_VOLUME",
        env_file: Optional[Path] = None,
        config_file: Optional[Path] = None
    ):
        self.config_dir = Path(config_dir) if config_dir else Path("config")
        self.config_file = Path(config_file) if config_file else None
        self.env_prefix = env_prefix
        self.env_file = env_file

        self._config: Dict[str, Any] = {}
        self._loaded = False

    async def initialize(self) -> None:
        """Initialize the configuration manager."""
        logger.debug("Initializing configuration manager")

        # Load environment variables
        load_dotenv(self.env_file)

        await self.load_config()

        self._loaded = True
        logger.debug("Configuration manager initialized")

    async def load_config(self) -> None:
        """Load configuration from all sources."""
        self._config = copy.deepcopy(DEFAULT_CONFIG)

        # Load YAML overrides
        await self._load_yaml_config()

        # Apply environment overrides
        self._apply_env_overrides()

        logger.debug(f"Loaded configuration with {len(self._config)} top-level keys")

    async def _load_yaml_config(self) -> None:
        """Load configuration from YAML files."""
        config_files = [
            self.config_dir / "default.yaml",
            self.config_dir / "config.yaml",
        ]

        # Also check for environment-specific config
        env = os.getenv("ENVIRONMENT", "development")
        env_config = self.config_dir / f"{env}.yaml"
        if env_config.exists():
            config_files.append(env_config)

        # An explicitly requested file wins over the directory defaults
        if self.config_file is not None:
            if not self.config_file.exists():
                raise ConfigError(f"Config file not found: {self.config_file}")
            config_files.append(self.config_file)

        for config_file in config_files:
            if config_file.exists():
                try:
                    with open(config_file, 'r') as f:
                        file_config = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    raise ConfigError(f"Failed to load config from {config_file}: {e}") from e

                if not isinstance(file_config, dict):
                    raise ConfigError(f"Config file {config_file} must contain a mapping")

                # Merge configuration
                self._merge_config(self._config, file_config)
                logger.debug(f"Loaded config from {config_file}")

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides.

        ``<PREFIX>_<SECTION>_<NAME>`` maps to ``section.name``, so
        ``CRYPTO_VOLUME_CACHE_OPERATION_TIMEOUT`` sets ``cache.operation_timeout``.
        """
        for env_key, config_key in ENV_ALIASES.items():
            value = os.environ.get(env_key)
            if value:
                self._set_nested_value(self._config, config_key, value)
                logger.debug(f"Applied env override: {config_key}")

        prefix = f"{self.env_prefix}_"

        for key, value in os.environ.items():
            if key.startswith(prefix):
                section, _, name = key[len(prefix):].lower().partition('_')
                config_key = f"{section}.{name}" if name else section
                self._set_nested_value(self._config, config_key, value)
                logger.debug(f"Applied env override: {config_key}")

    def _merge_config(self, target: Dict[str, Any], source: Dict[str, Any]) -> None:
        """Recursively merge configuration dictionaries."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_config(target[key], value)
            else:
                target[key] = value

    def _set_nested_value(self, config: Dict[str, Any], key_path: str, value: Any) -> None:
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config

        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]

        # Try to convert value to appropriate type
        current[keys[-1]] = self._convert_value(value)

    def _convert_value(self, value: Any) -> Any:
        """Convert string value to appropriate type."""
        # If not a string, return as-is
        if not isinstance(value, str):
            return value

        # Boolean conversion
        if value.lower() in ('true', 'false'):
            return value.lower() == 'true'

        # Integer conversion
        try:
            return int(value)
        except ValueError:
            pass

        # Float conversion
        try:
            return float(value)
        except ValueError:
            pass

        # Return as string
        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value using dot notation."""
        if not self._loaded:
            raise ConfigError("Configuration not loaded")

        current = self._config
        for k in key.split('.'):
            if isinstance(current, dict) and k in current:
                current = current[k]
            else:
                return default

        return current

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value using dot notation."""
        self._set_nested_value(self._config, key, value)

    def get_all(self) -> Dict[str, Any]:
        """Get a copy of the whole configuration."""
        return copy.deepcopy(self._config)

    def has(self, key: str) -> bool:
        """Check if a configuration key exists."""
        if not self._loaded:
            return False

        current = self._config
        for k in key.split('.'):
            if isinstance(current, dict) and k in current:
                current = current[k]
            else:
                return False

        return True
