"""Configuration settings for resource_control.

This module centralizes all configuration values loaded from:
1. config.base.yaml (shared defaults)
2. config.{env}.yaml (environment-specific: dev, staging, prod)
3. config.local.yaml (local overrides, git-ignored)
4. Environment variables (highest priority)

Default environment is 'development' (DEV).

Usage:
    from config.settings import config

    uri = config.MONGO_URI
    level = config.LOG_LEVEL

    # Check current environment
    env = config.ENV  # 'development', 'staging', or 'production'
"""
import os
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

import yaml


# Environment name mappings
ENV_ALIASES = {
    'dev': 'development',
    'development': 'development',
    'staging': 'staging',
    'stage': 'staging',
    'prod': 'production',
    'production': 'production',
    'test': 'test',
    'testing': 'test',
}

# Default environment
DEFAULT_ENV = 'development'

ENV_CONFIG_FILES = {
    'development': 'config.dev.yaml',
    'staging': 'config.staging.yaml',
    'production': 'config.prod.yaml',
    'test': 'config.test.yaml',
}


def _env_flag(name: str) -> Optional[bool]:
    """Read a boolean environment variable; None when unset."""
    env_val = os.getenv(name, '').lower()
    if env_val:
        return env_val in ('1', 'true', 'yes')
    return None


class Config:
    """Centralized configuration.

    Priority (highest to lowest):
    1. Environment variables
    2. config.local.yaml (for local development overrides)
    3. config.{env}.yaml (environment-specific)
    4. config.base.yaml (shared defaults)

    Environment is determined by the APP_ENV environment variable,
    defaulting to 'development'.
    """

    _config_data: Dict[str, Any] = {}
    _loaded: bool = False
    _current_env: str = DEFAULT_ENV
    config_dir: Path = Path(__file__).parent

    def __init__(self):
        if not Config._loaded:
            self._load_config()

    @classmethod
    def _get_environment(cls) -> str:
        """Determine current environment from env vars or default to dev."""
        env = os.getenv('APP_ENV') or DEFAULT_ENV
        env = env.lower().strip()
        return ENV_ALIASES.get(env, DEFAULT_ENV)

    def _load_yaml(self, path: Path) -> dict:
        if not path.exists():
            return {}
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}

    def _load_config(self):
        """Load configuration from YAML files based on environment."""
        config_dir = Config.config_dir
        Config._current_env = self._get_environment()

        # 1. base config (shared defaults)
        Config._config_data = self._load_yaml(config_dir / 'config.base.yaml')

        # 2. environment-specific config
        env_config_file = ENV_CONFIG_FILES.get(Config._current_env, 'config.dev.yaml')
        env_data = self._load_yaml(config_dir / env_config_file)
        Config._config_data = self._deep_merge(Config._config_data, env_data)

        # 3. local overrides (not in git)
        local_data = self._load_yaml(config_dir / 'config.local.yaml')
        Config._config_data = self._deep_merge(Config._config_data, local_data)

        Config._loaded = True

    def _deep_merge(self, base: dict, override: dict) -> dict:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _get_yaml_value(self, *keys, default=None) -> Any:
        """Get a nested value from YAML config."""
        value = Config._config_data
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default
        return value

    @classmethod
    def reload(cls):
        """Reload configuration (useful for testing)."""
        cls._loaded = False
        cls._config_data = {}
        instance = cls()
        return instance

    # ==========================================================================
    # Environment Info
    # ==========================================================================

    @property
    def CURRENT_ENV(self) -> str:
        """Current environment name."""
        return Config._current_env

    @property
    def ENV(self) -> str:
        return Config._current_env

    @property
    def IS_DEV(self) -> bool:
        return Config._current_env == 'development'

    @property
    def IS_STAGING(self) -> bool:
        return Config._current_env == 'staging'

    @property
    def IS_PROD(self) -> bool:
        return Config._current_env == 'production'

    @property
    def IS_TEST(self) -> bool:
        return Config._current_env == 'test'

    # ==========================================================================
    # Database Settings
    # ==========================================================================

    @property
    def MONGO_URI(self) -> str:
        """MongoDB connection URI."""
        return os.getenv('MONGO_URI') or self._get_yaml_value('database', 'mongo_uri', default='mongodb://localhost:27017')

    @property
    def MONGO_DB(self) -> str:
        """Database used by models compiled without an explicit db."""
        return os.getenv('MONGO_DB') or self._get_yaml_value('database', 'name', default='resource_control')

    @property
    def MONGO_SERVER_SELECTION_TIMEOUT_MS(self) -> int:
        """How long the driver waits for a reachable server before failing an operation."""
        env_val = os.getenv('MONGO_SERVER_SELECTION_TIMEOUT_MS')
        if env_val:
            return int(env_val)
        return self._get_yaml_value('database', 'server_selection_timeout_ms', default=5000)

    @property
    def AUTO_INDEX(self) -> bool:
        """Create schema indexes when a model is compiled."""
        flag = _env_flag('AUTO_INDEX')
        if flag is not None:
            return flag
        return self._get_yaml_value('database', 'auto_index', default=self.IS_DEV)

    # ==========================================================================
    # Logging Settings
    # ==========================================================================

    @property
    def LOG_LEVEL(self) -> str:
        """Logging level."""
        env_val = os.getenv('LOG_LEVEL')
        if env_val:
            return env_val.upper()
        # debug mode forces DEBUG level
        if self.LOG_DEBUG:
            return 'DEBUG'
        return str(self._get_yaml_value('logging', 'level', default='INFO')).upper()

    @property
    def LOG_DEBUG(self) -> bool:
        """Enable debug logging (verbose)."""
        flag = _env_flag('LOG_DEBUG')
        if flag is not None:
            return flag
        return self._get_yaml_value('logging', 'debug', default=False)

    @property
    def LOG_PATTERN(self) -> str:
        """Log format pattern."""
        env_val = os.getenv('LOG_PATTERN')
        if env_val:
            return env_val
        return self._get_yaml_value('logging', 'pattern', default='%(message)s')

    @property
    def LOG_INCLUDE_DATETIME(self) -> bool:
        flag = _env_flag('LOG_INCLUDE_DATETIME')
        if flag is not None:
            return flag
        return self._get_yaml_value('logging', 'include_datetime', default=False)

    @property
    def LOG_INCLUDE_NAME(self) -> bool:
        flag = _env_flag('LOG_INCLUDE_NAME')
        if flag is not None:
            return flag
        return self._get_yaml_value('logging', 'include_name', default=False)

    @property
    def LOG_INCLUDE_LEVEL(self) -> bool:
        flag = _env_flag('LOG_INCLUDE_LEVEL')
        if flag is not None:
            return flag
        return self._get_yaml_value('logging', 'include_level', default=True)

    @property
    def LOG_DATE_FORMAT(self) -> str:
        """Date format for logs."""
        return self._get_yaml_value('logging', 'date_format', default='%H:%M:%S')

    @property
    def LOG_FORMAT(self) -> str:
        """Build log format string based on config options."""
        # a custom pattern wins
        pattern = self.LOG_PATTERN
        if pattern and pattern != '%(message)s':
            return pattern

        parts = []
        if self.LOG_INCLUDE_DATETIME:
            parts.append('%(asctime)s')
        if self.LOG_INCLUDE_NAME:
            parts.append('%(name)s')
        if self.LOG_INCLUDE_LEVEL:
            parts.append('%(levelname)s')
        parts.append('%(message)s')

        return ' - '.join(parts) if len(parts) > 1 else parts[0]

    # ==========================================================================
    # Export
    # ==========================================================================

    @staticmethod
    def _mask_uri(uri: Optional[str]) -> Optional[str]:
        """Hide credentials in a connection URI."""
        if not uri:
            return None
        parts = urlsplit(uri)
        if '@' not in parts.netloc:
            return uri
        host = parts.netloc.rsplit('@', 1)[1]
        return urlunsplit((parts.scheme, f'***@{host}', parts.path, parts.query, parts.fragment))

    def to_dict(self) -> Dict[str, Any]:
        """Export current configuration as dictionary (for debugging)."""
        return {
            'environment': {
                'current': self.CURRENT_ENV,
                'is_dev': self.IS_DEV,
                'is_staging': self.IS_STAGING,
                'is_prod': self.IS_PROD,
            },
            'database': {
                'mongo_uri': self._mask_uri(self.MONGO_URI),
                'name': self.MONGO_DB,
                'server_selection_timeout_ms': self.MONGO_SERVER_SELECTION_TIMEOUT_MS,
                'auto_index': self.AUTO_INDEX,
            },
            'logging': {
                'level': self.LOG_LEVEL,
                'format': self.LOG_FORMAT,
                'date_format': self.LOG_DATE_FORMAT,
            },
        }


# Singleton config instance
config = Config()


# =============================================================================
# Convenience exports
# =============================================================================

def get_env() -> str:
    return config.ENV

def is_dev() -> bool:
    return config.IS_DEV

def is_prod() -> bool:
    return config.IS_PROD
