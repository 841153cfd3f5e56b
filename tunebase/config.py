"""
Tunebase Configuration System.

Priority order (highest to lowest):
1. Command-line arguments
2. Environment variables
3. Configuration file (YAML)
4. Default values
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)


DEFAULT_BUCKET = "musicfiles"

# Valid log levels
VALID_LOG_LEVELS = {"debug", "info", "warning", "error"}

# TUNEBASE_* variable -> config path
ENV_MAPPINGS = {
    # Backend
    "TUNEBASE_URL": ("backend", "url"),
    "TUNEBASE_ANON_KEY": ("backend", "anon_key"),
    "TUNEBASE_TIMEOUT": ("backend", "timeout"),
    # Auth
    "TUNEBASE_EMAIL": ("auth", "email"),
    "TUNEBASE_PASSWORD": ("auth", "password"),
    # Storage
    "TUNEBASE_BUCKET": ("storage", "bucket"),
    # Realtime
    "TUNEBASE_REALTIME": ("realtime", "enabled"),
    "TUNEBASE_HEARTBEAT_INTERVAL": ("realtime", "heartbeat_interval"),
    # Logging
    "TUNEBASE_LOG_LEVEL": ("logging", "level"),
}

_FLOAT_ENV_VARS = ("TUNEBASE_TIMEOUT", "TUNEBASE_HEARTBEAT_INTERVAL")
_BOOL_ENV_VARS = ("TUNEBASE_REALTIME",)


class ConfigError(Exception):
    """Raised when settings are missing, malformed or contradictory."""

    pass


@dataclass
class BackendConfig:
    """Hosted backend project configuration."""

    url: str = ""
    anon_key: str = ""
    timeout: float = 10.0  # seconds, per HTTP request


@dataclass
class AuthConfig:
    """Account credentials."""

    email: str = ""
    password: str = ""


@dataclass
class StorageConfig:
    """Object storage configuration."""

    bucket: str = DEFAULT_BUCKET


@dataclass
class RealtimeConfig:
    """Realtime change feed configuration."""

    enabled: bool = True
    heartbeat_interval: float = 25.0  # seconds


@dataclass
class LoggingConfig:
    """Log verbosity."""

    level: str = "info"


@dataclass
class Config:
    """Complete Tunebase configuration."""

    backend: BackendConfig = field(default_factory=BackendConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    realtime: RealtimeConfig = field(default_factory=RealtimeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def realtime_url(self) -> str:
        """Websocket endpoint derived from the backend URL."""
        base = self.backend.url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://") :]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://") :]
        return f"{base}/realtime/v1/websocket"


def validate_email(email: str) -> bool:
    """Loose check that the account email looks like an address."""
    pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    return bool(re.match(pattern, email))


def validate_url(url: str) -> bool:
    """Validate backend URL format."""
    return bool(re.match(r"^https?://[^\s/]+", url))


def validate_config(config: Config, require_credentials: bool = True) -> None:
    """
    Validate configuration.

    Args:
        config: Configuration to check
        require_credentials: Whether email and password must be present

    Raises:
        ConfigError: If configuration is invalid
    """
    errors = []

    # Backend
    if not config.backend.url:
        errors.append("Backend URL is required")
    elif not validate_url(config.backend.url):
        errors.append(f"Invalid backend URL: {config.backend.url}")

    if not config.backend.anon_key:
        errors.append("Backend anon key is required")

    if config.backend.timeout <= 0:
        errors.append(f"Invalid timeout: {config.backend.timeout}")

    # Credentials
    if require_credentials:
        if not config.auth.email:
            errors.append("Account email is required")
        elif not validate_email(config.auth.email):
            errors.append(f"Invalid email format: {config.auth.email}")

        if not config.auth.password:
            errors.append("Account password is required")

    # Storage
    if not config.storage.bucket:
        errors.append("Storage bucket name is required")

    # Realtime
    if config.realtime.heartbeat_interval <= 0:
        errors.append(f"Invalid heartbeat interval: {config.realtime.heartbeat_interval}")

    # Logging
    if config.logging.level.lower() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid log level: {config.logging.level}. "
            f"Valid values: {sorted(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigError("Configuration validation failed:\n  - " + "\n  - ".join(errors))


def load_yaml_config(path: Path) -> dict:
    """
    Read settings from a YAML file.

    A missing file is not an error and yields an empty dict.

    Raises:
        ConfigError: If the file exists but is unreadable or not valid YAML
    """
    if not path.exists():
        logger.debug(f"Config file not found: {path}")
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
            return data if data else {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML config: {e}")
    except IOError as e:
        raise ConfigError(f"Error reading config file: {e}")


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Store value under d[path[0]][path[1]]..., creating sections as needed."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def load_env_config() -> dict:
    """Collect TUNEBASE_* variables into a nested settings dict."""
    result: dict = {}

    for env_var, path in ENV_MAPPINGS.items():
        value: Any = os.environ.get(env_var)
        if value is None:
            continue

        if env_var in _FLOAT_ENV_VARS:
            try:
                value = float(value)
            except ValueError:
                logger.warning(f"Invalid number for {env_var}: {value}")
                continue
        elif env_var in _BOOL_ENV_VARS:
            value = value.lower() in ("true", "1", "yes", "on")

        _set_nested(result, path, value)

    return result


def _deep_merge(base: dict, override: dict) -> None:
    """Merge override into base in place, descending into sections."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def merge_configs(*configs: dict) -> dict:
    """Combine settings dicts; a later dict wins key by key."""
    result: dict = {}
    for config in configs:
        _deep_merge(result, config)
    return result


def dict_to_config(d: dict) -> Config:
    """Build a Config from merged settings; missing keys keep their defaults."""
    config = Config()

    # Backend
    if "backend" in d:
        b = d["backend"]
        config.backend.url = b.get("url", config.backend.url)
        config.backend.anon_key = b.get("anon_key", config.backend.anon_key)
        config.backend.timeout = float(b.get("timeout", config.backend.timeout))

    # Auth
    if "auth" in d:
        a = d["auth"]
        config.auth.email = a.get("email", config.auth.email)
        config.auth.password = a.get("password", config.auth.password)

    # Storage
    if "storage" in d:
        config.storage.bucket = d["storage"].get("bucket", config.storage.bucket)

    # Realtime
    if "realtime" in d:
        r = d["realtime"]
        config.realtime.enabled = bool(r.get("enabled", config.realtime.enabled))
        config.realtime.heartbeat_interval = float(
            r.get("heartbeat_interval", config.realtime.heartbeat_interval)
        )

    # Logging
    if "logging" in d:
        config.logging.level = d["logging"].get("level", config.logging.level)

    return config


def load_config(
    config_path: Optional[Path] = None,
    cli_args: Optional[dict] = None,
    require_credentials: bool = True,
) -> Config:
    """
    Resolve the session configuration.

    Command-line values override TUNEBASE_* variables, which override the
    YAML file; anything still unset keeps its default.

    Args:
        config_path: YAML settings file (may be absent)
        cli_args: Nested dict built from command-line options
        require_credentials: Whether email and password must be present

    Raises:
        ConfigError: If a value cannot be converted or validation fails
    """
    configs = []

    # YAML file
    if config_path:
        file_config = load_yaml_config(config_path)
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {config_path}")

    # TUNEBASE_* variables
    env_config = load_env_config()
    if env_config:
        configs.append(env_config)
        logger.debug("Loaded config from environment variables")

    # Command line wins
    if cli_args:
        configs.append(cli_args)
        logger.debug("Loaded config from CLI arguments")

    merged = merge_configs(*configs) if configs else {}

    # Type conversion errors surface as ConfigError
    try:
        config = dict_to_config(merged)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")

    validate_config(config, require_credentials=require_credentials)

    return config
