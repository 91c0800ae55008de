"""SurrealDB and migration configuration.

Configuration is resolved in priority order:
environment variables > .env file > YAML config file > defaults.

YAML layout:
    database:
      url: ws://localhost:8000/rpc
      user: root
      pass: root
      namespace: app
      dbname: app
    migrations:
      directory: ./migrations
      extension: .surql
      table: migrations
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from dotenv import dotenv_values

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = ".env"

# Environment variable -> SurrealConfig field
ENV_OVERRIDES = {
    "DB_URL": "url",
    "DB_USER": "user",
    "DB_PASS": "password",
    "DB_NAMESPACE": "namespace",
    "DB_NAME": "database",
    "DB_CONNECT_TIMEOUT": "connect_timeout",
    "DB_QUERY_TIMEOUT": "query_timeout",
    "DB_SKIP_SSL_VERIFY": "skip_ssl_verify",
}

# YAML "database" section key -> SurrealConfig field
YAML_DATABASE_KEYS = {
    "url": "url",
    "user": "user",
    "pass": "password",
    "password": "password",
    "namespace": "namespace",
    "dbname": "database",
    "database": "database",
    "connect_timeout": "connect_timeout",
    "query_timeout": "query_timeout",
    "skip_ssl_verify": "skip_ssl_verify",
}

# YAML "migrations" section key -> SurrealConfig field
YAML_MIGRATION_KEYS = {
    "directory": "migrations_dir",
    "extension": "extension",
    "table": "ledger_table",
}


class ConfigError(Exception):
    """Configuration could not be loaded."""

    pass


@dataclass
class SurrealConfig:
    """SurrealDB connection and migration configuration.

    Attributes:
        url: SurrealDB WebSocket URL (ws:// or wss://)
        namespace: SurrealDB namespace
        database: Database name within the namespace
        user: Authentication username
        password: Authentication password
        connect_timeout: Connection timeout in seconds
        query_timeout: Query timeout in seconds
        skip_ssl_verify: Skip certificate verification for wss:// URLs
        migrations_dir: Directory containing migration scripts
        extension: Migration script file extension
        ledger_table: Table recording applied migration versions
    """

    url: str = "ws://localhost:8000/rpc"
    namespace: str = "test"
    database: str = "test"
    user: str = "root"
    password: str = "root"
    connect_timeout: float = 10.0
    query_timeout: float = 30.0
    skip_ssl_verify: bool = False
    migrations_dir: str = "./migrations"
    extension: str = ".surql"
    ledger_table: str = "migrations"

    def __post_init__(self) -> None:
        if self.extension and not self.extension.startswith("."):
            self.extension = f".{self.extension}"

    @property
    def is_secure(self) -> bool:
        """Check if using secure WebSocket connection."""
        return self.url.startswith("wss://")

    def validate(self) -> list[str]:
        """Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.url:
            errors.append("DB_URL is required")
        elif not self.url.startswith(("ws://", "wss://", "http://", "https://")):
            errors.append("DB_URL must start with ws://, wss://, http:// or https://")

        if not self.namespace:
            errors.append("DB_NAMESPACE is required")

        if not self.database:
            errors.append("DB_NAME is required")

        if not self.user:
            errors.append("DB_USER is required")

        if not self.ledger_table.replace("_", "").isalnum():
            errors.append(f"Invalid ledger table name: {self.ledger_table!r}")

        if self.connect_timeout <= 0 or self.query_timeout <= 0:
            errors.append("Timeouts must be positive")

        return errors


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw YAML/env value to the type of a SurrealConfig field."""
    default = getattr(SurrealConfig, name)
    try:
        if isinstance(default, bool):
            if isinstance(value, bool):
                return value
            return str(value).strip().lower() in ("1", "true", "yes", "on")
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e
    return str(value)


def _read_yaml(config_path: Path) -> dict[str, Any]:
    """Read the YAML config file into SurrealConfig field values."""
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except OSError as e:
        raise ConfigError(f"Failed to read config file {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    values: dict[str, Any] = {}
    for section, key_map in (("database", YAML_DATABASE_KEYS), ("migrations", YAML_MIGRATION_KEYS)):
        section_data = data.get(section) or {}
        if not isinstance(section_data, dict):
            raise ConfigError(f"'{section}' in {config_path} must be a mapping")
        for key, value in section_data.items():
            name = key_map.get(key)
            if name is None:
                logger.warning(f"Unknown key '{section}.{key}' in {config_path}")
                continue
            if value is not None:
                values[name] = _coerce(name, value)

    return values


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, Optional[str]]] = None,
    env_file: Optional[Union[str, Path]] = DEFAULT_ENV_FILE,
) -> SurrealConfig:
    """Load configuration from defaults, a YAML file and the environment.

    Variables from ``env_file`` fill in ``DB_*`` values that are not set in
    the environment itself; real environment variables always win.

    Args:
        config_path: Optional path to a YAML config file
        environ: Environment mapping (defaults to os.environ)
        env_file: Optional dotenv file (skipped if it does not exist)

    Returns:
        Resolved SurrealConfig

    Raises:
        ConfigError: If the file cannot be read or holds invalid values
    """
    environ = os.environ if environ is None else environ
    values: dict[str, Any] = {}

    if config_path:
        values.update(_read_yaml(Path(config_path)))
        logger.info(f"Configuration loaded from {config_path}")

    if env_file and Path(env_file).is_file():
        environ = {**dotenv_values(env_file), **environ}
        logger.debug(f"Environment file loaded from {env_file}")

    for env_name, name in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw:
            values[name] = _coerce(name, raw)

    known = {f.name for f in fields(SurrealConfig)}
    config = SurrealConfig(**{k: v for k, v in values.items() if k in known})
    logger.debug(f"Using SurrealDB at {config.url} ({config.namespace}/{config.database})")
    return config
