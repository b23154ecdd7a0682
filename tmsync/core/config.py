"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Configuration management for TMSYNC.

This module provides a central location for all configuration settings in TMSYNC.
It handles environment variables, default values, and validation of configuration
parameters for the store, the synchronizers and the source system clients.
Configuration objects are built once at startup and passed explicitly to the
components that need them.
"""

import logging
import os
from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel, Field, field_validator, model_validator

from tmsync.secrets import SecretsProvider

logger = logging.getLogger(__name__)

DEFAULT_PARTITION_SIZE = 500
DEFAULT_FETCH_ATTEMPTS = 5


def _split_list(value: str | None) -> list[str]:
    """Split a comma separated environment value into a list of trimmed entries."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class BaseConfig(BaseModel):
    """Base configuration class with common functionality."""

    ENV_PREFIX: ClassVar[str] = "TMSYNC_"

    @classmethod
    def from_env(cls, **overrides) -> "BaseConfig":
        """
        Create a configuration instance from environment variables.

        Args:
        ----
            **overrides: Key-value pairs that override environment variables

        Returns:
        -------
            An instance of the configuration class

        """
        raise NotImplementedError("Subclasses must implement from_env method")

    @classmethod
    def get_env_var(cls, key: str, default: Any = None) -> Any:
        """
        Get an environment variable with the class prefix.

        Args:
        ----
            key: Key name without prefix
            default: Default value if environment variable is not found

        Returns:
        -------
            The environment variable value or default

        """
        env_key = f"{cls.ENV_PREFIX}{key.upper()}"
        return os.environ.get(env_key, default)


class LoggingConfig(BaseConfig):
    """Configuration for logging settings."""

    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    use_rich: bool = Field(
        default=True,
        description="Whether to use rich for logging formatting",
    )
    log_file: str | None = Field(
        default=None,
        description="Path to the log file (None for console-only logging)",
    )
    json_format: bool = Field(
        default=False,
        description="Whether to use JSON format for logs",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, value):
        """Validate that the log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        value = value.upper()
        if value not in valid_levels:
            logger.warning(f"Invalid log level '{value}', defaulting to INFO")
            return "INFO"
        return value

    @classmethod
    def from_env(cls, **overrides) -> "LoggingConfig":
        """Create a logging configuration from environment variables."""
        config = {
            "level": cls.get_env_var("LOG_LEVEL", "INFO"),
            "use_rich": cls.get_env_var("LOG_USE_RICH", "true").lower() == "true",
            "log_file": cls.get_env_var("LOG_FILE", None),
            "json_format": cls.get_env_var("LOG_JSON", "false").lower() == "true",
        }
        config.update(overrides)
        return cls(**config)

    def get_log_level_int(self) -> int:
        """Get the numeric logging level."""
        return getattr(logging, self.level)

    def configure_logging(self, debug: bool = False) -> None:
        """
        Configure logging based on the settings.

        Args:
        ----
            debug: Whether to force debug mode

        """
        from tmsync.core.logging import configure_logging as configure_contextual_logging

        configure_contextual_logging(
            level=logging.DEBUG if debug else self.get_log_level_int(),
            log_file=self.log_file,
            json_format=self.json_format,
            use_rich=self.use_rich,
        )


class DatabaseConfig(BaseConfig):
    """Configuration for the canonical store connection."""

    db_type: str = Field(
        default="sqlite",
        description="Database type (sqlite, postgresql)",
    )
    db_path: str | None = Field(
        default=None,
        description="Path to SQLite database file (for SQLite)",
    )
    host: str | None = Field(default=None, description="Database host (for PostgreSQL)")
    port: int | None = Field(default=None, description="Database port (for PostgreSQL)")
    username: str | None = Field(default=None, description="Database username (for PostgreSQL)")
    password: str | None = Field(default=None, description="Database password (for PostgreSQL)")
    database: str | None = Field(default=None, description="Database name (for PostgreSQL)")
    pool_size: int = Field(
        default=5,
        description="Connection pool size",
    )
    max_overflow: int = Field(
        default=10,
        description="Maximum number of connections to overflow",
    )
    echo: bool = Field(
        default=False,
        description="Whether to echo SQL statements",
    )

    @model_validator(mode="after")
    def validate_db_config(self):
        """Validate database configuration based on the database type."""
        self.db_type = self.db_type.lower()
        if self.db_type == "sqlite" and not self.db_path:
            self.db_path = os.path.join(os.getcwd(), "tmsync_data.db")
        elif self.db_type == "postgresql":
            if not all([self.host, self.username, self.database]):
                raise ValueError("Host, username, and database name are required for PostgreSQL")
        elif self.db_type not in ["sqlite", "postgresql"]:
            raise ValueError(f"Unsupported database type: {self.db_type}")
        return self

    @classmethod
    def from_env(cls, **overrides) -> "DatabaseConfig":
        """Create a database configuration from environment variables."""
        db_type = cls.get_env_var("DB_TYPE", "sqlite").lower()

        config = {
            "db_type": db_type,
            "pool_size": int(cls.get_env_var("DB_POOL_SIZE", "5")),
            "max_overflow": int(cls.get_env_var("DB_MAX_OVERFLOW", "10")),
            "echo": cls.get_env_var("DB_ECHO", "false").lower() == "true",
        }

        if db_type == "sqlite":
            config["db_path"] = cls.get_env_var("DB_PATH")
        elif db_type == "postgresql":
            config.update(
                {
                    "host": cls.get_env_var("PG_HOST"),
                    "port": int(cls.get_env_var("PG_PORT", "5432")),
                    "username": cls.get_env_var("PG_USER"),
                    "password": cls.get_env_var("PG_PASSWORD"),
                    "database": cls.get_env_var("PG_DATABASE"),
                },
            )

        config.update(overrides)
        return cls(**config)

    def get_connection_string(self) -> str:
        """
        Get the database connection string based on the configuration.

        Returns
        -------
            Database connection string for SQLAlchemy

        """
        if self.db_type == "sqlite":
            db_path = Path(self.db_path) if self.db_path else Path("tmsync_data.db")
            db_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite:///{db_path}"
        if self.db_type == "postgresql":
            port = self.port or 5432
            password_part = f":{self.password}" if self.password else ""
            return (
                f"postgresql+psycopg://{self.username}{password_part}"
                f"@{self.host}:{port}/{self.database}"
            )
        raise ValueError(f"Unsupported database type: {self.db_type}")


class SyncConfig(BaseConfig):
    """
    Settings that drive a synchronization run.

    An empty folder list means every folder of the project is synchronized.
    """

    partition_size: int = Field(
        default=DEFAULT_PARTITION_SIZE,
        description="Number of pending merges committed per transaction",
        gt=0,
    )
    max_fetch_attempts: int = Field(
        default=DEFAULT_FETCH_ATTEMPTS,
        description="Attempts made to read a dependency before the dependent record is skipped",
        ge=1,
    )
    worker_count: int = Field(
        default=4,
        description="Number of sync units processed in parallel",
        ge=1,
    )
    retry_initial_delay: float = Field(
        default=1.0,
        description="Delay in seconds before the second dependency read attempt",
        ge=0,
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        description="Multiplier applied to the delay after each failed attempt",
        ge=1,
    )
    scale_test_case_folders: list[str] = Field(
        default_factory=list,
        description="Zephyr Scale test case folder prefixes to synchronize",
    )
    scale_test_run_folders: list[str] = Field(
        default_factory=list,
        description="Zephyr Scale test run folder prefixes to synchronize",
    )
    jira_issue_types: list[str] = Field(
        default_factory=lambda: ["Bug", "Story"],
        description="Jira issue types synchronized as items",
    )
    jira_fields_to_sync: list[str] = Field(
        default_factory=list,
        description="Jira fields copied into item metadata (empty for all)",
    )

    @classmethod
    def from_env(cls, **overrides) -> "SyncConfig":
        """Create a sync configuration from environment variables."""
        config: dict[str, Any] = {
            "partition_size": int(cls.get_env_var("PARTITION_SIZE", DEFAULT_PARTITION_SIZE)),
            "max_fetch_attempts": int(
                cls.get_env_var("MAX_FETCH_ATTEMPTS", DEFAULT_FETCH_ATTEMPTS),
            ),
            "worker_count": int(cls.get_env_var("WORKER_COUNT", "4")),
            "retry_initial_delay": float(cls.get_env_var("RETRY_INITIAL_DELAY", "1.0")),
            "retry_backoff_factor": float(cls.get_env_var("RETRY_BACKOFF_FACTOR", "2.0")),
            "scale_test_case_folders": _split_list(cls.get_env_var("SCALE_TEST_CASE_FOLDERS")),
            "scale_test_run_folders": _split_list(cls.get_env_var("SCALE_TEST_RUN_FOLDERS")),
            "jira_fields_to_sync": _split_list(cls.get_env_var("JIRA_FIELDS_TO_SYNC")),
        }
        issue_types = _split_list(cls.get_env_var("JIRA_ISSUE_TYPES"))
        if issue_types:
            config["jira_issue_types"] = issue_types

        config.update(overrides)
        return cls(**config)


class SourceConfig(BaseConfig):
    """Connection settings for one external test-management system."""

    name: str = Field(..., description="Source system name (jira, scale, zapi)")
    base_url: str = Field(..., description="Base URL of the REST API")
    username: str = Field(default="", description="User for basic authentication")
    api_token: str = Field(default="", description="API token or password")
    timeout: float = Field(default=30.0, description="API request timeout in seconds")
    max_retries: int = Field(
        default=3,
        description="Maximum number of retries for failed API requests",
    )
    page_size: int = Field(default=100, description="Page size for paginated searches", gt=0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value):
        """Validate base URL format."""
        if not value:
            raise ValueError("base_url must be provided")
        if not value.startswith(("http://", "https://")):
            value = f"https://{value}"
        return value.rstrip("/")

    @classmethod
    def from_env(cls, name: str = "", secrets: SecretsProvider | None = None, **overrides):
        """
        Create a source configuration from environment variables.

        The API token is read from the secrets provider when one is given.
        """
        prefix = name.upper()
        token = secrets.get_value(f"{name}_api_token") if secrets else None
        config = {
            "name": name,
            "base_url": cls.get_env_var(f"{prefix}_BASE_URL", ""),
            "username": cls.get_env_var(f"{prefix}_USERNAME", ""),
            "api_token": token or cls.get_env_var(f"{prefix}_API_TOKEN", ""),
            "timeout": float(cls.get_env_var(f"{prefix}_TIMEOUT", "30.0")),
            "max_retries": int(cls.get_env_var(f"{prefix}_MAX_RETRIES", "3")),
            "page_size": int(cls.get_env_var(f"{prefix}_PAGE_SIZE", "100")),
        }
        config.update(overrides)
        return cls(**config)


class AppConfig(BaseConfig):
    """Main application configuration that aggregates all other configurations."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    debug: bool = Field(default=False, description="Debug mode flag")

    @classmethod
    def from_env(cls, **overrides) -> "AppConfig":
        """Create an application configuration from environment variables."""
        config = {
            "logging": LoggingConfig.from_env(),
            "database": DatabaseConfig.from_env(),
            "sync": SyncConfig.from_env(),
            "debug": cls.get_env_var("DEBUG", "false").lower() == "true",
        }
        config.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**config)

    def configure_logging(self) -> None:
        """Configure logging based on the settings."""
        self.logging.configure_logging(debug=self.debug)


_app_config: AppConfig | None = None


def get_app_config() -> AppConfig:
    """
    Get the global application configuration.

    Returns
    -------
        The application configuration instance

    """
    global _app_config
    if _app_config is None:
        _app_config = AppConfig.from_env()
    return _app_config


def init_app_config(config: AppConfig | None = None, **kwargs) -> AppConfig:
    """
    Initialize the global application configuration.

    Args:
    ----
        config: An existing AppConfig instance
        **kwargs: Key-value pairs for creating a new AppConfig

    Returns:
    -------
        The application configuration instance

    """
    global _app_config
    _app_config = config if config is not None else AppConfig.from_env(**kwargs)
    return _app_config
