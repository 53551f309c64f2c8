"""
Configuration system for schemamend using Pydantic.
"""

import os
from pathlib import Path
from typing import Annotated, Any, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .database.connection import ConnectionConfig
from .exceptions import ConfigurationError


class RestConnection(BaseModel):
    """Hosted database reached through its PostgREST endpoint."""

    kind: Literal["rest"] = "rest"
    url: str = Field(..., description="Project URL, e.g. https://xyz.supabase.co")
    api_key: str = Field(..., description="Service credential sent as apikey/Bearer")
    schema_name: str = Field("public", description="Exposed schema (profile header)")
    timeout: int = Field(30, description="Request timeout in seconds")
    max_retries: int = Field(3, description="Retries on network errors and 5xx")
    retry_delay: float = Field(1.0, description="Base retry delay in seconds")

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("url is required")
        return v.rstrip("/")

    @property
    def rest_url(self) -> str:
        """Base URL of the REST API."""
        return f"{self.url}/rest/v1"


class PostgresConnection(BaseModel):
    """Direct PostgreSQL connection."""

    kind: Literal["postgres"] = "postgres"
    dsn: Optional[str] = Field(None, description="Connection URL; overrides host/port/...")
    host: str = Field("localhost", description="Database host")
    port: int = Field(5432, description="Database port")
    database: str = Field("postgres", description="Database name")
    user: str = Field("postgres", description="Database user")
    password: str = Field("", description="Database password")
    ssl_mode: Optional[str] = Field("prefer", description="SSL mode")
    command_timeout: float = Field(60.0, description="Command timeout in seconds")
    min_size: int = Field(1, description="Minimum connections in pool")
    max_size: int = Field(2, description="Maximum connections in pool")

    def to_connection_config(self) -> ConnectionConfig:
        """Convert to the asyncpg pool configuration."""
        if self.dsn:
            config = ConnectionConfig.from_url(self.dsn)
            return config.model_copy(
                update={
                    "command_timeout": self.command_timeout,
                    "min_size": self.min_size,
                    "max_size": self.max_size,
                }
            )

        return ConnectionConfig(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            ssl_mode=self.ssl_mode,
            command_timeout=self.command_timeout,
            min_size=self.min_size,
            max_size=self.max_size,
        )


ConnectionSettings = Annotated[
    Union[RestConnection, PostgresConnection], Field(discriminator="kind")
]


class ChannelConfig(BaseModel):
    """A candidate entry point for executing arbitrary statements."""

    kind: Literal["rpc", "direct"] = Field("rpc", description="Channel type")
    function: Optional[str] = Field(None, description="Remote function name (rpc only)")
    param: str = Field("sql", description="Name of the function's SQL parameter")

    @model_validator(mode="after")
    def require_function_for_rpc(self) -> "ChannelConfig":
        if self.kind == "rpc" and not self.function:
            raise ValueError("rpc channels require a function name")
        return self

    @property
    def label(self) -> str:
        """Human-readable channel name."""
        if self.kind == "direct":
            return "direct"
        return f"{self.function}({self.param})"


def default_channels() -> List[ChannelConfig]:
    """Entry points seen in the wild, in trial order."""
    return [
        ChannelConfig(function="exec_sql", param="sql"),
        ChannelConfig(function="exec_sql", param="sql_query"),
        ChannelConfig(function="exec_sql", param="query"),
        ChannelConfig(function="execute_sql", param="sql"),
        ChannelConfig(function="sql", param="query"),
        ChannelConfig(function="execute", param="query"),
    ]


class ReconcilerSettings(BaseModel):
    """Schema reconciliation behaviour."""

    backfill: bool = Field(True, description="Backfill NULL rows with declared defaults")
    deadline_seconds: Optional[float] = Field(
        None, description="Overall run deadline; unfinished columns become unresolved"
    )

    @field_validator("deadline_seconds")
    @classmethod
    def positive_deadline(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("deadline_seconds must be positive")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")


class SchemamendConfig(BaseSettings):
    """Main schemamend configuration."""

    connection: Optional[ConnectionSettings] = Field(
        None, description="Database connection"
    )
    channels: List[ChannelConfig] = Field(
        default_factory=default_channels,
        description="Execution channels, tried in order",
    )
    reconciler: ReconcilerSettings = Field(
        default_factory=ReconcilerSettings,
        description="Reconciliation settings",
    )
    expectations: List[str] = Field(
        default_factory=list,
        description="Expectation files or builtin:<name> references",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SCHEMAMEND_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SchemamendConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            # Expand environment variables in the data
            data = cls._expand_env_vars(data)

            config = cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

        config._resolve_expectation_paths(Path(path).parent)
        return config

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data

    def _resolve_expectation_paths(self, base_dir: Path) -> None:
        """Make relative expectation paths relative to the config file."""
        resolved = []
        for ref in self.expectations:
            if ref.startswith("builtin:") or Path(ref).is_absolute():
                resolved.append(ref)
            else:
                resolved.append(str(base_dir / ref))
        self.expectations = resolved

    def validate_config(self) -> None:
        """Validate the entire configuration for consistency."""
        if self.connection is None:
            raise ConfigurationError("No database connection configured")

        if not self.channels:
            raise ConfigurationError("At least one execution channel is required")

        for channel in self.channels:
            if channel.kind == "direct" and self.connection.kind != "postgres":
                raise ConfigurationError(
                    "The direct channel requires a postgres connection, "
                    f"not '{self.connection.kind}'"
                )

        labels = [c.label for c in self.channels]
        duplicates = {label for label in labels if labels.count(label) > 1}
        if duplicates:
            raise ConfigurationError(
                f"Duplicate execution channels: {sorted(duplicates)}"
            )

        if not self.expectations:
            raise ConfigurationError("No schema expectations configured")

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_none=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )
