"""Configuration models for the table sync system."""

from typing import Any

from pydantic import BaseModel, Field, HttpUrl, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StreamConfig(BaseModel):
    """Configuration for one sync stream (remote resource -> local table).

    Field names mirror the terms used by the upstream registration system:
    ``mapping_add`` holds locally-owned fields with their defaults, ``filter``
    lists remote-only fields to discard and ``mapping_replace`` renames remote
    fields to local ones.
    """

    model_config = {"frozen": True}

    api_url: HttpUrl = Field(default=..., description="Remote delta endpoint URL")
    api_token: str = Field(default=..., description="Bearer token for the remote API")
    year: int = Field(default=2025, description="Year classification filter")
    catid: int = Field(default=1, description="Category classification filter")
    table: str = Field(default=..., min_length=1, description="Local table/resource name")
    primary_key: str = Field(default="id", min_length=1, description="Local primary key field")
    mapping_add: dict[str, Any] = Field(
        default_factory=dict,
        description="Locally-owned fields and their default values, overlaid on create",
    )
    filter: list[str] = Field(
        default_factory=list, description="Remote-only fields discarded before writing"
    )
    mapping_replace: dict[str, str] = Field(
        default_factory=dict, description="Remote field name -> local field name"
    )
    json_fields: list[str] = Field(
        default_factory=list, description="Fields whose text values carry embedded JSON"
    )
    verify_tls: bool = Field(default=True, description="Verify the remote TLS certificate")
    timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP request timeout")
    isolate_record_failures: bool = Field(
        default=False,
        description="Keep processing the batch when a single record fails",
    )
    record_timestamp_field: str | None = Field(
        default=None,
        description="Per-record modification timestamp used to bound the checkpoint "
        "when isolated record failures occur",
    )
    remote_error_is_failure: bool = Field(
        default=False,
        description="Treat err > 0 from the remote as a failed run instead of an empty delta",
    )

    @model_validator(mode="after")
    def validate_primary_key_untouched(self) -> "StreamConfig":
        """Ensure no transformation step can remove or rename the primary key."""
        pk = self.primary_key
        if pk in self.mapping_add:
            raise ValueError(f"primary key '{pk}' cannot be a locally-owned field")
        if pk in self.filter:
            raise ValueError(f"primary key '{pk}' cannot be discarded")
        if pk in self.mapping_replace or pk in self.mapping_replace.values():
            raise ValueError(f"primary key '{pk}' cannot be renamed")
        return self

    @model_validator(mode="after")
    def validate_local_fields_not_renamed_into(self) -> "StreamConfig":
        """Ensure a rename never produces a locally-owned field."""
        clash = set(self.mapping_replace.values()) & set(self.mapping_add)
        if clash:
            raise ValueError(
                f"mapping_replace targets {sorted(clash)} are locally-owned fields in mapping_add"
            )
        return self


class RedisConfig(BaseModel):
    """Configuration for the Redis checkpoint store."""

    url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    key_prefix: str = Field(default="sync_last_time_", description="Checkpoint key prefix")


class DatabaseConfig(BaseModel):
    """Configuration for the local record store."""

    url: str = Field(default=..., description="SQLAlchemy database URL")
    echo: bool = Field(default=False, description="Echo SQL statements")


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    This class uses pydantic-settings to load configuration from environment
    variables with the APP_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    streams: dict[str, StreamConfig] = Field(
        default_factory=dict, description="Configured sync streams keyed by name"
    )
    redis: RedisConfig = Field(default_factory=RedisConfig)
    database: DatabaseConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
