"""Configuration management for WAL continuity."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PostgresConfig(BaseModel):
    """Local PostgreSQL instance configuration."""

    pgdata: Path = Field(default=Path("/var/lib/postgresql/data/pgdata"), description="PGDATA path")
    check_empty_wal_archive_file: str | None = Field(
        default=".check-empty-wal-archive",
        description="Flag file in PGDATA removed after the first successful archive",
    )

    @property
    def pg_wal(self) -> Path:
        return self.pgdata / "pg_wal"

    @property
    def check_empty_wal_archive_path(self) -> Path | None:
        if not self.check_empty_wal_archive_file:
            return None
        return self.pgdata / self.check_empty_wal_archive_file


class SpoolConfig(BaseModel):
    """Spool (local WAL staging area) configuration."""

    directory: Path = Field(
        default=Path("/controller/wal-restore-spool"), description="Spool directory path"
    )


class WALConfig(BaseModel):
    """WAL transfer configuration."""

    max_parallel: int = Field(
        default=1, ge=1, le=1024, description="WAL files transferred per archive/restore call"
    )
    segment_size: int | None = Field(
        default=None, ge=1048576, le=1073741824, description="WAL segment size in bytes"
    )
    pg_version: int | None = Field(
        default=None, ge=90000, description="Server version number (e.g. 160002)"
    )

    @field_validator("segment_size")
    @classmethod
    def _power_of_two(cls, value: int | None) -> int | None:
        if value is not None and value & (value - 1):
            raise ValueError("segment_size must be a power of two")
        return value


class BackupToolConfig(BaseModel):
    """Backup executable configuration.

    Option lists are passed through verbatim; building them from
    declarative configuration happens outside this service.
    """

    executable: str = Field(default="pgbackrest", description="Backup tool executable")
    stanza: str = Field(default="", description="Stanza name")
    archive_push_options: list[str] = Field(default_factory=list)
    archive_get_options: list[str] = Field(default_factory=list)
    info_options: list[str] = Field(default_factory=list)
    backup_options: list[str] = Field(default_factory=list)
    restore_options: list[str] = Field(default_factory=list)
    command_timeout_seconds: float | None = Field(
        default=None, gt=0, description="Deadline for one archive/restore call"
    )

    def with_stanza(self, options: list[str]) -> list[str]:
        """Return ``options`` with ``--stanza`` appended when a stanza is configured."""
        if not self.stanza:
            return list(options)
        return [*options, "--stanza", self.stanza]


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    metrics_port: int | None = Field(
        default=None, ge=1, le=65535, description="Prometheus metrics port"
    )
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="wal_continuity", description="Service name for tracing")


class Config(BaseSettings):
    """Main configuration for WAL continuity."""

    model_config = SettingsConfigDict(
        env_prefix="WAL_CONTINUITY_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    spool: SpoolConfig = Field(default_factory=SpoolConfig)
    wal: WALConfig = Field(default_factory=WALConfig)
    backup_tool: BackupToolConfig = Field(default_factory=BackupToolConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    def ensure_directories(self) -> None:
        """Ensure the spool directory exists."""
        self.spool.directory.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    config = Config()
    config.ensure_directories()
    return config
