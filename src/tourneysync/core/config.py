"""
TourneySync configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_HOME = Path.home() / ".tourneysync"

StrategyName = Literal["client-wins", "server-wins", "last-write-wins", "manual", "merge"]


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: DEFAULT_HOME / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class StorageConfig(BaseModel):
    """Configuration for the local replica database."""

    database_path: Path = Field(default_factory=lambda: DEFAULT_HOME / "replica.db")

    @field_validator("database_path", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        if str(v) == ":memory:":
            return Path(":memory:")
        return Path(v).expanduser().resolve()

    @property
    def in_memory(self) -> bool:
        return str(self.database_path) == ":memory:"


class RemoteConfig(BaseModel):
    """Configuration for the remote authoritative store."""

    base_url: str = "http://localhost:54321/rest/v1"
    api_key: str | None = None
    timeout_seconds: float = Field(default=15.0, gt=0)
    schema_name: str = "public"


class SyncConfig(BaseModel):
    """Configuration for the sync engine."""

    interval_ms: int = Field(default=30000, ge=1000, le=3_600_000)
    tables: list[str] = Field(
        default_factory=lambda: ["tournaments", "registrations", "rounds", "matches"]
    )
    server_timestamp_field: str = "updated_at"
    sync_on_mutate: bool = True
    status_file: Path = Field(default_factory=lambda: DEFAULT_HOME / "last_sync.json")

    @field_validator("status_file", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class ConflictConfig(BaseModel):
    """Configuration for conflict resolution."""

    strategies: dict[str, StrategyName] = Field(default_factory=dict)
    expected_total: int = Field(default=10, ge=0)
    primary_score_field: str = "op"


class ConnectivityConfig(BaseModel):
    """Configuration for the connectivity monitor."""

    probe_host: str = ""
    probe_port: int = Field(default=443, ge=1, le=65535)
    check_interval_seconds: float = Field(default=15.0, gt=0)
    probe_timeout_seconds: float = Field(default=5.0, gt=0)


class TourneySyncConfig(BaseModel):
    """Main TourneySync configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    conflicts: ConflictConfig = Field(default_factory=ConflictConfig)
    connectivity: ConnectivityConfig = Field(default_factory=ConnectivityConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> TourneySyncConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = DEFAULT_HOME / "config.json"

        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = DEFAULT_HOME / "config.json"

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.logging.log_directory.mkdir(parents=True, exist_ok=True)
        self.sync.status_file.parent.mkdir(parents=True, exist_ok=True)
        if not self.storage.in_memory:
            self.storage.database_path.parent.mkdir(parents=True, exist_ok=True)


def load_config(config_path: Path | None = None) -> TourneySyncConfig:
    """Load or create configuration."""
    config = TourneySyncConfig.load(config_path)
    config.ensure_directories()
    return config
