"""
Tests for tourneysync.core.config module.
"""

import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from tourneysync.core.config import (
    ConflictConfig,
    LoggingConfig,
    StorageConfig,
    SyncConfig,
    TourneySyncConfig,
)


class TestLoggingConfig:
    """Tests for LoggingConfig."""

    def test_default_values(self) -> None:
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file_enabled is True
        assert config.console_enabled is True
        assert config.json_format is False

    def test_path_expansion(self) -> None:
        config = LoggingConfig(log_directory="~/logs")
        assert "~" not in str(config.log_directory)


class TestStorageConfig:
    def test_in_memory(self) -> None:
        config = StorageConfig(database_path=":memory:")
        assert config.in_memory is True

    def test_file_path_expanded(self) -> None:
        config = StorageConfig(database_path="~/replica.db")
        assert config.in_memory is False
        assert "~" not in str(config.database_path)


class TestSyncConfig:
    """Tests for SyncConfig."""

    def test_defaults(self) -> None:
        config = SyncConfig()
        assert config.interval_ms == 30000
        assert config.tables == ["tournaments", "registrations", "rounds", "matches"]
        assert config.server_timestamp_field == "updated_at"
        assert config.sync_on_mutate is True

    def test_interval_lower_bound(self) -> None:
        with pytest.raises(ValidationError):
            SyncConfig(interval_ms=10)


class TestConflictConfig:
    def test_defaults(self) -> None:
        config = ConflictConfig()
        assert config.strategies == {}
        assert config.expected_total == 10
        assert config.primary_score_field == "op"

    def test_rejects_unknown_strategy(self) -> None:
        with pytest.raises(ValidationError):
            ConflictConfig(strategies={"matches": "coin-flip"})


class TestTourneySyncConfig:
    """Tests for TourneySyncConfig."""

    def test_save_and_load(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"

            original = TourneySyncConfig(
                sync=SyncConfig(interval_ms=5000, status_file=Path(tmpdir) / "status.json"),
                conflicts=ConflictConfig(strategies={"tournaments": "manual"}),
            )
            original.save(config_path)

            loaded = TourneySyncConfig.load(config_path)

            assert loaded.sync.interval_ms == 5000
            assert loaded.conflicts.strategies == {"tournaments": "manual"}

    def test_load_nonexistent(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = TourneySyncConfig.load(Path(tmpdir) / "nonexistent.json")
            assert config.sync.interval_ms == 30000

    def test_ensure_directories(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = TourneySyncConfig(
                logging=LoggingConfig(log_directory=Path(tmpdir) / "logs"),
                storage=StorageConfig(database_path=Path(tmpdir) / "data" / "replica.db"),
                sync=SyncConfig(status_file=Path(tmpdir) / "state" / "last_sync.json"),
            )
            config.ensure_directories()

            assert config.logging.log_directory.exists()
            assert (Path(tmpdir) / "data").exists()
            assert (Path(tmpdir) / "state").exists()
