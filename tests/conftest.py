"""
Pytest configuration and fixtures for TourneySync tests.
"""

import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def database() -> Generator["ReplicaDatabase", None, None]:
    """In-memory replica database."""
    from tourneysync.store.database import ReplicaDatabase

    db = ReplicaDatabase(":memory:")
    yield db
    db.close()


@pytest.fixture
def replica(database: "ReplicaDatabase") -> "LocalReplicaStore":
    from tourneysync.store.replica import LocalReplicaStore

    return LocalReplicaStore(database)


@pytest.fixture
def queue(database: "ReplicaDatabase") -> "ChangeQueue":
    from tourneysync.store.queue import ChangeQueue

    return ChangeQueue(database)


@pytest.fixture
def remote() -> "MemoryRemoteStore":
    """Fake authoritative server."""
    from tourneysync.remote.memory import MemoryRemoteStore

    return MemoryRemoteStore()


@pytest.fixture
def engine(
    remote: "MemoryRemoteStore",
    replica: "LocalReplicaStore",
    queue: "ChangeQueue",
) -> Generator["SyncEngine", None, None]:
    """Online engine with no timer running."""
    from tourneysync.sync.engine import SyncEngine

    sync_engine = SyncEngine(remote, replica, queue)
    yield sync_engine
    sync_engine.stop()


@pytest.fixture
def records(
    replica: "LocalReplicaStore",
    queue: "ChangeQueue",
    engine: "SyncEngine",
) -> "RecordService":
    """Record service that does not trigger background syncs."""
    from tourneysync.sync.records import RecordService

    return RecordService(replica, queue, engine=engine, sync_on_mutate=False)


@pytest.fixture
def sample_config(temp_dir: Path) -> "TourneySyncConfig":
    """Create a sample configuration for testing."""
    from tourneysync.core.config import (
        ConnectivityConfig,
        LoggingConfig,
        StorageConfig,
        SyncConfig,
        TourneySyncConfig,
    )

    config = TourneySyncConfig(
        logging=LoggingConfig(log_directory=temp_dir / "logs", console_enabled=False),
        storage=StorageConfig(database_path=temp_dir / "replica.db"),
        sync=SyncConfig(status_file=temp_dir / "last_sync.json", sync_on_mutate=False),
        connectivity=ConnectivityConfig(probe_host="127.0.0.1", probe_port=9),
    )
    config.ensure_directories()
    return config


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
