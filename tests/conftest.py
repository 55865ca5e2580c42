"""Pytest configuration and fixtures for wal_continuity tests."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Any, Generator

import pytest
from prometheus_client import CollectorRegistry

from wal_continuity.adapters.outbound import MockCommandRunner
from wal_continuity.infrastructure.config import (
    BackupToolConfig,
    Config,
    PostgresConfig,
    SpoolConfig,
    WALConfig,
)
from wal_continuity.infrastructure.container import Container
from wal_continuity.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def pgdata(temp_dir: Path) -> Path:
    """Provide a PGDATA with an empty archive_status directory."""
    data = temp_dir / "pgdata"
    (data / "pg_wal" / "archive_status").mkdir(parents=True)
    return data


@pytest.fixture
def test_config(temp_dir: Path, pgdata: Path) -> Config:
    """Provide a test configuration with temporary directories."""
    return Config(
        postgres=PostgresConfig(pgdata=pgdata),
        spool=SpoolConfig(directory=temp_dir / "spool"),
        wal=WALConfig(max_parallel=4),
        backup_tool=BackupToolConfig(stanza="main", command_timeout_seconds=30),
    )


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def mock_runner() -> MockCommandRunner:
    """Provide an empty in-memory backup repository."""
    return MockCommandRunner()


@pytest.fixture
def container(
    test_config: Config,
    mock_runner: MockCommandRunner,
    metrics_registry: MetricsRegistry,
) -> Container:
    """Provide components wired to the mock repository."""
    return Container.build(
        test_config,
        runner=mock_runner,
        environment_provider=lambda: {"PGBACKREST_REPO1_TYPE": "posix"},
        metrics=metrics_registry,
    )


def write_wal(pgdata: Path, name: str, ready: bool = True, content: bytes | None = None) -> Path:
    """Create a WAL file in pg_wal, with its .ready marker by default."""
    path = pgdata / "pg_wal" / name
    path.write_bytes(content if content is not None else name.encode())
    if ready:
        (pgdata / "pg_wal" / "archive_status" / f"{name}.ready").touch()
    return path


def backup_json(
    label: str,
    start: int,
    stop: int,
    wal_start: str = "000000010000000000000002",
    wal_stop: str = "000000010000000000000002",
    lsn_start: str = "0/2000028",
    lsn_stop: str = "0/2000100",
    annotation: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build one backup entry as printed by ``info --output json``."""
    return {
        "label": label,
        "type": "full",
        "prior": None,
        "annotation": annotation,
        "archive": {"start": wal_start, "stop": wal_stop},
        "lsn": {"start": lsn_start, "stop": lsn_stop},
        "timestamp": {"start": start, "stop": stop},
    }


def info_json(backups: list[dict[str, Any]], archive: list[dict[str, Any]] | None = None) -> str:
    """Build the full ``info --output json`` output for one stanza."""
    return json.dumps([
        {
            "name": "main",
            "cipher": "none",
            "db": [{"id": 1, "repo-key": 1, "system-id": 7000000000000000001, "version": "16"}],
            "archive": archive or [],
            "backup": backups,
        }
    ])


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
