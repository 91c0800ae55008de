"""Pytest fixtures for surrealigrate tests."""

from collections.abc import Callable
from pathlib import Path
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from surrealigrate.config import SurrealConfig
from surrealigrate.migrations import (
    MigrationRunner,
    TransactionalExecutor,
    VersionLedger,
)
from tests.helpers.fake_connection import FakeConnection


# -------------------------------------------------------------------
# Migration directory fixtures
# -------------------------------------------------------------------


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    """Create an empty migrations directory."""
    directory = tmp_path / "migrations"
    directory.mkdir()
    return directory


@pytest.fixture
def write_migration(migrations_dir: Path) -> Callable[..., None]:
    """Factory writing do/undo script files into the migrations directory.

    Usage:
        write_migration(1, "create_users", do="DEFINE TABLE users;", undo="REMOVE TABLE users;")
    """

    def _write(
        version: int,
        title: str = "",
        do: Optional[str] = None,
        undo: Optional[str] = None,
    ) -> None:
        suffix = f".{title}" if title else ""
        if do is not None:
            (migrations_dir / f"{version}.do{suffix}.surql").write_text(do)
        if undo is not None:
            (migrations_dir / f"{version}.undo{suffix}.surql").write_text(undo)

    return _write


# -------------------------------------------------------------------
# Database fixtures
# -------------------------------------------------------------------


@pytest.fixture
def fake_conn() -> FakeConnection:
    """Create an in-memory fake connection."""
    return FakeConnection()


@pytest.fixture
def ledger(fake_conn: FakeConnection) -> VersionLedger:
    """Create a ledger over the fake connection."""
    return VersionLedger(fake_conn)


@pytest.fixture
def executor(fake_conn: FakeConnection) -> TransactionalExecutor:
    """Create an executor over the fake connection."""
    return TransactionalExecutor(fake_conn)


@pytest.fixture
def runner(executor: TransactionalExecutor, ledger: VersionLedger) -> MigrationRunner:
    """Create a runner wired to the fake connection."""
    return MigrationRunner(executor, ledger)


@pytest.fixture
def mock_surreal_client():
    """Create a mock SurrealDB client."""
    client = MagicMock()
    client.connect = AsyncMock()
    client.signin = AsyncMock()
    client.authenticate = AsyncMock()
    client.use = AsyncMock()
    client.close = AsyncMock()
    client.query_raw = AsyncMock(return_value={"result": []})
    return client


@pytest.fixture
def mock_surreal_config() -> SurrealConfig:
    """Create a SurrealDB configuration for tests."""
    return SurrealConfig(
        url="ws://localhost:8000/rpc",
        namespace="test",
        database="test_db",
        user="root",
        password="root",
        connect_timeout=5.0,
        query_timeout=30.0,
    )
