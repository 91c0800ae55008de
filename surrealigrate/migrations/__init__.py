"""Versioned SurrealQL migration engine.

Provides:
- Discovery of ``<version>.<do|undo>.<title>.surql`` script files
- A ledger table of applied versions
- Apply/rollback planning against a current and target version
- Sequential, per-unit transactional execution
- Status reporting

Usage:
    from surrealigrate.connection import open_connection
    from surrealigrate.migrations import (
        MigrationRunner,
        TransactionalExecutor,
        VersionLedger,
        plan_apply,
        scan_migrations,
    )

    async with open_connection(config) as conn:
        ledger = VersionLedger(conn)
        await ledger.ensure_table()

        units = scan_migrations("./migrations")
        plan = plan_apply(units, await ledger.current_version())

        runner = MigrationRunner(TransactionalExecutor(conn), ledger)
        await runner.execute(plan)
"""

from .base import (
    Direction,
    DirectionMismatch,
    DiscoveryError,
    ExecutionError,
    LedgerEntry,
    LedgerError,
    LedgerReadError,
    LedgerWriteError,
    MigrationError,
    MigrationPlan,
    MigrationRecord,
    MigrationUnit,
    MissingScriptError,
)

from .scanner import (
    InvalidName,
    ParsedName,
    parse_migration_filename,
    scan_migrations,
)

from .ledger import VersionLedger
from .executor import TransactionalExecutor
from .planner import latest_version, plan_apply, plan_revert
from .runner import MigrationRunner
from .reporter import PendingMigration, StatusReport, StatusReporter

__all__ = [
    # Types
    "Direction",
    "LedgerEntry",
    "MigrationPlan",
    "MigrationRecord",
    "MigrationUnit",
    # Errors
    "DirectionMismatch",
    "DiscoveryError",
    "ExecutionError",
    "LedgerError",
    "LedgerReadError",
    "LedgerWriteError",
    "MigrationError",
    "MissingScriptError",
    # Scanner
    "InvalidName",
    "ParsedName",
    "parse_migration_filename",
    "scan_migrations",
    # Engine
    "VersionLedger",
    "TransactionalExecutor",
    "latest_version",
    "plan_apply",
    "plan_revert",
    "MigrationRunner",
    # Status
    "PendingMigration",
    "StatusReport",
    "StatusReporter",
]
