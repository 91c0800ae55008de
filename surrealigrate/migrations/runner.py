"""Migration runner for executing apply and revert plans.

Provides:
- Sequential execution of a plan, one transaction per unit
- Ledger updates after each committed script
- Dry-run support
"""

import logging
import time

from .base import (
    Direction,
    ExecutionError,
    LedgerWriteError,
    MigrationPlan,
    MigrationRecord,
    MigrationUnit,
)
from .executor import TransactionalExecutor
from .ledger import VersionLedger

logger = logging.getLogger(__name__)


class MigrationRunner:
    """Runner for executing migration plans.

    Units run strictly one after another. The first failure stops the run;
    units committed earlier in the same run stay applied, so re-running the
    command resumes from the new current version.
    """

    def __init__(self, executor: TransactionalExecutor, ledger: VersionLedger):
        """Initialize the runner.

        Args:
            executor: Executor running scripts on the target database
            ledger: Ledger recording applied versions
        """
        self.executor = executor
        self.ledger = ledger

    async def execute(self, plan: MigrationPlan, dry_run: bool = False) -> list[MigrationRecord]:
        """Execute a plan in order.

        Args:
            plan: Plan to execute
            dry_run: If True, only log what would run

        Returns:
            Records of the executed steps

        Raises:
            ExecutionError: If a script cannot be read or fails
            LedgerWriteError: If the ledger cannot be updated after a commit
        """
        records: list[MigrationRecord] = []
        prefix = "[DRY-RUN] " if dry_run else ""

        for unit in plan:
            action = "Migrating to" if plan.direction is Direction.APPLY else "Rolling back"
            logger.info(f"{prefix}{action} version {unit.full_name}")

            if dry_run:
                records.append(
                    MigrationRecord(unit.version, unit.title, plan.direction, dry_run=True)
                )
                continue

            start_time = time.time()
            await self._run_unit(unit, plan.direction)
            execution_time_ms = int((time.time() - start_time) * 1000)

            records.append(
                MigrationRecord(
                    version=unit.version,
                    title=unit.title,
                    direction=plan.direction,
                    execution_time_ms=execution_time_ms,
                )
            )
            logger.info(
                f"{plan.direction.past_tense.capitalize()} migration {unit.full_name} "
                f"in {execution_time_ms}ms"
            )

        return records

    async def _run_unit(self, unit: MigrationUnit, direction: Direction) -> None:
        script = unit.script_for(direction)
        if script is None:
            raise ExecutionError(
                unit.version, direction, FileNotFoundError(f"no {direction.file_token} script")
            )

        try:
            content = script.read_text(encoding="utf-8")
        except OSError as e:
            raise ExecutionError(unit.version, direction, e) from e

        try:
            await self.executor.run_script(content, unit.version, direction)
        except ExecutionError as e:
            logger.error(f"{e}. Stopping; earlier migrations in this run remain applied.")
            raise

        try:
            if direction is Direction.APPLY:
                await self.ledger.record_applied(unit.version, unit.title)
            else:
                await self.ledger.record_reverted(unit.version)
        except LedgerWriteError as e:
            logger.critical(
                f"Migration {unit.version} was {direction.past_tense} but the ledger "
                f"was not updated: {e}. Reconcile the {self.ledger.table} table "
                f"manually before running again."
            )
            raise
