"""Planning of apply and revert runs.

Pure functions over discovered units and the current ledger version; nothing
here touches the database or the filesystem.
"""

import logging
from collections.abc import Mapping
from typing import Optional

from .base import (
    Direction,
    DirectionMismatch,
    MigrationPlan,
    MigrationUnit,
    MissingScriptError,
)

logger = logging.getLogger(__name__)


def latest_version(units: Mapping[int, MigrationUnit]) -> Optional[int]:
    """Get the highest discovered version, or None if there are no units."""
    return max(units) if units else None


def _check_target(target_version: Optional[int]) -> None:
    if target_version is not None and target_version < 0:
        raise ValueError(f"Target version must not be negative: {target_version}")


def _require_scripts(units: list[MigrationUnit], direction: Direction) -> None:
    for unit in units:
        if not unit.can_run(direction):
            raise MissingScriptError(unit.version, direction)


def plan_apply(
    units: Mapping[int, MigrationUnit],
    current_version: int,
    target_version: Optional[int] = None,
) -> MigrationPlan:
    """Plan the units to apply.

    Args:
        units: Discovered units keyed by version
        current_version: Highest version recorded in the ledger
        target_version: Version to migrate up to (defaults to the latest)

    Returns:
        Plan with every version in (current, target] in ascending order

    Raises:
        DirectionMismatch: If the target is below the current version
        MissingScriptError: If a selected unit has no ``do`` script
    """
    _check_target(target_version)

    target = target_version if target_version is not None else latest_version(units)
    if target is None:
        logger.info("No migrations available")
        return MigrationPlan(Direction.APPLY, current_version, current_version)

    if target < current_version:
        raise DirectionMismatch(
            f"Current version ({current_version}) is higher than target version "
            f"({target}). Use rollback instead.",
            current_version,
            target,
        )

    selected = [units[v] for v in sorted(units) if current_version < v <= target]
    _require_scripts(selected, Direction.APPLY)

    plan = MigrationPlan(Direction.APPLY, current_version, target, selected)
    if plan.is_empty:
        logger.info("No pending migrations. Database is up to date.")
    return plan


def plan_revert(
    units: Mapping[int, MigrationUnit],
    current_version: int,
    target_version: Optional[int] = None,
) -> MigrationPlan:
    """Plan the units to revert.

    Args:
        units: Discovered units keyed by version
        current_version: Highest version recorded in the ledger
        target_version: Version to roll back to (defaults to current - 1)

    Returns:
        Plan with every version in (target, current] in descending order

    Raises:
        DirectionMismatch: If the target is not below the current version
        MissingScriptError: If a selected unit has no ``undo`` script
    """
    _check_target(target_version)

    if target_version is None and current_version == 0:
        logger.info("No migrations to rollback")
        return MigrationPlan(Direction.REVERT, 0, 0)

    target = target_version if target_version is not None else current_version - 1
    if target >= current_version:
        raise DirectionMismatch(
            f"Target version ({target}) is not lower than current version "
            f"({current_version}). Use migrate instead.",
            current_version,
            target,
        )

    selected = [
        units[v] for v in sorted(units, reverse=True) if target < v <= current_version
    ]
    _require_scripts(selected, Direction.REVERT)

    plan = MigrationPlan(Direction.REVERT, current_version, target, selected)
    if plan.is_empty:
        logger.info(f"No migration files found between {target} and {current_version}")
    return plan
