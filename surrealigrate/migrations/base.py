"""Core types for the migration system.

Defines:
- Direction: Apply (``do``) or revert (``undo``)
- MigrationUnit: A versioned pair of forward/backward scripts
- LedgerEntry: A row of the applied-versions ledger
- MigrationPlan: Ordered units to run in a single direction
- MigrationRecord: Outcome of one executed plan step
- The MigrationError hierarchy
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

UNTITLED = "Untitled"


class MigrationError(Exception):
    """Base exception for migration errors."""

    pass


class DiscoveryError(MigrationError):
    """Migration directory could not be read or holds malformed migration files."""

    pass


class DirectionMismatch(MigrationError):
    """Target version requires the opposite command (migrate vs rollback)."""

    def __init__(self, message: str, current_version: int, target_version: int):
        super().__init__(message)
        self.current_version = current_version
        self.target_version = target_version


class MissingScriptError(MigrationError):
    """A unit in the planned range lacks the script for the requested direction."""

    def __init__(self, version: int, direction: "Direction"):
        super().__init__(
            f"Migration {version} has no {direction.file_token} script "
            f"and cannot be {direction.past_tense}"
        )
        self.version = version
        self.direction = direction


class ExecutionError(MigrationError):
    """A migration script failed inside its transaction."""

    def __init__(self, version: int, direction: "Direction", cause: Exception):
        super().__init__(
            f"Failed to {direction.verb} migration {version}: {cause}"
        )
        self.version = version
        self.direction = direction
        self.cause = cause


class LedgerError(MigrationError):
    """Base exception for ledger table failures."""

    pass


class LedgerReadError(LedgerError):
    """The ledger table could not be queried."""

    pass


class LedgerWriteError(LedgerError):
    """The ledger table could not be updated."""

    def __init__(self, message: str, version: int):
        super().__init__(message)
        self.version = version


class Direction(str, Enum):
    """Direction of a migration step."""

    APPLY = "apply"
    REVERT = "revert"

    @property
    def file_token(self) -> str:
        """Token used in migration filenames (``do`` / ``undo``)."""
        return "do" if self is Direction.APPLY else "undo"

    @property
    def verb(self) -> str:
        return "apply" if self is Direction.APPLY else "revert"

    @property
    def past_tense(self) -> str:
        return "applied" if self is Direction.APPLY else "reverted"

    @classmethod
    def from_file_token(cls, token: str) -> Optional["Direction"]:
        """Map a filename token to a direction, or None if unknown."""
        return {"do": cls.APPLY, "undo": cls.REVERT}.get(token)


@dataclass
class MigrationUnit:
    """A versioned migration built from one or two script files.

    Attributes:
        version: Positive integer version, unique within a directory
        title: Title taken from the filename (may be empty)
        forward_script: Path of the ``do`` script, if any
        backward_script: Path of the ``undo`` script, if any
    """

    version: int
    title: str = ""
    forward_script: Optional[Path] = None
    backward_script: Optional[Path] = None

    def script_for(self, direction: Direction) -> Optional[Path]:
        """Get the script path for a direction."""
        if direction is Direction.APPLY:
            return self.forward_script
        return self.backward_script

    def can_run(self, direction: Direction) -> bool:
        return self.script_for(direction) is not None

    @property
    def display_title(self) -> str:
        return self.title or UNTITLED

    @property
    def full_name(self) -> str:
        """Get full migration name (version and title)."""
        return f"{self.version} ({self.title})" if self.title else str(self.version)

    def __repr__(self) -> str:
        return f"<MigrationUnit {self.full_name}>"


@dataclass
class LedgerEntry:
    """Record of an applied migration version."""

    version: int
    title: str = ""
    applied_at: Optional[datetime] = None


@dataclass
class MigrationPlan:
    """Ordered units to execute in a single direction.

    Apply plans hold versions in ``(current_version, target_version]``
    ascending; revert plans hold versions in
    ``(target_version, current_version]`` descending.
    """

    direction: Direction
    current_version: int
    target_version: int
    units: list[MigrationUnit] = field(default_factory=list)

    def __iter__(self) -> Iterator[MigrationUnit]:
        return iter(self.units)

    def __len__(self) -> int:
        return len(self.units)

    @property
    def is_empty(self) -> bool:
        return not self.units

    @property
    def versions(self) -> list[int]:
        return [unit.version for unit in self.units]


@dataclass
class MigrationRecord:
    """Outcome of one executed plan step."""

    version: int
    title: str
    direction: Direction
    execution_time_ms: Optional[int] = None
    dry_run: bool = False
