"""Read-only migration status reporting."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .base import UNTITLED, LedgerEntry
from .ledger import VersionLedger
from .planner import latest_version
from .scanner import DEFAULT_EXTENSION, scan_migrations


@dataclass
class PendingMigration:
    """A discovered migration not yet applied."""

    version: int
    title: str


@dataclass
class StatusReport:
    """Migration status of a database against a migration directory.

    ``latest_version`` is None when no migration files were discovered.
    """

    current_version: int
    current_version_title: str
    latest_version: Optional[int]
    pending_migrations: list[PendingMigration] = field(default_factory=list)
    applied: list[LedgerEntry] = field(default_factory=list)

    @property
    def is_up_to_date(self) -> bool:
        return not self.pending_migrations


class StatusReporter:
    """Combines discovered units with the ledger state."""

    def __init__(self, ledger: VersionLedger):
        self.ledger = ledger

    async def report(
        self,
        directory: Union[str, Path],
        extension: str = DEFAULT_EXTENSION,
    ) -> StatusReport:
        """Build a status report.

        Args:
            directory: Migration directory
            extension: Script file extension

        Returns:
            StatusReport with pending migrations in ascending order

        Raises:
            DiscoveryError: If the directory cannot be scanned
            LedgerReadError: If the ledger cannot be queried
        """
        units = scan_migrations(directory, extension)
        info = await self.ledger.current_version_info()

        pending = [
            PendingMigration(version=v, title=units[v].display_title)
            for v in sorted(units)
            if v > info.version
        ]

        return StatusReport(
            current_version=info.version,
            current_version_title=info.title or UNTITLED,
            latest_version=latest_version(units),
            pending_migrations=pending,
            applied=await self.ledger.entries(),
        )
