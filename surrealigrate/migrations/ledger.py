"""Version ledger backed by a SurrealDB table.

One row per applied migration version. Rows are created when a migration is
applied and deleted when it is reverted; the current version is the highest
version present.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from ..connection import Connection, QueryError
from .base import LedgerEntry, LedgerError, LedgerReadError, LedgerWriteError

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_TABLE = "migrations"
NO_MIGRATIONS_TITLE = "No migrations applied"

_FRACTION = re.compile(r"\.(\d+)")

# SQL for the ledger table
LEDGER_TABLE_SQL = """
DEFINE TABLE IF NOT EXISTS {table} SCHEMAFULL;
DEFINE FIELD IF NOT EXISTS version ON TABLE {table} TYPE int;
DEFINE FIELD IF NOT EXISTS title ON TABLE {table} TYPE option<string>;
DEFINE FIELD IF NOT EXISTS applied_at ON TABLE {table} TYPE datetime DEFAULT time::now();
DEFINE INDEX IF NOT EXISTS idx_{table}_version ON TABLE {table} COLUMNS version UNIQUE;
"""


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        # fromisoformat before 3.11 takes neither "Z" nor nanosecond fractions
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"Unparseable applied_at timestamp: {value!r}")
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _to_entry(row: dict[str, Any]) -> LedgerEntry:
    return LedgerEntry(
        version=int(row["version"]),
        title=row.get("title") or "",
        applied_at=_parse_timestamp(row.get("applied_at")),
    )


class VersionLedger:
    """Record of applied migration versions.

    Reads and writes go through the shared connection but are not part of the
    script transactions, so a crash between a script commit and the ledger
    write leaves the two out of step.
    """

    def __init__(self, conn: Connection, table: str = DEFAULT_LEDGER_TABLE):
        """Initialize the ledger.

        Args:
            conn: Open database connection
            table: Ledger table name
        """
        self.conn = conn
        self.table = table

    async def ensure_table(self) -> None:
        """Ensure the ledger table and its unique version index exist.

        Raises:
            LedgerError: If the table cannot be defined
        """
        try:
            await self.conn.query(LEDGER_TABLE_SQL.format(table=self.table))
        except QueryError as e:
            raise LedgerError(f"Failed to create ledger table {self.table}: {e}") from e
        logger.debug(f"Ledger table {self.table} ready")

    async def _latest_row(self) -> Optional[dict[str, Any]]:
        try:
            rows = await self.conn.query(
                f"SELECT version, title, applied_at FROM {self.table} "
                "ORDER BY version DESC LIMIT 1"
            )
        except QueryError as e:
            raise LedgerReadError(f"Failed to get current version: {e}") from e
        return rows[0] if rows else None

    async def current_version(self) -> int:
        """Get the highest applied version, or 0 if none."""
        row = await self._latest_row()
        return int(row["version"]) if row else 0

    async def current_version_info(self) -> LedgerEntry:
        """Get the entry for the highest applied version.

        Returns:
            Latest ledger entry, or version 0 titled "No migrations applied"
        """
        row = await self._latest_row()
        if row is None:
            return LedgerEntry(version=0, title=NO_MIGRATIONS_TITLE)
        return _to_entry(row)

    async def entries(self) -> list[LedgerEntry]:
        """Get all ledger entries in ascending version order."""
        try:
            rows = await self.conn.query(
                f"SELECT version, title, applied_at FROM {self.table} ORDER BY version ASC"
            )
        except QueryError as e:
            raise LedgerReadError(f"Failed to list applied migrations: {e}") from e
        return [_to_entry(row) for row in rows]

    async def record_applied(self, version: int, title: str = "") -> None:
        """Insert a ledger entry for an applied version.

        Raises:
            LedgerWriteError: If the version is already recorded or the write fails
        """
        try:
            existing = await self.conn.query(
                f"SELECT version FROM {self.table} WHERE version = $version",
                {"version": version},
            )
            if existing:
                raise LedgerWriteError(
                    f"Version {version} is already recorded in {self.table}", version
                )
            await self.conn.query(
                f"CREATE {self.table} SET version = $version, title = $title",
                {"version": version, "title": title},
            )
        except QueryError as e:
            raise LedgerWriteError(f"Failed to record version {version}: {e}", version) from e

        logger.info(f"Set current version to {version}" + (f" ({title})" if title else ""))

    async def record_reverted(self, version: int) -> None:
        """Delete the ledger entry for a version. No-op if absent.

        Raises:
            LedgerWriteError: If the delete fails
        """
        try:
            await self.conn.query(
                f"DELETE {self.table} WHERE version = $version",
                {"version": version},
            )
        except QueryError as e:
            raise LedgerWriteError(
                f"Failed to remove version {version} from {self.table}: {e}", version
            ) from e

        logger.info(f"Removed version {version} from ledger")
