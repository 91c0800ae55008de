"""Transactional execution of migration scripts."""

import logging

from ..connection import Connection, QueryError
from .base import Direction, ExecutionError

logger = logging.getLogger(__name__)

BEGIN_SQL = "BEGIN TRANSACTION;"
COMMIT_SQL = "COMMIT TRANSACTION;"
CANCEL_SQL = "CANCEL TRANSACTION;"


def wrap_in_transaction(content: str) -> str:
    """Wrap a script in BEGIN/COMMIT for a single query request.

    SurrealDB scopes a text transaction to one request. The script is kept
    verbatim; the ``;`` on its own line closes a trailing statement or comment
    that lacks a terminator.
    """
    return f"{BEGIN_SQL}\n{content}\n;{COMMIT_SQL}"


class TransactionalExecutor:
    """Runs each script inside its own transaction.

    Script content is passed to the database verbatim.
    """

    def __init__(self, conn: Connection):
        self.conn = conn

    async def run_script(self, content: str, version: int, direction: Direction) -> None:
        """Run a script between BEGIN and COMMIT, cancelling on failure.

        Args:
            content: Raw SurrealQL script text
            version: Version of the unit the script belongs to
            direction: Direction being executed

        Raises:
            ExecutionError: If any statement fails
        """
        try:
            await self.conn.query(wrap_in_transaction(content))
        except QueryError as e:
            await self._cancel(version)
            raise ExecutionError(version, direction, e) from e

        logger.debug(f"Committed {direction.file_token} script for migration {version}")

    async def _cancel(self, version: int) -> None:
        try:
            await self.conn.query(CANCEL_SQL)
            logger.debug(f"Cancelled transaction for migration {version}")
        except QueryError as e:
            logger.warning(f"Failed to cancel transaction for migration {version}: {e}")
