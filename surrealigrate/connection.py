"""SurrealDB connection management.

A single connection is opened per command invocation and shared by the
ledger and the script executor.
"""

import asyncio
import logging
import ssl
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Optional, Union

import requests
import websockets
from surrealdb import AsyncSurreal
from surrealdb.connections.async_ws import AsyncWsSurrealConnection

from .config import SurrealConfig

logger = logging.getLogger(__name__)


class InsecureAsyncWsSurrealConnection(AsyncWsSurrealConnection):
    """Custom connection that allows skipping SSL verification."""

    async def connect(self, url: Optional[str] = None) -> None:
        """Connect with optional SSL verification skip."""
        if self.socket:  # type: ignore[has-type]
            return

        # overwrite params if passed in
        if url is not None:
            from surrealdb.connections.url import Url

            self.url = Url(url)
            self.raw_url = f"{self.url.raw_url}/rpc"
            self.host = self.url.hostname
            self.port = self.url.port

        ssl_context = None
        if self.raw_url.startswith("wss://"):
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE

        self.socket = await websockets.connect(
            self.raw_url,
            max_size=None,
            subprotocols=[websockets.Subprotocol("cbor")],
            ssl=ssl_context,
        )
        self.loop = asyncio.get_running_loop()
        self.recv_task = asyncio.create_task(self._recv_task())


class ConnectionError(Exception):
    """Database connection error."""

    pass


class QueryError(Exception):
    """Database query error."""

    pass


class Connection:
    """A single SurrealDB connection wrapper.

    Handles connection lifecycle, authentication, and namespace/database selection.
    """

    def __init__(self, config: SurrealConfig):
        """Initialize connection.

        Args:
            config: SurrealDB configuration
        """
        self.config = config
        self._client: Optional[Union[AsyncSurreal, InsecureAsyncWsSurrealConnection]] = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Check if connection is active."""
        return self._connected and self._client is not None

    def _get_http_url(self) -> str:
        """Convert WebSocket URL to HTTP URL for token auth."""
        url = self.config.url
        if url.endswith("/rpc"):
            url = url[: -len("/rpc")]
        if url.startswith("wss://"):
            return url.replace("wss://", "https://", 1)
        elif url.startswith("ws://"):
            return url.replace("ws://", "http://", 1)
        return url

    def _get_auth_token(self) -> str:
        """Get authentication token via HTTP signin."""
        signin_url = f"{self._get_http_url()}/signin"

        try:
            resp = requests.post(
                signin_url,
                json={"user": self.config.user, "pass": self.config.password},
                headers={"Accept": "application/json"},
                timeout=self.config.connect_timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as e:
            raise ConnectionError(f"HTTP signin request failed: {e}") from e
        except ValueError as e:
            raise ConnectionError(f"HTTP signin returned invalid JSON: {e}") from e

        if data.get("code") != 200:
            raise ConnectionError(f"HTTP signin failed: {data}")

        token: Optional[str] = data.get("token")
        if not token:
            raise ConnectionError("No token in signin response")

        return token

    async def connect(self) -> None:
        """Establish connection to SurrealDB.

        Uses direct WebSocket signin for ws:// URLs
        and HTTP token auth for wss:// URLs.
        """
        if self._connected:
            return

        try:
            if self.config.skip_ssl_verify and self.config.is_secure:
                self._client = InsecureAsyncWsSurrealConnection(self.config.url)
                logger.warning("SSL verification disabled - not recommended for production")
            else:
                self._client = AsyncSurreal(self.config.url)

            await asyncio.wait_for(
                self._client.connect(),
                timeout=self.config.connect_timeout,
            )

            if self.config.is_secure:
                token = self._get_auth_token()
                logger.debug("Got auth token via HTTP signin")
                await self._client.authenticate(token)
            else:
                await self._client.signin(
                    {
                        "username": self.config.user,
                        "password": self.config.password,
                    }
                )
                logger.debug("Signed in via WebSocket")

            await self._client.use(self.config.namespace, self.config.database)

            self._connected = True
            logger.info(
                f"Connected to SurrealDB: {self.config.namespace}/{self.config.database}"
            )

        except asyncio.TimeoutError as e:
            raise ConnectionError(
                f"Connection timeout after {self.config.connect_timeout}s"
            ) from e
        except ConnectionError:
            raise
        except Exception as e:
            raise ConnectionError(f"Failed to connect: {e}") from e

    async def disconnect(self) -> None:
        """Close connection."""
        if self._client:
            try:
                await self._client.close()
            except Exception as e:
                logger.warning(f"Error closing connection: {e}")
            finally:
                self._client = None
                self._connected = False

    async def query(
        self,
        sql: str,
        params: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """Execute a SurrealQL query.

        Args:
            sql: SurrealQL query string
            params: Query parameters

        Returns:
            List of result records

        Raises:
            QueryError: If the query fails or any statement reports an error
        """
        if not self.is_connected:
            await self.connect()
        assert self._client is not None

        try:
            response = await asyncio.wait_for(
                self._client.query_raw(sql, params or {}),
                timeout=self.config.query_timeout,
            )
        except asyncio.TimeoutError as e:
            raise QueryError(f"Query timeout after {self.config.query_timeout}s") from e
        except Exception as e:
            raise QueryError(f"Query failed: {e}") from e

        return _flatten_result(_statement_results(response))


def _statement_results(response: Any) -> Any:
    """Unwrap the per-statement results of a raw query response.

    The SDK's ``query()`` checks and returns only the first statement; the raw
    response holds one entry per statement of a multi-statement script.

    Raises:
        QueryError: If the response carries an RPC-level error
    """
    if isinstance(response, dict):
        if response.get("error"):
            error = response["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise QueryError(f"Query failed: {message}")
        if "result" in response and "status" not in response:
            return response["result"]
    return response


def _flatten_result(result: Any) -> list[dict[str, Any]]:
    """Flatten per-statement results into a list of records.

    Raises:
        QueryError: If a statement result carries an ERR status
    """
    if isinstance(result, dict):
        result = [result]
    if not isinstance(result, list):
        return []

    records: list[dict[str, Any]] = []
    for stmt_result in result:
        if isinstance(stmt_result, dict):
            if stmt_result.get("status") == "ERR":
                raise QueryError(f"Statement failed: {stmt_result.get('result')}")
            if "status" in stmt_result:
                # Raw format: {"result": [...], "status": "OK", "time": ...}
                inner = stmt_result.get("result")
                if isinstance(inner, list):
                    records.extend(inner)
                elif isinstance(inner, dict):
                    records.append(inner)
            else:
                records.append(stmt_result)
        elif isinstance(stmt_result, list):
            records.extend(r for r in stmt_result if isinstance(r, dict))
        else:
            logger.debug(f"Skipping unknown query result format: {type(stmt_result).__name__}")
    return records


@asynccontextmanager
async def open_connection(config: SurrealConfig) -> AsyncGenerator[Connection, None]:
    """Context manager for a connection scoped to one command invocation.

    Usage:
        async with open_connection(config) as conn:
            await conn.query("INFO FOR DB")

    Args:
        config: SurrealDB configuration

    Yields:
        Connected Connection instance
    """
    conn = Connection(config)
    await conn.connect()
    try:
        yield conn
    finally:
        await conn.disconnect()
