"""Tests for the SurrealDB connection wrapper.

Tests the Connection class, result flattening and open_connection
from surrealigrate.connection module.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from surrealigrate.config import SurrealConfig
from surrealigrate.connection import (
    Connection,
    ConnectionError,
    QueryError,
    _flatten_result,
    open_connection,
)


@pytest.fixture
def connection(mock_surreal_config):
    """Create a Connection instance for testing."""
    return Connection(mock_surreal_config)


@pytest.fixture
def mock_connection(connection, mock_surreal_client):
    """Create a Connection that is already connected to a mock client."""
    connection._client = mock_surreal_client
    connection._connected = True
    return connection


class TestConnection:
    """Tests for the Connection class."""

    def test_connection_init(self, connection, mock_surreal_config):
        """Test Connection initialization."""
        assert connection.config == mock_surreal_config
        assert connection._client is None
        assert connection._connected is False

    def test_is_connected_false_when_not_connected(self, connection, mock_surreal_client):
        """Test is_connected returns False when client exists but not connected."""
        connection._client = mock_surreal_client
        assert connection.is_connected is False

    def test_http_url(self):
        """Test WebSocket URLs are converted for HTTP signin."""
        conn = Connection(SurrealConfig(url="wss://db.example.com/rpc"))
        assert conn._get_http_url() == "https://db.example.com"

        conn = Connection(SurrealConfig(url="ws://localhost:8000/rpc"))
        assert conn._get_http_url() == "http://localhost:8000"

    @pytest.mark.asyncio
    async def test_connect_success_local(self, connection, mock_surreal_client):
        """Test successful connection to local SurrealDB (ws://)."""
        with patch("surrealigrate.connection.AsyncSurreal", return_value=mock_surreal_client):
            await connection.connect()

        assert connection.is_connected is True
        mock_surreal_client.connect.assert_called_once()
        mock_surreal_client.signin.assert_called_once_with(
            {"username": "root", "password": "root"}
        )
        mock_surreal_client.use.assert_called_once_with("test", "test_db")

    @pytest.mark.asyncio
    async def test_connect_secure_uses_token(self, mock_surreal_client):
        """Test wss:// connections authenticate with an HTTP signin token."""
        connection = Connection(SurrealConfig(url="wss://db.example.com/rpc"))
        response = MagicMock()
        response.json.return_value = {"code": 200, "token": "abc"}

        with patch("surrealigrate.connection.AsyncSurreal", return_value=mock_surreal_client), \
                patch("surrealigrate.connection.requests.post", return_value=response) as post:
            await connection.connect()

        post.assert_called_once()
        assert post.call_args.args[0] == "https://db.example.com/signin"
        mock_surreal_client.authenticate.assert_called_once_with("abc")
        mock_surreal_client.signin.assert_not_called()

    @pytest.mark.asyncio
    async def test_connect_secure_without_token(self, mock_surreal_client):
        """Test a signin response without a token fails the connection."""
        connection = Connection(SurrealConfig(url="wss://db.example.com/rpc"))
        response = MagicMock()
        response.json.return_value = {"code": 200}

        with patch("surrealigrate.connection.AsyncSurreal", return_value=mock_surreal_client), \
                patch("surrealigrate.connection.requests.post", return_value=response):
            with pytest.raises(ConnectionError, match="No token"):
                await connection.connect()

    @pytest.mark.asyncio
    async def test_connect_already_connected(self, mock_connection, mock_surreal_client):
        """Test connect() does nothing if already connected."""
        await mock_connection.connect()

        mock_surreal_client.connect.assert_not_called()

    @pytest.mark.asyncio
    async def test_connect_timeout(self, connection, mock_surreal_client):
        """Test connection timeout handling."""
        mock_surreal_client.connect = AsyncMock(side_effect=asyncio.TimeoutError())

        with patch("surrealigrate.connection.AsyncSurreal", return_value=mock_surreal_client):
            with pytest.raises(ConnectionError, match="timeout"):
                await connection.connect()

    @pytest.mark.asyncio
    async def test_connect_failure(self, connection, mock_surreal_client):
        """Test connection failure handling."""
        mock_surreal_client.signin = AsyncMock(side_effect=Exception("There was a problem with authentication"))

        with patch("surrealigrate.connection.AsyncSurreal", return_value=mock_surreal_client):
            with pytest.raises(ConnectionError, match="Failed to connect"):
                await connection.connect()

        assert connection.is_connected is False

    @pytest.mark.asyncio
    async def test_disconnect(self, mock_connection, mock_surreal_client):
        """Test disconnect closes client properly."""
        await mock_connection.disconnect()

        mock_surreal_client.close.assert_called_once()
        assert mock_connection._client is None
        assert mock_connection._connected is False

    @pytest.mark.asyncio
    async def test_disconnect_handles_close_error(self, mock_connection, mock_surreal_client):
        """Test disconnect handles close errors gracefully."""
        mock_surreal_client.close = AsyncMock(side_effect=Exception("Close error"))

        await mock_connection.disconnect()

        assert mock_connection._client is None

    @pytest.mark.asyncio
    async def test_query_success(self, mock_connection, mock_surreal_client):
        """Test successful query execution."""
        mock_surreal_client.query_raw = AsyncMock(
            return_value={"id": "1", "result": [{"status": "OK", "result": [{"version": 1, "title": "init"}]}]}
        )

        result = await mock_connection.query(
            "SELECT * FROM migrations WHERE version = $version", {"version": 1}
        )

        assert result == [{"version": 1, "title": "init"}]
        mock_surreal_client.query_raw.assert_called_once_with(
            "SELECT * FROM migrations WHERE version = $version", {"version": 1}
        )

    @pytest.mark.asyncio
    async def test_query_default_params(self, mock_connection, mock_surreal_client):
        """Test queries without params send an empty mapping."""
        await mock_connection.query("BEGIN TRANSACTION;")

        mock_surreal_client.query_raw.assert_called_once_with("BEGIN TRANSACTION;", {})

    @pytest.mark.asyncio
    async def test_query_error(self, mock_connection, mock_surreal_client):
        """Test client errors are raised as QueryError."""
        mock_surreal_client.query_raw = AsyncMock(side_effect=Exception("Parse error"))

        with pytest.raises(QueryError, match="Query failed: Parse error"):
            await mock_connection.query("SELEC nonsense")

    @pytest.mark.asyncio
    async def test_query_err_status(self, mock_connection, mock_surreal_client):
        """Test an ERR statement result raises QueryError."""
        mock_surreal_client.query_raw = AsyncMock(
            return_value=[{"status": "ERR", "result": "Table not found"}]
        )

        with pytest.raises(QueryError, match="Table not found"):
            await mock_connection.query("SELECT * FROM nope")

    @pytest.mark.asyncio
    async def test_query_err_in_later_statement(self, mock_connection, mock_surreal_client):
        """Test an ERR after an OK statement is not missed."""
        mock_surreal_client.query_raw = AsyncMock(
            return_value={
                "result": [
                    {"status": "OK", "result": [], "time": "1ms"},
                    {"status": "ERR", "result": "An error occurred: boom", "time": "1ms"},
                ]
            }
        )

        with pytest.raises(QueryError, match="boom"):
            await mock_connection.query("DEFINE TABLE a; THROW 'boom';")

    @pytest.mark.asyncio
    async def test_query_rpc_error(self, mock_connection, mock_surreal_client):
        """Test an RPC-level error response raises QueryError."""
        mock_surreal_client.query_raw = AsyncMock(
            return_value={"error": {"code": -32000, "message": "Parse error: unexpected token"}}
        )

        with pytest.raises(QueryError, match="Parse error: unexpected token"):
            await mock_connection.query("SELEC nonsense")

    @pytest.mark.asyncio
    async def test_query_collects_every_statement(self, mock_connection, mock_surreal_client):
        """Test records from all statements are returned."""
        mock_surreal_client.query_raw = AsyncMock(
            return_value={
                "result": [
                    {"status": "OK", "result": None},
                    {"status": "OK", "result": [{"version": 1}]},
                    {"status": "OK", "result": [{"version": 2}]},
                ]
            }
        )

        assert await mock_connection.query("A; B; C;") == [{"version": 1}, {"version": 2}]

    @pytest.mark.asyncio
    async def test_query_timeout(self, mock_connection, mock_surreal_client):
        """Test query timeout handling."""
        mock_surreal_client.query_raw = AsyncMock(side_effect=asyncio.TimeoutError())

        with pytest.raises(QueryError, match="timeout"):
            await mock_connection.query("SELECT * FROM migrations")

    @pytest.mark.asyncio
    async def test_query_connects_lazily(self, connection, mock_surreal_client):
        """Test query connects first when not yet connected."""
        with patch("surrealigrate.connection.AsyncSurreal", return_value=mock_surreal_client):
            await connection.query("INFO FOR DB")

        mock_surreal_client.connect.assert_called_once()


class TestFlattenResult:
    """Tests for _flatten_result."""

    def test_plain_records(self):
        """Test SDK-shaped lists of records pass through."""
        assert _flatten_result([{"version": 1}, {"version": 2}]) == [
            {"version": 1},
            {"version": 2},
        ]

    def test_nested_lists(self):
        """Test per-statement lists are concatenated."""
        assert _flatten_result([[{"a": 1}], [], [{"b": 2}]]) == [{"a": 1}, {"b": 2}]

    def test_single_dict(self):
        """Test a single record result."""
        assert _flatten_result({"version": 3}) == [{"version": 3}]

    def test_none(self):
        """Test empty results."""
        assert _flatten_result(None) == []


class TestOpenConnection:
    """Tests for open_connection."""

    @pytest.mark.asyncio
    async def test_connects_and_disconnects(self, mock_surreal_config, mock_surreal_client):
        """Test the context manager closes the connection on exit."""
        with patch("surrealigrate.connection.AsyncSurreal", return_value=mock_surreal_client):
            async with open_connection(mock_surreal_config) as conn:
                assert conn.is_connected

        mock_surreal_client.close.assert_called_once()
        assert conn.is_connected is False

    @pytest.mark.asyncio
    async def test_disconnects_on_error(self, mock_surreal_config, mock_surreal_client):
        """Test the connection is closed when the body raises."""
        with patch("surrealigrate.connection.AsyncSurreal", return_value=mock_surreal_client):
            with pytest.raises(RuntimeError):
                async with open_connection(mock_surreal_config):
                    raise RuntimeError("boom")

        mock_surreal_client.close.assert_called_once()
