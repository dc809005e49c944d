"""Database connection management on top of an asyncpg pool."""

import asyncio
import contextlib
import json
from collections.abc import AsyncIterator
from typing import Any

import asyncpg
from attrs import field, frozen
from beartype import beartype

from .config import Settings, get_settings
from .logging_utils import get_logger

logger = get_logger(__name__)


@frozen
class PoolConfig:
    """Immutable pool configuration."""

    min_connections: int = field()
    max_connections: int = field()
    acquire_timeout: float = field(default=10.0)
    command_timeout: float = field(default=30.0)
    max_inactive_connection_lifetime: float = field(default=600.0)


@frozen
class RecoveryConfig:
    """Connection recovery configuration."""

    max_attempts: int = field(default=3)
    retry_delay_seconds: float = field(default=0.2)


class Database:
    """Thin asyncpg pool wrapper.

    Only connection-level failures are retried. Every other
    ``asyncpg.PostgresError`` (unique violations in particular) reaches the
    caller untouched, because several services rely on catching them.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: asyncpg.Pool | None = None
        self._recovery_config = RecoveryConfig()

    @beartype
    def _get_pool_config(self) -> PoolConfig:
        return PoolConfig(
            min_connections=self._settings.database_pool_min,
            max_connections=self._settings.database_pool_max,
            acquire_timeout=self._settings.database_pool_timeout,
            command_timeout=self._settings.database_command_timeout,
        )

    async def _init_connection(self, conn: asyncpg.Connection) -> None:
        """Register the JSON codecs used by every repository."""
        for type_name in ("jsonb", "json"):
            await conn.set_type_codec(
                type_name,
                encoder=lambda v: json.dumps(v, default=str),
                decoder=json.loads,
                schema="pg_catalog",
            )

    @beartype
    async def connect(self) -> None:
        """Create the connection pool."""
        if self._pool is not None:
            return

        config = self._get_pool_config()
        self._pool = await asyncpg.create_pool(
            self._settings.database_url,
            min_size=config.min_connections,
            max_size=config.max_connections,
            max_inactive_connection_lifetime=config.max_inactive_connection_lifetime,
            command_timeout=config.command_timeout,
            init=self._init_connection,
        )
        logger.info(
            "Database pool ready (min=%d, max=%d)",
            config.min_connections,
            config.max_connections,
        )

    @beartype
    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
        self._pool = None

    @contextlib.asynccontextmanager
    async def acquire(self, *, timeout: float | None = None) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a pooled connection."""
        if self._pool is None:
            raise RuntimeError("Database not connected")

        timeout = timeout or self._settings.database_pool_timeout
        async with self._pool.acquire(timeout=timeout) as conn:
            yield conn

    async def _run(self, method: str, query: str, *args: Any) -> Any:
        """Run a connection method, retrying on connection loss only."""
        last_error: Exception | None = None
        for attempt in range(self._recovery_config.max_attempts):
            try:
                async with self.acquire() as conn:
                    return await getattr(conn, method)(query, *args)
            except (asyncpg.PostgresConnectionError, ConnectionError) as e:
                last_error = e
                logger.warning(
                    "Database connection error on attempt %d: %s", attempt + 1, e
                )
                if attempt < self._recovery_config.max_attempts - 1:
                    delay = self._recovery_config.retry_delay_seconds * (2**attempt)
                    await asyncio.sleep(delay)
        assert last_error is not None
        raise last_error

    @beartype
    async def execute(self, query: str, *args: Any) -> str:
        """Execute a query without returning results."""
        return await self._run("execute", query, *args)

    @beartype
    async def fetch(self, query: str, *args: Any) -> list[Any]:
        """Execute a query and fetch all results."""
        return await self._run("fetch", query, *args)

    @beartype
    async def fetchrow(self, query: str, *args: Any) -> Any | None:
        """Execute a query and fetch a single row."""
        return await self._run("fetchrow", query, *args)

    @beartype
    async def fetchval(self, query: str, *args: Any) -> Any:
        """Execute a query and fetch a single value."""
        return await self._run("fetchval", query, *args)

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Create a database transaction context."""
        async with self.acquire() as conn:
            async with conn.transaction():
                yield conn

    @property
    def is_connected(self) -> bool:
        """Check if database is connected."""
        return self._pool is not None


# Global database instance
_database: Database | None = None


@beartype
def get_database() -> Database:
    """Get global database instance."""
    global _database
    if _database is None:
        _database = Database()
    return _database


@beartype
async def init_db_pool() -> None:
    """Initialize the database connection pool."""
    await get_database().connect()


@beartype
async def close_db_pool() -> None:
    """Close the database connection pool."""
    await get_database().disconnect()
