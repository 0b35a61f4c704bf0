"""
Postgres Connection Pool Manager

Manages async connection pooling for Postgres with retry logic on startup.

Two lifecycles:
- shared: one pool per process, built lazily on first use and closed only on
  application shutdown
- scoped: built for a single request from a connection override and closed
  when that request finishes
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import asyncpg
from asyncpg import Pool
from asyncpg.exceptions import (
    CannotConnectNowError,
    TooManyConnectionsError,
)

from latencybench.config import settings
from latencybench.connectors.connection_resolver import (
    ConnectionConfig,
    resolve_connection_config,
)
from latencybench.core.errors import ConnectivityError

logger = logging.getLogger(__name__)


class PostgresConnectionPool:
    """
    Async connection pool for Postgres bound to one ConnectionConfig.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        min_size: int = 1,
        max_size: int = 10,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        command_timeout: float = 60.0,
        pool_name: str = "shared",
        scoped: bool = False,
    ):
        """
        Initialize Postgres connection pool.

        Args:
            config: Resolved connection descriptor and TLS policy
            min_size: Minimum pool size
            max_size: Maximum pool size
            max_retries: Max retry attempts for transient startup failures
            retry_delay: Base delay between retries in seconds
            command_timeout: Command timeout in seconds
            pool_name: Descriptive name for logging
            scoped: True for a per-request pool that the request must dispose
        """
        self.config = config
        self.min_size = min_size
        self.max_size = max_size
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.command_timeout = command_timeout
        self.pool_name = pool_name
        self.scoped = scoped

        self._pool: Optional[Pool] = None
        self._initialized = False

        logger.info(
            f"[{pool_name}] Postgres pool configured: {config.redacted_dsn()}, "
            f"ssl={config.ssl_policy.value}, size={min_size}-{max_size}"
        )

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self):
        """
        Open the underlying connections.

        Raises:
            ConnectivityError: the pool could not be created
        """
        if self._initialized:
            return

        logger.info(f"[{self.pool_name}] Creating Postgres connection pool...")

        for attempt in range(self.max_retries):
            try:
                self._pool = await asyncpg.create_pool(
                    dsn=self.config.dsn,
                    ssl=self.config.ssl_policy.to_asyncpg(),
                    min_size=self.min_size,
                    max_size=self.max_size,
                    command_timeout=self.command_timeout,
                )

                self._initialized = True
                logger.info(
                    f"[{self.pool_name}] Postgres pool ready "
                    f"(size: {self.min_size}-{self.max_size})"
                )
                return

            except (CannotConnectNowError, TooManyConnectionsError) as e:
                if attempt < self.max_retries - 1:
                    logger.warning(
                        f"[{self.pool_name}] Pool creation attempt {attempt + 1} "
                        f"failed, retrying: {e}"
                    )
                    await asyncio.sleep(self.retry_delay * (attempt + 1))
                else:
                    logger.error(
                        f"[{self.pool_name}] Failed to create pool after "
                        f"{self.max_retries} attempts"
                    )
                    raise ConnectivityError(str(e)) from e
            except Exception as e:
                logger.error(f"[{self.pool_name}] Unexpected error creating pool: {e}")
                raise ConnectivityError(str(e) or e.__class__.__name__) from e

    @asynccontextmanager
    async def get_connection(self):
        """
        Get a connection from the pool (async context manager).

        Usage:
            async with pool.get_connection() as conn:
                result = await conn.fetch("SELECT 1")

        Yields:
            Connection: Connection from pool
        """
        if not self._initialized:
            await self.initialize()

        if self._pool is None:
            raise ConnectivityError(f"[{self.pool_name}] pool not initialized")

        async with self._pool.acquire() as conn:
            yield conn

    async def execute_query(
        self,
        query: str,
        *args,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Execute a statement that doesn't return rows (INSERT, DDL, ...).

        Returns:
            Status string (e.g., "INSERT 0 1")
        """
        async with self.get_connection() as conn:
            return await conn.execute(query, *args, timeout=timeout)

    async def fetch_one(
        self,
        query: str,
        *args,
        timeout: Optional[float] = None,
    ) -> Optional[asyncpg.Record]:
        """
        Fetch a single row from a query.

        Returns:
            Single record or None
        """
        async with self.get_connection() as conn:
            return await conn.fetchrow(query, *args, timeout=timeout)

    async def fetch_val(
        self,
        query: str,
        *args,
        timeout: Optional[float] = None,
    ) -> Any:
        async with self.get_connection() as conn:
            return await conn.fetchval(query, *args, timeout=timeout)

    async def is_healthy(self) -> bool:
        """
        Check if the connection pool is healthy.

        Returns:
            bool: True if pool is healthy
        """
        if not self._initialized or self._pool is None:
            return False

        try:
            result = await self.fetch_val("SELECT 1")
            return result == 1
        except Exception as e:
            logger.error(f"[{self.pool_name}] Health check failed: {e}")
            return False

    async def get_pool_stats(self) -> Dict[str, Any]:
        """
        Get connection pool statistics.

        Returns:
            Dict with pool statistics
        """
        if not self._initialized or self._pool is None:
            return {
                "initialized": False,
                "size": 0,
                "free": 0,
            }

        return {
            "initialized": True,
            "min_size": self.min_size,
            "max_size": self.max_size,
            "size": self._pool.get_size(),
            "free": self._pool.get_idle_size(),
            "in_use": self._pool.get_size() - self._pool.get_idle_size(),
            "ssl": self.config.ssl_policy.value,
        }

    async def close(self):
        """Close the connection pool. Safe to call more than once."""
        pool, self._pool = self._pool, None
        self._initialized = False
        if pool is not None:
            logger.info(f"[{self.pool_name}] Closing Postgres connection pool...")
            await pool.close()
            logger.info(f"[{self.pool_name}] Postgres pool closed")


def _build_pool(config: ConnectionConfig, *, scoped: bool) -> PostgresConnectionPool:
    return PostgresConnectionPool(
        config,
        min_size=settings.POSTGRES_POOL_MIN_SIZE,
        max_size=settings.POSTGRES_POOL_MAX_SIZE,
        max_retries=settings.POSTGRES_CONNECT_RETRIES,
        retry_delay=settings.POSTGRES_CONNECT_RETRY_DELAY,
        command_timeout=settings.POSTGRES_COMMAND_TIMEOUT,
        pool_name="scoped" if scoped else "shared",
        scoped=scoped,
    )


# Process-wide shared pool; filled only after a successful initialize().
_default_pool: Optional[PostgresConnectionPool] = None
_default_pool_lock = asyncio.Lock()


async def get_default_pool() -> PostgresConnectionPool:
    """
    Get or create the shared Postgres connection pool.

    Construction happens at most once per process; if it fails the slot stays
    empty and the next caller tries again.

    Raises:
        ConfigurationError: DATABASE_URL missing or malformed
        ConnectivityError: the pool could not be opened
    """
    global _default_pool

    if _default_pool is not None:
        return _default_pool

    async with _default_pool_lock:
        if _default_pool is not None:
            return _default_pool

        pool = _build_pool(resolve_connection_config(), scoped=False)
        await pool.initialize()
        _default_pool = pool

    return _default_pool


async def acquire_pool(
    config: Optional[ConnectionConfig] = None,
) -> PostgresConnectionPool:
    """
    Pool to run a benchmark against.

    Args:
        config: per-request override; None selects the shared pool

    Returns:
        The shared pool, or a freshly opened scoped pool for ``config``
    """
    if config is None:
        return await get_default_pool()

    pool = _build_pool(config, scoped=True)
    try:
        await pool.initialize()
    except BaseException:
        await dispose_pool(pool)
        raise
    return pool


async def dispose_pool(pool: Optional[PostgresConnectionPool]) -> None:
    """
    Release a pool obtained from acquire_pool().

    The shared pool is left open. Scoped pools are closed; errors while
    closing are logged and never raised.
    """
    if pool is None or not pool.scoped:
        return
    try:
        await pool.close()
    except Exception as e:
        logger.warning(f"[{pool.pool_name}] Error disposing pool: {e}")


async def close_default_pool():
    """Close the shared pool (application shutdown)."""
    global _default_pool

    pool, _default_pool = _default_pool, None
    if pool is not None:
        logger.info("Closing shared pool...")
        await pool.close()


def peek_default_pool() -> Optional[PostgresConnectionPool]:
    """The shared pool if it has been opened, without opening it."""
    return _default_pool
