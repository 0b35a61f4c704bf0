"""
Latency Table Manager

Owns the single benchmarking table: idempotent creation before a run and
row removal after it.
"""

from __future__ import annotations

import logging
import re

from asyncpg.exceptions import DuplicateTableError, UniqueViolationError

from latencybench.config import settings
from latencybench.core.errors import CleanupError

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class LatencyTableManager:
    """Creates and empties the benchmarking table on a pool."""

    def __init__(self, pool, table_name: str | None = None):
        name = str(table_name or settings.LATENCY_TABLE).strip()
        if not _IDENTIFIER.match(name):
            raise ValueError(f"Invalid table name: {name!r}")
        self.pool = pool
        self.table_name = name

    async def ensure(self) -> None:
        """
        Create the table if it does not exist.

        Concurrent CREATE TABLE IF NOT EXISTS from two sessions can still trip
        the catalog unique index; the loser sees the table the winner made.
        """
        try:
            await self.pool.execute_query(
                f"""
                CREATE TABLE IF NOT EXISTS {self.table_name} (
                    id SERIAL PRIMARY KEY,
                    payload TEXT,
                    created_at TIMESTAMPTZ DEFAULT now()
                )
                """
            )
        except (UniqueViolationError, DuplicateTableError) as e:
            logger.debug(f"Concurrent creation of {self.table_name}: {e}")

    async def cleanup(self) -> str:
        """
        Remove every row from the table.

        Tries TRUNCATE first and falls back to DELETE when it is rejected
        (e.g. missing TRUNCATE privilege).

        Returns:
            "truncate" or "delete", whichever statement succeeded

        Raises:
            CleanupError: the fallback DELETE failed as well
        """
        try:
            await self.pool.execute_query(f"TRUNCATE TABLE {self.table_name}")
            return "truncate"
        except Exception as e:
            logger.warning(
                f"TRUNCATE {self.table_name} rejected ({e}); falling back to DELETE"
            )

        try:
            await self.pool.execute_query(f"DELETE FROM {self.table_name}")
        except Exception as e:
            raise CleanupError(f"DELETE FROM {self.table_name} failed: {e}") from e
        return "delete"
