"""
One timed write followed by one timed read.
"""

import random
import time

from latencybench.core.types import MeasurementSample


def make_payload() -> str:
    """Unique row payload: epoch milliseconds plus a random component."""
    return f"payload-{int(time.time() * 1000)}-{random.random()}"


class LatencyProbe:
    """
    Measures a single insert round trip and a single point-query round trip.

    Failures propagate untouched; the caller decides what they mean.
    """

    def __init__(self, pool, table_name: str):
        self.pool = pool
        self.table_name = table_name

    async def write_once(self, payload: str) -> float:
        start = time.perf_counter()
        await self.pool.execute_query(
            f"INSERT INTO {self.table_name} (payload) VALUES ($1)", payload
        )
        return (time.perf_counter() - start) * 1000.0

    async def read_once(self) -> tuple[float, str | None]:
        start = time.perf_counter()
        row = await self.pool.fetch_one(
            f"SELECT id, payload FROM {self.table_name} ORDER BY id DESC LIMIT 1"
        )
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        return elapsed_ms, (row["payload"] if row is not None else None)

    async def probe(self) -> MeasurementSample:
        write_ms = await self.write_once(make_payload())
        read_ms, payload = await self.read_once()
        return MeasurementSample(write_ms=write_ms, read_ms=read_ms, read_payload=payload)
