"""
Benchmark Orchestrator

Drives one latency run through its lifecycle:

    INITIALIZING -> BOOTSTRAPPING -> LOOPING -> CLEANING -> DONE | ERROR

- INITIALIZING resolves the connection descriptor and acquires a pool; a
  failure here ends the run without touching the table.
- BOOTSTRAPPING makes sure the benchmarking table exists.
- LOOPING runs the probe sequentially, emitting one progress event per
  completed iteration. The first failure abandons the remaining iterations.
- CLEANING empties the table; its failure is logged and never changes the
  outcome.
- The terminal event is emitted exactly once, then the pool is disposed.

A run is all-or-nothing for the caller: when an iteration fails the samples
gathered so far are dropped from the terminal report.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from latencybench.config import settings
from latencybench.connectors import postgres_pool
from latencybench.connectors.connection_resolver import resolve_connection_config
from latencybench.core.errors import (
    ClassifiedError,
    ErrorKind,
    ProgressChannelClosed,
    classify_error,
)
from latencybench.core.latency_table import LatencyTableManager
from latencybench.core.probe import LatencyProbe
from latencybench.core.progress import ProgressReporter
from latencybench.core.types import RunAggregate, RunState
from latencybench.models.events import DoneEvent, ErrorEvent, ProgressEvent
from latencybench.models.request import clamp_operations

logger = logging.getLogger(__name__)


class BenchmarkOrchestrator:
    """Runs ``total`` probes against one pool and reports through a sink."""

    def __init__(
        self,
        operations: Any = None,
        connection_string: Optional[str] = None,
        *,
        table_name: Optional[str] = None,
    ):
        self.total = clamp_operations(operations)
        self.connection_string = (connection_string or "").strip() or None
        self.table_name = table_name or settings.LATENCY_TABLE
        self.state = RunState.INITIALIZING

        self.write_series: list[float] = []
        self.read_series: list[float] = []

    async def run(self, sink: ProgressReporter) -> RunAggregate | ClassifiedError:
        """
        Execute the run, pushing events into ``sink``.

        Never raises for Exception subclasses; failures come back as a
        ClassifiedError and an ``error`` event.
        """
        self.state = RunState.INITIALIZING
        try:
            config = (
                resolve_connection_config(self.connection_string)
                if self.connection_string
                else None
            )
            pool = await postgres_pool.acquire_pool(config)
        except Exception as e:
            return await self._fail(sink, e)

        try:
            return await self._run_with_pool(pool, sink)
        except Exception as e:
            return await self._fail(sink, e)
        finally:
            await postgres_pool.dispose_pool(pool)

    async def _run_with_pool(
        self, pool, sink: ProgressReporter
    ) -> RunAggregate | ClassifiedError:
        self.state = RunState.BOOTSTRAPPING
        try:
            table = LatencyTableManager(pool, self.table_name)
            await table.ensure()
        except Exception as e:
            return await self._fail(sink, e)

        self.state = RunState.LOOPING
        probe = LatencyProbe(pool, table.table_name)
        aggregate: Optional[RunAggregate] = None
        failure: Optional[BaseException] = None
        try:
            aggregate = await self._loop(probe, sink)
        except ProgressChannelClosed as e:
            logger.info(
                f"Progress consumer went away after {len(self.write_series)}/"
                f"{self.total} iterations; abandoning run"
            )
            failure = e
        except Exception as e:
            logger.warning(
                f"Probe failed at iteration {len(self.write_series) + 1}/"
                f"{self.total}: {e}"
            )
            failure = e

        self.state = RunState.CLEANING
        await self._cleanup(table)

        if failure is not None:
            return await self._fail(sink, failure)

        self.state = RunState.DONE
        await self._emit_terminal(sink, DoneEvent.from_aggregate(aggregate))
        logger.info(
            f"Latency run done: {aggregate.requested} ops, "
            f"avg write {aggregate.avg_write_ms:.2f} ms, "
            f"avg read {aggregate.avg_read_ms:.2f} ms"
        )
        return aggregate

    async def _loop(self, probe: LatencyProbe, sink: ProgressReporter) -> RunAggregate:
        aggregate: Optional[RunAggregate] = None
        for _ in range(self.total):
            sample = await probe.probe()
            self.write_series.append(sample.write_ms)
            self.read_series.append(sample.read_ms)
            aggregate = RunAggregate.from_series(
                self.write_series, self.read_series, self.total
            )
            await sink.emit(ProgressEvent.from_sample(sample, aggregate))
        return aggregate

    async def _cleanup(self, table: LatencyTableManager) -> None:
        try:
            method = await table.cleanup()
            logger.debug(f"Cleaned {table.table_name} via {method}")
        except Exception as e:
            logger.warning(f"Cleanup of {table.table_name} failed: {e}")

    async def _fail(
        self, sink: ProgressReporter, exc: BaseException
    ) -> ClassifiedError:
        self.state = RunState.ERROR
        classified = classify_error(exc)
        if sink.terminal is not None:
            logger.error(
                f"Latency run failed after its {sink.terminal.type!r} event: {exc}"
            )
            return classified
        if classified.kind is ErrorKind.CANCELLED:
            return classified
        logger.error(f"Latency run failed ({classified.kind.value}): {exc}")
        await self._emit_terminal(sink, ErrorEvent(error=classified.message))
        return classified

    @staticmethod
    async def _emit_terminal(sink: ProgressReporter, event) -> None:
        try:
            await sink.emit(event)
        except ProgressChannelClosed:
            logger.info(f"Progress consumer gone; {event.type!r} event not delivered")
