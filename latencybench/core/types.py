"""
Type definitions and dataclasses for a latency run.
"""

from dataclasses import dataclass
from enum import Enum
from statistics import fmean
from typing import Optional, Sequence


class RunState(str, Enum):
    INITIALIZING = "initializing"
    BOOTSTRAPPING = "bootstrapping"
    LOOPING = "looping"
    CLEANING = "cleaning"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class MeasurementSample:
    """Timings from one probe (milliseconds)."""

    write_ms: float
    read_ms: float
    read_payload: Optional[str] = None


@dataclass(frozen=True)
class RunAggregate:
    """Means over every sample collected so far."""

    avg_write_ms: float
    avg_read_ms: float
    completed: int
    requested: int

    @classmethod
    def from_series(
        cls,
        write_series: Sequence[float],
        read_series: Sequence[float],
        requested: int,
    ) -> "RunAggregate":
        """
        Recompute the means from the full series.

        Both series must be non-empty and of equal length.
        """
        if not write_series or len(write_series) != len(read_series):
            raise ValueError("write and read series must be non-empty and aligned")
        return cls(
            avg_write_ms=fmean(write_series),
            avg_read_ms=fmean(read_series),
            completed=len(write_series),
            requested=requested,
        )
