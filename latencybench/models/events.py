"""
Progress Event Models

Tagged records produced by a run. A streamed run emits one ``progress``
record per completed iteration followed by exactly one ``done`` or
``error`` record. Field names go over the wire in camelCase.
"""

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from latencybench.core.types import MeasurementSample, RunAggregate


class _EventModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    @property
    def is_terminal(self) -> bool:
        return self.type != "progress"

    def to_wire(self) -> dict:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(by_alias=True)

    def to_ndjson(self) -> str:
        """One self-contained newline-terminated record."""
        return self.model_dump_json(by_alias=True) + "\n"

    def content(self) -> dict:
        """Wire dict without the ``type`` tag (buffered response body)."""
        return self.model_dump(by_alias=True, exclude={"type"})


class ProgressEvent(_EventModel):
    """Emitted after each completed probe."""

    type: Literal["progress"] = "progress"
    current: int = Field(..., ge=1, description="1-based iteration index")
    total: int = Field(..., ge=1, description="Requested iterations")
    progress: float = Field(..., ge=0.0, le=1.0, description="current / total")
    avg_write: float = Field(..., description="Running mean write latency (ms)")
    avg_read: float = Field(..., description="Running mean read latency (ms)")
    last_write: float = Field(..., description="This iteration's write latency (ms)")
    last_read: float = Field(..., description="This iteration's read latency (ms)")

    @classmethod
    def from_sample(
        cls, sample: MeasurementSample, aggregate: RunAggregate
    ) -> "ProgressEvent":
        return cls(
            current=aggregate.completed,
            total=aggregate.requested,
            progress=aggregate.completed / aggregate.requested,
            avg_write=aggregate.avg_write_ms,
            avg_read=aggregate.avg_read_ms,
            last_write=sample.write_ms,
            last_read=sample.read_ms,
        )


class DoneEvent(_EventModel):
    type: Literal["done"] = "done"
    avg_write: float
    avg_read: float
    total_ops: int

    @classmethod
    def from_aggregate(cls, aggregate: RunAggregate) -> "DoneEvent":
        return cls(
            avg_write=aggregate.avg_write_ms,
            avg_read=aggregate.avg_read_ms,
            total_ops=aggregate.requested,
        )


class ErrorEvent(_EventModel):
    type: Literal["error"] = "error"
    error: str


LatencyEvent = Union[ProgressEvent, DoneEvent, ErrorEvent]
