"""
Latency test request body.

Inputs are normalised leniently: a bad ``operations`` value falls back to the
default instead of rejecting the request.
"""

import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from latencybench.config import settings


def clamp_operations(value: Any, default: Optional[int] = None) -> int:
    """
    Normalise a requested operation count.

    Missing, non-numeric and zero values select ``default``; fractions are
    floored; the result is never below 1.
    """
    fallback = int(default if default is not None else settings.DEFAULT_OPERATIONS)
    if isinstance(value, bool):
        value = int(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = 0.0
    if not math.isfinite(number) or number == 0:
        number = fallback
    return max(1, int(math.floor(number)))


class LatencyTestRequest(BaseModel):
    """Body of POST /test-latency."""

    model_config = ConfigDict(populate_by_name=True)

    operations: int = Field(
        default_factory=lambda: settings.DEFAULT_OPERATIONS,
        description="Number of write+read probes (floored at 1)",
    )
    connection_string: Optional[str] = Field(
        None,
        alias="connectionString",
        description="Per-request Postgres URI overriding DATABASE_URL",
    )
    stream: bool = Field(False, description="Stream NDJSON progress records")

    @field_validator("operations", mode="before")
    @classmethod
    def _normalise_operations(cls, v: Any) -> int:
        return clamp_operations(v)

    @field_validator("connection_string", mode="before")
    @classmethod
    def _normalise_connection_string(cls, v: Any) -> Optional[str]:
        if isinstance(v, str) and v.strip():
            return v.strip()
        return None

    @field_validator("stream", mode="before")
    @classmethod
    def _normalise_stream(cls, v: Any) -> bool:
        return bool(v)
