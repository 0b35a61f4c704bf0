"""
Data models for the latency benchmark service.

This package contains Pydantic models for:
- The latency test request body
- Progress / done / error records streamed to the caller
"""

from latencybench.models.events import (
    DoneEvent,
    ErrorEvent,
    LatencyEvent,
    ProgressEvent,
)
from latencybench.models.request import LatencyTestRequest

__all__ = [
    # events
    "DoneEvent",
    "ErrorEvent",
    "LatencyEvent",
    "ProgressEvent",
    # request
    "LatencyTestRequest",
]
