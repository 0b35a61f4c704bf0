"""
API routes for round-trip latency tests.

POST runs a benchmark (buffered JSON or streamed NDJSON); GET is a health
probe against the shared pool.
"""

import logging
from typing import Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from latencybench.api.error_handling import error_response
from latencybench.connectors import postgres_pool
from latencybench.core.errors import ClassifiedError, classify_error
from latencybench.core.orchestrator import BenchmarkOrchestrator
from latencybench.core.progress import (
    BufferedProgressReporter,
    StreamingProgressReporter,
)
from latencybench.models import LatencyTestRequest

logger = logging.getLogger(__name__)

router = APIRouter()

NDJSON_MEDIA_TYPE = "application/x-ndjson; charset=utf-8"
STREAM_HEADERS = {"Cache-Control": "no-cache, no-transform"}


@router.post("")
async def run_latency_test(payload: Optional[LatencyTestRequest] = None):
    """
    Run ``operations`` timed insert + point-select pairs.

    Body:
    - operations: probe count (default 50, floored at 1)
    - connectionString: optional Postgres URI overriding DATABASE_URL
    - stream: when true, respond with NDJSON progress records

    Returns:
        ``{avgWrite, avgRead, totalOps}`` or ``{error}``; in streaming mode a
        sequence of ``progress`` records followed by one ``done``/``error``
    """
    request = payload or LatencyTestRequest()
    orchestrator = BenchmarkOrchestrator(
        request.operations, request.connection_string
    )
    logger.info(
        f"Latency test requested: operations={orchestrator.total}, "
        f"stream={request.stream}, override={orchestrator.connection_string is not None}"
    )

    if request.stream:
        reporter = StreamingProgressReporter()
        reporter.start(orchestrator.run(reporter))
        return StreamingResponse(
            reporter.records(),
            media_type=NDJSON_MEDIA_TYPE,
            headers=STREAM_HEADERS,
            background=BackgroundTask(reporter.close),
        )

    reporter = BufferedProgressReporter()
    outcome = await orchestrator.run(reporter)
    if isinstance(outcome, ClassifiedError):
        return error_response(outcome)
    return reporter.result().content()


@router.get("")
async def latency_health():
    """
    Trivial query against the shared pool.

    Returns:
        ``{"ok": true}`` or ``{"ok": false, "error": ...}`` with a 503
    """
    try:
        pool = await postgres_pool.get_default_pool()
        await pool.fetch_val("SELECT 1")
        return {"ok": True}
    except Exception as e:
        logger.warning(f"Latency health probe failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ok": False, "error": classify_error(e).message},
        )
