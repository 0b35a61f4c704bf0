"""
Centralized API error handling helpers.

Maps classified run failures onto HTTP responses so configuration problems,
unreachable databases and failing statements each get a distinct status.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import status
from fastapi.responses import JSONResponse

from latencybench.config import settings
from latencybench.core.errors import ClassifiedError


@dataclass(frozen=True, slots=True)
class ApiError:
    status_code: int
    code: str
    message: str
    debug: str | None = None

    def body(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"error": self.message}
        if self.debug:
            detail["code"] = self.code
            detail["debug"] = self.debug
        return detail


def _status_for(classified: ClassifiedError) -> int:
    if classified.status_code >= 400:
        return classified.status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def api_error(classified: ClassifiedError, exc: BaseException | None = None) -> ApiError:
    return ApiError(
        status_code=_status_for(classified),
        code=classified.kind.value.upper(),
        message=classified.message,
        debug=str(exc) if (exc is not None and settings.APP_DEBUG) else None,
    )


def error_response(classified: ClassifiedError) -> JSONResponse:
    """``{"error": ...}`` response for a failed buffered run."""
    err = api_error(classified)
    return JSONResponse(status_code=err.status_code, content=err.body())

