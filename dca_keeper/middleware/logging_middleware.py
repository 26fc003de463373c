"""
Trigger request logging.

Every HTTP trigger gets a short id (taken from ``x-request-id`` when the
scheduler sends one) that is bound for the lifetime of the request, so the
discovery and execution lines of one run can be grepped together. Scheduler
health probes only log at debug.
"""

import logging
import time
import uuid
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.stdlib.get_logger("http")

REQUEST_ID_HEADER = "x-request-id"
PROBE_PATHS = frozenset({"/healthz", "/"})


def outcome_level(path: str, status_code: int) -> int:
    """Log level for a finished trigger request."""
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    if path in PROBE_PATHS:
        return logging.DEBUG
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Bind a run id to each trigger request and log how it ended."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        path = request.url.path
        started = time.perf_counter()
        response: Optional[Response] = None

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
            finally:
                status_code = response.status_code if response is not None else 500
                logger.log(
                    outcome_level(path, status_code),
                    "trigger_request",
                    method=request.method,
                    path=path,
                    status=status_code,
                    elapsed_ms=int((time.perf_counter() - started) * 1000),
                )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
