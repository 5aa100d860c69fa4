"""
Request Timing Middleware

Adds an X-Response-Time header and logs slow API requests.

Usage:
    from backend.middleware.timing import TimingMiddleware
    app.add_middleware(TimingMiddleware)
"""

import logging
import os
import time
from collections.abc import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("gridpulse.timing")

# Spreadsheet parsing on upload is expected to be slower than row advances
SLOW_REQUEST_THRESHOLD_MS = float(os.environ.get("GRIDPULSE_SLOW_REQUEST_MS", 500))
SLOW_UPLOAD_THRESHOLD_MS = SLOW_REQUEST_THRESHOLD_MS * 4


class TimingMiddleware(BaseHTTPMiddleware):
    """Middleware that adds timing headers and logs slow requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"

        path = request.url.path
        threshold = SLOW_UPLOAD_THRESHOLD_MS if path == "/api/uploads" else SLOW_REQUEST_THRESHOLD_MS
        if elapsed_ms >= threshold:
            logger.warning("Slow request: %s %s took %.0fms", request.method, path, elapsed_ms)

        return response
