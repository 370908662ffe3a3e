"""Request id and timing middleware for the pricing API."""
import os
import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("sash-api.middleware")

SKIP_LOG_PATHS = {"/health"}
SLOW_REQUEST_MS = float(os.getenv("SLOW_REQUEST_MS", "1000"))


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id (the caller's X-Request-ID when given) and
    logs method, path, status and duration. Requests slower than
    SLOW_REQUEST_MS, typically stuck coefficient lookups, are logged as warnings.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        if request.url.path in SKIP_LOG_PATHS:
            return response
        extra = {
            "request_id": request_id,
            "http_method": request.method,
            "http_path": request.url.path,
            "http_status": response.status_code,
            "duration_ms": duration_ms,
        }
        if duration_ms > SLOW_REQUEST_MS:
            logger.warning("slow request", extra=extra)
        else:
            logger.info("request completed", extra=extra)
        return response
