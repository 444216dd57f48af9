# app/core/middleware.py
"""HTTP middleware: correlation ids and request logging"""
import logging
import time
import uuid

from starlette.requests import Request

from app.utils.my_logging import correlation_id_var

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
QUIET_PATHS = ("/health",)


async def correlation_id_middleware(request: Request, call_next):
    """Tag every request with a correlation id, reusing the caller's if sent"""
    correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    token = correlation_id_var.set(correlation_id)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token)
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


async def request_logging_middleware(request: Request, call_next):
    """One log line per request with status and duration"""
    start_time = time.perf_counter()
    response = await call_next(request)
    duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

    correlation_id = getattr(request.state, "correlation_id", "unknown")
    path = request.url.path
    log = logger.debug if path.startswith(QUIET_PATHS) else logger.info
    log(
        f"{request.method} {path} -> {response.status_code} ({duration_ms}ms) [{correlation_id}]",
        extra={
            "correlation_id": correlation_id,
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }
    )
    return response
