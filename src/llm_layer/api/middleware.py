"""Request correlation for the HTTP surface."""

import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
PROCESS_TIME_HEADER = "X-Process-Time-Ms"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Correlate every log line of a request, including the dispatcher's
    per-attempt diagnostics and tracking events, under one request_id.

    The caller's X-Request-ID is reused when present; otherwise a UUID4 is
    minted. Either way it is echoed back on the response.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            http_method=request.method,
            http_path=request.url.path,
        )
        started = time.perf_counter()
        logger.debug("HTTP request received")

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("HTTP request crashed", exc_info=exc, duration_ms=_elapsed_ms(started))
            raise
        else:
            duration_ms = _elapsed_ms(started)
            logger.info("HTTP request handled", status_code=response.status_code, duration_ms=duration_ms)
            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers[PROCESS_TIME_HEADER] = str(duration_ms)
            return response
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "http_method", "http_path")
