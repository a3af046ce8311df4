"""
Request tracing for the personalization API.

Each request gets a short request id (the caller's X-Request-ID wins) and,
when the caller identifies the visitor through X-Session-ID or a
``session_id`` query parameter, that session id. Both are bound to the
structlog context so every slot decision, signal and A/B event logged while
serving the request can be correlated. Requests slower than
``slow_request_ms`` are logged at warning level.
"""

import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.logging import bind_context, clear_context, get_logger


logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SESSION_HEADER = "X-Session-ID"


def _session_from(request: Request) -> Optional[str]:
    return request.headers.get(SESSION_HEADER) or request.query_params.get("session_id")


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """
    Usage:
        app.add_middleware(RequestTracingMiddleware, slow_request_ms=300)
    """

    def __init__(self, app: ASGIApp, slow_request_ms: float = 1000.0):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        bind_context(request_id=request_id, method=request.method, path=request.url.path)

        session_id = _session_from(request)
        if session_id:
            bind_context(session_id=session_id)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise
        else:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            log = logger.warning if duration_ms > self.slow_request_ms else logger.info
            log("Request served", status_code=response.status_code, duration_ms=duration_ms)

            response.headers[REQUEST_ID_HEADER] = request_id
            if session_id:
                response.headers[SESSION_HEADER] = session_id
            return response
        finally:
            clear_context()
