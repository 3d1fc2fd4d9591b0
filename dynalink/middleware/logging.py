"""
Request logging middleware for FastAPI using Loguru.

Each request gets an ``X-Request-ID`` and one access record at the REQUEST
level once the response is ready.
"""

import time
import uuid
from contextvars import ContextVar

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from dynalink.core.logging import register_request_level

# Context variable to store request ID across async context
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and latency of every request."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        register_request_level()

    async def dispatch(self, request: Request, call_next) -> Response:
        # Reuse an upstream request ID when the edge already assigned one
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        start_time = time.perf_counter()

        try:
            with logger.contextualize(request_id=request_id):
                response = await call_next(request)
                process_time_ms = round((time.perf_counter() - start_time) * 1000, 2)

                client_ip = request.client.host if request.client else "unknown"
                if "X-Forwarded-For" in request.headers:
                    client_ip = request.headers["X-Forwarded-For"].split(",")[0].strip()

                logger.bind(
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    process_time_ms=process_time_ms,
                    client_ip=client_ip,
                ).log(
                    "REQUEST",
                    f"{request.method} {request.url.path} {response.status_code} {process_time_ms}ms",
                )
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
