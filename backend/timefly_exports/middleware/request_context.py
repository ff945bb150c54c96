"""
Request Middleware
==================

Request IDs for correlation, and one structured access-log line plus
Prometheus HTTP metrics per request.
"""

import time
import uuid
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from timefly_exports.core.metrics import http_request_duration_seconds, http_requests_total

logger = structlog.get_logger("http")


def route_template(request: Request) -> str:
    """
    Full route template of the matched route, e.g. ``/exports/download/{filename}``.

    Labels use the template so per-file URLs do not explode cardinality.
    Depending on the FastAPI release the matched route carries either its full
    path or only its path inside the included router; in the latter case the
    router prefix is recovered from the request path.
    """
    path = request.url.path
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    path_regex = getattr(route, "path_regex", None)
    if template is None or path_regex is None:
        return path

    for i, char in enumerate(path):
        if char == "/" and path_regex.match(path[i:]):
            return path[:i] + template
    return template


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Assigns a request ID (taken from ``X-Request-ID`` when present), stores it
    in ``request.state`` and echoes it in the response headers.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    # Paths to exclude from logging and metrics
    EXCLUDED_PATHS = {"/health", "/metrics", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        endpoint = route_template(request)

        http_requests_total.labels(
            method=request.method, endpoint=endpoint, status=response.status_code
        ).inc()
        http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(duration)

        log_context = {
            "request_id": getattr(request.state, "request_id", "unknown"),
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_ms": round(duration * 1000, 2),
        }
        user_id = request.headers.get("X-User-Id")
        if user_id:
            log_context["user_id"] = user_id

        if response.status_code >= 500:
            logger.error("request_completed", **log_context)
        elif response.status_code >= 400:
            logger.warning("request_completed", **log_context)
        else:
            logger.info("request_completed", **log_context)

        return response
