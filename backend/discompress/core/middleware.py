"""FastAPI middleware for monitoring, tracing, and logging.

Implements request tracking with correlation IDs and metrics collection.
"""

import logging
import re
import time
import uuid
from typing import Callable, Iterable

from fastapi import Request, Response
from fastapi.responses import PlainTextResponse
from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from discompress.core.logging import clear_correlation_id, get_correlation_id, set_correlation_id
from discompress.core.metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_PROGRESS,
    HTTP_REQUESTS_TOTAL,
)
from discompress.core.tracing import add_span_attributes, create_span, extract_context

_KNOWN_ENDPOINTS = frozenset(("/health", "/api/upload", "/metrics"))
MULTIPART_ENVELOPE_BYTES = 64 * 1024


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for collecting HTTP request metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        path = self._normalize_path(request.url.path)

        HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=path).inc()

        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, endpoint=path).observe(duration)
            HTTP_REQUESTS_TOTAL.labels(
                method=method, endpoint=path, status_code=str(status_code)
            ).inc()
            HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=path).dec()

    def _normalize_path(self, path: str) -> str:
        """Normalize path to reduce cardinality.

        Every route the service does not serve collapses into one label,
        so scanners probing random URLs cannot blow up the series count.
        """
        path = re.sub(r"/+$", "", path) or "/"
        if path in _KNOWN_ENDPOINTS:
            return path
        return "other"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware for managing correlation IDs."""

    CORRELATION_ID_HEADER = "X-Correlation-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(
            self.CORRELATION_ID_HEADER,
            str(uuid.uuid4()),
        )

        set_correlation_id(correlation_id)

        try:
            response = await call_next(request)
            response.headers[self.CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()


class TracingMiddleware(BaseHTTPMiddleware):
    """Middleware for distributed tracing."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        path = request.url.path

        with create_span(
            f"{method} {path}",
            attributes={
                "http.method": method,
                "http.url": str(request.url),
                "http.route": path,
                "http.scheme": request.url.scheme,
                "http.host": request.url.hostname or "",
                "http.user_agent": request.headers.get("user-agent", ""),
                "correlation_id": get_correlation_id(),
            },
            kind=trace.SpanKind.SERVER,
            context=extract_context(request.headers),
        ):
            response = await call_next(request)
            add_span_attributes({"http.status_code": response.status_code})
            return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = logging.getLogger("discompress.requests")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        self.logger.info(
            "Request started",
            extra={
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else None,
                "origin": request.headers.get("origin"),
                "content_length": request.headers.get("content-length"),
            },
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            self.logger.error(
                "Request failed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round(duration * 1000, 2),
                    "error": str(e),
                },
                exc_info=True,
            )
            raise

        duration = time.perf_counter() - start_time
        # For streamed downloads this marks when headers went out, not the last byte.
        self.logger.info(
            "Request completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            },
        )
        return response


class OriginGuardMiddleware(BaseHTTPMiddleware):
    """Answer 403 to requests whose Origin is outside the CORS allow-list.

    Runs before routing, so a rejected upload is never parsed or encoded.
    Requests without an Origin header pass through.
    """

    def __init__(self, app: ASGIApp, allowed_origins: Iterable[str]):
        super().__init__(app)
        self.allowed_origins = frozenset(allowed_origins)
        self.allow_any = "*" in self.allowed_origins
        self.logger = logging.getLogger("discompress.requests")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        origin = request.headers.get("origin")
        if origin is None or self.allow_any or origin in self.allowed_origins:
            return await call_next(request)

        self.logger.warning(
            "Request rejected by origin policy",
            extra={"method": request.method, "path": request.url.path, "origin": origin},
        )
        return PlainTextResponse("Not allowed by CORS", status_code=403)


class UploadSizeLimitMiddleware(BaseHTTPMiddleware):
    """Refuse oversized uploads from their Content-Length, before the body is read.

    ``max_bytes`` caps the file itself; ``envelope_bytes`` allows for the
    multipart boundaries and part headers around it. Bodies sent without a
    Content-Length are still capped while the service copies the upload
    out of the multipart spool.
    """

    def __init__(
        self,
        app: ASGIApp,
        max_bytes: int,
        paths: Iterable[str] = ("/api/upload",),
        envelope_bytes: int = MULTIPART_ENVELOPE_BYTES,
    ):
        super().__init__(app)
        self.max_bytes = max_bytes
        self.envelope_bytes = envelope_bytes
        self.paths = frozenset(paths)
        self.logger = logging.getLogger("discompress.requests")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method != "POST" or request.url.path not in self.paths:
            return await call_next(request)

        try:
            declared = int(request.headers.get("content-length", ""))
        except ValueError:
            declared = None

        if declared is not None and declared > self.max_bytes + self.envelope_bytes:
            self.logger.warning(
                "Upload rejected by size limit",
                extra={"path": request.url.path, "content_length": declared, "max_bytes": self.max_bytes},
            )
            return PlainTextResponse("File too large", status_code=413)

        return await call_next(request)


__all__ = [
    "OriginGuardMiddleware",
    "UploadSizeLimitMiddleware",
    "MetricsMiddleware",
    "CorrelationIdMiddleware",
    "TracingMiddleware",
    "RequestLoggingMiddleware",
]
