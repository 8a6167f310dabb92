"""FastAPI application entry point.

API only: no UI, no OpenAPI docs. Anything besides /health and
/api/upload (and /metrics when enabled) answers 404 with an empty body.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from discompress.core.config import Settings, settings
from discompress.core.logging import setup_logging
from discompress.core.metrics import get_content_type, get_metrics, set_app_info
from discompress.core.middleware import (
    CorrelationIdMiddleware,
    MetricsMiddleware,
    OriginGuardMiddleware,
    RequestLoggingMiddleware,
    TracingMiddleware,
    UploadSizeLimitMiddleware,
)
from discompress.core.tracing import setup_tracing, shutdown_tracing
from discompress.modules.compression.ffmpeg import FFmpegTranscoder
from discompress.modules.compression.models import UploadError
from discompress.modules.compression.router import router as compression_router
from discompress.modules.compression.service import CompressionService

EXPOSED_HEADERS = [
    "Content-Disposition",
    "X-Discompress-Attempts",
    "X-Discompress-Within-Target",
]


def create_app(
    app_settings: Optional[Settings] = None,
    transcoder: Optional[FFmpegTranscoder] = None,
) -> FastAPI:
    """Build the application.

    Args:
        app_settings: Settings to use, the environment-loaded ones by default
        transcoder: Probe/encode backend override (tests inject fakes here)

    Returns:
        Configured FastAPI app
    """
    app_settings = app_settings or settings
    service = CompressionService(app_settings, transcoder=transcoder)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service.ensure_tmp_dir()
        yield
        await service.cleanup.flush()
        shutdown_tracing()

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        version=app_settings.VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.compression_service = service

    app.add_middleware(UploadSizeLimitMiddleware, max_bytes=app_settings.max_upload_bytes)
    app.add_middleware(OriginGuardMiddleware, allowed_origins=app_settings.CORS_ORIGINS)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(TracingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(MetricsMiddleware)
    # Outermost, so error responses carry CORS headers too.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=EXPOSED_HEADERS,
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
        if exc.status_code in (404, 405):
            return Response(status_code=404)
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(UploadError)
    async def upload_error_handler(request: Request, exc: UploadError) -> Response:
        return PlainTextResponse(str(exc), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        # The only input is the multipart file field.
        return PlainTextResponse("No file uploaded", status_code=400)

    @app.get("/health", include_in_schema=False)
    async def health_check() -> PlainTextResponse:
        """Liveness probe."""
        return PlainTextResponse("OK")

    if app_settings.METRICS_ENABLED:
        @app.get("/metrics", include_in_schema=False)
        async def metrics() -> Response:
            return Response(content=get_metrics(), media_type=get_content_type())

    app.include_router(compression_router)
    return app


setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=settings.LOG_JSON,
    include_stack_trace=True,
)

if settings.TRACING_ENABLED:
    setup_tracing(
        service_name=settings.PROJECT_NAME,
        service_version=settings.VERSION,
        environment="development" if settings.DEBUG else "production",
        otlp_endpoint=settings.OTLP_ENDPOINT,
        console_export=settings.DEBUG,
    )

set_app_info(
    version=settings.VERSION,
    environment="development" if settings.DEBUG else "production",
)

app = create_app()
