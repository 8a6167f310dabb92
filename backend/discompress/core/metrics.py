"""Prometheus metrics for the compression service.

Tracks HTTP traffic, admission queue depth and per-job encode outcomes.
The exposition endpoint is only mounted when METRICS_ENABLED is set.
"""

import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
)

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()

# Check if running in multiprocess mode (e.g., with gunicorn)
if "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "discompress_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Admission Queue Metrics
# ============================================
ADMISSION_QUEUE_JOBS = Gauge(
    "admission_queue_jobs",
    "Jobs waiting for or holding an encode slot",
    ["queue_name", "status"],
    registry=REGISTRY,
)

ADMISSION_QUEUE_CAPACITY = Gauge(
    "admission_queue_capacity",
    "Maximum number of concurrently running encode jobs",
    ["queue_name"],
    registry=REGISTRY,
)


# ============================================
# Compression Job Metrics
# ============================================
COMPRESSION_JOBS_TOTAL = Counter(
    "compression_jobs_total",
    "Compression jobs by outcome",
    ["status"],
    registry=REGISTRY,
)

COMPRESSION_JOB_DURATION_SECONDS = Histogram(
    "compression_job_duration_seconds",
    "Time spent probing and encoding a job (excluding queue wait)",
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1200.0],
    registry=REGISTRY,
)

ENCODE_ATTEMPTS_TOTAL = Counter(
    "encode_attempts_total",
    "Encoder invocations by outcome",
    ["outcome"],
    registry=REGISTRY,
)

COMPRESSION_OUTPUT_BYTES = Histogram(
    "compression_output_bytes",
    "Size of delivered artifacts in bytes",
    buckets=[1 << 20, 2 << 20, 4 << 20, 8 << 20, 10 << 20, 16 << 20, 25 << 20, 50 << 20],
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Set application info metrics.

    Args:
        version: Application version
        environment: Deployment environment
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
