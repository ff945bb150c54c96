"""
Prometheus Metrics
==================

Export pipeline metrics on a dedicated registry, served at ``/metrics``.
"""

from prometheus_client import CollectorRegistry, Counter, Histogram

metrics_registry = CollectorRegistry()

export_jobs_total = Counter(
    "export_jobs_total",
    "Export jobs by terminal outcome",
    ["outcome"],
    registry=metrics_registry,
)

export_entries_total = Counter(
    "export_entries_total",
    "Time entries written to export artifacts",
    registry=metrics_registry,
)

export_artifact_bytes_total = Counter(
    "export_artifact_bytes_total",
    "Bytes written to export artifacts",
    registry=metrics_registry,
)

export_job_duration_seconds = Histogram(
    "export_job_duration_seconds",
    "Wall-clock duration of export jobs",
    ["outcome"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
    registry=metrics_registry,
)

export_gc_deleted_files_total = Counter(
    "export_gc_deleted_files_total",
    "Expired export files deleted by the garbage collector",
    registry=metrics_registry,
)

export_gc_failures_total = Counter(
    "export_gc_failures_total",
    "Files the garbage collector could not read or delete",
    registry=metrics_registry,
)

# HTTP
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
    registry=metrics_registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
    registry=metrics_registry,
)
