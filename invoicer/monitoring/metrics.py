"""Prometheus metrics for project mutations and blob storage"""

import logging
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)


# Operation metrics
project_operations_total = Counter(
    'project_operations_total',
    'Total number of project operations',
    ['operation', 'status']
)

project_operation_duration_seconds = Histogram(
    'project_operation_duration_seconds',
    'Time spent processing project operations',
    ['operation'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)

# Saga metrics
saga_runs_total = Counter(
    'saga_runs_total',
    'Total number of saga runs by outcome',
    ['saga', 'outcome']
)

saga_compensation_failures_total = Counter(
    'saga_compensation_failures_total',
    'Compensating actions that failed and left orphaned state',
    ['saga', 'step']
)

# Blob storage metrics
blob_uploads_total = Counter(
    'blob_uploads_total',
    'Total number of blob uploads',
    ['status']
)

blob_upload_bytes = Histogram(
    'blob_upload_bytes',
    'Size of uploaded blobs',
    buckets=[10_000, 100_000, 500_000, 1_000_000, 5_000_000, 10_000_000, 50_000_000]
)

blob_cleanup_warnings_total = Counter(
    'blob_cleanup_warnings_total',
    'Best-effort blob cleanups that failed after a successful operation',
    ['operation']
)


class MetricsCollector:
    """Thin recording facade over the module-level metrics"""

    def record_operation(self, operation: str, status: str, duration_seconds: float):
        """Record a coordinator operation"""
        project_operations_total.labels(operation=operation, status=status).inc()
        project_operation_duration_seconds.labels(operation=operation).observe(duration_seconds)

    def record_saga(self, saga: str, outcome: str):
        """Record a saga outcome (completed / compensated)"""
        saga_runs_total.labels(saga=saga, outcome=outcome).inc()

    def record_compensation_failure(self, saga: str, step: str):
        """Record a compensation that could not be applied"""
        saga_compensation_failures_total.labels(saga=saga, step=step).inc()

    def record_upload(self, status: str, size_bytes: int = 0):
        """Record a blob upload"""
        blob_uploads_total.labels(status=status).inc()
        if status == "success":
            blob_upload_bytes.observe(size_bytes)

    def record_cleanup_warning(self, operation: str):
        """Record a failed post-success cleanup"""
        blob_cleanup_warnings_total.labels(operation=operation).inc()


# Global metrics collector instance
metrics_collector = MetricsCollector()
