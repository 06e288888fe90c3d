# app/obs/metrics.py
import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

http_requests_total = Counter("http_requests_total", "HTTP requests", ["method", "path", "code"])
http_request_duration = Histogram(
    "http_request_duration_seconds", "HTTP request duration seconds", ["method", "path"]
)

# Allocation engine: result = committed | partial | conflict
allocation_commit_total = Counter(
    "allocation_commit_total", "Allocation commit outcomes", ["result"]
)
allocation_retry_total = Counter(
    "allocation_retry_total", "Allocation recompute-and-retry after a concurrent change"
)

# Replenishment
reorder_alerts_created_total = Counter("reorder_alerts_created_total", "Reorder alerts created")
reorder_po_created_total = Counter(
    "reorder_po_created_total", "Draft purchase orders raised from reorder alerts"
)
purchasing_failures_total = Counter(
    "purchasing_failures_total", "Purchasing collaborator failures", ["kind"]
)
reorder_sweep_duration = Histogram(
    "reorder_sweep_duration_seconds", "Reorder sweep wall time in seconds"
)

batches_expired_total = Counter("batches_expired_total", "Batches flipped to EXPIRED")


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        http_requests_total.labels(
            request.method, request.url.path, str(response.status_code)
        ).inc()
        http_request_duration.labels(request.method, request.url.path).observe(elapsed)
        return response
