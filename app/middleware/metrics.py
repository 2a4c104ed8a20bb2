import re
import time

from prometheus_client import Counter, Gauge, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently being served",
    ["method"],
)

# Scrapes and probes are not recorded
_UNTRACKED_PREFIXES = ("/metrics", "/health")

# Normalise ids in the path to keep label cardinality bounded
_UUID = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}")
_ID_NAMES = {
    "restaurants": "{restaurant_id}",
    "orders": "{order_id}",
    "service-requests": "{service_request_id}",
    "categories": "{category_id}",
}


def normalise_path(path: str) -> str:
    """``/restaurants/<uuid>/orders/<uuid>/advance`` -> ``/restaurants/{restaurant_id}/orders/{order_id}/advance``."""
    segments = path.split("/")
    for i, segment in enumerate(segments):
        if i > 0 and _UUID.fullmatch(segment):
            segments[i] = _ID_NAMES.get(segments[i - 1], "{id}")
    return "/".join(segments)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path.startswith(_UNTRACKED_PREFIXES):
            return await call_next(request)

        path = normalise_path(request.url.path)
        in_progress = REQUESTS_IN_PROGRESS.labels(method=request.method)
        in_progress.inc()
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            in_progress.dec()
        elapsed = time.perf_counter() - start

        REQUEST_COUNT.labels(
            method=request.method,
            path=path,
            status=str(response.status_code),
        ).inc()
        REQUEST_LATENCY.labels(method=request.method, path=path).observe(elapsed)

        return response
