"""In-memory request metrics, exposed in Prometheus text format at /metrics."""
from __future__ import annotations

import time
from collections import defaultdict
from threading import Lock

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

PREFIX = "roomwatch"
METRICS_PATH = "/metrics"


def _labels(**labels) -> str:
    return "{" + ",".join(f'{k}="{v}"' for k, v in labels.items()) + "}"


def _family(name: str, kind: str, help_text: str, samples: list[str]) -> list[str]:
    return [f"# HELP {PREFIX}_{name} {help_text}", f"# TYPE {PREFIX}_{name} {kind}", *samples, ""]


class _Metrics:
    """Request counters keyed by (method, route, status); guarded by one lock."""

    def __init__(self):
        self._lock = Lock()
        self.request_count: dict[tuple[str, str, int], int] = defaultdict(int)
        self.duration_sum: dict[tuple[str, str], float] = defaultdict(float)
        self.duration_count: dict[tuple[str, str], int] = defaultdict(int)
        self.active_requests = 0
        self.started_at = time.time()

    def record(self, method: str, path: str, status: int, duration: float):
        with self._lock:
            self.request_count[(method, path, status)] += 1
            self.duration_sum[(method, path)] += duration
            self.duration_count[(method, path)] += 1

    def track_active(self, delta: int):
        with self._lock:
            self.active_requests += delta

    def reset(self):
        with self._lock:
            self.request_count.clear()
            self.duration_sum.clear()
            self.duration_count.clear()
            self.active_requests = 0

    def render(self) -> str:
        with self._lock:
            requests = [
                f"{PREFIX}_http_requests_total{_labels(method=m, path=p, status=s)} {n}"
                for (m, p, s), n in sorted(self.request_count.items())
            ]
            durations = []
            for (m, p), total in sorted(self.duration_sum.items()):
                labels = _labels(method=m, path=p)
                durations.append(f"{PREFIX}_http_request_duration_seconds_sum{labels} {total:.6f}")
                durations.append(f"{PREFIX}_http_request_duration_seconds_count{labels} {self.duration_count[(m, p)]}")
            active = self.active_requests

        lines = [
            *_family("http_requests_total", "counter", "Total HTTP requests", requests),
            *_family("http_request_duration_seconds", "summary", "HTTP request duration", durations),
            *_family("active_requests", "gauge", "Current in-flight requests", [f"{PREFIX}_active_requests {active}"]),
            *_family("uptime_seconds", "gauge", "Seconds since process start",
                     [f"{PREFIX}_uptime_seconds {time.time() - self.started_at:.1f}"]),
        ]
        return "\n".join(lines)


metrics = _Metrics()


def _normalize_path(path: str) -> str:
    """Collapse id-like segments of unmatched paths: /rooms/123 -> /rooms/:id"""
    segments = []
    for segment in path.rstrip("/").split("/"):
        id_like = segment.isdigit() or (len(segment) > 20 and segment.replace("-", "").isalnum())
        segments.append(":id" if id_like else segment)
    return "/".join(segments) or "/"


def _route_path(request: Request) -> str:
    """Route template (/api/users/{user_id}) when matched, else the normalized path."""
    route = request.scope.get("route")
    template = getattr(route, "path_format", None) or getattr(route, "path", None)
    if not template:
        return _normalize_path(request.url.path)
    path = request.url.path.rstrip("/") or "/"
    missing = path.count("/") - template.count("/")
    if missing > 0:
        # Some FastAPI releases keep include_router prefixes out of the template
        template = "/".join(path.split("/")[: missing + 1]) + template
    return template


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == METRICS_PATH:
            return PlainTextResponse(metrics.render(), media_type="text/plain; version=0.0.4")

        metrics.track_active(1)
        start = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            metrics.record(request.method, _route_path(request), status, time.perf_counter() - start)
            metrics.track_active(-1)
