import logging
import statistics
import time
from collections import deque
from typing import Deque, Dict, Optional

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from pgstay.metrics.metrics import MetricsCollector

logger = logging.getLogger(__name__)


class RouteLatencies:
    """Rolling window of recent request durations (ms) per route template."""

    def __init__(self, history_size: int = 100):
        self.history_size = history_size
        self._windows: Dict[str, Deque[float]] = {}

    def record(self, route: str, elapsed_ms: float) -> None:
        window = self._windows.setdefault(route, deque(maxlen=self.history_size))
        window.append(elapsed_ms)

    def summary(self) -> Dict[str, Dict[str, Optional[float]]]:
        report = {}
        for route, window in self._windows.items():
            samples = list(window)
            report[route] = {
                "count": len(samples),
                "avg_ms": round(statistics.mean(samples), 2),
                "min_ms": round(min(samples), 2),
                "max_ms": round(max(samples), 2),
                # quantiles are noise below 20 samples
                "p95_ms": round(statistics.quantiles(samples, n=20)[18], 2) if len(samples) >= 20 else None,
            }
        return report


latencies = RouteLatencies()


def register_latency_route(app: FastAPI, store: RouteLatencies = latencies):
    """Expose the rolling windows at /__latency_stats__."""

    @app.get("/__latency_stats__", include_in_schema=False)
    async def latency_stats():
        return JSONResponse(store.summary())


class LatencyMiddleware(BaseHTTPMiddleware):
    """
    Times every request by its route template ("/properties/{property_id}",
    not the concrete path) so windows and histogram labels stay bounded.
    """

    def __init__(self, app: FastAPI, metrics: MetricsCollector, store: RouteLatencies = latencies):
        super().__init__(app)
        self.metrics = metrics
        self.store = store

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        route = getattr(request.scope.get("route"), "path", None) or "unmatched"
        self.store.record(route, elapsed * 1000)
        self.metrics.observe_request(request.method, route, response.status_code, elapsed)
        logger.debug(f"{request.method} {route} took {elapsed * 1000:.2f} ms")

        return response
