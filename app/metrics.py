from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

RequestHandler = Callable[[Request], Awaitable[Response]]

REQUESTS = Counter(
    "api_requests_total", "HTTP requests by route and status", ["method", "path", "status"]
)
LATENCY = Histogram(
    "api_request_duration_seconds", "Request duration seconds", ["method", "path"]
)
LOGINS = Counter("login_attempts_total", "Login attempts", ["result"])
ALERT_CHANGES = Counter(
    "alert_changes_total", "Alerts created, edited or deleted by users", ["action"]
)
PORTFOLIO_TRADES = Counter(
    "portfolio_trades_total", "Buy and sell operations recorded", ["side"]
)

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    """Expose the latest Prometheus sample set."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def _path_label(request: Request) -> str:
    # Routing fills in scope["route"], so this is only useful after call_next.
    route = request.scope.get("route")
    return getattr(route, "path_format", None) or getattr(route, "path", None) or "unmatched"


async def metrics_middleware(request: Request, call_next: RequestHandler) -> Response:
    """Count and time each request under its route template, e.g. `/alerts/{alert_id}`."""
    started = time.perf_counter()
    status = "500"
    try:
        response = await call_next(request)
        status = str(response.status_code)
        return response
    finally:
        path = _path_label(request)
        LATENCY.labels(method=request.method, path=path).observe(time.perf_counter() - started)
        REQUESTS.labels(method=request.method, path=path, status=status).inc()
