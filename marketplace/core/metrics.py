from __future__ import annotations

from typing import Any

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

from marketplace.core.config import settings

REGISTRY = CollectorRegistry(auto_describe=True)


class _NoOpMetric:
    def labels(self, *args: Any, **kwargs: Any) -> "_NoOpMetric":
        return self

    def observe(self, *_: Any, **__: Any) -> None:
        return None

    def inc(self, *_: Any, **__: Any) -> None:
        return None


def _metric(factory, *args: Any, **kwargs: Any) -> Any:
    if not settings.METRICS_ENABLED:
        return _NoOpMetric()
    return factory(*args, registry=REGISTRY, **kwargs)


_NS = settings.METRICS_NAMESPACE

REQUEST_LATENCY = _metric(
    Histogram,
    f"{_NS}_http_request_duration_seconds",
    "HTTP request latency in seconds.",
    ["method", "path", "status_code"],
    buckets=settings.METRICS_LATENCY_BUCKETS,
)

REQUEST_COUNT = _metric(
    Counter,
    f"{_NS}_http_requests_total",
    "Total HTTP requests processed.",
    ["method", "path", "status_code"],
)

REQUEST_ERRORS = _metric(
    Counter,
    f"{_NS}_http_errors_total",
    "Total HTTP requests resulting in 4xx/5xx.",
    ["method", "path", "status_code"],
)

LOGIN_ATTEMPTS = _metric(
    Counter,
    f"{_NS}_auth_login_attempts_total",
    "Authentication attempts partitioned by outcome.",
    ["outcome"],
)

CHECKOUTS = _metric(
    Counter,
    f"{_NS}_checkouts_total",
    "Checkout attempts partitioned by outcome.",
    ["outcome"],
)

LINE_TRANSITIONS = _metric(
    Counter,
    f"{_NS}_order_line_transitions_total",
    "Order line status changes applied by sellers.",
    ["status"],
)

CANCELLATIONS = _metric(
    Counter,
    f"{_NS}_order_cancellations_total",
    "Orders cancelled by buyers.",
)


def normalize_path(request) -> str:
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    if path:
        return path
    return request.url.path


def record_request_metrics(request, status_code: int, elapsed: float) -> None:
    labels = (request.method, normalize_path(request), str(status_code))
    REQUEST_COUNT.labels(*labels).inc()
    REQUEST_LATENCY.labels(*labels).observe(elapsed)
    if status_code >= 400:
        REQUEST_ERRORS.labels(*labels).inc()


def record_login_attempt(outcome: str) -> None:
    LOGIN_ATTEMPTS.labels(outcome=outcome).inc()


def record_checkout(outcome: str) -> None:
    CHECKOUTS.labels(outcome=outcome).inc()


def record_line_transition(status: str) -> None:
    LINE_TRANSITIONS.labels(status=status).inc()


def record_cancellation() -> None:
    CANCELLATIONS.inc()


def export_metrics() -> tuple[bytes, str]:
    if not settings.METRICS_ENABLED:
        return b"", "text/plain; charset=utf-8"
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
