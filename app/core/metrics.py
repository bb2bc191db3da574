"""
Prometheus Metrics Configuration
HTTP and business metrics for the approval engine and AI gateway
"""

import time
from typing import Callable

from fastapi import Request, Response
from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

# Request metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
)

ACTIVE_CONNECTIONS = Gauge("active_connections", "Number of active connections")

# Business metrics
APPROVALS_CREATED = Counter(
    "approvals_created_total",
    "Approval rows created by the router",
    ["source"],
)

APPROVAL_DECISIONS = Counter(
    "approval_decisions_total", "Recorded approval decisions", ["status"]
)

APPROVAL_ESCALATIONS = Counter(
    "approval_escalations_total", "Overdue approvals escalated"
)

DEADLINE_REMINDERS = Counter(
    "approval_deadline_reminders_total", "Deadline reminders sent"
)

AI_REQUESTS = Counter(
    "ai_requests_total", "AI provider requests", ["provider", "operation", "status"]
)

AI_REQUEST_DURATION = Histogram(
    "ai_request_duration_seconds", "AI provider request duration", ["provider"]
)

CIRCUIT_BREAKER_STATE = Gauge(
    "circuit_breaker_state",
    "Current state of circuit breakers (0=closed, 1=open, 2=half_open)",
    ["name"],
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP metrics"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        ACTIVE_CONNECTIONS.inc()

        try:
            response = await call_next(request)

            # Route template keeps label cardinality bounded
            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)
            duration = time.time() - start_time
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=response.status_code,
            ).inc()
            REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(
                duration
            )

            return response

        finally:
            ACTIVE_CONNECTIONS.dec()


def get_metrics() -> bytes:
    """Get current metrics in Prometheus format"""
    return generate_latest()


def record_approvals_created(source: str, count: int):
    if count:
        APPROVALS_CREATED.labels(source=source).inc(count)


def record_approval_decision(status: str):
    APPROVAL_DECISIONS.labels(status=status).inc()


def record_escalation():
    APPROVAL_ESCALATIONS.inc()


def record_deadline_reminder():
    DEADLINE_REMINDERS.inc()


def record_ai_request(provider: str, operation: str, status: str, duration: float):
    AI_REQUESTS.labels(provider=provider, operation=operation, status=status).inc()
    AI_REQUEST_DURATION.labels(provider=provider).observe(duration)


def update_circuit_breaker_state(name: str, state: str):
    """Update circuit breaker state metric"""
    state_value = {"closed": 0, "open": 1, "half_open": 2}.get(state, 0)
    CIRCUIT_BREAKER_STATE.labels(name=name).set(state_value)
