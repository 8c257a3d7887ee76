"""
Prometheus metrics middleware for the lead intake API.

Exposes /metrics endpoint with request counters, latency histograms,
and scoring / routing business metrics.
"""

import logging
import time

from fastapi import Request, Response
from prometheus_client import (
    Counter, Histogram, Gauge,
    generate_latest, CONTENT_TYPE_LATEST,
)
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Request metrics
REQUEST_COUNT = Counter(
    "lead_intake_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "lead_intake_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
ACTIVE_REQUESTS = Gauge(
    "lead_intake_http_active_requests",
    "Currently active HTTP requests",
)

# Business metrics
LEAD_SCORE_HIST = Histogram(
    "lead_intake_lead_score",
    "Aggregate lead score distribution",
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)
QUALIFICATION_COUNT = Counter(
    "lead_intake_qualification_total",
    "Lead qualifications",
    ["qualification"],
)
ROUTING_OUTCOME_COUNT = Counter(
    "lead_intake_routing_outcome_total",
    "Routing decisions by outcome",
    ["team", "outcome"],
)
CONTENTION_RETRIES = Counter(
    "lead_intake_reservation_retries_total",
    "Routing decisions that needed more than one reservation attempt",
)
ROSTER_FAILURES = Counter(
    "lead_intake_roster_unavailable_total",
    "Routing calls aborted because the roster store was unavailable",
)


def record_lead_score(score: float, qualification: str):
    """Record a scored lead."""
    LEAD_SCORE_HIST.observe(score)
    QUALIFICATION_COUNT.labels(qualification=qualification).inc()


def record_routing(team: str, outcome: str, attempts: int):
    """Record a routing decision."""
    ROUTING_OUTCOME_COUNT.labels(team=team, outcome=outcome).inc()
    if attempts > 1:
        CONTENTION_RETRIES.inc()


def record_roster_failure():
    """Record a roster store failure."""
    ROSTER_FAILURES.inc()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        ACTIVE_REQUESTS.inc()
        start = time.time()

        try:
            response = await call_next(request)
        except Exception:
            ACTIVE_REQUESTS.dec()
            raise

        duration = time.time() - start
        endpoint = request.url.path

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)
        ACTIVE_REQUESTS.dec()

        return response


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
