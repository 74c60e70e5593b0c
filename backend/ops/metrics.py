"""
Prometheus metrics endpoint.

Exposes application metrics in Prometheus format for scraping.

Metrics exposed:
- b2b_integration_messages: Integration messages by status
- b2b_dead_letters: Unprocessed dead letters by connector
- b2b_connector_circuit_state: Circuit state by connector (0=closed, 1=half-open, 2=open)
- b2b_orders: Orders by status and tenant
- b2b_request_duration_seconds: HTTP request duration histogram
- b2b_active_requests: In-flight requests
"""
import logging
import re
import time

from django.db import DatabaseError, models
from django.http import HttpResponse
from django.views import View
from prometheus_client import CONTENT_TYPE_LATEST, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

_metrics_initialized = False

_integration_messages = None
_dead_letters = None
_circuit_state = None
_orders = None
_request_duration = None
_active_requests = None

CIRCUIT_STATE_VALUES = {"CLOSED": 0, "HALF_OPEN": 1, "OPEN": 2}


def _init_prometheus():
    """Register metrics once per process."""
    global _metrics_initialized
    global _integration_messages, _dead_letters, _circuit_state, _orders
    global _request_duration, _active_requests

    if _metrics_initialized:
        return

    _integration_messages = Gauge(
        "b2b_integration_messages",
        "Integration messages by status",
        ["status"],
    )
    _dead_letters = Gauge(
        "b2b_dead_letters",
        "Unprocessed dead letters by connector",
        ["connector"],
    )
    _circuit_state = Gauge(
        "b2b_connector_circuit_state",
        "Connector circuit breaker state (0=closed, 1=half-open, 2=open)",
        ["connector"],
    )
    _orders = Gauge(
        "b2b_orders",
        "Orders by status and tenant",
        ["status", "tenant_slug"],
    )
    _request_duration = Histogram(
        "b2b_request_duration_seconds",
        "HTTP request duration in seconds",
        ["method", "endpoint", "status"],
        buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    )
    _active_requests = Gauge(
        "b2b_active_requests",
        "Number of requests currently being processed",
    )

    _metrics_initialized = True
    logger.info("Prometheus metrics initialized")


def collect_metrics():
    """Refresh gauge values from the database."""
    _init_prometheus()

    from integrations.models import Connector, DeadLetter, IntegrationMessage
    from sales.models import Order

    try:
        for row in IntegrationMessage.objects.values("status").annotate(count=models.Count("id")):
            _integration_messages.labels(status=row["status"]).set(row["count"])

        dead_letters = (
            DeadLetter.objects
            .filter(reprocessed_at__isnull=True)
            .values("connector")
            .annotate(count=models.Count("id"))
        )
        for row in dead_letters:
            _dead_letters.labels(connector=row["connector"] or "unknown").set(row["count"])

        for code, state in Connector.objects.values_list("code", "circuit_state"):
            _circuit_state.labels(connector=code).set(CIRCUIT_STATE_VALUES.get(state, 0))

        orders = Order.objects.values("status", "tenant__slug").annotate(count=models.Count("id"))
        for row in orders:
            _orders.labels(
                status=row["status"],
                tenant_slug=row["tenant__slug"] or "unknown",
            ).set(row["count"])
    except DatabaseError as e:
        logger.error("Error collecting metrics: %s", e)


class MetricsView(View):
    """
    Prometheus metrics endpoint.

    Exposes metrics in Prometheus format at /_metrics.
    Should be protected in production (internal network only).
    """

    def get(self, request):
        collect_metrics()
        return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)


def _normalize_endpoint(path: str) -> str:
    endpoint = re.sub(r"/[0-9a-f-]{36}/", "/{uuid}/", path)
    endpoint = re.sub(r"/\d+/", "/{id}/", endpoint)
    return endpoint[:50]


def track_request_metrics(get_response):
    """
    Middleware to track request duration metrics.

    Add to MIDDLEWARE after SecurityMiddleware:
        "ops.metrics.track_request_metrics",
    """
    _init_prometheus()

    def middleware(request):
        start = time.time()
        _active_requests.inc()
        status_code = 500

        try:
            response = get_response(request)
            status_code = response.status_code
            return response
        finally:
            _active_requests.dec()
            _request_duration.labels(
                method=request.method,
                endpoint=_normalize_endpoint(request.path),
                status=f"{status_code // 100}xx",
            ).observe(time.time() - start)

    return middleware
