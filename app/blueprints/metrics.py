"""
Prometheus metrics blueprint.

Exposes /metrics with HTTP request metrics and sale counters.
This endpoint should be restricted to internal network or monitoring systems only.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Check if running in multi-process mode (Gunicorn)
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

_metric_registry = registry if not MULTIPROCESS_MODE else None

# HTTP Request Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=_metric_registry
)

# Sales Metrics
sales_committed_total = Counter(
    'pos_sales_committed_total',
    'Sales committed, by initial status',
    ['status'],
    registry=_metric_registry
)

sales_cancelled_total = Counter(
    'pos_sales_cancelled_total',
    'Sales moved to Cancelled',
    registry=_metric_registry
)

checkouts_rejected_total = Counter(
    'pos_checkouts_rejected_total',
    'Checkouts refused before anything was written',
    ['reason'],
    registry=_metric_registry
)


def _observe(response_status: int) -> None:
    started = g.pop('_metrics_started', None)
    if started is None:
        return
    endpoint = request.endpoint or 'unknown'
    http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(
        time.perf_counter() - started
    )
    http_requests_total.labels(method=request.method, endpoint=endpoint, http_status=response_status).inc()


def setup_metrics_instrumentation(app):
    """Time every request and count it by endpoint and status."""

    @app.before_request
    def start_request_timer():
        g._metrics_started = time.perf_counter()
        g._metrics_in_flight = True
        http_requests_in_flight.inc()

    @app.after_request
    def record_request(response):
        try:
            _observe(response.status_code)
        except Exception as e:
            app.logger.warning(f"Failed to record metrics: {e}")
        return response

    @app.teardown_request
    def end_request(exc=None):
        # Runs even when no response was produced
        if g.pop('_metrics_in_flight', False):
            http_requests_in_flight.dec()


@metrics_bp.route('/metrics')
def metrics():
    """
    Prometheus metrics endpoint.

    Not authenticated: restrict it by network/firewall rules in production.
    """
    data = generate_latest(registry)
    return Response(data, mimetype=CONTENT_TYPE_LATEST)
