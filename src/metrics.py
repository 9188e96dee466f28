"""Prometheus metrics for the lifecycle service."""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

# Use a separate registry to avoid default Python metrics
REGISTRY = CollectorRegistry()

lifecycle_transitions_total = Counter(
    "lifecycle_transitions_total",
    "Requested status transitions by entity kind, target status and outcome",
    ["kind", "status", "outcome"],
    registry=REGISTRY,
)

lifecycle_payments_total = Counter(
    "lifecycle_payments_total",
    "Payment reconciliation attempts by entity kind and outcome",
    ["kind", "outcome"],
    registry=REGISTRY,
)

lifecycle_resale_events_total = Counter(
    "lifecycle_resale_events_total",
    "Resale marketplace events (listed, claimed, released, expired, sold)",
    ["event"],
    registry=REGISTRY,
)

lifecycle_progression_chains_active = Gauge(
    "lifecycle_progression_chains_active",
    "Progression chains currently scheduled on this instance",
    registry=REGISTRY,
)

GATEWAY_LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf"))

lifecycle_gateway_latency_seconds = Histogram(
    "lifecycle_gateway_latency_seconds",
    "Payment gateway order creation latency in seconds",
    buckets=GATEWAY_LATENCY_BUCKETS,
    registry=REGISTRY,
)


def record_transition(kind: str, status: str, outcome: str) -> None:
    lifecycle_transitions_total.labels(kind=kind, status=status, outcome=outcome).inc()


def record_payment(kind: str, outcome: str) -> None:
    lifecycle_payments_total.labels(kind=kind, outcome=outcome).inc()


def record_resale_event(event: str) -> None:
    lifecycle_resale_events_total.labels(event=event).inc()


def generate_metrics_output() -> bytes:
    """Render all metrics in Prometheus text exposition format."""
    return generate_latest(REGISTRY)
