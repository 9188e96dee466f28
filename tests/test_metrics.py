import pytest

from metrics import (
    REGISTRY,
    generate_metrics_output,
    lifecycle_gateway_latency_seconds,
    record_payment,
    record_resale_event,
    record_transition,
)


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.unit
class TestMetrics:
    def test_record_transition(self):
        labels = {"kind": "order", "status": "preparing", "outcome": "preparation-started"}
        before = sample("lifecycle_transitions_total", **labels)

        record_transition("order", "preparing", "preparation-started")

        assert sample("lifecycle_transitions_total", **labels) == before + 1

    def test_record_payment(self):
        before = sample("lifecycle_payments_total", kind="resale", outcome="applied")
        record_payment("resale", "applied")
        assert sample("lifecycle_payments_total", kind="resale", outcome="applied") == before + 1

    def test_record_resale_event(self):
        before = sample("lifecycle_resale_events_total", event="claimed")
        record_resale_event("claimed")
        assert sample("lifecycle_resale_events_total", event="claimed") == before + 1

    def test_exposition_output(self):
        lifecycle_gateway_latency_seconds.observe(0.2)

        output = generate_metrics_output().decode()

        assert "lifecycle_transitions_total" in output
        assert "lifecycle_gateway_latency_seconds_bucket" in output
        assert "lifecycle_progression_chains_active" in output
        # Separate registry: no default process or platform collectors.
        assert "python_info" not in output
