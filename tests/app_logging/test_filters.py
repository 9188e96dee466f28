"""Tests for logging filters and formatters."""

import json
import logging

import pytest

from app_logging.filters import PIIFilter
from app_logging.formatters import JSONFormatter
from core.correlation import CorrelationFilter, with_correlation


def make_record(msg: str) -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )


@pytest.mark.unit
class TestPIIFilter:
    @pytest.fixture
    def pii_filter(self):
        return PIIFilter()

    def test_masks_email(self, pii_filter):
        record = make_record("receipt sent to priya@example.com")
        pii_filter.filter(record)

        assert "[EMAIL]" in record.msg
        assert "priya@example.com" not in record.msg

    @pytest.mark.parametrize("phone", ["9876543210", "+91 9876543210", "98765-43210"])
    def test_masks_phone(self, pii_filter, phone):
        record = make_record(f"driver phone {phone}")
        pii_filter.filter(record)

        assert "[PHONE]" in record.msg
        assert phone not in record.msg

    def test_keeps_amounts(self, pii_filter):
        record = make_record("Order o1 placed, payable 564.0")
        pii_filter.filter(record)

        assert record.msg == "Order o1 placed, payable 564.0"

    def test_always_returns_true(self, pii_filter):
        assert pii_filter.filter(make_record("anything")) is True


@pytest.mark.unit
class TestCorrelationFilter:
    def test_defaults_to_dash(self):
        record = make_record("msg")
        CorrelationFilter().filter(record)

        assert record.correlation_id == "-"

    def test_uses_current_correlation(self):
        record = make_record("msg")
        with with_correlation("req-123"):
            CorrelationFilter().filter(record)

        assert record.correlation_id == "req-123"


@pytest.mark.unit
class TestJSONFormatter:
    def test_includes_context_fields(self):
        record = make_record("listed")
        record.order_id = "o1"
        record.entity_kind = "order"

        data = json.loads(JSONFormatter(environment="test").format(record))

        assert data["message"] == "listed"
        assert data["order_id"] == "o1"
        assert data["entity_kind"] == "order"
        assert data["env"] == "test"
        assert data["level"] == "INFO"
