"""Tests for logging context managers."""

import logging

import pytest

from app_logging import LogContext, log_context, log_entity_context
from app_logging.context import ContextFilter


@pytest.fixture
def logger():
    logger = logging.getLogger("test.lifecycle_context")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def captured_records(logger):
    """Capture log records for inspection."""
    records: list[logging.LogRecord] = []

    class RecordCapture(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record)

    handler = RecordCapture()
    handler.addFilter(ContextFilter())
    logger.addHandler(handler)
    yield records
    logger.removeHandler(handler)
    LogContext.clear()


@pytest.mark.unit
class TestLogContext:
    def test_adds_extra_fields(self, logger, captured_records):
        with log_context(order_id="o1", actor="customer:cust1"):
            logger.info("Test message")

        record = captured_records[0]
        assert record.order_id == "o1"
        assert record.actor == "customer:cust1"

    def test_clears_on_exit(self, logger, captured_records):
        with log_context(trip_id="t1"):
            logger.info("inside")
        logger.info("outside")

        assert captured_records[0].trip_id == "t1"
        assert not hasattr(captured_records[1], "trip_id")

    def test_nested_context_restores_outer_value(self, logger, captured_records):
        with log_context(actor="rider:r1"):
            with log_context(actor="system:progression"):
                logger.info("inner")
            logger.info("outer")

        assert captured_records[0].actor == "system:progression"
        assert captured_records[1].actor == "rider:r1"


@pytest.mark.unit
class TestLogEntityContext:
    def test_sets_kind_and_id_field(self, logger, captured_records):
        with log_entity_context("order", "o42", actor="courier:c1"):
            logger.info("handoff")

        record = captured_records[0]
        assert record.entity_kind == "order"
        assert record.order_id == "o42"
        assert record.actor == "courier:c1"

    def test_trip_context_uses_trip_id(self, logger, captured_records):
        with log_entity_context("trip", "t9"):
            logger.info("assigned")

        assert captured_records[0].trip_id == "t9"
        assert not hasattr(captured_records[0], "order_id")
