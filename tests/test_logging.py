"""Tests for the structured logging system (fulfillment_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from fulfillment_kernel.exceptions import InsufficientStockError
from fulfillment_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite config."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "fulfillment_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("shipped", extra={"movement_count": 2, "status": "shipped"})

        record = _parse_log(stream)
        assert record["movement_count"] == 2
        assert record["status"] == "shipped"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", document_id="SO-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["document_id"] == "SO-1"

    def test_fulfillment_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        batch_id = uuid4()
        try:
            raise InsufficientStockError(required=8, available=5, batch_id=batch_id)
        except InsufficientStockError:
            get_logger("test").error("allocation_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_required"] == 8
        assert record["exc_available"] == 5
        assert record["exc_batch_id"] == str(batch_id)
        assert "traceback" in record

    def test_non_json_types_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("typed", extra={"batch_id": uid, "amount": Decimal("10.50")})

        record = _parse_log(stream)
        assert record["batch_id"] == str(uid)
        assert record["amount"] == "10.50"

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second")
        logger.debug("third")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_clear(self):
        LogContext.set(correlation_id="x", actor_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(document_id="outer")
        with LogContext.bind(document_id="inner"):
            assert LogContext.get_all()["document_id"] == "inner"
        assert LogContext.get_all()["document_id"] == "outer"

    def test_bind_stringifies_and_skips_none(self):
        uid = uuid4()
        with LogContext.bind(document_id=uid, actor_id=None):
            ctx = LogContext.get_all()
        assert ctx == {"document_id": str(uid)}

    def test_bind_unknown_field(self):
        with pytest.raises(ValueError):
            LogContext.bind(order_id="nope")


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("fulfillment_kernel").handlers) == 1

    def test_string_level(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level="debug")
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "fulfillment_kernel.deep.nested.module"

    def test_service_logs_carry_document_context(self, captured_logs, sales, product,
                                                 fefo_batches, make_order):
        configure_logging(level=logging.DEBUG)
        order = make_order((product.id, 2))
        sales.confirm(order.id)

        committed = [
            r for r in captured_logs() if r["message"] == "sales_order_confirm_committed"
        ]
        assert len(committed) == 1
        assert committed[0]["document_id"] == str(order.id)
        assert committed[0]["allocation_count"] == 1
