"""Tests for the structured logging system (payroll_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from payroll_engines.tracer import canonicalize, compute_input_fingerprint, traced_engine
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
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
    """Parse all JSON log lines from a stream."""
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
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "payroll_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("classified", extra={"day_count": 5, "schedule": "standard"})

        record = _parse_log(stream)
        assert record["day_count"] == 5
        assert record["schedule"] == "standard"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(batch_id="batch-7", worker_id="W-001")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["batch_id"] == "batch-7"
        assert record["worker_id"] == "W-001"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_payroll_exception_code_extracted(self):
        """Payroll engine exceptions carry a .code attribute."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from payroll_kernel.exceptions import RateAmbiguityError

        try:
            raise RateAmbiguityError("46/wireman/A", 2, "overlap")
        except RateAmbiguityError:
            logger.error("rate_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "RATE_AMBIGUITY"
        assert record["exc_type"] == "RateAmbiguityError"
        assert record["exc_lookup_key"] == "46/wireman/A"
        assert record["exc_match_count"] == 2

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("bare_message")

        record = _parse_log(stream)
        assert "batch_id" not in record
        assert "worker_id" not in record

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        uid = uuid4()
        logger.info("with_uuid", extra={"calculation": uid, "amount": Decimal("12.50")})

        record = _parse_log(stream)
        assert record["calculation"] == str(uid)
        assert record["amount"] == "12.50"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert "ts" in record
            assert "level" in record
            assert "logger" in record
            assert "message" in record


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(batch_id="x", worker_id="y")
        ctx = LogContext.get_all()
        assert ctx == {"batch_id": "x", "worker_id": "y"}

    def test_clear(self):
        LogContext.set(batch_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(worker_id="outer")
        with LogContext.bind(worker_id="inner"):
            assert LogContext.get_all()["worker_id"] == "inner"
        assert LogContext.get_all()["worker_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        assert "period_id" not in LogContext.get_all()
        with LogContext.bind(period_id="2023-W01"):
            assert LogContext.get_all()["period_id"] == "2023-W01"
        assert "period_id" not in LogContext.get_all()

    def test_bind_rejects_unknown_fields(self):
        with pytest.raises(ValueError, match="Unknown log context fields"):
            LogContext.bind(actor_id="a")

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            batch_id="b",
            worker_id="w",
            period_id="p",
            calculation_id="n",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["correlation_id"] == "c"
        assert ctx["calculation_id"] == "n"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        root = logging.getLogger("payroll_kernel")
        assert len(root.handlers) == 1

    def test_get_logger_returns_child(self):
        logger = get_logger("engines.hours")
        assert logger.name == "payroll_kernel.engines.hours"

    def test_logger_hierarchy(self):
        """Child loggers inherit the payroll_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        child = get_logger("deep.nested.module")
        child.debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "payroll_kernel.deep.nested.module"


# ---------------------------------------------------------------------------
# Engine tracer tests
# ---------------------------------------------------------------------------


class TestTracedEngine:
    """PAYROLL_ENGINE_TRACE emitted around pure engine calls."""

    def test_trace_record_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        @traced_engine("sample", "2.1", fingerprint_fields=("amount",))
        def _engine(*, amount):
            return amount * 2

        assert _engine(amount=Decimal("4")) == Decimal("8")

        record = _parse_log(stream)
        assert record["message"] == "PAYROLL_ENGINE_TRACE"
        assert record["engine_name"] == "sample"
        assert record["engine_version"] == "2.1"
        assert len(record["input_fingerprint"]) == 16
        assert _engine.engine_name == "sample"

    def test_fingerprint_ignores_decimal_scale(self):
        first = compute_input_fingerprint(("amount",), {"amount": Decimal("40")})
        second = compute_input_fingerprint(("amount",), {"amount": Decimal("40.00")})

        assert first == second

    def test_missing_field_recorded_as_null(self):
        assert canonicalize(None) == "null"
        assert compute_input_fingerprint(("absent",), {}) == compute_input_fingerprint(
            ("absent",), {"absent": None},
        )

    def test_exception_propagates_without_trace(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        @traced_engine("failing", "1.0")
        def _engine():
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            _engine()

        assert stream.getvalue() == ""
