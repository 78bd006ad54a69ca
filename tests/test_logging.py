"""
Tests for ledger_kernel.logging_config.

- JSON shape of a record and its ``extra`` fields
- LogContext fields bound by the document services
- Exception payloads, including LedgerError context
- configure_logging() / reset_logging()
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import OverpaymentError
from ledger_kernel.logging_config import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)
from ledger_modules.documents.models import DocumentStatus


@pytest.fixture
def stream():
    """Route ledger logs into a buffer; restore the suite's setup afterwards."""
    buffer = StringIO()
    reset_logging()
    configure_logging(level=logging.DEBUG, handler=logging.StreamHandler(buffer))
    yield buffer
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _records(buffer: StringIO) -> list[dict]:
    return [json.loads(line) for line in buffer.getvalue().splitlines() if line]


class TestRecordShape:

    def test_base_fields(self, stream):
        get_logger("services.journal_engine").info("journal_entry_posted")

        (record,) = _records(stream)
        assert record["message"] == "journal_entry_posted"
        assert record["level"] == "INFO"
        assert record["logger"] == "ledger_kernel.services.journal_engine"
        assert record["ts"].endswith("+00:00")

    def test_extra_values_serialized(self, stream):
        entry_id = uuid4()
        get_logger("test").info(
            "payment_applied",
            extra={
                "entry_id": entry_id,
                "amount": Decimal("12.50"),
                "payment_date": date(2024, 3, 1),
                "status": DocumentStatus.PARTIAL,
                "allocation_count": 2,
                "is_balanced": True,
            },
        )

        (record,) = _records(stream)
        assert record["entry_id"] == str(entry_id)
        assert record["amount"] == "12.50"
        assert record["payment_date"] == "2024-03-01"
        assert record["status"] == "partial"
        assert record["allocation_count"] == 2
        assert record["is_balanced"] is True

    def test_level_filter(self, stream):
        reset_logging()
        configure_logging(level=logging.INFO, handler=logging.StreamHandler(stream))
        logger = get_logger("test")
        logger.debug("sequence_allocated")
        logger.info("document_issued")

        assert [r["message"] for r in _records(stream)] == ["document_issued"]


class TestLogContext:

    def test_bound_fields_on_records(self, stream):
        with LogContext.bind(organization_id="org-1", actor_id="actor-1"):
            with LogContext.bind(document_id="doc-1"):
                get_logger("test").info("document_voided")
            get_logger("test").info("ap_void_bill_committed")
        get_logger("test").info("outside")

        inner, outer, outside = _records(stream)
        assert inner["document_id"] == "doc-1"
        assert inner["organization_id"] == "org-1"
        assert "document_id" not in outer
        assert outer["actor_id"] == "actor-1"
        assert "organization_id" not in outside

    def test_inner_bind_wins_and_restores(self):
        with LogContext.bind(document_id="a"):
            with LogContext.bind(document_id="b"):
                assert LogContext.current()["document_id"] == "b"
            assert LogContext.current()["document_id"] == "a"
        assert LogContext.current() == {}

    def test_unknown_and_none_fields_dropped(self):
        with LogContext.bind(organization_id=uuid4(), correlation_id="x", actor_id=None):
            fields = LogContext.current()
        assert set(fields) == {"organization_id"}
        assert isinstance(fields["organization_id"], str)

    def test_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(document_id="doc-1"):
                raise RuntimeError("boom")
        assert LogContext.current() == {}

    def test_bound_value_wins_over_extra(self, stream):
        with LogContext.bind(document_id="doc-1"):
            get_logger("test").info("issued", extra={"document_id": "other"})

        (record,) = _records(stream)
        assert record["document_id"] == "doc-1"


class TestExceptionPayload:

    def test_plain_exception(self, stream):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").warning("transaction_rolled_back", exc_info=True)

        (record,) = _records(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_ledger_error_context(self, stream):
        try:
            raise OverpaymentError("INV-000001", "5500.00", "5400.00")
        except OverpaymentError:
            get_logger("test").error("payment_rejected", exc_info=True)

        (record,) = _records(stream)
        assert record["exc_code"] == "OVERPAYMENT"
        assert record["exc_target_id"] == "INV-000001"
        assert record["exc_requested"] == "5500.00"


class TestConfigureLogging:

    def test_second_call_keeps_first_handler(self, stream):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert len(logging.getLogger("ledger_kernel").handlers) == 1

    def test_reset_removes_handlers(self, stream):
        reset_logging()
        root = logging.getLogger("ledger_kernel")
        assert root.handlers == []
        assert root.propagate
