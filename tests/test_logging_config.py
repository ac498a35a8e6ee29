"""
Tests for structured JSON logging and LogContext propagation.
"""

import json
import logging
import sys
from datetime import date
from uuid import UUID

import pytest

from kas_kernel.domain.records import PaymentStatus
from kas_kernel.exceptions import RecordNotFoundError
from kas_kernel.logging_config import LogContext, StructuredFormatter, get_logger


def _format(record: logging.LogRecord) -> dict:
    return json.loads(StructuredFormatter().format(record))


def _record(msg="hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("kas_kernel.test", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_basic_fields(self):
        payload = _format(_record())
        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "kas_kernel.test"

    def test_extra_fields_serialized(self):
        uid = UUID("12345678-1234-5678-1234-567812345678")
        payload = _format(_record(record_id=uid, period=date(2024, 7, 1), status=PaymentStatus.VALID))

        assert payload["record_id"] == str(uid)
        assert payload["period"] == "2024-07-01"
        assert payload["status"] == "valid"

    def test_context_fields_included(self):
        with LogContext.bind(correlation_id="c-1", actor_id="pku19", command="add_income"):
            payload = _format(_record())
        assert payload["correlation_id"] == "c-1"
        assert payload["actor_id"] == "pku19"
        assert payload["command"] == "add_income"

    def test_exception_attributes_flattened(self):
        try:
            raise RecordNotFoundError("students", "abc")
        except RecordNotFoundError:
            record = logging.LogRecord("kas_kernel.test", logging.ERROR, __file__, 1, "boom", (), sys.exc_info())

        payload = _format(record)
        assert payload["exc_type"] == "RecordNotFoundError"
        assert payload["exc_code"] == "RECORD_NOT_FOUND"
        assert payload["exc_collection"] == "students"


class TestLogContext:
    def test_bind_restores_previous_values(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", collection="payments"):
            assert LogContext.get_all() == {"actor_id": "inner", "collection": "payments"}
        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_bind_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(command="delete_student"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="trace_id"):
            LogContext.set(trace_id="t-1")

    def test_none_values_leave_fields_unchanged(self):
        LogContext.set(actor_id="pku19")
        LogContext.set(actor_id=None, command="add_income")
        assert LogContext.get_all() == {"actor_id": "pku19", "command": "add_income"}

    def test_get_logger_namespace(self):
        assert get_logger("services.commands").name == "kas_kernel.services.commands"

    def test_command_logs_carry_context(self, captured_logs, commands, admin):
        commands.add_student(admin, "19001", "Budi", "PKU 19")

        added = next(r for r in captured_logs() if r["message"] == "student_added")
        assert added["command"] == "add_student"
        assert added["actor_id"] == "pku19"
        assert "correlation_id" in added
