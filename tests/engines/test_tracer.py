"""
Tests for the KAS_ENGINE_TRACE decorator and the input fingerprints it logs.
"""

from datetime import datetime, timezone

import pytest

from kas_engines.ledger import (
    ReportWindow,
    compute_balances,
    derive_transaction_for_payment,
    filter_by_window,
)
from kas_engines.tracer import compute_input_fingerprint, traced_engine
from tests.builders import income, make_payment, make_student

NOW = datetime(2024, 7, 15, 3, 0, tzinfo=timezone.utc)


def _traces(captured_logs, engine_name):
    return [
        r for r in captured_logs()
        if r["message"] == "KAS_ENGINE_TRACE" and r["engine_name"] == engine_name
    ]


class TestFingerprint:
    def test_deterministic_and_field_sensitive(self):
        a = compute_input_fingerprint(("window", "now"), {"window": ReportWindow.TODAY, "now": NOW})
        b = compute_input_fingerprint(("window", "now"), {"now": NOW, "window": ReportWindow.TODAY})
        c = compute_input_fingerprint(("window", "now"), {"window": ReportWindow.LAST_7_DAYS, "now": NOW})

        assert a == b
        assert a != c
        assert len(a) == 16

    def test_missing_field_counts_as_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(("x",), {"x": None})


class TestTracedEngine:
    def test_window_filter_logs_fingerprint(self, captured_logs):
        filter_by_window([income(1000)], ReportWindow.LAST_7_DAYS, NOW)

        [trace] = _traces(captured_logs, "ledger.window")
        assert trace["engine_version"] == "1.0"
        assert len(trace["input_fingerprint"]) == 16
        assert trace["function"] == "filter_by_window"

    def test_positional_and_keyword_calls_fingerprint_alike(self, captured_logs):
        filter_by_window([], ReportWindow.TODAY, NOW)
        filter_by_window([], window=ReportWindow.TODAY, now=NOW)
        filter_by_window([], ReportWindow.MONTH_TO_DATE, NOW)

        first, second, third = (t["input_fingerprint"] for t in _traces(captured_logs, "ledger.window"))
        assert first == second
        assert first != third

    def test_derived_income_fingerprint_follows_payment(self, captured_logs):
        student = make_student()
        derive_transaction_for_payment(make_payment(student, jumlah=100000), student)
        derive_transaction_for_payment(make_payment(student, jumlah=150000), student)

        fingerprints = [t["input_fingerprint"] for t in _traces(captured_logs, "ledger.derive_income")]
        assert len(fingerprints) == 2
        assert all(fingerprints)
        assert fingerprints[0] != fingerprints[1]

    def test_no_fields_means_empty_fingerprint(self, captured_logs):
        compute_balances([income(1000)])

        [trace] = _traces(captured_logs, "ledger.balances")
        assert trace["input_fingerprint"] == ""

    def test_unknown_fingerprint_field_rejected(self):
        with pytest.raises(ValueError, match="amount"):
            @traced_engine("bad", "1.0", fingerprint_fields=("amount",))
            def engine(transactions):
                return transactions

    def test_result_passes_through(self):
        @traced_engine("echo", "1.0", fingerprint_fields=("value",))
        def echo(value):
            return value

        assert echo(value=7) == 7
