"""
Tests for the payment/transaction link checker.
"""

from datetime import timedelta
from uuid import uuid4

from kas_kernel.domain.records import PaymentStatus
from kas_engines.link_checker import FindingSeverity, check_payment_links
from tests.builders import expense, income, make_payment, make_student


def linked_income(payment, **kwargs):
    kwargs.setdefault("jumlah", payment.jumlah)
    kwargs.setdefault("tanggal", payment.tanggal)
    return income(ref_payment=payment.id, **kwargs)


class TestCheckPaymentLinks:
    def setup_method(self):
        self.student = make_student()

    def test_consistent_ledger(self):
        valid = make_payment(self.student)
        pending = make_payment(self.student, status=PaymentStatus.PENDING)
        transactions = [linked_income(valid), expense(20000)]

        result = check_payment_links([valid, pending], transactions)

        assert result.is_consistent
        assert result.payments_checked == 2
        assert result.transactions_checked == 2

    def test_valid_payment_without_transaction(self):
        valid = make_payment(self.student)

        result = check_payment_links([valid], [])

        assert result.codes() == ("VALID_PAYMENT_MISSING_TRANSACTION",)
        assert result.findings[0].payment_id == valid.id

    def test_duplicate_linked_transactions(self):
        valid = make_payment(self.student)
        result = check_payment_links([valid], [linked_income(valid), linked_income(valid)])
        assert result.codes() == ("DUPLICATE_LINKED_TRANSACTION",)
        assert len(result.findings[0].transaction_ids) == 2

    def test_rejected_payment_with_transaction(self):
        rejected = make_payment(self.student, status=PaymentStatus.REJECTED)
        result = check_payment_links([rejected], [linked_income(rejected)])
        assert result.codes() == ("UNVALIDATED_PAYMENT_HAS_TRANSACTION",)

    def test_amount_mismatch_is_an_error(self):
        valid = make_payment(self.student, jumlah=100000)
        result = check_payment_links([valid], [linked_income(valid, jumlah=90000)])
        assert result.codes() == ("LINKED_AMOUNT_MISMATCH",)
        assert result.errors == result.findings

    def test_date_mismatch_is_a_warning(self):
        valid = make_payment(self.student)
        shifted = linked_income(valid, tanggal=valid.tanggal + timedelta(hours=1))

        result = check_payment_links([valid], [shifted])

        assert result.codes() == ("LINKED_DATE_MISMATCH",)
        assert result.findings[0].severity == FindingSeverity.WARNING
        assert result.errors == ()
        assert not result.is_consistent

    def test_transaction_referencing_missing_payment(self):
        stray = income(100000, ref_payment=uuid4())
        result = check_payment_links([], [stray])
        assert result.codes() == ("ORPHANED_LINKED_TRANSACTION",)
        assert result.findings[0].transaction_ids == (stray.id,)

    def test_findings_logged(self, captured_logs):
        check_payment_links([make_payment(self.student)], [])
        logs = captured_logs()
        warning = next(r for r in logs if r["message"] == "link_check_findings")
        assert warning["codes"] == ["VALID_PAYMENT_MISSING_TRANSACTION"]
